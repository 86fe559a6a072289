"""Session-scoped password credentials for protected folders.

A visitor unlocks a protected subtree by submitting its password. The
password is stored Fernet-encrypted in the visitor's session under
``password:<encryption_key_id>`` together with an expiry instant, and is
re-checked against the configured password on every protected access.
Expiry is enforced lazily on read; nothing sweeps old credentials.
"""

from __future__ import annotations

import hmac
import json
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from cryptography.fernet import Fernet, InvalidToken

from onedrive_index.errors import CredentialExpired, CredentialMismatch
from onedrive_index.listing.paths import normalize

if TYPE_CHECKING:
    from onedrive_index.listing.cache import SessionStore

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "password:"


@dataclass(frozen=True)
class Credential:
    """A submitted folder password as held in the session."""

    encryption_key_id: str
    password: str
    expires_at: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Credential:
        return cls(
            encryption_key_id=str(raw["encryption_key_id"]),
            password=str(raw["password"]),
            expires_at=float(raw["expires_at"]),
        )


@dataclass(frozen=True)
class PasswordChallenge:
    """Where the visitor was heading when asked for a password."""

    route: str
    request_path: str
    encryption_key_id: str


class ProtectedPathCredential:
    """Issues and validates time-bounded folder password credentials."""

    def __init__(self, secret_key: str | bytes, clock: Callable[[], float] = time.time) -> None:
        """Initialise the credential service.

        Args:
            secret_key: URL-safe base64 Fernet key.
            clock: Source of the current Unix time, injectable for tests.
        """
        self._fernet = Fernet(secret_key)
        self._clock = clock

    def issue(
        self,
        session: SessionStore,
        encryption_key_id: str,
        submitted_password: str,
        ttl_minutes: int,
    ) -> Credential:
        """Store a submitted password in the session and return the credential."""
        credential = Credential(
            encryption_key_id=encryption_key_id,
            password=self._fernet.encrypt(submitted_password.encode("utf-8")).decode("ascii"),
            expires_at=self._clock() + ttl_minutes * 60,
        )
        session.put(SESSION_KEY_PREFIX + encryption_key_id, credential.to_dict())
        logger.info(
            "[issue] credential stored; key:%s;ttl_minutes:%d", encryption_key_id, ttl_minutes
        )
        return credential

    @staticmethod
    def verify(expected_password: str, submitted_password: str) -> bool:
        """Compare two passwords in constant time."""
        return hmac.compare_digest(
            expected_password.encode("utf-8"), submitted_password.encode("utf-8")
        )

    def check(self, session: SessionStore, encryption_key_id: str, expected_password: str) -> None:
        """Validate the session's credential for a protected subtree.

        Raises:
            CredentialExpired: If the credential's expiry has passed; the
                credential is removed from the session.
            CredentialMismatch: If no credential is stored, it cannot be
                decoded, or the password does not match.
        """
        raw = session.get(SESSION_KEY_PREFIX + encryption_key_id)
        if raw is None:
            raise CredentialMismatch(f"Password required for {encryption_key_id}")
        try:
            credential = Credential.from_dict(raw)
            submitted = self._fernet.decrypt(credential.password.encode("ascii")).decode("utf-8")
        except (InvalidToken, KeyError, TypeError, ValueError) as exc:
            logger.warning("[check] unreadable credential; key:%s", encryption_key_id)
            raise CredentialMismatch("Stored credential is invalid") from exc

        if self._clock() >= credential.expires_at:
            self.clear(session, encryption_key_id)
            raise CredentialExpired(f"Password for {encryption_key_id} has expired")
        if not self.verify(expected_password, submitted):
            raise CredentialMismatch("Wrong password")

    def clear(self, session: SessionStore, encryption_key_id: str) -> None:
        session.forget(SESSION_KEY_PREFIX + encryption_key_id)

    def seal(self, challenge: PasswordChallenge) -> str:
        """Encrypt a challenge so it can round-trip through the password form."""
        return self._fernet.encrypt(json.dumps(asdict(challenge)).encode("utf-8")).decode("ascii")

    def unseal(self, token: str) -> PasswordChallenge:
        """Decrypt a sealed challenge.

        Raises:
            CredentialMismatch: If the token was tampered with or is malformed.
        """
        try:
            raw = json.loads(self._fernet.decrypt(token.encode("ascii")))
            return PasswordChallenge(
                route=str(raw["route"]),
                request_path=str(raw["request_path"]),
                encryption_key_id=str(raw["encryption_key_id"]),
            )
        except (InvalidToken, KeyError, TypeError, ValueError) as exc:
            raise CredentialMismatch("Password form is invalid") from exc


def protected_key_for(encrypt_paths: Mapping[str, str], virtual_path: str) -> str | None:
    """Return the encryption key id of the deepest protected folder covering a path.

    Drive paths are case-insensitive, so the match ignores case. The key id
    keeps the spelling it was configured with.
    """
    path = normalize(virtual_path).casefold()
    best: str | None = None
    for protected in encrypt_paths:
        key = normalize(protected)
        folded = key.casefold()
        covers = folded == "/" or path == folded or path.startswith(folded + "/")
        if covers and (best is None or len(key) > len(best)):
            best = key
    return best
