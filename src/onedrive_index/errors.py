"""Error kinds surfaced by the listing engine to the HTTP layer."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from onedrive_index.listing.credential import PasswordChallenge


class DisplayError(Exception):
    """Base class for errors the presentation layer maps to a message.

    Each subclass carries a stable ``kind`` string so callers can branch on
    the error without importing every class.
    """

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class RemoteUnavailable(DisplayError):
    """The storage API failed, timed out, or returned a non-2xx response."""

    kind = "remote_unavailable"


class NotFound(DisplayError):
    """The path resolves to nothing."""

    kind = "not_found"


class TypeMismatch(DisplayError):
    """A folder was found where a file was expected, or vice versa."""

    kind = "type_mismatch"


class TooLarge(DisplayError):
    """Inline content exceeds the configured size ceiling."""

    kind = "too_large"

    def __init__(self, message: str, size: int, limit: int) -> None:
        super().__init__(message)
        self.size = size
        self.limit = limit


class InvalidPath(DisplayError):
    """The decoded path is malformed or empty where a name is required."""

    kind = "invalid_path"


class CredentialExpired(DisplayError):
    """The stored password credential has passed its expiry instant."""

    kind = "credential_expired"

    def __init__(self, message: str, challenge: PasswordChallenge | None = None) -> None:
        super().__init__(message)
        self.challenge = challenge


class CredentialMismatch(DisplayError):
    """The submitted password does not match the protected subtree's password.

    Carries the password challenge so the form can be shown again without
    losing the route and path the user was heading to.
    """

    kind = "credential_mismatch"

    def __init__(self, message: str, challenge: PasswordChallenge | None = None) -> None:
        super().__init__(message)
        self.challenge = challenge
