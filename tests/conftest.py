"""Pytest configuration — adds src/ to sys.path and shared fixtures."""

import os
import sys

import pytest

# Add src/ to Python path so tests can import from onedrive_index
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from cryptography.fernet import Fernet  # noqa: E402


@pytest.fixture
def secret_key() -> str:
    """A fresh Fernet key for credential tests."""
    return Fernet.generate_key().decode("ascii")
