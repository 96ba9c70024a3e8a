"""Generation of public case keys, access passwords and message ids."""

from __future__ import annotations

import hashlib
import secrets
import string

CASE_KEY_LENGTH = 10
ACCESS_PASSWORD_LENGTH = 8
MESSAGE_ID_LENGTH = 9

_KEY_ALPHABET = string.ascii_letters + string.digits
_PASSWORD_ALPHABET = string.ascii_uppercase + string.digits
_MESSAGE_ID_ALPHABET = string.ascii_lowercase + string.digits


def _random_string(alphabet: str, length: int) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_case_key() -> str:
    return _random_string(_KEY_ALPHABET, CASE_KEY_LENGTH)


def generate_access_password() -> str:
    return _random_string(_PASSWORD_ALPHABET, ACCESS_PASSWORD_LENGTH)


def generate_message_id() -> str:
    return _random_string(_MESSAGE_ID_ALPHABET, MESSAGE_ID_LENGTH)


def is_valid_case_key(value: str | None) -> bool:
    return (
        isinstance(value, str)
        and len(value) == CASE_KEY_LENGTH
        and all(ch in _KEY_ALPHABET for ch in value)
    )


def normalize_password(password: str) -> str:
    return password.strip().upper()


def hash_access_password(password: str) -> str:
    """Return the digest stored by persistence backends.

    The digest is deterministic so that every backend can look a case up with
    a plain equality match on ``(report_key, password_hash)``.
    """

    return hashlib.sha256(normalize_password(password).encode("utf-8")).hexdigest()


__all__ = [
    "ACCESS_PASSWORD_LENGTH",
    "CASE_KEY_LENGTH",
    "generate_access_password",
    "generate_case_key",
    "generate_message_id",
    "hash_access_password",
    "is_valid_case_key",
    "normalize_password",
]
