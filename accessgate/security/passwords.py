"""Password hashing backed by bcrypt.

bcrypt salts every hash, so hashing the same password twice yields two
different strings. Stored hashes must be compared with :func:`verify_password`,
never by equality. Passwords are truncated to 72 bytes (bcrypt's limit).
"""

from __future__ import annotations

from functools import lru_cache

import bcrypt

from ..config import get_settings
from ..errors import HashingError


def hash_password(password: str, rounds: int | None = None) -> str:
    """Hash a password with a fresh bcrypt salt."""
    work_factor = rounds or get_settings().bcrypt_rounds
    try:
        salt = bcrypt.gensalt(rounds=work_factor)
        return bcrypt.hashpw(password.encode("utf-8")[:72], salt).decode("utf-8")
    except (ValueError, TypeError, OSError) as exc:
        raise HashingError() from exc


def verify_password(password: str, password_hash: str) -> bool:
    """Return ``True`` when ``password`` matches ``password_hash``; never raises."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8")[:72], password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False


@lru_cache(maxsize=4)
def dummy_hash(rounds: int) -> str:
    """Hash of a throwaway secret at the given cost.

    Login checks unknown emails against it so both outcomes spend the same bcrypt time.
    """
    return hash_password("accessgate-no-such-account", rounds)
