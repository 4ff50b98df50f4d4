"""
Credential Service - usernames, PINs, temporary passwords and hashing.

Usernames are allocated by generate-and-probe: candidates base1, base2, ...
are checked against the store until one is free. Two admins importing at
the same moment can still pick the same candidate; the unique index on
students.username turns that race into a failed insert rather than a
duplicate login.

Passwords, PINs and temporary passwords all go through one passlib
CryptContext. argon2 is the only scheme new hashes are written with;
plaintext is registered as deprecated so rows from before hashing was
introduced verify once and are re-hashed on that login.
"""

import hashlib
import random
import re
import secrets
import time
from typing import Callable, Optional, Tuple

from passlib.context import CryptContext

from timestables.logging_config import get_logger, log_with_context

logger = get_logger("auth")

USERNAME_RETRY_LIMIT = 999
TEMP_PASSWORD_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
TEMP_PASSWORD_LENGTH = 8

pwd_context = CryptContext(
    schemes=["argon2", "plaintext"],
    deprecated="auto"
)


def _alnum_lower(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", str(value or "").strip().lower())


def base_username(first_name: str, last_name: str) -> str:
    """First name (up to 8 chars) plus the first letter of the last name."""
    first = _alnum_lower(first_name)
    last = _alnum_lower(last_name)
    base = (first[:8] + last[:1])[:10]
    return base or "student"


def clean_username(value: str) -> str:
    """Normalise an admin-supplied username: lower-case alphanumerics only."""
    return _alnum_lower(value)


def generate_username(first_name: str, last_name: str,
                      exists: Callable[[str], bool]) -> str:
    """
    Return the first free username for a pupil.

    Args:
        first_name: Pupil's first name
        last_name: Pupil's last name
        exists: Probe returning True if a username is already taken

    Returns:
        base + the first numeric suffix (1..999) that is free, or base +
        the last six digits of the current millisecond timestamp when every
        suffix is taken.
    """
    base = base_username(first_name, last_name)
    for i in range(1, USERNAME_RETRY_LIMIT + 1):
        candidate = f"{base}{i}"
        if not exists(candidate):
            return candidate

    fallback = f"{base}{str(int(time.time() * 1000))[-6:]}"
    log_with_context(logger, "WARNING",
        "Username suffixes exhausted for '{}', using timestamp suffix".format(base),
        extra_data={"username": fallback})
    return fallback


def generate_pin() -> str:
    """4-digit zero-padded PIN. Not cryptographically strong."""
    return str(random.randint(0, 9999)).zfill(4)


def generate_temp_password() -> str:
    """8 characters from an alphabet without 0/O or 1/I."""
    return "".join(random.choice(TEMP_PASSWORD_ALPHABET) for _ in range(TEMP_PASSWORD_LENGTH))


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: Optional[str]) -> Tuple[bool, Optional[str]]:
    """
    Check a secret against a stored hash.

    Returns:
        (verified, new_hash). new_hash is set when the stored hash uses a
        deprecated scheme and should be replaced by the caller.
    """
    if not password or not hashed:
        return False, None
    return pwd_context.verify_and_update(password, hashed)


def generate_invite_token() -> str:
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
