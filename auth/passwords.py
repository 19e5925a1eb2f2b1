"""
auth/passwords.py -- Password hashing and constant-time account authentication.

bcrypt is used directly (no passlib wrapper). Its cost factor makes offline
brute-force expensive; BCRYPT_ROUNDS in core.config sets it.

authenticate_account() always runs one bcrypt comparison whether or not the
username exists, so response time does not reveal which usernames are valid.
Both failure modes return None and callers map them to one generic error.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import bcrypt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import Account
    from auth.store import AccountRepository

logger = logging.getLogger("st0r.auth")


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only reads the first 72 bytes, and bcrypt 4.x raises on longer
    input instead of truncating, so the encoded password is sliced here.
    """
    cost = rounds if rounds is not None else get_settings().bcrypt_rounds
    return bcrypt.hashpw(plain.encode("utf-8")[:72], bcrypt.gensalt(rounds=cost)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at import so the first unknown-user login is not measurably
# faster than a wrong-password login.
_DUMMY_HASH: str = hash_password("st0r_timing_dummy")


def authenticate_account(store: AccountRepository, username: str, password: str) -> Account | None:
    """Return the Account when username + password are correct, else None.

    Unknown usernames are checked against _DUMMY_HASH so both failure paths
    cost one bcrypt comparison. The store only returns active accounts.
    """
    account = store.get_by_username(username)
    if account is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, account.hashed_password):
        return None
    return account
