"""
auth/profile.py -- Self-service password change.

The current password is re-checked even though the caller already holds a
valid session: a stolen token alone must not be enough to lock the owner out.
"""

from __future__ import annotations

import logging

from auth.errors import AuthenticationError, ValidationError
from auth.passwords import hash_password, verify_password
from auth.store import AccountRepository

logger = logging.getLogger("st0r.auth")

MIN_PASSWORD_LENGTH = 8


def change_password(store: AccountRepository, account_id: int, current: str | None, new: str | None) -> None:
    if not current or not new:
        raise ValidationError("Current password and new password are required")
    if len(new) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"New password must be at least {MIN_PASSWORD_LENGTH} characters long")

    account = store.get_by_id(account_id)
    if account is None or not verify_password(current, account.hashed_password):
        raise AuthenticationError("Current password is incorrect")
    if current == new:
        raise ValidationError("New password must be different from current password")

    store.update_password(account.id, hash_password(new))
    logger.info("Account %r (id=%s) changed their password", account.username, account.id)
