"""
auth/bootstrap.py -- First-start admin account.

An empty account table means nobody can ever log in, so on start-up we create
one elevated account from BOOTSTRAP_ADMIN_* settings. Without a configured
password nothing is created; there is no built-in default password.
"""

from __future__ import annotations

import logging

from auth.models import Account
from auth.passwords import hash_password
from auth.store import AccountStore
from core.config import Settings

logger = logging.getLogger("st0r.auth")


def ensure_bootstrap_account(store: AccountStore, settings: Settings) -> int | None:
    """Create the bootstrap admin if the store is empty. Returns its id, or None."""
    if store.has_accounts():
        return None
    if not settings.bootstrap_admin_password:
        logger.warning("No accounts exist and BOOTSTRAP_ADMIN_PASSWORD is not set -- nobody can log in")
        return None
    account_id = store.create_account(
        Account(
            username=settings.bootstrap_admin_username,
            email=settings.bootstrap_admin_email,
            hashed_password=hash_password(settings.bootstrap_admin_password),
            elevated=True,
        )
    )
    logger.info("Bootstrap admin %r created (id=%s)", settings.bootstrap_admin_username, account_id)
    return account_id
