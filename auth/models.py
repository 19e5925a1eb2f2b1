"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store, services and routes do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Account:
    """A local login identity.

    Invariant: totp_enabled implies totp_secret is not None. The reverse does
    not hold -- a secret without the flag means setup is in progress.

    Accounts are soft-deactivated (is_active=False), never hard-deleted.
    """

    username: str
    hashed_password: str
    email: str = ""
    elevated: bool = False  # True = admin role
    id: int | None = None
    totp_secret: str | None = None  # base32, None until /2fa/setup
    totp_enabled: bool = False
    last_login: str | None = None
    created_at: str | None = None
    is_active: bool = True

    @property
    def role(self) -> str:
        return "elevated" if self.elevated else "standard"


@dataclass(frozen=True)
class Claims:
    """Verified identity payload extracted from a session token.

    Attached to request.state.claims by the auth gate. Timestamps are UTC
    epoch seconds. token_id is the JWT "jti"; nothing checks it today.
    """

    account_id: int
    username: str
    elevated: bool
    issued_at: int
    expires_at: int
    token_id: str = ""


@dataclass
class BackupCode:
    """One stored recovery code.

    code_hash is HMAC-SHA256(SECRET_KEY, normalized code). The plaintext code
    is returned once, when 2FA is verified, and never persisted.
    """

    account_id: int
    code_hash: str
    id: int | None = None
    created_at: str | None = None
    consumed_at: str | None = None  # None = still redeemable
