"""
auth/twofactor.py -- Second-factor lifecycle: status, setup, verify, enable, disable.

Each mutating operation reads the account once, checks the submitted code
against the secret it read, then writes with a conditional UPDATE that only
applies if the secret is still that one. If a concurrent /2fa/setup replaced
the secret in between, the write touches no row and the caller gets a
TwoFactorError instead of an account enabled under a secret nobody verified.

All rejections raise TwoFactorError (400 on the wire).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.errors import TwoFactorError, ValidationError
from auth.models import Account
from auth.store import AccountRepository
from auth.totp import TOTPEngine, mask_code, render_qr_data_url

logger = logging.getLogger("st0r.auth")


@dataclass(frozen=True)
class SetupResult:
    secret: str
    provisioning_uri: str
    qr_code: str  # data:image/png;base64,...


class TwoFactorService:
    def __init__(self, store: AccountRepository, engine: TOTPEngine, backup_code_count: int = 8) -> None:
        self.store = store
        self.engine = engine
        self.backup_code_count = backup_code_count

    def status(self, account_id: int) -> bool:
        account = self.store.get_by_id(account_id)
        return bool(account and account.totp_enabled)

    def setup(self, account_id: int) -> SetupResult:
        """Generate and store a new secret. Safe to call repeatedly; the flag is untouched."""
        account = self._load(account_id)
        provisioned = self.engine.generate_secret(account.username)
        if not self.store.update_totp_secret(account.id, provisioned.secret):
            raise TwoFactorError("2FA setup failed")
        logger.info("2FA secret generated for account %s", account.id)
        return SetupResult(
            secret=provisioned.secret,
            provisioning_uri=provisioned.provisioning_uri,
            qr_code=render_qr_data_url(provisioned.provisioning_uri),
        )

    def verify(self, account_id: int, code: str | None) -> list[str]:
        """First-time enable. Returns the plaintext backup codes (shown once)."""
        account, secret = self._checked(account_id, code, not_set_up="2FA not set up")
        codes = self.engine.generate_backup_codes(self.backup_code_count)
        hashes = [self.engine.hash_backup_code(c) for c in codes]
        if not self.store.enable_totp(account.id, secret, hashes):
            logger.warning("2FA verify for account %s lost a race with setup", account.id)
            raise TwoFactorError("2FA setup changed, please scan the new QR code")
        logger.info("2FA enabled for account %s with %d backup codes", account.id, len(codes))
        return codes

    def enable(self, account_id: int, code: str | None) -> None:
        """Re-enable with the existing secret. Idempotent."""
        account, secret = self._checked(account_id, code, not_set_up="2FA not set up. Please setup 2FA first.")
        if account.totp_enabled:
            return
        if not self.store.enable_totp(account.id, secret):
            raise TwoFactorError("2FA setup changed, please scan the new QR code")
        logger.info("2FA re-enabled for account %s", account.id)

    def disable(self, account_id: int, code: str | None) -> None:
        account, secret = self._checked(account_id, code, not_set_up="2FA not set up")
        if not self.store.clear_totp(account.id, secret):
            raise TwoFactorError("2FA setup changed, please try again")
        logger.info("2FA disabled for account %s", account.id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, account_id: int) -> Account:
        account = self.store.get_by_id(account_id)
        if account is None:
            raise TwoFactorError("Account not found")
        return account

    def _checked(self, account_id: int, code: str | None, not_set_up: str) -> tuple[Account, str]:
        """Load the account and verify code against its current secret."""
        if not code:
            raise ValidationError("Token is required")
        account = self._load(account_id)
        secret = account.totp_secret
        if secret is None:
            raise TwoFactorError(not_set_up)
        if not self.engine.verify(secret, code.strip()):
            logger.info("2FA code %s rejected for account %s", mask_code(code), account.id)
            raise TwoFactorError("Invalid token")
        return account, secret
