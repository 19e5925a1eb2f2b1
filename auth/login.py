"""
auth/login.py -- The credential -> second factor -> session state machine.

  AWAITING_CREDENTIALS
      |  password ok
      v
  CREDENTIALS_VERIFIED --(2FA off)--------------------------> SESSION_ISSUED
      |  2FA on, no code                                       ^
      +--------------> AWAITING_SECOND_FACTOR                  |
      |  2FA on, code supplied                                 |
      +--> SECOND_FACTOR_VERIFIED -----------------------------+
      +--> SECOND_FACTOR_REJECTED

No partial-login state survives between requests. A client that receives
requires2FA resubmits username, password and code together, and the password
is verified again. The requires2FA answer is only ever given after a correct
password, so it does reveal that the password was right.

A backup code is accepted wherever a TOTP code is, and is consumed on use.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from auth.errors import AuthenticationError, ValidationError
from auth.models import Account
from auth.passwords import authenticate_account
from auth.store import AccountRepository
from auth.tokens import SessionIssuer
from auth.totp import TOTPEngine, is_backup_code_shape, mask_code

logger = logging.getLogger("st0r.auth")

INVALID_CREDENTIALS = "Invalid credentials"
INVALID_SECOND_FACTOR = "Invalid 2FA code"


class LoginState(str, Enum):
    AWAITING_CREDENTIALS = "awaiting_credentials"
    CREDENTIALS_VERIFIED = "credentials_verified"
    AWAITING_SECOND_FACTOR = "awaiting_second_factor"
    SECOND_FACTOR_VERIFIED = "second_factor_verified"
    SECOND_FACTOR_REJECTED = "second_factor_rejected"
    SESSION_ISSUED = "session_issued"


@dataclass(frozen=True)
class LoginResult:
    """Terminal state of one login request that did not fail.

    state is SESSION_ISSUED (token and account set) or
    AWAITING_SECOND_FACTOR (both None).
    """

    state: LoginState
    token: str | None = None
    account: Account | None = None

    @property
    def requires_second_factor(self) -> bool:
        return self.state is LoginState.AWAITING_SECOND_FACTOR


class LoginOrchestrator:
    def __init__(self, store: AccountRepository, totp: TOTPEngine, issuer: SessionIssuer) -> None:
        self.store = store
        self.totp = totp
        self.issuer = issuer

    def login(self, username: str | None, password: str | None, totp_code: str | None = None) -> LoginResult:
        """Run one login request to a terminal state.

        Raises:
            ValidationError:     username or password missing.
            AuthenticationError: "Invalid credentials" for unknown user or
                                 wrong password; "Invalid 2FA code" for a
                                 rejected second factor.
        """
        if not username or not password:
            raise ValidationError("Username and password are required")

        account = authenticate_account(self.store, username, password)
        if account is None:
            logger.info("Login failed for %r: bad credentials", username)
            raise AuthenticationError(INVALID_CREDENTIALS)

        # CREDENTIALS_VERIFIED
        if account.totp_enabled:
            if not totp_code:
                logger.info("Login for %r awaiting second factor", username)
                return LoginResult(state=LoginState.AWAITING_SECOND_FACTOR)
            if not self._check_second_factor(account, totp_code):
                logger.info("Login failed for %r: second factor %s rejected", username, mask_code(totp_code))
                raise AuthenticationError(INVALID_SECOND_FACTOR)
            # SECOND_FACTOR_VERIFIED

        self.store.update_last_login(account.id)
        token = self.issuer.issue(account)
        logger.info("Session issued for %r (id=%s)", account.username, account.id)
        return LoginResult(state=LoginState.SESSION_ISSUED, token=token, account=account)

    def _check_second_factor(self, account: Account, code: str) -> bool:
        code = code.strip()
        if account.totp_secret is None:
            return False
        if self.totp.verify(account.totp_secret, code):
            return True
        if is_backup_code_shape(code):
            consumed = self.store.consume_backup_code(account.id, self.totp.hash_backup_code(code))
            if consumed:
                logger.warning("Backup code redeemed for %r (id=%s)", account.username, account.id)
            return consumed
        return False
