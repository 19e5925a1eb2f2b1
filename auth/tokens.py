"""
auth/tokens.py -- Session token issue and verification.

Security design decisions:
  JWT: python-jose with HS256, signed with SECRET_KEY. Tokens carry sub
       (username), user_id, elevated, iat, exp and jti. There is no server-side
       session record: a token is valid until exp and cannot be revoked early.
       Rotating SECRET_KEY invalidates every outstanding token at once; that is
       the only "log everyone out" switch.

  Expiry: checked here against an injectable clock rather than inside
       jose, so the boundary (valid until exp, invalid from exp on) is exact
       and testable. jose still verifies the signature and algorithm.
       Granularity is one second: iat and exp are whole epoch seconds and
       "now" is truncated before the comparison, so a token issued at
       T+0.1 is rejected from T+lifetime on, 0.1s before issue time +
       lifetime. Expiry is exact only to the whole second.

  Failures: verify() raises TokenError with a reason (expired, malformed,
       bad_signature). The reason is for server logs only; the auth gate
       turns every TokenError into the same 401 body.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

from jose import JWTError, jwt
from jose.exceptions import JWTClaimsError

from auth.errors import TokenError, TokenErrorReason
from auth.models import Claims

if TYPE_CHECKING:
    from auth.models import Account

_ALGORITHM = "HS256"


class SessionIssuer:
    """Creates and validates signed, time-bound bearer tokens.

    Usage:
        issuer = SessionIssuer(secret_key, lifetime_seconds=86400)
        token = issuer.issue(account)
        claims = issuer.verify(token)
    """

    def __init__(self, secret_key: str, lifetime_seconds: int = 24 * 3600) -> None:
        self._secret_key = secret_key
        self.lifetime_seconds = lifetime_seconds

    def issue(self, account: Account, now: float | None = None) -> str:
        issued_at = int(now if now is not None else time.time())
        payload = {
            "sub": account.username,
            "user_id": account.id,
            "elevated": account.elevated,
            "iat": issued_at,
            "exp": issued_at + self.lifetime_seconds,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str, now: float | None = None) -> Claims:
        """Return the verified Claims or raise TokenError."""
        try:
            jwt.get_unverified_header(token)
        except JWTError as exc:
            raise TokenError(TokenErrorReason.MALFORMED) from exc

        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTClaimsError as exc:
            raise TokenError(TokenErrorReason.MALFORMED) from exc
        except JWTError as exc:
            raise TokenError(TokenErrorReason.BAD_SIGNATURE) from exc

        claims = _payload_to_claims(payload)
        current = int(now if now is not None else time.time())
        if current >= claims.expires_at:
            raise TokenError(TokenErrorReason.EXPIRED)
        return claims


def _payload_to_claims(payload: dict) -> Claims:
    user_id = payload.get("user_id")
    username = payload.get("sub")
    elevated = payload.get("elevated")
    issued_at = payload.get("iat")
    expires_at = payload.get("exp")
    if (
        not isinstance(user_id, int)
        or not isinstance(username, str)
        or not isinstance(elevated, bool)
        or not isinstance(issued_at, int)
        or not isinstance(expires_at, int)
    ):
        raise TokenError(TokenErrorReason.MALFORMED)
    return Claims(
        account_id=user_id,
        username=username,
        elevated=elevated,
        issued_at=issued_at,
        expires_at=expires_at,
        token_id=str(payload.get("jti", "")),
    )
