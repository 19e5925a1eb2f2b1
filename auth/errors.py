"""
auth/errors.py -- Exception taxonomy for the auth core.

Every failure the core can surface to a caller is one of these. The HTTP
layer (api/main.py) renders any AuthError as {"error": exc.message} with
exc.status_code, so route handlers raise and never build error responses
themselves.

  ValidationError      400  missing / malformed input
  AuthenticationError  401  bad password, bad code, bad or expired token
  TwoFactorError       400  second-factor lifecycle rejection (wire contract
                            for /2fa/* is 400, but it is still an
                            authentication failure to Python callers)
  AuthorizationError   403  elevated role required
  StorageError         500  repository unavailable; detail stays in logs

message is the public, wire-visible text. Anything more specific (which
token check failed, the SQL error) goes to the log, never into message.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from enum import Enum


class AuthError(Exception):
    """Base class. status_code and message are what the caller sees."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthError):
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(AuthError):
    status_code = 401
    default_message = "Invalid credentials"


class TwoFactorError(AuthenticationError):
    status_code = 400
    default_message = "Invalid token"


class AuthorizationError(AuthError):
    status_code = 403
    default_message = "Admin access required"


class StorageError(AuthError):
    """Repository failure. The public message is fixed; pass detail via __cause__."""

    status_code = 500

    def __init__(self, detail: str = "") -> None:
        super().__init__()
        self.detail = detail


class TokenErrorReason(str, Enum):
    EXPIRED = "expired"
    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"


class TokenError(AuthenticationError):
    """Session token rejected. reason is for logs; the wire message never varies."""

    default_message = "Invalid or expired token"

    def __init__(self, reason: TokenErrorReason) -> None:
        super().__init__()
        self.reason = reason
