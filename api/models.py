"""
API request and response models for the St0r auth endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

The wire format is camelCase (totpToken, backupCodes, isAdmin) because the
browser client predates this service. Fields are snake_case in Python and
carry a camelCase alias; responses are dumped with by_alias=True.

Required-field checks for credentials and codes live in the auth services, not
here, so a missing field yields the same {"error": "..."} message the client
already knows instead of a Pydantic error list.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Account, Claims

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Body of POST /api/login. totpToken is sent on the second round only.

    username and password are capped at 255 characters. An oversized value is
    rejected as 400 "Invalid request" before any lookup, not as the 401
    "Invalid credentials" a wrong password gets. The cap is far above any
    real credential and keeps bcrypt input and log lines bounded.
    """

    # No str_strip_whitespace: passwords are compared byte for byte.
    model_config = ConfigDict(populate_by_name=True)

    username: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)
    totp_token: Optional[str] = Field(default=None, alias="totpToken", max_length=32)


class TwoFactorCodeRequest(BaseModel):
    """Body of POST /api/2fa/verify|enable|disable."""

    model_config = ConfigDict(str_strip_whitespace=True)

    token: Optional[str] = Field(default=None, max_length=32)


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: Optional[str] = Field(default=None, alias="currentPassword", max_length=255)
    new_password: Optional[str] = Field(default=None, alias="newPassword", max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountInfo(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    username: str
    email: str
    is_admin: bool = Field(alias="isAdmin")

    @classmethod
    def from_account(cls, account: Account) -> "AccountInfo":
        return cls(id=account.id, username=account.username, email=account.email, is_admin=account.elevated)


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    user: AccountInfo


class SecondFactorRequiredResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    requires_2fa: bool = Field(default=True, alias="requires2FA")


class ValidateResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool = True


class ClaimsResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    account_id: int = Field(alias="accountId")
    username: str
    elevated: bool
    expires_at: int = Field(alias="expiresAt")

    @classmethod
    def from_claims(cls, claims: Claims) -> "ClaimsResponse":
        return cls(
            account_id=claims.account_id,
            username=claims.username,
            elevated=claims.elevated,
            expires_at=claims.expires_at,
        )


class TwoFactorStatusResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool


class TwoFactorSetupResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    secret: str
    qr_code: str = Field(alias="qrCode")


class SuccessResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str = ""


class TwoFactorVerifyResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    success: bool = True
    message: str = "2FA enabled successfully"
    backup_codes: list[str] = Field(alias="backupCodes")


class ErrorResponse(BaseModel):
    """Every non-2xx body. The message never says more than the status does."""

    model_config = ConfigDict(frozen=True)

    error: str


class HealthResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
