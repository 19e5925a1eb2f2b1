"""
api/routes/twofa.py -- Second-factor lifecycle endpoints.

Routes (all require a bearer token):
  GET  /api/2fa/status    -- {enabled}
  POST /api/2fa/setup     -- new secret + QR code; does not enable anything
  POST /api/2fa/verify    -- first enable; returns backup codes once
  POST /api/2fa/enable    -- re-enable with the existing secret
  POST /api/2fa/disable   -- clear secret, flag and backup codes

Rejections are TwoFactorError / ValidationError, rendered as 400 {"error"}.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import (
    SuccessResponse,
    TwoFactorCodeRequest,
    TwoFactorSetupResponse,
    TwoFactorStatusResponse,
    TwoFactorVerifyResponse,
)
from auth.dependencies import get_claims
from auth.models import Claims
from auth.twofactor import TwoFactorService

# Auth policy: every route requires auth (router-level get_claims dependency),
# and every handler acts on claims.account_id only -- never on an id from the body.
router = APIRouter(prefix="/2fa", dependencies=[Depends(get_claims)])


def _service(request: Request) -> TwoFactorService:
    return request.app.state.twofactor


@router.get("/status", response_model=TwoFactorStatusResponse)
def status(request: Request, claims: Claims = Depends(get_claims)) -> TwoFactorStatusResponse:
    return TwoFactorStatusResponse(enabled=_service(request).status(claims.account_id))


@router.post("/setup", response_model=TwoFactorSetupResponse)
def setup(request: Request, claims: Claims = Depends(get_claims)) -> JSONResponse:
    """Return the secret and a PNG data-URL QR code of its provisioning URI.

    This is the only time the secret leaves the server, so the response must
    not be cached.
    """
    result = _service(request).setup(claims.account_id)
    resp = JSONResponse(
        content=TwoFactorSetupResponse(secret=result.secret, qr_code=result.qr_code).model_dump(by_alias=True)
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/verify", response_model=TwoFactorVerifyResponse)
def verify(request: Request, body: TwoFactorCodeRequest, claims: Claims = Depends(get_claims)) -> JSONResponse:
    codes = _service(request).verify(claims.account_id, body.token)
    resp = JSONResponse(content=TwoFactorVerifyResponse(backup_codes=codes).model_dump(by_alias=True))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/enable", response_model=SuccessResponse)
def enable(request: Request, body: TwoFactorCodeRequest, claims: Claims = Depends(get_claims)) -> SuccessResponse:
    _service(request).enable(claims.account_id, body.token)
    return SuccessResponse(message="2FA enabled successfully")


@router.post("/disable", response_model=SuccessResponse)
def disable(request: Request, body: TwoFactorCodeRequest, claims: Claims = Depends(get_claims)) -> SuccessResponse:
    _service(request).disable(claims.account_id, body.token)
    return SuccessResponse(message="2FA disabled successfully")
