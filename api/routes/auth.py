"""
api/routes/auth.py -- Login and session endpoints.

Routes:
  POST /api/login              -- password (+ second factor) login; returns bearer token
  GET  /api/session/validate   -- 200 {valid: true} if the bearer token is good
  GET  /api/session/me         -- the verified claims of the current token

Security:
  POST /login is rate-limited per remote address (LOGIN_RATE_LIMIT).
  Every credential or second-factor rejection is a 401 with one of exactly two
  bodies, {"error": "Invalid credentials"} or {"error": "Invalid 2FA code"},
  raised by LoginOrchestrator and rendered by the AuthError handler.
  Cache-Control: no-store on every login response that carries a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import (
    AccountInfo,
    ClaimsResponse,
    LoginRequest,
    LoginResponse,
    SecondFactorRequiredResponse,
    ValidateResponse,
)
from auth.dependencies import get_claims
from auth.login import LoginOrchestrator
from auth.models import Claims

# Auth policy:
# - POST /api/login:             public -- login endpoint must be unauthenticated
# - GET  /api/session/validate:  requires auth (get_claims)
# - GET  /api/session/me:        requires auth (get_claims)
router = APIRouter()


@limiter.limit(login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/login", response_model=LoginResponse | SecondFactorRequiredResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username, password and, when enabled, a second factor.

    Returns either {token, user} or {requires2FA: true}. The second shape is
    only reachable with a correct password.
    """
    orchestrator: LoginOrchestrator = request.app.state.login
    result = orchestrator.login(body.username, body.password, body.totp_token)

    if result.requires_second_factor:
        content = SecondFactorRequiredResponse().model_dump(by_alias=True)
    else:
        content = LoginResponse(
            token=result.token,
            user=AccountInfo.from_account(result.account),
        ).model_dump(by_alias=True)

    resp = JSONResponse(status_code=200, content=content)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/session/validate", response_model=ValidateResponse)
async def validate(claims: Claims = Depends(get_claims)) -> ValidateResponse:
    """Reaching the body means get_claims() accepted the token."""
    return ValidateResponse()


@router.get("/session/me", response_model=ClaimsResponse)
async def me(claims: Claims = Depends(get_claims)) -> ClaimsResponse:
    return ClaimsResponse.from_claims(claims)
