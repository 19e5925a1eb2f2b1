"""
api/routes/profile.py -- Self-service account endpoints.

Routes:
  POST /api/profile/change-password   -- requires auth
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import ChangePasswordRequest, SuccessResponse
from auth.dependencies import get_claims
from auth.models import Claims
from auth.profile import change_password

router = APIRouter(prefix="/profile")


@router.post("/change-password", response_model=SuccessResponse)
def change_password_route(
    request: Request,
    body: ChangePasswordRequest,
    claims: Claims = Depends(get_claims),
) -> SuccessResponse:
    """Outstanding session tokens stay valid after the change; there is no revocation."""
    change_password(request.app.state.account_store, claims.account_id, body.current_password, body.new_password)
    return SuccessResponse(message="Password changed successfully")
