"""
auth/dependencies.py -- FastAPI Depends() helpers: the request-boundary auth gate.

Token sources, checked in order:
  1. Authorization: Bearer <token> header -- every API client.
  2. ?token=<token> query parameter -- links that cannot set headers
     (file downloads opened in a new tab).

get_claims() verifies the token with the app's SessionIssuer and attaches the
resulting Claims to request.state.claims. A missing token and a bad token
produce the same 401 body; only the log line says which check failed.

require_elevated() wraps get_claims() and raises 403 (not 401) when the
claims lack the elevated flag. ensure_elevated() is the same check for code
that already holds Claims.

Layer rule: may import from fastapi because this module is part of the
FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

import logging

from fastapi import Depends, Request

from auth.errors import AuthenticationError, AuthorizationError, TokenError
from auth.models import Claims
from auth.tokens import SessionIssuer

logger = logging.getLogger("st0r.auth")

UNAUTHENTICATED = "Authentication required"


def extract_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.query_params.get("token") or None


def get_claims(request: Request) -> Claims:
    """Require a valid session. Raises AuthenticationError (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(claims: Claims = Depends(get_claims)): ...
    """
    token = extract_token(request)
    if token is None:
        logger.info("Unauthenticated %s %s: no token", request.method, request.url.path)
        raise AuthenticationError(UNAUTHENTICATED)

    issuer: SessionIssuer = request.app.state.session_issuer
    try:
        claims = issuer.verify(token)
    except TokenError as exc:
        logger.info("Unauthenticated %s %s: token %s", request.method, request.url.path, exc.reason.value)
        raise AuthenticationError(UNAUTHENTICATED) from exc

    request.state.claims = claims
    return claims


def ensure_elevated(claims: Claims) -> Claims:
    if not claims.elevated:
        raise AuthorizationError("Admin access required")
    return claims


def require_elevated(claims: Claims = Depends(get_claims)) -> Claims:
    """Require the elevated role. 401 if unauthenticated, 403 if not elevated."""
    return ensure_elevated(claims)
