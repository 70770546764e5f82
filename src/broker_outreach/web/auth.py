"""Bearer token verification for the API. Tokens are issued elsewhere; we only verify."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from broker_outreach.core.config import Settings

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# Claim names that may carry the user id, in lookup order
ID_CLAIMS = ("sub", "user_id", "userId")


def decode_token(token: str, settings: Settings) -> dict[str, Any] | None:
    """Verify signature and expiry; None when the token is not acceptable."""
    if not settings.jwt_secret:
        logger.warning("JWT_SECRET is not configured; rejecting bearer token")
        return None
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def carrier_id_from_claims(claims: dict[str, Any]) -> str | None:
    for name in ID_CLAIMS:
        value = claims.get(name)
        if value:
            return str(value)
    return None


async def get_current_carrier(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str:
    """Dependency: the authenticated carrier's user id."""
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise unauthorized

    claims = decode_token(credentials.credentials, request.app.state.settings)
    if claims is None:
        raise unauthorized
    carrier_id = carrier_id_from_claims(claims)
    if carrier_id is None:
        raise unauthorized
    return carrier_id
