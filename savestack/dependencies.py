"""FastAPI dependencies for the capability engine and identity tokens."""

from typing import Optional

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from savestack.models import Session
from savestack.services.engine import CapabilityEngine
from savestack.services.token_service import get_token_service, TokenError


# Security scheme for identity-provider bearer tokens
bearer_scheme = HTTPBearer(auto_error=False)


def get_engine(request: Request) -> CapabilityEngine:
    """Get the process-wide capability engine created during startup."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Capability engine not started",
        )
    return engine


async def get_token_from_request(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    """Extract the bearer token from the request, if any."""
    if credentials is None:
        return None
    return credentials.credentials


async def get_bearer_session(
    token: Optional[str] = Depends(get_token_from_request),
) -> Session:
    """Build a session from the identity provider's access token.

    Raises:
        HTTPException: If the token is missing or invalid
    """
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return get_token_service().session_from_token(token)
    except TokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
