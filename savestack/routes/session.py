"""Identity session routes.

The identity provider handles sign-in itself; the client forwards the
resulting access token here so the capability engine sees the change.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from savestack.dependencies import get_bearer_session, get_engine
from savestack.models import CapabilityStatus, Session
from savestack.services.engine import CapabilityEngine


router = APIRouter()


class SessionResponse(BaseModel):
    """Session state after a sign-in or sign-out."""
    signed_in: bool
    user_id: Optional[str] = None
    capability: CapabilityStatus


@router.post("", response_model=SessionResponse)
async def sign_in(
    session: Session = Depends(get_bearer_session),
    engine: CapabilityEngine = Depends(get_engine),
):
    """Record a sign-in; the primary provider is re-resolved right away."""
    await engine.identity.sign_in(session)
    return SessionResponse(
        signed_in=True,
        user_id=session.user_id,
        capability=engine.state.status,
    )


@router.delete("", response_model=SessionResponse, status_code=status.HTTP_200_OK)
async def sign_out(engine: CapabilityEngine = Depends(get_engine)):
    """Record a sign-out."""
    await engine.identity.sign_out()
    return SessionResponse(signed_in=False, capability=engine.state.status)
