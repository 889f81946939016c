"""Credential onboarding routes.

Drives the onboarding state machine for the credential-entry screen. The
credential value is accepted but never echoed back.
"""

from typing import Dict, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from savestack.dependencies import get_engine
from savestack.models import (
    CapabilityStatus,
    FailureCode,
    OnboardingOutcome,
    OnboardingStep,
    PRIMARY_PROVIDER,
    Provider,
)
from savestack.services.engine import CapabilityEngine
from savestack.services.onboarding_service import OnboardingError, OnboardingSession


router = APIRouter()


# Request/Response models

class OpenOnboardingRequest(BaseModel):
    """Request to open the credential-entry flow."""
    provider: Provider = PRIMARY_PROVIDER
    reopened: bool = False


class EnterCredentialRequest(BaseModel):
    """The in-progress input value."""
    value: str


class OnboardingResponse(BaseModel):
    """Onboarding session state (without the credential)."""
    id: str
    provider: Provider
    step: OnboardingStep
    outcome: OnboardingOutcome
    reopened: bool
    has_value: bool
    warning: Optional[str] = None
    error: Optional[str] = None
    awaiting_disable_confirmation: bool = False


class SubmitResponse(BaseModel):
    """Outcome of storing and validating a credential."""
    provider: Provider
    validated: bool
    warning: Optional[str] = None
    capability: CapabilityStatus


class VaultStatusItem(BaseModel):
    """Whether a provider has a stored credential."""
    stored: bool
    restricted: bool


def _to_response(session: OnboardingSession) -> OnboardingResponse:
    return OnboardingResponse(
        id=session.id,
        provider=session.provider,
        step=session.step,
        outcome=session.outcome,
        reopened=session.reopened,
        has_value=bool(session.value),
        warning=session.warning,
        error=session.error,
        awaiting_disable_confirmation=session.awaiting_disable_confirmation,
    )


def _raise_http(e: OnboardingError) -> NoReturn:
    if e.code == "not_found":
        status_code = status.HTTP_404_NOT_FOUND
    elif e.code == FailureCode.STORE_UNAVAILABLE.value:
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif e.code == FailureCode.IDENTITY_REQUIRED.value:
        status_code = status.HTTP_401_UNAUTHORIZED
    elif e.code == FailureCode.TIMEOUT.value:
        status_code = status.HTTP_504_GATEWAY_TIMEOUT
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    raise HTTPException(status_code=status_code, detail={"code": e.code, "message": e.message})


# Routes

@router.get("/vault-status", response_model=Dict[Provider, VaultStatusItem])
async def get_vault_status(engine: CapabilityEngine = Depends(get_engine)):
    """Get which providers have a stored credential for the signed-in user."""
    status_map = await engine.onboarding.vault_status()
    return {provider: VaultStatusItem(**item) for provider, item in status_map.items()}


@router.post("", response_model=OnboardingResponse, status_code=status.HTTP_201_CREATED)
async def open_onboarding(
    data: OpenOnboardingRequest,
    engine: CapabilityEngine = Depends(get_engine),
):
    """Open the credential-entry flow."""
    return _to_response(engine.onboarding.open(data.provider, reopened=data.reopened))


@router.get("/{session_id}", response_model=OnboardingResponse)
async def get_onboarding(session_id: str, engine: CapabilityEngine = Depends(get_engine)):
    try:
        return _to_response(engine.onboarding.get(session_id))
    except OnboardingError as e:
        _raise_http(e)


@router.put("/{session_id}", response_model=OnboardingResponse)
async def enter_credential(
    session_id: str,
    data: EnterCredentialRequest,
    engine: CapabilityEngine = Depends(get_engine),
):
    """Set the in-progress credential value."""
    try:
        return _to_response(engine.onboarding.enter(session_id, data.value))
    except OnboardingError as e:
        _raise_http(e)


@router.post("/{session_id}/submit", response_model=SubmitResponse)
async def submit_credential(session_id: str, engine: CapabilityEngine = Depends(get_engine)):
    """Store the credential, then validate it.

    A failed validation is reported as a warning; the credential stays stored.
    """
    try:
        stored = await engine.onboarding.submit(session_id)
    except OnboardingError as e:
        _raise_http(e)

    return SubmitResponse(
        provider=stored.provider,
        validated=stored.validated,
        warning=stored.warning,
        capability=engine.state.status,
    )


@router.post("/{session_id}/skip", response_model=OnboardingResponse)
async def skip_onboarding(session_id: str, engine: CapabilityEngine = Depends(get_engine)):
    try:
        return _to_response(engine.onboarding.skip(session_id))
    except OnboardingError as e:
        _raise_http(e)


@router.post("/{session_id}/disable", response_model=OnboardingResponse)
async def request_disable(session_id: str, engine: CapabilityEngine = Depends(get_engine)):
    """Ask for confirmation before turning AI features off."""
    try:
        return _to_response(engine.onboarding.request_disable(session_id))
    except OnboardingError as e:
        _raise_http(e)


@router.post("/{session_id}/disable/confirm", response_model=OnboardingResponse)
async def confirm_disable(session_id: str, engine: CapabilityEngine = Depends(get_engine)):
    try:
        return _to_response(engine.onboarding.confirm_disable(session_id))
    except OnboardingError as e:
        _raise_http(e)


@router.post("/{session_id}/disable/cancel", response_model=OnboardingResponse)
async def cancel_disable(session_id: str, engine: CapabilityEngine = Depends(get_engine)):
    try:
        return _to_response(engine.onboarding.cancel_disable(session_id))
    except OnboardingError as e:
        _raise_http(e)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss_onboarding(session_id: str, engine: CapabilityEngine = Depends(get_engine)):
    """Dismiss the flow and discard any entered value."""
    try:
        engine.onboarding.dismiss(session_id)
    except OnboardingError as e:
        _raise_http(e)
