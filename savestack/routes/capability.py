"""Capability state routes.

Read-mostly view of whether AI features are usable, plus the guard check and
error classification entry points used by client-side feature call sites.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from savestack.dependencies import get_engine
from savestack.models import (
    CapabilityStatus,
    CapabilityStatusResponse,
    Classification,
    CredentialSource,
    GuardOutcome,
)
from savestack.services.engine import CapabilityEngine


router = APIRouter()


# Request/Response models

class GuardCheckResponse(BaseModel):
    """Result of running the capability guard."""
    outcome: GuardOutcome
    source: Optional[CredentialSource] = None
    capability: CapabilityStatus


class ClassifyRequest(BaseModel):
    """A provider-call failure reported by a client."""
    message: str


class ClassifyResponse(BaseModel):
    """Classification of a reported failure."""
    classification: Classification
    offline: bool


class SignalResponse(BaseModel):
    """A pending request for the UI."""
    signal: str
    detail: Dict[str, Any]


# Routes

@router.get("", response_model=CapabilityStatusResponse)
async def get_capability(engine: CapabilityEngine = Depends(get_engine)):
    """Get current capability state."""
    return CapabilityStatusResponse(
        status=engine.state.status,
        offline=engine.is_offline(),
        ai_enabled=engine.onboarding.ai_enabled,
        onboarding_skipped=engine.onboarding.onboarding_skipped,
        signed_in=engine.identity.is_signed_in,
    )


@router.post("/check", response_model=GuardCheckResponse)
async def check_capability(engine: CapabilityEngine = Depends(get_engine)):
    """Run the guard for a client-side feature that is about to call the provider."""
    result = await engine.guard.guard(lambda: None)
    return GuardCheckResponse(
        outcome=result.outcome,
        source=result.resolution.source if result.resolution else None,
        capability=engine.state.status,
    )


@router.post("/errors", response_model=ClassifyResponse)
async def classify_error(
    data: ClassifyRequest,
    engine: CapabilityEngine = Depends(get_engine),
):
    """Classify a provider-call failure seen by a client."""
    classification = engine.classifier.classify(RuntimeError(data.message))
    return ClassifyResponse(classification=classification, offline=engine.is_offline())


@router.post("/reenable", response_model=CapabilityStatusResponse)
async def reenable_ai(engine: CapabilityEngine = Depends(get_engine)):
    """Turn AI features back on after an opt-out."""
    engine.onboarding.reenable()
    return await get_capability(engine)


@router.get("/signals", response_model=List[SignalResponse])
async def drain_signals(engine: CapabilityEngine = Depends(get_engine)):
    """Return and clear the pending UI requests."""
    return [
        SignalResponse(signal=request.signal.value, detail=request.detail)
        for request in engine.signals.drain()
    ]
