"""Shared enums and Pydantic models for the SaveStack capability service."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Provider(str, Enum):
    """AI vendors a credential can be scoped to."""
    GEMINI = "gemini"
    OPENAI = "openai"
    PERPLEXITY = "perplexity"
    OTHERS = "others"

    @property
    def is_primary(self) -> bool:
        return self is PRIMARY_PROVIDER


PRIMARY_PROVIDER = Provider.GEMINI


class CapabilityStatus(str, Enum):
    """Process-wide availability of AI-dependent features."""
    UNKNOWN = "unknown"
    ONLINE = "online"
    OFFLINE = "offline"


class FailureCode(str, Enum):
    """Failure taxonomy below the capability guard."""
    IDENTITY_REQUIRED = "IDENTITY_REQUIRED"
    NO_CREDENTIAL = "NO_CREDENTIAL"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    UNKNOWN_IO_ERROR = "UNKNOWN_IO_ERROR"


class Classification(str, Enum):
    """Outcome of classifying a provider-call failure."""
    CAPABILITY_FAILURE = "CAPABILITY_FAILURE"
    TRANSIENT = "TRANSIENT"


class CredentialSource(str, Enum):
    """Tier that satisfied a resolution."""
    CACHE = "cache"
    VAULT = "vault"
    ENVIRONMENT = "environment"


class AuthEvent(str, Enum):
    """Identity events delivered to subscribers."""
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"


class GuardOutcome(str, Enum):
    """What the capability guard did with an action."""
    RAN = "ran"
    SIGN_IN_REQUIRED = "sign_in_required"
    ONBOARDING_REQUIRED = "onboarding_required"


class OnboardingStep(str, Enum):
    """States of the credential onboarding flow."""
    ENTERING_CREDENTIAL = "entering_credential"
    SAVING = "saving"
    VALIDATING = "validating"
    VALIDATED = "validated"
    SAVED_UNVALIDATED = "saved_unvalidated"
    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"
    DISABLED = "disabled"


class OnboardingOutcome(str, Enum):
    """Persisted-ness of the credential entered during onboarding."""
    PENDING = "pending"
    SAVED_UNVALIDATED = "saved-unvalidated"
    SAVED_VALIDATED = "saved-validated"
    FAILED = "failed"


class Session(BaseModel):
    """An active identity session."""
    user_id: str
    email: Optional[str] = None
    issued_at: datetime = Field(default_factory=datetime.utcnow)


class Stored(BaseModel):
    """Result of the store-then-validate onboarding write.

    ``validated`` is False when the credential was stored but the
    validation probe failed or timed out; the credential is kept either way.
    """
    provider: Provider
    validated: bool
    warning: Optional[str] = None


class CapabilityStatusResponse(BaseModel):
    """Current capability state as seen by the UI."""
    status: CapabilityStatus
    offline: bool
    ai_enabled: bool
    onboarding_skipped: bool
    signed_in: bool


class SystemHealth(BaseModel):
    """System health status."""
    status: str
    secret_store: str
    fallback_credential: bool
    capability: CapabilityStatus
