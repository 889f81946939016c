"""Credential onboarding flow.

    ENTERING_CREDENTIAL -> SAVING -> VALIDATING -> VALIDATED | SAVED_UNVALIDATED -> DONE
                         \\-> FAILED (store rejected the write; input can be re-entered)
    any open step -> SKIPPED
    any open step -> (confirm) -> DISABLED

The credential is written to the vault, and its cache flag set, before the
validation probe runs. A failed or timed-out probe only produces a warning:
the stored credential is kept and the flow still completes.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

from savestack.models import (
    FailureCode,
    OnboardingOutcome,
    OnboardingStep,
    PRIMARY_PROVIDER,
    Provider,
    Stored,
)
from savestack.services.capability_state import CapabilityState
from savestack.services.gemini_client import ProviderError
from savestack.services.identity_service import IdentityService
from savestack.services.local_store import KeyValueStore
from savestack.services.ui_signals import SignalBus
from savestack.services.vault_service import VaultError, VaultService

logger = logging.getLogger(__name__)

AI_ENABLED_KEY = "SAVESTACK_AI_ENABLED"

# Raises on a rejected credential; returning means the credential works
CredentialProbe = Callable[[str], Awaitable[None]]

OPEN_STEPS = frozenset({OnboardingStep.ENTERING_CREDENTIAL, OnboardingStep.FAILED})


class OnboardingError(Exception):
    """Exception for onboarding flow errors."""

    def __init__(self, message: str, code: str = "onboarding_error"):
        self.message = message
        self.code = code
        super().__init__(message)


@dataclass
class OnboardingSession:
    """In-progress credential entry. Never persisted."""
    provider: Provider = PRIMARY_PROVIDER
    reopened: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    step: OnboardingStep = OnboardingStep.ENTERING_CREDENTIAL
    outcome: OnboardingOutcome = OnboardingOutcome.PENDING
    value: str = field(default="", repr=False)
    warning: Optional[str] = None
    error: Optional[str] = None
    awaiting_disable_confirmation: bool = False
    history: List[OnboardingStep] = field(default_factory=lambda: [OnboardingStep.ENTERING_CREDENTIAL])

    def move(self, step: OnboardingStep) -> None:
        logger.info(f"Onboarding {self.id[:8]} ({self.provider.value}): {self.step.value} -> {step.value}")
        self.step = step
        self.history.append(step)


class OnboardingService:
    """Owns open onboarding sessions and the AI-enabled preference."""

    def __init__(
        self,
        identity: IdentityService,
        vault: VaultService,
        state: CapabilityState,
        local_store: KeyValueStore,
        signals: SignalBus,
        probes: Optional[Dict[Provider, CredentialProbe]] = None,
        validation_timeout: float = 8.0,
    ):
        self.identity = identity
        self.vault = vault
        self.state = state
        self.local_store = local_store
        self.signals = signals
        self.probes = dict(probes or {})
        self.validation_timeout = validation_timeout
        self._sessions: Dict[str, OnboardingSession] = {}
        self._skipped = False

    @property
    def ai_enabled(self) -> bool:
        return self.local_store.get(AI_ENABLED_KEY) != "false"

    @property
    def onboarding_skipped(self) -> bool:
        return self._skipped

    def open(self, provider: Provider = PRIMARY_PROVIDER, reopened: bool = False) -> OnboardingSession:
        session = OnboardingSession(provider=provider, reopened=reopened)
        self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> OnboardingSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise OnboardingError("Onboarding session not found", "not_found")
        return session

    def enter(self, session_id: str, value: str) -> OnboardingSession:
        session = self._require_open(session_id)
        session.value = value
        if session.step is OnboardingStep.FAILED:
            session.move(OnboardingStep.ENTERING_CREDENTIAL)
            session.outcome = OnboardingOutcome.PENDING
            session.error = None
        return session

    async def submit(self, session_id: str) -> Stored:
        """Store the entered credential, then run the validation probe.

        Raises:
            OnboardingError: If there is nothing to store or the store write failed.
        """
        session = self._require_open(session_id)
        credential = session.value.strip()
        if not credential:
            raise OnboardingError("Enter a credential first", "empty_credential")

        session.move(OnboardingStep.SAVING)
        try:
            await self.vault.store(self.identity.current_session(), session.provider, credential)
        except VaultError as e:
            self._fail(session, e)
            raise OnboardingError(e.message, e.code.value)

        session.outcome = OnboardingOutcome.SAVED_UNVALIDATED
        session.move(OnboardingStep.VALIDATING)
        validated, warning = await self._validate(session.provider, credential)

        if validated:
            session.outcome = OnboardingOutcome.SAVED_VALIDATED
            session.move(OnboardingStep.VALIDATED)
        else:
            session.warning = warning
            session.move(OnboardingStep.SAVED_UNVALIDATED)

        if session.provider.is_primary:
            self.state.mark_online()

        self._close(session, OnboardingStep.DONE)
        return Stored(provider=session.provider, validated=validated, warning=warning)

    def skip(self, session_id: str) -> OnboardingSession:
        session = self._require_open(session_id)
        self._skipped = True
        self._close(session, OnboardingStep.SKIPPED)
        return session

    def request_disable(self, session_id: str) -> OnboardingSession:
        """First half of the opt-out: ask the UI for the interstitial confirmation."""
        session = self._require_open(session_id)
        session.awaiting_disable_confirmation = True
        return session

    def cancel_disable(self, session_id: str) -> OnboardingSession:
        session = self._require_open(session_id)
        session.awaiting_disable_confirmation = False
        return session

    def confirm_disable(self, session_id: str) -> OnboardingSession:
        """Turn AI features off; only valid after ``request_disable``."""
        session = self._require_open(session_id)
        if not session.awaiting_disable_confirmation:
            raise OnboardingError("Disabling AI must be confirmed first", "confirmation_required")
        self.local_store.set(AI_ENABLED_KEY, "false")
        logger.warning("AI features disabled by the user")
        self._close(session, OnboardingStep.DISABLED)
        return session

    def dismiss(self, session_id: str) -> None:
        session = self.get(session_id)
        session.value = ""
        self._sessions.pop(session.id, None)

    def reenable(self) -> None:
        """Turn AI features back on and route the user to where a key can be added."""
        self.local_store.set(AI_ENABLED_KEY, "true")
        if self.identity.is_signed_in:
            self.signals.request_onboarding()
        else:
            self.signals.request_sign_in()

    async def vault_status(self) -> Dict[Provider, Dict[str, bool]]:
        """Which providers have a stored credential for the current user."""
        session = self.identity.current_session()
        status: Dict[Provider, Dict[str, bool]] = {}
        for provider in Provider:
            restricted = session is None and not provider.is_primary
            stored = False
            if session is not None:
                stored = await self.vault.fetch(session, provider) is not None
            status[provider] = {"stored": stored, "restricted": restricted}
        return status

    def _require_open(self, session_id: str) -> OnboardingSession:
        session = self.get(session_id)
        if session.step not in OPEN_STEPS:
            raise OnboardingError(
                f"Onboarding is {session.step.value}",
                "invalid_state",
            )
        return session

    async def _validate(self, provider: Provider, credential: str) -> tuple[bool, Optional[str]]:
        probe = self.probes.get(provider)
        if probe is None:
            return False, None

        try:
            await asyncio.wait_for(probe(credential), timeout=self.validation_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Validation probe for {provider.value} timed out")
            return False, "Key saved to Vault, but the validation ping timed out."
        except ProviderError as e:
            logger.warning(f"Key saved but validation failed ({e.kind.value})")
            return False, (
                "Key saved to Vault, but the validation ping failed. You might have hit "
                "rate limits or entered an invalid key format."
            )
        except Exception as e:
            # The credential is already stored; the flow still has to close
            logger.warning(f"Validation probe for {provider.value} raised unexpectedly: {e!r}")
            return False, "Key saved to Vault, but the validation ping could not be completed."
        return True, None

    def _fail(self, session: OnboardingSession, error: VaultError) -> None:
        session.outcome = OnboardingOutcome.FAILED
        session.error = error.code.value
        session.move(OnboardingStep.FAILED)

        if error.code is FailureCode.IDENTITY_REQUIRED:
            self.signals.request_sign_in()
        elif error.code is FailureCode.STORE_UNAVAILABLE:
            self.signals.request_store_diagnostic(error.code.value)

    def _close(self, session: OnboardingSession, step: OnboardingStep) -> None:
        session.value = ""
        session.awaiting_disable_confirmation = False
        session.move(step)
        self._sessions.pop(session.id, None)
