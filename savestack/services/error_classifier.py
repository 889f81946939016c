"""Classification of AI provider call failures.

A rejected credential disables AI features immediately and for every call
site; anything else is left to the caller that hit it.
"""

import logging

from savestack.models import Classification
from savestack.services.capability_state import CapabilityState
from savestack.services.gemini_client import ProviderErrorKind, as_provider_error
from savestack.services.identity_service import IdentityService
from savestack.services.ui_signals import SignalBus

logger = logging.getLogger(__name__)

CAPABILITY_FAILURE_KINDS = frozenset({
    ProviderErrorKind.DISCONNECTED,
    ProviderErrorKind.ENTITY_NOT_FOUND,
    ProviderErrorKind.INVALID_KEY,
})


def categorize(error: BaseException) -> Classification:
    """Pure decision: does this failure mean the credential itself is broken?"""
    if as_provider_error(error).kind in CAPABILITY_FAILURE_KINDS:
        return Classification.CAPABILITY_FAILURE
    return Classification.TRANSIENT


class ErrorClassifier:
    """Applies the classification decision to the capability state."""

    def __init__(
        self,
        state: CapabilityState,
        identity: IdentityService,
        signals: SignalBus,
    ):
        self.state = state
        self.identity = identity
        self.signals = signals

    def classify(self, error: BaseException) -> Classification:
        classification = categorize(error)

        if classification is Classification.TRANSIENT:
            logger.debug(f"Transient provider failure: {error}")
            return classification

        logger.warning(f"Provider rejected the credential: {as_provider_error(error).kind.value}")
        self.state.mark_offline()
        if self.identity.is_signed_in:
            self.signals.request_onboarding(reopened=True)
        return classification
