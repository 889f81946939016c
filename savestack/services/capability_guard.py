"""Mandatory checkpoint for AI-gated features.

Every feature goes through ``guard`` before it talks to a provider, so no
provider call happens without a successful resolution earlier in the same
call chain. The guard does not watch the action itself; callers still hand
their own provider failures to the error classifier.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from savestack.models import GuardOutcome, PRIMARY_PROVIDER
from savestack.services.credential_resolver import (
    CredentialResolver,
    Resolution,
    ResolutionError,
)
from savestack.services.identity_service import IdentityService
from savestack.services.ui_signals import SignalBus

logger = logging.getLogger(__name__)


@dataclass
class GuardResult:
    outcome: GuardOutcome
    value: Any = None
    resolution: Optional[Resolution] = None

    @property
    def ran(self) -> bool:
        return self.outcome is GuardOutcome.RAN


class CapabilityGuard:
    """Identity check, then resolution, then the action."""

    def __init__(
        self,
        identity: IdentityService,
        resolver: CredentialResolver,
        signals: SignalBus,
    ):
        self.identity = identity
        self.resolver = resolver
        self.signals = signals

    async def guard(self, action: Callable[[], Any]) -> GuardResult:
        """Run ``action`` only if the primary provider is usable.

        ``action`` may be sync or async. The resolution is returned with the
        result so the feature can build its client from it.
        """
        if self.identity.current_session() is None:
            logger.info("AI action blocked: sign-in required")
            self.signals.request_sign_in()
            return GuardResult(GuardOutcome.SIGN_IN_REQUIRED)

        try:
            resolution = await self.resolver.resolve(PRIMARY_PROVIDER)
        except ResolutionError as e:
            logger.info(f"AI action blocked: {e.code.value}")
            self.signals.request_onboarding()
            return GuardResult(GuardOutcome.ONBOARDING_REQUIRED)

        value = action()
        if inspect.isawaitable(value):
            value = await value
        return GuardResult(GuardOutcome.RAN, value=value, resolution=resolution)

