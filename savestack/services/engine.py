"""Wiring for the capability engine.

One ``CapabilityEngine`` per process (created in the app lifespan and kept on
``app.state``). Tests build isolated engines with in-memory collaborators.
"""

import logging
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from savestack.config import Settings
from savestack.models import AuthEvent, PRIMARY_PROVIDER, Session
from savestack.services.capability_guard import CapabilityGuard
from savestack.services.capability_state import CapabilityState
from savestack.services.credential_cache import CredentialCache
from savestack.services.credential_resolver import CredentialResolver, ResolutionError
from savestack.services.error_classifier import ErrorClassifier
from savestack.services.gemini_client import GeminiClient
from savestack.services.identity_service import IdentityService
from savestack.services.local_store import KeyValueStore
from savestack.services.onboarding_service import OnboardingService
from savestack.services.ui_signals import SignalBus
from savestack.services.vault_service import VaultService

logger = logging.getLogger(__name__)


class CapabilityEngine:
    """All capability components, sharing one state, cache and identity."""

    def __init__(
        self,
        settings: Settings,
        session_maker: async_sessionmaker[AsyncSession],
        local_store: KeyValueStore,
        identity: Optional[IdentityService] = None,
        client_factory: Optional[Callable[[str], GeminiClient]] = None,
    ):
        self.settings = settings
        # Cache and state exist before anything can resolve
        self.local_store = local_store
        self.cache = CredentialCache(local_store)
        self.state = CapabilityState()
        self.signals = SignalBus()
        self.identity = identity or IdentityService()

        self.client_factory = client_factory or self._default_client
        self.vault = VaultService(
            session_maker,
            self.cache,
            timeout=settings.secret_store_timeout_seconds,
        )
        self.resolver = CredentialResolver(
            identity=self.identity,
            cache=self.cache,
            vault=self.vault,
            state=self.state,
            fallback_key=settings.api_key,
            client_factories={PRIMARY_PROVIDER: self.client_factory},
            signals=self.signals,
        )
        self.classifier = ErrorClassifier(self.state, self.identity, self.signals)
        self.guard = CapabilityGuard(self.identity, self.resolver, self.signals)
        self.onboarding = OnboardingService(
            identity=self.identity,
            vault=self.vault,
            state=self.state,
            local_store=local_store,
            signals=self.signals,
            probes={PRIMARY_PROVIDER: self._probe_primary},
            validation_timeout=settings.validation_timeout_seconds,
        )
        self._unsubscribe: Optional[Callable[[], None]] = None

    async def start(self) -> None:
        """Subscribe to identity changes and run the startup resolution."""
        if self._unsubscribe is None:
            self._unsubscribe = self.identity.subscribe(self.on_auth_event)
        await self.sync_identity()

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def sync_identity(self) -> bool:
        """Resolve the primary provider once to refresh the capability state."""
        try:
            await self.resolver.resolve(PRIMARY_PROVIDER)
        except ResolutionError as e:
            logger.info(f"AI capability unavailable: {e.code.value}")
            return False
        return True

    async def on_auth_event(self, event: AuthEvent, session: Optional[Session]) -> None:
        if event is AuthEvent.SIGNED_IN and session is not None:
            await self.sync_identity()

    def is_offline(self) -> bool:
        return self.state.is_offline()

    def _default_client(self, api_key: str) -> GeminiClient:
        return GeminiClient(
            api_key,
            base_url=self.settings.gemini_base_url,
            model=self.settings.gemini_model,
        )

    async def _probe_primary(self, credential: str) -> None:
        client = self.client_factory(credential)
        await client.ping(timeout=self.settings.validation_timeout_seconds)