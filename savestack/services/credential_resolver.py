"""Credential resolution for AI providers.

Resolution walks an ordered list of strategies and stops at the first one
that succeeds:

1. Cache flag    - primary provider only, no network call
2. Vault         - the user's stored credential (needs a session)
3. Environment   - deployment-wide fallback, primary provider only

Secondary providers are strictly per-user: they need a session and only the
vault strategy applies to them.

A successful primary resolution marks the capability ONLINE. Resolution never
marks it OFFLINE; that only happens when the error classifier sees a
rejected credential in use.
"""

import logging
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Sequence

from savestack.models import (
    CredentialSource,
    FailureCode,
    PRIMARY_PROVIDER,
    Provider,
    Session,
)
from savestack.services.capability_state import CapabilityState
from savestack.services.credential_cache import CredentialCache
from savestack.services.gemini_client import ProviderDisconnectedError
from savestack.services.identity_service import IdentityService
from savestack.services.ui_signals import SignalBus
from savestack.services.vault_service import VaultService

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], object]
CredentialLoader = Callable[[Provider], Awaitable[Optional[str]]]


class ResolutionError(Exception):
    """Exception for resolutions that found no usable credential."""

    def __init__(self, message: str, code: FailureCode = FailureCode.NO_CREDENTIAL):
        self.message = message
        self.code = code
        super().__init__(message)


class Resolution:
    """A provider that is usable right now, and how to get a client for it.

    Per-user secrets are never kept on a resolution: ``client()`` loads the
    credential on demand. Only the deployment-wide fallback, held for the
    life of the process anyway, is carried. If a credential has disappeared
    since it was resolved, ``client()`` raises ProviderDisconnectedError like
    any rejected call.
    """

    def __init__(
        self,
        provider: Provider,
        source: CredentialSource,
        credential: Optional[str] = None,
        loader: Optional[CredentialLoader] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        self.provider = provider
        self.source = source
        self._credential = credential
        self._loader = loader
        self._client_factory = client_factory

    def bind(self, loader: CredentialLoader, client_factory: Optional[ClientFactory]) -> None:
        self._loader = loader
        self._client_factory = client_factory

    def __repr__(self) -> str:
        return f"<Resolution provider={self.provider.value} source={self.source.value}>"

    async def client(self):
        """Build a fresh client handle for this provider."""
        if self._client_factory is None:
            raise LookupError(f"No client available for {self.provider.value}")

        credential = self._credential
        if credential is None and self._loader is not None:
            credential = await self._loader(self.provider)
        if not credential:
            raise ProviderDisconnectedError()

        # The secret lives only in the client handle from here on
        self._credential = None
        return self._client_factory(credential)


class ResolverStrategy(Protocol):
    source: CredentialSource

    def applies_to(self, provider: Provider) -> bool:
        ...

    async def attempt(self, provider: Provider, session: Optional[Session]) -> Optional[Resolution]:
        ...


class CacheFlagStrategy:
    source = CredentialSource.CACHE

    def __init__(self, cache: CredentialCache):
        self.cache = cache

    def applies_to(self, provider: Provider) -> bool:
        return provider.is_primary

    async def attempt(self, provider: Provider, session: Optional[Session]) -> Optional[Resolution]:
        if not self.cache.has_flag(provider):
            return None
        logger.debug(f"Cache flag hit for {provider.value}")
        return Resolution(provider, self.source)


class VaultStrategy:
    source = CredentialSource.VAULT

    def __init__(
        self,
        vault: VaultService,
        cache: CredentialCache,
        signals: Optional[SignalBus] = None,
    ):
        self.vault = vault
        self.cache = cache
        self.signals = signals

    def applies_to(self, provider: Provider) -> bool:
        return True

    async def attempt(self, provider: Provider, session: Optional[Session]) -> Optional[Resolution]:
        lookup = await self.vault.lookup(session, provider)

        if lookup.error is FailureCode.STORE_UNAVAILABLE and self.signals is not None:
            self.signals.request_store_diagnostic(lookup.error.value)

        if not lookup.found:
            return None

        self.cache.set_flag(provider)
        return Resolution(provider, self.source)


class EnvironmentFallbackStrategy:
    source = CredentialSource.ENVIRONMENT

    def __init__(self, fallback_key: str = ""):
        # Read once; immutable for the life of the process
        self._fallback_key = fallback_key or None

    @property
    def configured(self) -> bool:
        return self._fallback_key is not None

    @property
    def credential(self) -> Optional[str]:
        return self._fallback_key

    def applies_to(self, provider: Provider) -> bool:
        return provider.is_primary

    async def attempt(self, provider: Provider, session: Optional[Session]) -> Optional[Resolution]:
        if self._fallback_key is None:
            return None
        return Resolution(provider, self.source, credential=self._fallback_key)


async def first_success(
    strategies: Sequence[ResolverStrategy],
    provider: Provider,
    session: Optional[Session],
) -> Optional[Resolution]:
    """Evaluate strategies in order, short-circuiting on the first resolution."""
    for strategy in strategies:
        if not strategy.applies_to(provider):
            continue
        resolution = await strategy.attempt(provider, session)
        if resolution is not None:
            return resolution
    return None


class CredentialResolver:
    """Decides whether a provider is usable and where its credential comes from."""

    def __init__(
        self,
        identity: IdentityService,
        cache: CredentialCache,
        vault: VaultService,
        state: CapabilityState,
        fallback_key: str = "",
        client_factories: Optional[Dict[Provider, ClientFactory]] = None,
        signals: Optional[SignalBus] = None,
    ):
        self.identity = identity
        self.vault = vault
        self.state = state
        self.client_factories = dict(client_factories or {})
        self.fallback = EnvironmentFallbackStrategy(fallback_key)
        self.strategies: List[ResolverStrategy] = [
            CacheFlagStrategy(cache),
            VaultStrategy(vault, cache, signals),
            self.fallback,
        ]

    async def resolve(self, provider: Provider = PRIMARY_PROVIDER) -> Resolution:
        """Resolve a provider lazily, at the moment a feature needs it.

        Raises:
            ResolutionError: IDENTITY_REQUIRED for a secondary provider without
                a session, NO_CREDENTIAL when every tier came up empty.
        """
        session = self.identity.current_session()

        if not provider.is_primary and session is None:
            raise ResolutionError(
                f"Sign in to use {provider.value} credentials",
                FailureCode.IDENTITY_REQUIRED,
            )

        resolution = await first_success(self.strategies, provider, session)
        if resolution is None:
            logger.info(f"No credential available for {provider.value}")
            raise ResolutionError(f"No credential for {provider.value}", FailureCode.NO_CREDENTIAL)

        resolution.bind(self.load_credential, self.client_factories.get(provider))

        logger.info(f"Resolved {provider.value} via {resolution.source.value}")
        if provider.is_primary:
            self.state.mark_online()
        return resolution

    async def is_usable(self, provider: Provider = PRIMARY_PROVIDER) -> bool:
        """Boolean form of ``resolve`` for call sites that only need a yes/no."""
        try:
            await self.resolve(provider)
        except ResolutionError:
            return False
        return True

    async def load_credential(self, provider: Provider) -> Optional[str]:
        """Load the secret itself: vault first, then the environment fallback."""
        credential = await self.vault.fetch(self.identity.current_session(), provider)
        if credential:
            return credential
        if provider.is_primary and self.fallback.configured:
            return self.fallback.credential
        return None
