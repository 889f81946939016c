"""Credential existence cache.

Records that a credential for a provider was confirmed to exist at least
once. It never holds the secret itself, and flags are only ever added:
a stale positive costs one failed provider call later, while a missing flag
would cost a secret-store round trip on every resolution.
"""

import logging

from savestack.models import Provider
from savestack.services.local_store import KeyValueStore

logger = logging.getLogger(__name__)


def flag_key(provider: Provider) -> str:
    """Local storage key for a provider's existence flag."""
    return f"SAVESTACK_HAS_{provider.value.upper()}_KEY"


class CredentialCache:
    """Synchronous, never-failing existence flags per provider."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def has_flag(self, provider: Provider) -> bool:
        return self.store.get(flag_key(provider)) == "true"

    def set_flag(self, provider: Provider) -> None:
        if self.has_flag(provider):
            return
        self.store.set(flag_key(provider), "true")
        logger.debug(f"Cached credential flag for {provider.value}")
