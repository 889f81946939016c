"""
Tests for the local key-value area and the credential existence cache.
"""

import json
import stat
from pathlib import Path

from savestack.models import Provider
from savestack.services.credential_cache import CredentialCache, flag_key
from savestack.services.local_store import JsonFileKeyValueStore, MemoryKeyValueStore


# =============================================================================
# LOCAL STORE
# =============================================================================

class TestJsonFileKeyValueStore:
    """Tests for the file-backed local store."""

    def test_missing_file_is_empty(self, tmp_path: Path):
        store = JsonFileKeyValueStore(tmp_path / "cache.json")
        assert store.get("anything") is None

    def test_set_persists_across_instances(self, tmp_path: Path):
        path = tmp_path / "nested" / "cache.json"
        JsonFileKeyValueStore(path).set("SAVESTACK_AI_ENABLED", "false")

        reloaded = JsonFileKeyValueStore(path)
        assert reloaded.get("SAVESTACK_AI_ENABLED") == "false"
        assert json.loads(path.read_text()) == {"SAVESTACK_AI_ENABLED": "false"}

    def test_file_is_private(self, tmp_path: Path):
        path = tmp_path / "cache.json"
        JsonFileKeyValueStore(path).set("key", "value")
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_corrupted_file_is_treated_as_empty(self, tmp_path: Path):
        path = tmp_path / "cache.json"
        path.write_text("{not json")

        store = JsonFileKeyValueStore(path)
        assert store.get("key") is None

        store.set("key", "value")
        assert store.get("key") == "value"


# =============================================================================
# CREDENTIAL CACHE
# =============================================================================

class TestCredentialCache:
    """Tests for per-provider existence flags."""

    def test_flag_key_format(self):
        assert flag_key(Provider.GEMINI) == "SAVESTACK_HAS_GEMINI_KEY"
        assert flag_key(Provider.OPENAI) == "SAVESTACK_HAS_OPENAI_KEY"

    def test_no_flag_by_default(self):
        cache = CredentialCache(MemoryKeyValueStore())
        assert all(not cache.has_flag(p) for p in Provider)

    def test_set_flag_is_idempotent(self):
        store = MemoryKeyValueStore()
        cache = CredentialCache(store)

        cache.set_flag(Provider.GEMINI)
        cache.set_flag(Provider.GEMINI)

        assert cache.has_flag(Provider.GEMINI)
        assert store.get("SAVESTACK_HAS_GEMINI_KEY") == "true"
        assert not cache.has_flag(Provider.OPENAI)

    def test_only_true_counts_as_a_flag(self):
        cache = CredentialCache(MemoryKeyValueStore({"SAVESTACK_HAS_GEMINI_KEY": "yes"}))
        assert not cache.has_flag(Provider.GEMINI)

    def test_flags_survive_restart(self, tmp_path: Path):
        path = tmp_path / "cache.json"
        CredentialCache(JsonFileKeyValueStore(path)).set_flag(Provider.PERPLEXITY)

        assert CredentialCache(JsonFileKeyValueStore(path)).has_flag(Provider.PERPLEXITY)
