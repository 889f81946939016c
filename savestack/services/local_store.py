"""Durable local key-value area.

A tiny synchronous string store used for device-local flags (credential
existence markers, the AI-enabled preference). The file variant loads once
and rewrites the whole JSON document on every change.
"""

import json
import logging
import stat
from pathlib import Path
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Synchronous get/set keyed by string."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryKeyValueStore:
    """Process-local store, used in tests and when no data dir is writable."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value


class JsonFileKeyValueStore:
    """Key-value store persisted to a JSON file.

    Reads never raise: an unreadable or corrupted file is treated as empty.
    """

    def __init__(self, path: Path):
        self.path = path
        self._values: Dict[str, str] = self._load()

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        if self._values.get(key) == value:
            return
        self._values[key] = value
        self._write()

    def _load(self) -> Dict[str, str]:
        try:
            if self.path.is_file():
                data = json.loads(self.path.read_text())
                if isinstance(data, dict):
                    return {str(k): str(v) for k, v in data.items()}
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable local cache {self.path}: {e}")
        return {}

    def _write(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self._values, indent=2, sort_keys=True))
            self.path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0o600
        except OSError as e:
            # The in-memory copy stays authoritative for this process
            logger.warning(f"Could not persist local cache {self.path}: {e}")
