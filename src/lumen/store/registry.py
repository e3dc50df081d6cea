"""Change-tracking registry: which document each watched file became, and when.

The registry is a cache keyed by normalized absolute path. An entry records
the document id produced from the file and the file's modification time at
import. Losing the registry only costs a full re-import.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

from lumen.store.jsonio import read_json, write_json
from lumen.store.models import RegistryEntry

logger = logging.getLogger(__name__)


def normalize_path(path: Path | str) -> str:
    return os.path.normpath(os.path.abspath(os.fspath(path)))


class ChangeRegistry:
    """Thread-safe path → RegistryEntry map persisted as JSON."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._entries: dict[str, RegistryEntry] = {}

    def load(self) -> None:
        raw = read_json(self.path, default={})
        entries: dict[str, RegistryEntry] = {}
        try:
            entries = {str(k): RegistryEntry.from_dict(v) for k, v in dict(raw).items()}
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Registry %s is malformed, starting empty: %s", self.path, exc)
        with self._lock:
            self._entries = entries

    def save(self) -> None:
        with self._lock:
            snapshot = {k: v.to_dict() for k, v in self._entries.items()}
        write_json(self.path, snapshot)

    def get(self, path: Path | str) -> RegistryEntry | None:
        return self._entries.get(normalize_path(path))

    def set(self, path: Path | str, document_id: str, modified_at: float) -> None:
        with self._lock:
            self._entries[normalize_path(path)] = RegistryEntry(document_id, modified_at)

    def pop(self, path: Path | str) -> RegistryEntry | None:
        with self._lock:
            return self._entries.pop(normalize_path(path), None)

    def paths(self) -> list[str]:
        return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, (str, Path)) and normalize_path(path) in self._entries
