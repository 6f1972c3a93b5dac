"""Durable key-value blob stores for Voice Notes.

Whole-value granularity: each key maps to one string blob that is always read
and written in full.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional, Protocol

from .fs import atomic_write_text


class DurablePersistence(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, blob: str) -> None: ...


class MemoryStore:
    """Process-local store; nothing survives the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, blob: str) -> None:
        self._data[key] = blob


class JsonFileStore:
    """All keys kept in a single JSON object file, replaced atomically."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read_all(self) -> dict[str, str]:
        try:
            if not self.path.exists():
                return {}
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            print(f"Could not read {self.path}: {e}", flush=True)
            return {}
        if not isinstance(raw, dict):
            return {}
        return {k: v for k, v in raw.items() if isinstance(v, str)}

    def get(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set(self, key: str, blob: str) -> None:
        data = self._read_all()
        data[key] = blob
        atomic_write_text(self.path, json.dumps(data, indent=2))
