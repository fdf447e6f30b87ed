"""Disk cache for persisting computed results."""

from __future__ import annotations

import gzip
import json
import sys
from pathlib import Path
from typing import Any, Generic, Protocol, TypeVar

CACHE_PATH = ".aquascope-cache"

V = TypeVar("V")


class _Keyed(Protocol):
    def cache_key(self) -> str: ...


def _fingerprint(key: str | _Keyed) -> str:
    return key if isinstance(key, str) else key.cache_key()


class Cache(Generic[V]):
    """A gzip-compressed JSON map, loaded on creation and written by ``save``.

    Keys are strings or objects with a ``cache_key()`` method.
    """

    def __init__(self, path: str | Path = CACHE_PATH) -> None:
        self.path = Path(path)
        self.path.touch(exist_ok=True)
        self._entries: dict[str, Any] = self._read()
        self._dirty = False

    def _read(self) -> dict[str, Any]:
        data = self.path.read_bytes()
        if not data:
            return {}
        try:
            entries = json.loads(gzip.decompress(data))
        except (OSError, EOFError, ValueError) as exc:
            print(f"Warning: failed to read Aquascope cache with error {exc}", file=sys.stderr)
            return {}
        if not isinstance(entries, dict):
            print("Warning: failed to read Aquascope cache with error not a map", file=sys.stderr)
            return {}
        return entries

    def get(self, key: str | _Keyed) -> V | None:
        return self._entries.get(_fingerprint(key))

    def set(self, key: str | _Keyed, value: V) -> None:
        self._entries[_fingerprint(key)] = value
        self._dirty = True

    def save(self) -> None:
        """Write the cache to disk if anything changed since loading."""
        if not self._dirty:
            return
        payload = json.dumps(self._entries, separators=(",", ":")).encode("utf-8")
        self.path.write_bytes(gzip.compress(payload, compresslevel=9, mtime=0))
        self._dirty = False