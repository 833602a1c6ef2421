"""Content-addressed download/build cache shared by concurrent plan steps.

Entries are keyed by (package name, version, content hash). Concurrent requests
for the same key are collapsed onto one in-flight future so at most one fetch
runs per key; the other requesters wait for it and reuse its result.
"""

from __future__ import annotations

import hashlib
import logging
import shutil
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from depsync.common.logging_utils import Timer, extra_context, is_debug_enabled
from depsync.settings import Settings

logger = logging.getLogger(__name__)

FetchFn = Callable[["CacheKey", Path], Optional[Union[str, Path]]]


def hash_string(value: str) -> str:
    """Hex SHA-256 digest of ``value``."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheKey:
    """Identity of a cached artifact."""
    name: str
    version: str
    content_hash: str


class ContentCache:
    """Directory-backed cache with in-flight request deduplication."""

    def __init__(self, root: Union[str, Path]):
        """Initialize the cache.

        Args:
            root: Directory under which entries are stored.
        """
        self.root = Path(root).expanduser()
        self._lock = threading.Lock()
        self._in_flight: Dict[CacheKey, "Future[Path]"] = {}
        # entries whose fetch returned a path other than path_for(key)
        self._relocated: Dict[CacheKey, Path] = {}
        self._hits = 0
        self._fetches = 0
        self._waits = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "ContentCache":
        """Cache rooted at the configured cache directory."""
        return cls(settings.cache_path)

    def path_for(self, key: CacheKey) -> Path:
        """Location of the entry for ``key``."""
        return self.root / key.name / key.version / key.content_hash[:32]

    def _entry_path(self, key: CacheKey) -> Path:
        return self._relocated.get(key) or self.path_for(key)

    def contains(self, key: CacheKey) -> bool:
        with self._lock:
            entry = self._entry_path(key)
        return entry.exists()

    def get_or_fetch(self, key: CacheKey, fetch: FetchFn) -> Path:
        """Return the cached path for ``key``, running ``fetch`` at most once.

        ``fetch(key, target)`` populates ``target`` and may return a different
        path to use instead; that path is then served for later requests. If
        it raises, every waiter sees the same error, any partial entry is
        removed and nothing is cached.
        """
        target = self.path_for(key)
        with self._lock:
            future = self._in_flight.get(key)
            owner = future is None
            if owner:
                entry = self._entry_path(key)
                if entry.exists():
                    self._hits += 1
                    return entry
                future = Future()
                self._in_flight[key] = future
                self._fetches += 1
            else:
                self._waits += 1

        if not owner:
            if is_debug_enabled(logger):
                logger.debug(
                    "Waiting for in-flight fetch",
                    extra=extra_context(event="cache_wait", component="cache", package=key.name),
                )
            return future.result()

        try:
            with Timer() as t:
                target.parent.mkdir(parents=True, exist_ok=True)
                result = fetch(key, target)
            path = Path(result) if result is not None else target
        except BaseException as exc:
            if target.is_dir():
                shutil.rmtree(target, ignore_errors=True)
            elif target.exists():
                target.unlink()
            future.set_exception(exc)
            raise
        else:
            with self._lock:
                if path != target:
                    self._relocated[key] = path
                else:
                    self._relocated.pop(key, None)
            future.set_result(path)
            if is_debug_enabled(logger):
                logger.debug(
                    "Cache entry fetched",
                    extra=extra_context(
                        event="cache_fill",
                        component="cache",
                        package=key.name,
                        outcome="success",
                        duration_ms=t.duration_ms(),
                    ),
                )
            return path
        finally:
            with self._lock:
                self._in_flight.pop(key, None)

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            return {
                "root": str(self.root),
                "hits": self._hits,
                "fetches": self._fetches,
                "waits": self._waits,
                "in_flight": len(self._in_flight),
            }
