from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict


log = logging.getLogger(__name__)

# Long enough to behave as "cache until cleared" for rate-limited upstreams.
DEFAULT_TTL_SECONDS = 90_000 * 60

Loader = Callable[[], Awaitable[Any]]
_MISSING = object()


@dataclass(frozen=True)
class _Entry:
    payload: Any
    expires_at: float


class RequestCache:
    """Fingerprint-keyed response cache shared by every client request.

    Concurrent misses on the same fingerprint share one loader call. A loader
    that raises leaves nothing behind, so the next call retries.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._pending: Dict[str, "asyncio.Task[Any]"] = {}

    @staticmethod
    def fingerprint(url: str, body: Any = None) -> str:
        if body is None:
            return url
        serialized = body if isinstance(body, str) else json.dumps(body, sort_keys=True, separators=(",", ":"))
        # URLs cannot contain a raw newline, so url/body boundaries stay unambiguous.
        return f"{url}\n{serialized}"

    def get(self, fingerprint: str, default: Any = None) -> Any:
        entry = self._entries.get(fingerprint)
        if entry is None:
            return default
        if self._clock() >= entry.expires_at:
            self._entries.pop(fingerprint, None)
            return default
        return entry.payload

    def put(self, fingerprint: str, payload: Any) -> None:
        self._entries[fingerprint] = _Entry(payload, self._clock() + self.ttl_seconds)

    def __contains__(self, fingerprint: str) -> bool:
        return self.get(fingerprint, _MISSING) is not _MISSING

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    async def fetch_cached(self, fingerprint: str, loader: Loader) -> Any:
        cached = self.get(fingerprint, _MISSING)
        if cached is not _MISSING:
            log.debug("Request cache hit: %s", fingerprint)
            return cached

        task = self._pending.get(fingerprint)
        if task is None:
            task = asyncio.ensure_future(self._load(fingerprint, loader))
            self._pending[fingerprint] = task
        # Shielded so an abandoned caller still lets the load finish and populate the cache.
        return await asyncio.shield(task)

    async def _load(self, fingerprint: str, loader: Loader) -> Any:
        try:
            payload = await loader()
            self.put(fingerprint, payload)
            return payload
        finally:
            self._pending.pop(fingerprint, None)
