"""In-process result cache keyed by call fingerprint.

Usage:
    cache = ResultCache(ttl=300, max_entries=100)
    fingerprint = CallFingerprint.from_request(request, SimulationMode.AUTO)

    result = await cache.get(fingerprint)
    if result is None:
        result = await measure(...)
        await cache.put(fingerprint, result)

The cache is an explicit object: construct one per process (or per session)
and hand it to every orchestrator that should share it.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

from gasprofiler.core.config import get_settings
from gasprofiler.core.types import MeasurementResult, SimulationMode
from gasprofiler.simulator.executors import SimulationRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallFingerprint:
    """Identity of a measured call. Equal calls give equal keys."""

    address: str
    selector: str
    encoded_args: str
    mode: SimulationMode
    sponsor: str | None = None

    @classmethod
    def from_request(cls, request: SimulationRequest, mode: SimulationMode) -> CallFingerprint:
        selector = request.function.selector
        calldata = request.calldata.lower()
        return cls(
            address=request.address.lower(),
            selector=selector,
            encoded_args=calldata[len(selector):],
            mode=mode,
            sponsor=request.sponsor.lower() if request.sponsor else None,
        )

    @property
    def key(self) -> str:
        raw = "|".join(
            (self.address, self.selector, self.encoded_args, self.mode.value, self.sponsor or "")
        )
        return hashlib.sha256(raw.encode()).hexdigest()


@dataclass(frozen=True)
class CacheEntry:
    fingerprint: CallFingerprint
    result: MeasurementResult
    inserted_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.inserted_at > self.ttl


class ResultCache:
    """TTL cache with an oldest-first size sweep."""

    def __init__(
        self,
        ttl: float | None = None,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = get_settings()
        self.ttl = ttl if ttl is not None else settings.cache_ttl_seconds
        self.max_entries = max_entries if max_entries is not None else settings.cache_max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()
        self.hits = 0
        self.misses = 0

    # ── Core operations ──────────────────────────────────────────────────────

    async def get(self, fingerprint: CallFingerprint) -> MeasurementResult | None:
        """Copy of the cached result, or None on miss. Stale entries are evicted here."""
        key = fingerprint.key
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if entry.expired(self._clock()):
                del self._entries[key]
                self.misses += 1
                logger.debug("Cache entry expired: %s", key[:12])
                return None
            self.hits += 1
            return entry.result.model_copy(deep=True)

    async def put(self, fingerprint: CallFingerprint, result: MeasurementResult) -> None:
        key = fingerprint.key
        entry = CacheEntry(
            fingerprint=fingerprint,
            result=result.model_copy(deep=True),
            inserted_at=self._clock(),
            ttl=self.ttl,
        )
        async with self._lock:
            # Replacing an entry moves it to the back of the insertion order
            self._entries.pop(key, None)
            self._entries[key] = entry
            if len(self._entries) > self.max_entries:
                self._sweep()

    def _sweep(self) -> None:
        now = self._clock()
        for key in [k for k, e in self._entries.items() if e.expired(now)]:
            del self._entries[key]
        evicted = 0
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
            evicted += 1
        if evicted:
            logger.debug("Cache sweep evicted %d oldest entries", evicted)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict[str, Any]:
        return {
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "ttl": self.ttl,
            "hits": self.hits,
            "misses": self.misses,
        }
