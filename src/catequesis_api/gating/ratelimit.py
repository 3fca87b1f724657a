"""
catequesis_api.gating.ratelimit

In-process sliding-window-log rate limiting.

Responsibilities:
- Track admission timestamps per identity key within a trailing window.
- Admit at most `quota` requests in any rolling window of `window_seconds`.
- Serialize check-and-record per key (per-key locks, no global lock).
- Reclaim state of keys that have been idle for a full window, and cap the key
  table at `max_keys` by evicting the least recently seen key.

Per-process only; a multi-instance deployment needs a shared store in front.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field

from catequesis_api.observability.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class LimitDecision:
    admitted: bool
    remaining: int
    retry_after: float = 0.0


@dataclass(slots=True)
class _WindowRecord:
    hits: deque[float] = field(default_factory=deque)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_seen: float = 0.0

    def evict(self, cutoff: float) -> None:
        # Timestamps are appended in order, so stale entries are always at the left.
        hits = self.hits
        while hits and hits[0] <= cutoff:
            hits.popleft()


class SlidingWindowLimiter:
    """Keyed sliding-window-log limiter."""

    def __init__(
        self,
        *,
        quota: int,
        window_seconds: float,
        max_keys: int = 20_000,
        clock: Callable[[], float] = time.monotonic,
        name: str = "api",
    ) -> None:
        if quota <= 0 or window_seconds <= 0:
            raise ValueError("quota and window_seconds must be positive")
        self.name = name
        self.quota = int(quota)
        self.window_seconds = float(window_seconds)
        self._max_keys = max(1, int(max_keys))
        self._clock = clock
        self._records: dict[str, _WindowRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def _record_for(self, key: str) -> _WindowRecord:
        record = self._records.get(key)
        if record is None:
            if len(self._records) >= self._max_keys:
                self.sweep()
            if len(self._records) >= self._max_keys:
                self._evict_least_recent()
            record = _WindowRecord()
            self._records[key] = record
        return record

    async def check(self, key: str) -> LimitDecision:
        """
        Evict stale hits, then either record `now` and admit, or reject with
        `retry_after = window - (now - oldest)`.

        Once admitted the hit counts, whatever happens to the request afterwards.
        """

        if not key:
            key = "_anon"
        record = self._record_for(key)
        async with record.lock:
            now = self._clock()
            record.last_seen = now
            record.evict(now - self.window_seconds)
            if len(record.hits) >= self.quota:
                retry_after = self.window_seconds - (now - record.hits[0])
                return LimitDecision(admitted=False, remaining=0, retry_after=retry_after)
            record.hits.append(now)
            return LimitDecision(admitted=True, remaining=self.quota - len(record.hits))

    def sweep(self) -> int:
        """Drop records idle for at least one full window. Returns how many were dropped."""

        cutoff = self._clock() - self.window_seconds
        stale = [
            key
            for key, record in self._records.items()
            if record.last_seen <= cutoff and not record.lock.locked()
        ]
        for key in stale:
            del self._records[key]
        return len(stale)

    def _evict_least_recent(self) -> None:
        candidates = [(r.last_seen, k) for k, r in self._records.items() if not r.lock.locked()]
        if candidates:
            _, key = min(candidates)
            del self._records[key]
            log.warning("rate_limit_key_evicted", limiter=self.name, max_keys=self._max_keys)


# --- Module Notes -----------------------------------------------------------
# Any trailing window of `window_seconds` admits at most `quota` hits per key.
# Memory is O(quota) per active key and at most `max_keys` keys (plus keys whose
# check is in flight). An evicted key starts over with an empty window.
