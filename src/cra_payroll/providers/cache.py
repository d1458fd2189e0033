"""Short-lived result cache shared by concurrent calculations."""

from __future__ import annotations

import hashlib
import json
import threading
import time
from dataclasses import dataclass
from typing import Callable

from cra_payroll.calculators.types import DeductionResult, PayEvent
from cra_payroll.providers.config import CacheConfig


def cache_key(event: PayEvent) -> str:
    """SHA-256 of the event's canonical JSON."""
    canonical = json.dumps(event.to_canonical_dict(), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode()).hexdigest()


@dataclass(frozen=True)
class _Entry:
    result: DeductionResult
    expires_at: float


class ResultCache:
    """Bounded map with a TTL, evicting the oldest inserted entry when full.

    Reads do not refresh an entry's position. All access goes through a
    single lock and no I/O happens while it is held.
    """

    def __init__(self, config: CacheConfig | None = None, clock: Callable[[], float] = time.monotonic):
        self.config = config or CacheConfig()
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> DeductionResult | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if entry.expires_at <= now:
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return entry.result

    def put(self, key: str, result: DeductionResult) -> None:
        expires_at = self._clock() + self.config.ttl_seconds
        with self._lock:
            # Re-inserting moves the key to the newest position
            self._entries.pop(key, None)
            while len(self._entries) >= self.config.max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
            self._entries[key] = _Entry(result=result, expires_at=expires_at)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries
