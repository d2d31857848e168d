"""In-memory counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from admission.adapters.counter_store.base import AbstractCounterStore


@dataclass
class _Entry:
    value: int
    expires_at: float | None = None


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store keeping values and TTLs in a process-local dict.

    Expired entries are dropped on access, mirroring how the shared store
    makes keys disappear once their TTL elapses, and by a periodic sweep on
    writes so past-window keys do not accumulate.

    Important:
        This store is per-process only. If the API runs with multiple workers
        each worker enforces its own independent limits.
    """

    backend = "memory"

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        sweep_interval_seconds: float = 60.0,
    ) -> None:
        """Initialize the store.

        Args:
            clock: Time source function returning UNIX time in seconds.
            sweep_interval_seconds: Minimum time between purges of expired
                keys. Keys from past windows are never read again, so they
                are only removed by the sweep.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {}
        self._sweep_interval = sweep_interval_seconds
        self._next_sweep = clock() + sweep_interval_seconds

    def __len__(self) -> int:
        """Number of stored keys, including expired ones not yet swept."""
        with self._lock:
            return len(self._entries)

    def _live_entry(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    def _maybe_sweep(self) -> None:
        # Caller holds the lock.
        now = self._clock()
        if now < self._next_sweep:
            return
        expired = [
            key
            for key, entry in self._entries.items()
            if entry.expires_at is not None and entry.expires_at <= now
        ]
        for key in expired:
            del self._entries[key]
        self._next_sweep = now + self._sweep_interval

    def get(self, key: str) -> tuple[int, bool]:
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return 0, False
            return entry.value, True

    def set(self, key: str, value: int, *, ttl_seconds: int | None = None) -> None:
        with self._lock:
            self._maybe_sweep()
            entry = self._live_entry(key)
            if ttl_seconds is not None:
                self._entries[key] = _Entry(value=value, expires_at=self._clock() + ttl_seconds)
            elif entry is None:
                self._entries[key] = _Entry(value=value)
            else:
                # KEEPTTL semantics, same as the Redis adapter
                entry.value = value

    def expire(self, key: str, ttl_seconds: int) -> None:
        with self._lock:
            entry = self._live_entry(key)
            if entry is not None:
                entry.expires_at = self._clock() + ttl_seconds

    def increment(self, key: str, ttl_seconds: int) -> int:
        with self._lock:
            self._maybe_sweep()
            entry = self._live_entry(key)
            if entry is None:
                entry = _Entry(value=0, expires_at=self._clock() + ttl_seconds)
                self._entries[key] = entry
            entry.value += 1
            return entry.value

    def ttl(self, key: str) -> float | None:
        """Return remaining seconds before ``key`` expires (None if no TTL or absent)."""
        with self._lock:
            entry = self._live_entry(key)
            if entry is None or entry.expires_at is None:
                return None
            return entry.expires_at - self._clock()

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        with self._lock:
            self._entries.clear()
