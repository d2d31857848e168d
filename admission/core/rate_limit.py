"""Fixed-window rate decision engine.

The engine turns a client identity into an admit/reject verdict using one
counter per (identity, window) held in the shared counter store. It keeps no
state of its own, so any number of replicas can share one store.

Rate limiting strategy:
- Counter key = identity + index of the current fixed window.
- A request is admitted while the counter read before it is not above the
  threshold, so ``threshold + 1`` requests pass per window.
- Up to ``2 * (threshold + 1)`` requests can land in a short span straddling
  a window boundary. That is inherent to fixed windows.
"""

from __future__ import annotations

import enum
import hashlib
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from admission.adapters.counter_store.base import AbstractCounterStore
from admission.core.bucket import derive_bucket_key, window_bounds
from admission.core.config import RateLimitSettings

logger = logging.getLogger(__name__)


class Verdict(str, enum.Enum):
    ADMIT = "admit"
    REJECT = "reject"


class RejectReason(str, enum.Enum):
    THRESHOLD_EXCEEDED = "threshold_exceeded"
    STORE_UNAVAILABLE = "store_unavailable"


class CounterStrategy(str, enum.Enum):
    """How the counter is read and updated.

    ATOMIC issues a single increment-with-TTL. READ_WRITE reproduces the
    legacy GET then SET/EXPIRE sequence, which loses updates when two
    requests for the same key interleave.
    """

    ATOMIC = "atomic"
    READ_WRITE = "read_write"


class FailurePolicy(str, enum.Enum):
    """Verdict to apply when the counter store is unavailable."""

    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class RateDecision:
    """Outcome of one admission decision.

    Attributes:
        verdict: ADMIT or REJECT.
        reason: Why the request was rejected (None when admitted).
        key: Counter key the decision was made against.
        count: Counter value after this request was recorded (0 if unknown).
        threshold: Configured threshold.
        reset_at: UNIX epoch seconds when the current window ends.
        retry_after_seconds: Suggested wait time when rejected.
        degraded: True when produced by the store failure policy.
    """

    verdict: Verdict
    reason: RejectReason | None
    key: str
    count: int
    threshold: int
    reset_at: int
    retry_after_seconds: int | None = None
    degraded: bool = False

    @property
    def allowed(self) -> bool:
        return self.verdict is Verdict.ADMIT

    @property
    def limit(self) -> int:
        """Number of requests admitted per window."""
        return self.threshold + 1

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


def hash_identity(identity: str) -> str:
    """Hash a client identity for logging without exposing the address."""
    return hashlib.sha256(identity.encode()).hexdigest()[:16]


class RateDecisionEngine:
    """Admit/reject requests per client using fixed-window counters."""

    def __init__(
        self,
        store: AbstractCounterStore,
        *,
        threshold: int = 10,
        window_seconds: int = 60,
        expiry_seconds: int = 300,
        strategy: CounterStrategy | str = CounterStrategy.ATOMIC,
        key_prefix: str = "",
        key_separator: str = "",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Counter store shared by every replica.
            threshold: Highest counter value that still admits a request.
            window_seconds: Size of the fixed window in seconds.
            expiry_seconds: TTL applied to a counter key on creation.
            strategy: Counter update strategy.
            key_prefix: Namespace prepended to counter keys.
            key_separator: Separator between identity and bucket index.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If the limits are inconsistent.
        """
        if threshold < 0:
            raise ValueError("threshold must be >= 0")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")
        if expiry_seconds < window_seconds:
            raise ValueError("expiry_seconds must be >= window_seconds")

        self.store = store
        self.threshold = threshold
        self.window_seconds = window_seconds
        self.expiry_seconds = expiry_seconds
        self.strategy = CounterStrategy(strategy)
        self._key_prefix = key_prefix
        self._key_separator = key_separator
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        store: AbstractCounterStore,
        rate_settings: RateLimitSettings,
        *,
        clock: Callable[[], float] = time.time,
    ) -> "RateDecisionEngine":
        return cls(
            store,
            threshold=rate_settings.threshold,
            window_seconds=rate_settings.window_seconds,
            expiry_seconds=rate_settings.expiry_seconds,
            strategy=rate_settings.strategy,
            key_prefix=rate_settings.key_prefix,
            key_separator=rate_settings.key_separator,
            clock=clock,
        )

    def key_for(self, identity: str, now: float) -> str:
        return derive_bucket_key(
            identity,
            now,
            self.window_seconds,
            prefix=self._key_prefix,
            separator=self._key_separator,
        )

    def check(self, identity: str, *, now: float | None = None) -> RateDecision:
        """Record a request for ``identity`` and decide whether to admit it.

        Args:
            identity: Client identity (usually an IP address).
            now: Override for the current UNIX time.

        Returns:
            RateDecision for this request.

        Raises:
            StoreError: If the counter store fails. The caller
                chooses the fallback through ``fallback``.
        """
        if now is None:
            now = self._clock()
        key = self.key_for(identity, now)

        if self.strategy is CounterStrategy.ATOMIC:
            count = self.store.increment(key, self.expiry_seconds)
            # count - 1 is the value this request read; same test as READ_WRITE.
            if count - 1 > self.threshold:
                return self._rejected(key, count, now)
            return self._admitted(key, count, now)

        value, found = self.store.get(key)
        if not found:
            # Value and TTL in one command, so a key is never left without expiry.
            self.store.set(key, 1, ttl_seconds=self.expiry_seconds)
            return self._admitted(key, 1, now)

        if value > self.threshold:
            return self._rejected(key, value, now)

        self.store.set(key, value + 1)
        return self._admitted(key, value + 1, now)

    def fallback(
        self,
        identity: str,
        policy: FailurePolicy | str,
        *,
        now: float | None = None,
    ) -> RateDecision:
        """Decision to use when the store could not be consulted."""

        if now is None:
            now = self._clock()
        key = self.key_for(identity, now)
        _, reset_at = window_bounds(now, self.window_seconds)

        if FailurePolicy(policy) is FailurePolicy.OPEN:
            return RateDecision(
                verdict=Verdict.ADMIT,
                reason=None,
                key=key,
                count=0,
                threshold=self.threshold,
                reset_at=reset_at,
                degraded=True,
            )
        return RateDecision(
            verdict=Verdict.REJECT,
            reason=RejectReason.STORE_UNAVAILABLE,
            key=key,
            count=0,
            threshold=self.threshold,
            reset_at=reset_at,
            retry_after_seconds=_retry_after(now, reset_at),
            degraded=True,
        )

    def _admitted(self, key: str, count: int, now: float) -> RateDecision:
        _, reset_at = window_bounds(now, self.window_seconds)
        return RateDecision(
            verdict=Verdict.ADMIT,
            reason=None,
            key=key,
            count=count,
            threshold=self.threshold,
            reset_at=reset_at,
        )

    def _rejected(self, key: str, count: int, now: float) -> RateDecision:
        _, reset_at = window_bounds(now, self.window_seconds)
        return RateDecision(
            verdict=Verdict.REJECT,
            reason=RejectReason.THRESHOLD_EXCEEDED,
            key=key,
            count=count,
            threshold=self.threshold,
            reset_at=reset_at,
            retry_after_seconds=_retry_after(now, reset_at),
        )


def _retry_after(now: float, reset_at: int) -> int:
    return max(0, int(math.ceil(reset_at - now)))
