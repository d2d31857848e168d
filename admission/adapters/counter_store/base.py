"""Counter store interfaces.

The rate decision engine depends on this abstraction (not a concrete client)
so the shared store can be Redis in production and an in-memory fake in
tests or single-process development.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractCounterStore(ABC):
    """Interface for key-value stores holding per-window request counters.

    Implementations must be safe for concurrent use by many in-flight
    requests and raise a ``StoreError`` subclass on failure:
    ``StoreUnavailableError`` for transport failures and
    ``StoreCommandError`` when the store refuses a command.
    """

    backend: str = "abstract"

    @abstractmethod
    def get(self, key: str) -> tuple[int, bool]:
        """Read the counter stored under ``key``.

        Args:
            key: Counter key.

        Returns:
            Tuple of (value, found). ``value`` is 0 when ``found`` is False.

        Raises:
            StoreUnavailableError: If the store cannot be reached.
        """
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: int, *, ttl_seconds: int | None = None) -> None:
        """Store ``value`` under ``key``.

        With ``ttl_seconds`` the value and its expiry are written in one
        command; without it the key keeps whatever TTL it already has.
        """
        raise NotImplementedError

    @abstractmethod
    def expire(self, key: str, ttl_seconds: int) -> None:
        """Set a time-to-live on ``key``."""
        raise NotImplementedError

    @abstractmethod
    def increment(self, key: str, ttl_seconds: int) -> int:
        """Atomically increment ``key`` and return the new value.

        The TTL is applied only when the increment creates the key; later
        increments never refresh it.

        Args:
            key: Counter key.
            ttl_seconds: Expiry applied on creation.

        Returns:
            The post-increment counter value.

        Raises:
            StoreUnavailableError: If the store cannot be reached.
        """
        raise NotImplementedError

    @abstractmethod
    def ping(self) -> bool:
        """Return True when the store answers."""
        raise NotImplementedError

    def close(self) -> None:
        """Release any pooled connections."""
