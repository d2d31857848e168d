"""Factory pattern for creating counter store instances."""

from __future__ import annotations

from admission.adapters.counter_store.base import AbstractCounterStore
from admission.adapters.counter_store.in_memory import InMemoryCounterStore
from admission.adapters.counter_store.redis_store import RedisCounterStore
from admission.core.config import StoreSettings, settings
from admission.core.errors import ValidationAppError


def create_counter_store(store_settings: StoreSettings | None = None) -> AbstractCounterStore:
    """Factory function to instantiate the counter store for the configured backend.

    Reads configuration from admission.core.config.settings unless explicit
    settings are provided.

    Returns:
        AbstractCounterStore: Configured store instance.

    Raises:
        ValidationAppError: If the backend is unknown.
    """
    cfg = store_settings or settings.store
    backend = cfg.backend.lower()

    if backend == "redis":
        return RedisCounterStore(
            cfg.url,
            max_connections=cfg.max_connections,
            socket_timeout_seconds=cfg.socket_timeout_seconds,
            connect_timeout_seconds=cfg.connect_timeout_seconds,
        )

    if backend == "memory":
        return InMemoryCounterStore()

    raise ValidationAppError(
        code="store_unknown_backend",
        message=f"Unknown counter store backend: '{backend}'. Supported backends: redis, memory",
    )
