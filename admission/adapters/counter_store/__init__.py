"""Counter store adapters.

This package provides a small abstraction layer over the shared key-value
store holding per-client, per-window request counters.
"""

from admission.adapters.counter_store.base import AbstractCounterStore
from admission.adapters.counter_store.factory import create_counter_store
from admission.adapters.counter_store.in_memory import InMemoryCounterStore
from admission.adapters.counter_store.redis_store import RedisCounterStore

__all__ = [
    "AbstractCounterStore",
    "InMemoryCounterStore",
    "RedisCounterStore",
    "create_counter_store",
]
