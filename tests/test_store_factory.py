"""Tests for counter store backend selection."""

from __future__ import annotations

import pytest

from admission.adapters.counter_store import (
    InMemoryCounterStore,
    RedisCounterStore,
    create_counter_store,
)
from admission.core.config import StoreSettings
from admission.core.errors import ValidationAppError


def test_memory_backend() -> None:
    store = create_counter_store(StoreSettings(backend="memory"))

    assert isinstance(store, InMemoryCounterStore)


def test_redis_backend() -> None:
    store = create_counter_store(
        StoreSettings(backend="redis", url="redis://cache:6379/1", max_connections=5)
    )

    assert isinstance(store, RedisCounterStore)
    assert store.client.connection_pool.max_connections == 5
    store.close()


def test_unknown_backend() -> None:
    cfg = StoreSettings.model_construct(backend="etcd", url="etcd://localhost")

    with pytest.raises(ValidationAppError) as err:
        create_counter_store(cfg)

    assert err.value.code == "store_unknown_backend"
