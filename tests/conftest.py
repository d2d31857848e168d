"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It points settings at the in-memory counter store so no Redis server is
needed, and provides builders for isolated apps.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from unittest.mock import Mock

import pytest

from admission.adapters.counter_store import InMemoryCounterStore
from admission.core.config import LogSettings, RateLimitSettings, Settings, StoreSettings
from admission.core.rate_limit import RateDecisionEngine

# 1000 * 60 is a window boundary, so 60_000.0 opens a fresh window.
WINDOW_START = 60_000.0


@pytest.fixture
def clock() -> Mock:
    return Mock(return_value=WINDOW_START)


@pytest.fixture
def store(clock: Mock) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=clock)


@pytest.fixture
def engine(store: InMemoryCounterStore, clock: Mock) -> RateDecisionEngine:
    return RateDecisionEngine(
        store,
        threshold=10,
        window_seconds=60,
        expiry_seconds=300,
        clock=clock,
    )


@pytest.fixture
def make_settings():
    """Build Settings with the default limits, overridable per test."""

    def _make(**rate_limit_overrides) -> Settings:
        return Settings(
            rate_limit=RateLimitSettings(**rate_limit_overrides),
            store=StoreSettings(backend="memory"),
            log=LogSettings(level="WARNING"),
        )

    return _make
