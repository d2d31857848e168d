"""Unit tests for the fixed-window rate decision engine."""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from admission.adapters.counter_store import InMemoryCounterStore
from admission.core.errors import StoreCommandError, StoreUnavailableError
from admission.core.rate_limit import (
    CounterStrategy,
    FailurePolicy,
    RateDecisionEngine,
    RejectReason,
    Verdict,
)

WINDOW_START = 60_000.0

STRATEGIES = [CounterStrategy.ATOMIC, CounterStrategy.READ_WRITE]


def _engine(store, clock, strategy, **kwargs) -> RateDecisionEngine:
    params = {"threshold": 10, "window_seconds": 60, "expiry_seconds": 300}
    params.update(kwargs)
    return RateDecisionEngine(store, strategy=strategy, clock=clock, **params)


class _BrokenStore(InMemoryCounterStore):
    def _fail(self, *args, **kwargs):
        raise StoreUnavailableError(code="store_unavailable", message="connection refused")

    get = _fail
    set = _fail
    expire = _fail
    increment = _fail


@pytest.mark.parametrize("strategy", STRATEGIES)
def test_first_request_admitted_and_counter_is_one(strategy, store, clock) -> None:
    engine = _engine(store, clock, strategy)

    decision = engine.check("1.2.3.4")

    assert decision.verdict is Verdict.ADMIT
    assert decision.reason is None
    assert decision.count == 1
    assert store.get(decision.key) == (1, True)


@pytest.mark.parametrize("strategy", STRATEGIES)
def test_threshold_plus_one_requests_admitted(strategy, store, clock) -> None:
    engine = _engine(store, clock, strategy)

    decisions = [engine.check("1.2.3.4") for _ in range(11)]

    assert all(d.allowed for d in decisions)
    assert decisions[-1].count == 11


@pytest.mark.parametrize("strategy", STRATEGIES)
def test_threshold_plus_two_rejected(strategy, store, clock) -> None:
    engine = _engine(store, clock, strategy)
    for _ in range(11):
        engine.check("1.2.3.4")

    decision = engine.check("1.2.3.4")

    assert decision.verdict is Verdict.REJECT
    assert decision.reason is RejectReason.THRESHOLD_EXCEEDED
    assert decision.retry_after_seconds == 60


@pytest.mark.parametrize("strategy", STRATEGIES)
def test_requests_spread_over_window_share_counter(strategy, store, clock) -> None:
    engine = _engine(store, clock, strategy, threshold=2)

    for offset in (0.0, 20.0, 59.0):
        clock.return_value = WINDOW_START + offset
        assert engine.check("1.2.3.4").allowed

    clock.return_value = WINDOW_START + 59.5
    assert engine.check("1.2.3.4").allowed is False


@pytest.mark.parametrize("strategy", STRATEGIES)
def test_exhausted_client_admitted_in_next_window(strategy, store, clock) -> None:
    engine = _engine(store, clock, strategy, threshold=1)
    engine.check("1.2.3.4")
    engine.check("1.2.3.4")
    assert engine.check("1.2.3.4").allowed is False

    clock.return_value = WINDOW_START + 60
    decision = engine.check("1.2.3.4")

    assert decision.allowed is True
    assert decision.count == 1


@pytest.mark.parametrize("strategy", STRATEGIES)
def test_clients_are_counted_independently(strategy, store, clock) -> None:
    engine = _engine(store, clock, strategy, threshold=0)

    assert engine.check("1.2.3.4").allowed
    assert engine.check("1.2.3.4").allowed is False
    assert engine.check("5.6.7.8").allowed


def test_read_write_rejection_leaves_counter_unchanged(store, clock) -> None:
    engine = _engine(store, clock, CounterStrategy.READ_WRITE, threshold=1)
    for _ in range(2):
        engine.check("1.2.3.4")

    first_reject = engine.check("1.2.3.4")
    second_reject = engine.check("1.2.3.4")

    assert first_reject.count == second_reject.count == 2
    assert store.get(first_reject.key) == (2, True)


def test_atomic_rejections_keep_counting(store, clock) -> None:
    engine = _engine(store, clock, CounterStrategy.ATOMIC, threshold=1)
    for _ in range(4):
        engine.check("1.2.3.4")

    value, found = store.get(engine.key_for("1.2.3.4", WINDOW_START))

    assert found is True
    assert value == 4


@pytest.mark.parametrize("strategy", STRATEGIES)
def test_key_expires_between_window_and_expiry(strategy, store, clock) -> None:
    engine = _engine(store, clock, strategy)
    key = engine.check("1.2.3.4").key

    clock.return_value = WINDOW_START + 30
    engine.check("1.2.3.4")

    clock.return_value = WINDOW_START + 60
    assert store.get(key)[1] is True

    clock.return_value = WINDOW_START + 300
    assert store.get(key)[1] is False


def test_read_write_creates_key_with_ttl_in_one_command(clock) -> None:
    store = Mock()
    store.get.return_value = (0, False)
    engine = _engine(store, clock, CounterStrategy.READ_WRITE)

    decision = engine.check("1.2.3.4")

    store.set.assert_called_once_with(decision.key, 1, ttl_seconds=300)
    store.expire.assert_not_called()
    store.increment.assert_not_called()


def test_read_write_new_key_has_ttl_even_if_expire_fails(clock) -> None:
    store = InMemoryCounterStore(clock=clock)
    store.expire = Mock(
        side_effect=StoreUnavailableError(code="store_unavailable", message="reset")
    )
    engine = _engine(store, clock, CounterStrategy.READ_WRITE)

    decision = engine.check("1.2.3.4")

    assert decision.allowed
    assert store.ttl(decision.key) == 300.0


def test_read_write_update_does_not_refresh_expiry(clock) -> None:
    store = Mock()
    store.get.return_value = (3, True)
    engine = _engine(store, clock, CounterStrategy.READ_WRITE)

    decision = engine.check("1.2.3.4")

    assert decision.count == 4
    store.set.assert_called_once_with(decision.key, 4)
    store.expire.assert_not_called()


def test_atomic_uses_single_increment(clock) -> None:
    store = Mock()
    store.increment.return_value = 1
    engine = _engine(store, clock, CounterStrategy.ATOMIC)

    decision = engine.check("1.2.3.4")

    store.increment.assert_called_once_with(decision.key, 300)
    store.get.assert_not_called()
    store.set.assert_not_called()


def test_decision_reports_remaining_and_reset(engine) -> None:
    decision = engine.check("1.2.3.4")

    assert decision.limit == 11
    assert decision.remaining == 10
    assert decision.reset_at == int(WINDOW_START) + 60


def test_explicit_now_overrides_clock(engine) -> None:
    decision = engine.check("1.2.3.4", now=120.0)

    assert decision.key == "1.2.3.42"


@pytest.mark.parametrize("strategy", STRATEGIES)
def test_store_failure_is_raised_not_admitted(strategy, clock) -> None:
    engine = _engine(_BrokenStore(clock=clock), clock, strategy)

    with pytest.raises(StoreUnavailableError):
        engine.check("1.2.3.4")


def test_fallback_open_admits(engine) -> None:
    decision = engine.fallback("1.2.3.4", FailurePolicy.OPEN)

    assert decision.allowed is True
    assert decision.degraded is True


def test_fallback_closed_rejects(engine) -> None:
    decision = engine.fallback("1.2.3.4", "closed")

    assert decision.allowed is False
    assert decision.reason is RejectReason.STORE_UNAVAILABLE
    assert decision.degraded is True


@pytest.mark.parametrize(
    "kwargs",
    [
        {"threshold": -1},
        {"window_seconds": 0},
        {"window_seconds": 60, "expiry_seconds": 59},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        RateDecisionEngine(InMemoryCounterStore(), **kwargs)


def test_unknown_strategy_rejected() -> None:
    with pytest.raises(ValueError):
        RateDecisionEngine(InMemoryCounterStore(), strategy="sliding")


@pytest.mark.parametrize("strategy", STRATEGIES)
def test_rejected_command_is_raised_not_admitted(strategy, clock) -> None:
    store = Mock()
    error = StoreCommandError(code="store_command_rejected", message="WRONGTYPE")
    store.get.side_effect = error
    store.increment.side_effect = error
    engine = _engine(store, clock, strategy)

    with pytest.raises(StoreCommandError):
        engine.check("1.2.3.4")
