"""
Tests for CircuitBreaker, its observers and BreakerRegistry.

Run with:
    pytest tests/test_circuit_breaker.py -v
"""

import asyncio

import pytest

from aicommit.config import BreakerConfig, ConfigurationError
from aicommit.core.circuit_breaker import (
    BreakerRegistry,
    CircuitBreaker,
    CircuitMetrics,
    CircuitOpenError,
    CircuitPhase,
)
from aicommit.llm.base import ProviderError


class Recorder:
    def __init__(self):
        self.events = []

    def on_circuit_event(self, event):
        self.events.append(event)

    @property
    def kinds(self):
        return [e.kind for e in self.events]


def _succeed(value="ok"):
    async def operation():
        return value
    return operation


def _fail(message="boom"):
    async def operation():
        raise ProviderError(message)
    return operation


async def _trip(breaker, times):
    for _ in range(times):
        with pytest.raises(ProviderError):
            await breaker.execute(_fail())


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

class TestBreakerConfig:

    def test_defaults(self):
        config = BreakerConfig()
        assert config.failure_threshold == 5
        assert config.reset_timeout == 60.0
        assert config.call_timeout == 30.0

    @pytest.mark.parametrize("kwargs", [
        {"failure_threshold": 0},
        {"failure_threshold": -3},
        {"reset_timeout": 0},
        {"reset_timeout": -1.5},
        {"call_timeout": 0},
        {"call_timeout": "10"},
    ])
    def test_non_positive_values_fail_at_construction(self, kwargs):
        with pytest.raises(ConfigurationError):
            BreakerConfig(**kwargs)

    def test_new_breaker_is_closed(self):
        breaker = CircuitBreaker("ollama")
        state = breaker.state
        assert state.phase is CircuitPhase.CLOSED
        assert state.consecutive_failures == 0
        assert state.opened_at is None


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

class TestTransitions:

    @pytest.fixture
    def breaker(self, clock):
        return CircuitBreaker("claude", BreakerConfig(failure_threshold=2, reset_timeout=30), clock=clock)

    @pytest.mark.asyncio
    async def test_passes_result_through_when_closed(self, breaker):
        assert await breaker.execute(_succeed("feat: x")) == "feat: x"
        assert breaker.phase is CircuitPhase.CLOSED

    @pytest.mark.asyncio
    async def test_opens_after_threshold_failures(self, breaker, clock):
        await _trip(breaker, 1)
        assert breaker.phase is CircuitPhase.CLOSED

        await _trip(breaker, 1)
        assert breaker.phase is CircuitPhase.OPEN
        assert breaker.state.opened_at == clock.now

    @pytest.mark.asyncio
    async def test_open_breaker_rejects_without_invoking(self, breaker):
        await _trip(breaker, 2)
        calls = []

        async def operation():
            calls.append(1)
            return "never"

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.execute(operation)
        assert calls == []
        assert exc_info.value.name == "claude"
        assert exc_info.value.retry_after == pytest.approx(30)

    @pytest.mark.asyncio
    async def test_open_breaker_uses_fallback(self, breaker):
        await _trip(breaker, 2)
        assert await breaker.execute(_succeed(), fallback=lambda: "cached") == "cached"

    @pytest.mark.asyncio
    async def test_open_breaker_awaits_async_fallback(self, breaker):
        await _trip(breaker, 2)

        async def fallback():
            return "from fallback"

        assert await breaker.execute(_succeed(), fallback=fallback) == "from fallback"

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, breaker):
        await _trip(breaker, 1)
        await breaker.execute(_succeed())
        assert breaker.state.consecutive_failures == 0

        await _trip(breaker, 1)
        assert breaker.phase is CircuitPhase.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_after_reset_timeout(self, breaker, clock):
        await _trip(breaker, 2)
        clock.advance(29.9)
        assert breaker.phase is CircuitPhase.OPEN
        clock.advance(0.1)
        assert breaker.phase is CircuitPhase.HALF_OPEN

    @pytest.mark.asyncio
    async def test_half_open_success_closes(self, breaker, clock):
        await _trip(breaker, 2)
        clock.advance(30)

        assert await breaker.execute(_succeed("recovered")) == "recovered"
        state = breaker.state
        assert state.phase is CircuitPhase.CLOSED
        assert state.consecutive_failures == 0
        assert state.opened_at is None

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens_with_fresh_timer(self, breaker, clock):
        await _trip(breaker, 2)
        clock.advance(31)

        await _trip(breaker, 1)
        assert breaker.phase is CircuitPhase.OPEN
        assert breaker.state.opened_at == clock.now

        clock.advance(29)
        assert breaker.phase is CircuitPhase.OPEN
        clock.advance(1)
        assert breaker.phase is CircuitPhase.HALF_OPEN

    @pytest.mark.asyncio
    async def test_half_open_admits_a_single_trial(self, breaker, clock):
        await _trip(breaker, 2)
        clock.advance(30)
        gate = asyncio.Event()

        async def slow_trial():
            await gate.wait()
            return "trial"

        trial = asyncio.create_task(breaker.execute(slow_trial))
        await asyncio.sleep(0)

        with pytest.raises(CircuitOpenError):
            await breaker.execute(_succeed())

        gate.set()
        assert await trial == "trial"
        assert breaker.phase is CircuitPhase.CLOSED

    @pytest.mark.asyncio
    async def test_late_failure_does_not_preempt_trial(self, breaker, clock):
        straggler_gate, trial_gate = asyncio.Event(), asyncio.Event()

        async def straggler():
            await straggler_gate.wait()
            raise ProviderError("late")

        async def slow_trial():
            await trial_gate.wait()
            return "ok"

        late = asyncio.create_task(breaker.execute(straggler))
        await asyncio.sleep(0)
        await _trip(breaker, 2)
        clock.advance(30)
        trial = asyncio.create_task(breaker.execute(slow_trial))
        await asyncio.sleep(0)

        straggler_gate.set()
        with pytest.raises(ProviderError):
            await late
        assert breaker.phase is CircuitPhase.HALF_OPEN

        trial_gate.set()
        assert await trial == "ok"
        assert breaker.phase is CircuitPhase.CLOSED

    @pytest.mark.asyncio
    async def test_late_success_does_not_close_half_open(self, breaker, clock):
        straggler_gate, trial_gate = asyncio.Event(), asyncio.Event()

        async def straggler():
            await straggler_gate.wait()
            return "late"

        async def failing_trial():
            await trial_gate.wait()
            raise ProviderError("still down")

        late = asyncio.create_task(breaker.execute(straggler))
        await asyncio.sleep(0)
        await _trip(breaker, 2)
        clock.advance(30)
        trial = asyncio.create_task(breaker.execute(failing_trial))
        await asyncio.sleep(0)

        straggler_gate.set()
        assert await late == "late"
        assert breaker.phase is CircuitPhase.HALF_OPEN

        trial_gate.set()
        with pytest.raises(ProviderError):
            await trial
        assert breaker.phase is CircuitPhase.OPEN

    @pytest.mark.asyncio
    async def test_reset_forces_closed(self, breaker):
        await _trip(breaker, 2)
        breaker.reset()
        assert breaker.phase is CircuitPhase.CLOSED
        assert breaker.can_execute()


# ---------------------------------------------------------------------------
# Timeouts and concurrency
# ---------------------------------------------------------------------------

class TestTimeoutsAndConcurrency:

    @pytest.mark.asyncio
    async def test_timeout_raises_and_counts_as_failure(self):
        breaker = CircuitBreaker("ollama", BreakerConfig(failure_threshold=1, call_timeout=5))

        async def hang():
            await asyncio.sleep(10)

        with pytest.raises(TimeoutError):
            await breaker.execute(hang, timeout=0.01)
        assert breaker.phase is CircuitPhase.OPEN

    @pytest.mark.asyncio
    async def test_config_call_timeout_applies_by_default(self):
        breaker = CircuitBreaker("ollama", BreakerConfig(call_timeout=0.01))

        async def hang():
            await asyncio.sleep(10)

        with pytest.raises(TimeoutError):
            await breaker.execute(hang)
        assert breaker.state.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_non_positive_call_timeout_rejected(self):
        breaker = CircuitBreaker("ollama")
        with pytest.raises(ConfigurationError):
            await breaker.execute(_succeed(), timeout=0)

    @pytest.mark.asyncio
    async def test_operation_error_propagates_unchanged(self):
        breaker = CircuitBreaker("ollama")

        async def broken():
            raise KeyError("missing")

        with pytest.raises(KeyError):
            await breaker.execute(broken)
        assert breaker.state.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_concurrent_failures_each_counted_once(self, clock):
        breaker = CircuitBreaker("claude", BreakerConfig(failure_threshold=3), clock=clock)
        recorder = Recorder()
        breaker.subscribe(recorder)

        results = await asyncio.gather(*(breaker.execute(_fail()) for _ in range(3)), return_exceptions=True)

        assert all(isinstance(r, ProviderError) for r in results)
        assert breaker.state.consecutive_failures == 3
        assert breaker.phase is CircuitPhase.OPEN
        assert recorder.kinds.count("state_change") == 1


# ---------------------------------------------------------------------------
# Events and observers
# ---------------------------------------------------------------------------

class TestEvents:

    @pytest.mark.asyncio
    async def test_emits_call_and_transition_events(self, clock):
        recorder = Recorder()
        breaker = CircuitBreaker("ollama", BreakerConfig(failure_threshold=1, reset_timeout=10),
                                 observers=[recorder], clock=clock)

        await breaker.execute(_succeed())
        await _trip(breaker, 1)
        with pytest.raises(CircuitOpenError):
            await breaker.execute(_succeed())
        clock.advance(10)
        await breaker.execute(_succeed())

        assert recorder.kinds == [
            "success",
            "failure", "state_change",
            "rejected",
            "state_change", "success", "state_change",
        ]
        transitions = [(e.previous_phase, e.phase) for e in recorder.events if e.kind == "state_change"]
        assert transitions == [
            (CircuitPhase.CLOSED, CircuitPhase.OPEN),
            (CircuitPhase.OPEN, CircuitPhase.HALF_OPEN),
            (CircuitPhase.HALF_OPEN, CircuitPhase.CLOSED),
        ]

    @pytest.mark.asyncio
    async def test_failure_event_carries_error(self):
        recorder = Recorder()
        breaker = CircuitBreaker("ollama", observers=[recorder])
        await _trip(breaker, 1)
        failure = recorder.events[0]
        assert failure.kind == "failure"
        assert str(failure.error) == "boom"

    @pytest.mark.asyncio
    async def test_broken_observer_does_not_break_calls(self):
        class Broken:
            def on_circuit_event(self, event):
                raise RuntimeError("observer bug")

        breaker = CircuitBreaker("ollama", observers=[Broken()])
        assert await breaker.execute(_succeed("fine")) == "fine"

    @pytest.mark.asyncio
    async def test_metrics_collector_totals(self, clock):
        metrics = CircuitMetrics()
        breaker = CircuitBreaker("claude", BreakerConfig(failure_threshold=2), observers=[metrics], clock=clock)

        await breaker.execute(_succeed())
        await breaker.execute(_succeed())
        await _trip(breaker, 2)
        with pytest.raises(CircuitOpenError):
            await breaker.execute(_succeed())

        snapshot = metrics.snapshot("claude")
        assert snapshot["total_requests"] == 4
        assert snapshot["successful_requests"] == 2
        assert snapshot["failed_requests"] == 2
        assert snapshot["rejected_requests"] == 1
        assert snapshot["success_rate"] == 50.0
        assert snapshot["last_state_change"] is not None

    def test_metrics_success_rate_without_calls(self):
        assert CircuitMetrics().success_rate("unknown") == 100.0


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class TestBreakerRegistry:

    def test_one_breaker_per_name(self):
        registry = BreakerRegistry()
        assert registry.get("ollama") is registry.get("ollama")
        assert registry.get("ollama") is not registry.get("claude")

    def test_phase_of_unknown_provider_is_closed_and_not_created(self):
        registry = BreakerRegistry()
        assert registry.phase("groq") is CircuitPhase.CLOSED
        assert "groq" not in registry

    def test_overrides_per_provider(self):
        registry = BreakerRegistry(
            BreakerConfig(failure_threshold=5),
            overrides={"ollama": BreakerConfig(failure_threshold=1)},
        )
        assert registry.get("ollama").config.failure_threshold == 1
        assert registry.get("claude").config.failure_threshold == 5

    @pytest.mark.asyncio
    async def test_breakers_are_isolated(self):
        registry = BreakerRegistry(BreakerConfig(failure_threshold=1))
        await _trip(registry.get("ollama"), 1)

        assert registry.phase("ollama") is CircuitPhase.OPEN
        assert registry.phase("claude") is CircuitPhase.CLOSED

    @pytest.mark.asyncio
    async def test_observers_attached_to_created_breakers(self):
        recorder = Recorder()
        registry = BreakerRegistry(observers=[recorder])
        await registry.get("ollama").execute(_succeed())
        assert recorder.events[0].name == "ollama"

    @pytest.mark.asyncio
    async def test_reset_all(self):
        registry = BreakerRegistry(BreakerConfig(failure_threshold=1))
        await _trip(registry.get("ollama"), 1)
        await _trip(registry.get("claude"), 1)

        registry.reset()
        assert {s.phase for s in registry.states()} == {CircuitPhase.CLOSED}
