"""Circuit Breaker - fail fast on an unhealthy provider, try a single trial call to recover.

One breaker guards one provider. Phases:

    CLOSED     calls pass through; consecutive failures are counted
    OPEN       calls are rejected without invoking the operation
    HALF_OPEN  a single trial call is admitted

CLOSED -> OPEN once ``failure_threshold`` consecutive failures are seen.
OPEN -> HALF_OPEN as soon as ``reset_timeout`` has elapsed (checked whenever
the phase is read). HALF_OPEN -> CLOSED on a successful trial, back to OPEN
with a fresh timer on a failed one.

All counter updates and the transitions they trigger run synchronously
between awaits, so concurrent ``execute()`` calls on one event loop never
double-count a failure or race a transition.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol

from aicommit.config import BreakerConfig, ConfigurationError
from aicommit.llm.base import ProviderError

logger = logging.getLogger(__name__)


class CircuitPhase(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitOpenError(ProviderError):
    """Raised when a breaker rejects a call without running it."""

    def __init__(self, name: str, retry_after: float):
        self.name = name
        self.retry_after = max(0.0, retry_after)
        super().__init__(f"Circuit breaker for {name} is OPEN. Retry in {self.retry_after:.0f}s")


@dataclass(frozen=True)
class CircuitState:
    """Point-in-time snapshot of one breaker."""
    name: str
    phase: CircuitPhase
    consecutive_failures: int
    opened_at: Optional[float]


@dataclass(frozen=True)
class CircuitEvent:
    """Emitted on every transition and every finished or rejected call.

    kind is one of: state_change, success, failure, rejected.
    """
    name: str
    kind: str
    phase: CircuitPhase
    previous_phase: Optional[CircuitPhase] = None
    duration: Optional[float] = None
    error: Optional[BaseException] = None
    timestamp: float = field(default_factory=time.time)


class CircuitObserver(Protocol):
    def on_circuit_event(self, event: CircuitEvent) -> None:
        ...


class CircuitBreaker:
    """Wraps one unreliable call path."""

    def __init__(
        self,
        name: str,
        config: BreakerConfig | None = None,
        observers: Iterable[CircuitObserver] = (),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or BreakerConfig()
        self._observers = list(observers)
        self._clock = clock

        self._phase = CircuitPhase.CLOSED
        self._consecutive_failures = 0
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False

    def subscribe(self, observer: CircuitObserver) -> None:
        self._observers.append(observer)

    @property
    def phase(self) -> CircuitPhase:
        self._check_reset_timeout()
        return self._phase

    @property
    def state(self) -> CircuitState:
        return CircuitState(
            name=self.name,
            phase=self.phase,
            consecutive_failures=self._consecutive_failures,
            opened_at=self._opened_at,
        )

    @property
    def retry_after(self) -> float:
        """Seconds until an OPEN breaker admits a trial call (0 otherwise)."""
        if self.phase is not CircuitPhase.OPEN:
            return 0.0
        return self.config.reset_timeout - (self._clock() - self._opened_at)

    def can_execute(self) -> bool:
        phase = self.phase
        if phase is CircuitPhase.OPEN:
            return False
        if phase is CircuitPhase.HALF_OPEN:
            return not self._trial_in_flight
        return True

    async def execute(
        self,
        operation: Callable[[], Awaitable[Any]],
        fallback: Callable[[], Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Run ``operation`` under this breaker.

        Raises CircuitOpenError (when rejected and no fallback is given),
        TimeoutError (deadline exceeded) or whatever the operation raised.
        """
        if not self.can_execute():
            retry_after = self.retry_after
            self._emit(CircuitEvent(self.name, "rejected", self._phase))
            if fallback is not None:
                result = fallback()
                if inspect.isawaitable(result):
                    result = await result
                return result
            raise CircuitOpenError(self.name, retry_after)

        deadline = timeout if timeout is not None else self.config.call_timeout
        if deadline <= 0:
            raise ConfigurationError(f"timeout must be positive, got {deadline!r}")

        is_trial = self._phase is CircuitPhase.HALF_OPEN
        if is_trial:
            self._trial_in_flight = True

        started = self._clock()
        try:
            result = await asyncio.wait_for(operation(), timeout=deadline)
        except asyncio.TimeoutError:
            error = TimeoutError(f"{self.name} call timed out after {deadline:g}s")
            self._on_failure(error, self._clock() - started, is_trial)
            raise error from None
        except Exception as e:
            self._on_failure(e, self._clock() - started, is_trial)
            raise
        except asyncio.CancelledError:
            # caller went away; the trial slot must not stay taken
            if is_trial:
                self._trial_in_flight = False
            raise

        self._on_success(self._clock() - started, is_trial)
        return result

    def reset(self) -> None:
        """Force the breaker back to CLOSED with clean counters."""
        self._consecutive_failures = 0
        self._opened_at = None
        self._trial_in_flight = False
        self._transition(CircuitPhase.CLOSED)

    def _check_reset_timeout(self) -> None:
        if (self._phase is CircuitPhase.OPEN
                and self._clock() - self._opened_at >= self.config.reset_timeout):
            self._transition(CircuitPhase.HALF_OPEN)

    def _on_success(self, duration: float, is_trial: bool) -> None:
        if is_trial:
            self._trial_in_flight = False
        self._emit(CircuitEvent(self.name, "success", self._phase, duration=duration))

        # only the trial decides how the breaker leaves HALF_OPEN; late
        # outcomes of calls admitted while CLOSED are counted, nothing more
        if self._phase is CircuitPhase.OPEN:
            return
        if self._phase is CircuitPhase.HALF_OPEN:
            if is_trial:
                self._consecutive_failures = 0
                self._opened_at = None
                self._transition(CircuitPhase.CLOSED)
            return
        self._consecutive_failures = 0

    def _on_failure(self, error: BaseException, duration: float, is_trial: bool) -> None:
        if is_trial:
            self._trial_in_flight = False
        self._consecutive_failures += 1
        self._emit(CircuitEvent(self.name, "failure", self._phase, duration=duration, error=error))

        if self._phase is CircuitPhase.HALF_OPEN:
            if is_trial:
                self._open()
        elif (self._phase is CircuitPhase.CLOSED
                and self._consecutive_failures >= self.config.failure_threshold):
            self._open()

    def _open(self) -> None:
        self._opened_at = self._clock()
        self._transition(CircuitPhase.OPEN)

    def _transition(self, phase: CircuitPhase) -> None:
        previous = self._phase
        self._phase = phase
        if previous is not phase:
            self._emit(CircuitEvent(self.name, "state_change", phase, previous_phase=previous))

    def _emit(self, event: CircuitEvent) -> None:
        for observer in self._observers:
            try:
                observer.on_circuit_event(event)
            except Exception:
                logger.exception("Circuit observer %r failed on %s event", observer, event.kind)

    def __repr__(self) -> str:
        return f"CircuitBreaker({self.name!r}, phase={self._phase.value}, failures={self._consecutive_failures})"


class CircuitEventLogger:
    """Observer that writes breaker activity to the log."""

    def __init__(self, log: logging.Logger | None = None):
        self._log = log or logger

    def on_circuit_event(self, event: CircuitEvent) -> None:
        if event.kind == "state_change":
            level = logging.WARNING if event.phase is CircuitPhase.OPEN else logging.INFO
            self._log.log(level, "Circuit breaker %s: %s -> %s",
                          event.name, event.previous_phase.value, event.phase.value)
        elif event.kind == "failure":
            self._log.debug("Circuit breaker %s recorded failure after %.2fs: %s",
                            event.name, event.duration or 0.0, event.error)
        elif event.kind == "rejected":
            self._log.debug("Circuit breaker %s rejected a call", event.name)


@dataclass
class _BreakerTotals:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    rejected_requests: int = 0
    average_response_time: float = 0.0
    last_state_change: Optional[float] = None


class CircuitMetrics:
    """Observer collecting per-breaker call totals and response times."""

    SMOOTHING = 0.3  # weight of the newest sample in the moving average

    def __init__(self):
        self._totals: dict[str, _BreakerTotals] = {}

    def on_circuit_event(self, event: CircuitEvent) -> None:
        totals = self._totals.setdefault(event.name, _BreakerTotals())
        if event.kind == "state_change":
            totals.last_state_change = event.timestamp
            return
        if event.kind == "rejected":
            totals.rejected_requests += 1
            return

        totals.total_requests += 1
        if event.kind == "success":
            totals.successful_requests += 1
        else:
            totals.failed_requests += 1

        if event.duration is not None:
            if totals.total_requests == 1:
                totals.average_response_time = event.duration
            else:
                totals.average_response_time = (
                    self.SMOOTHING * event.duration
                    + (1 - self.SMOOTHING) * totals.average_response_time
                )

    def success_rate(self, name: str) -> float:
        totals = self._totals.get(name)
        if totals is None or totals.total_requests == 0:
            return 100.0
        return totals.successful_requests / totals.total_requests * 100

    def snapshot(self, name: str) -> dict:
        totals = self._totals.get(name, _BreakerTotals())
        return {
            "total_requests": totals.total_requests,
            "successful_requests": totals.successful_requests,
            "failed_requests": totals.failed_requests,
            "rejected_requests": totals.rejected_requests,
            "success_rate": round(self.success_rate(name), 2),
            "average_response_time": round(totals.average_response_time, 3),
            "last_state_change": totals.last_state_change,
        }


class BreakerRegistry:
    """One CircuitBreaker per provider name.

    Passed explicitly to the components that need breaker state instead of
    living in a module-level global.
    """

    def __init__(
        self,
        default_config: BreakerConfig | None = None,
        overrides: dict[str, BreakerConfig] | None = None,
        observers: Iterable[CircuitObserver] = (),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_config = default_config or BreakerConfig()
        self._overrides = dict(overrides or {})
        self._observers = list(observers)
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, name: str) -> CircuitBreaker:
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(
                name,
                config=self._overrides.get(name, self.default_config),
                observers=self._observers,
                clock=self._clock,
            )
            self._breakers[name] = breaker
        return breaker

    def phase(self, name: str) -> CircuitPhase:
        breaker = self._breakers.get(name)
        return breaker.phase if breaker else CircuitPhase.CLOSED

    def states(self) -> list[CircuitState]:
        return [breaker.state for breaker in self._breakers.values()]

    def reset(self, name: str | None = None) -> None:
        if name is None:
            targets = list(self._breakers.values())
        else:
            targets = [self._breakers[name]] if name in self._breakers else []
        for breaker in targets:
            breaker.reset()

    def __contains__(self, name: str) -> bool:
        return name in self._breakers

    def __iter__(self):
        return iter(self._breakers.values())
