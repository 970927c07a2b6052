from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 1
    reset_timeout_seconds: float = 30.0


class CircuitState:
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(RuntimeError):
    def __init__(self) -> None:
        super().__init__("circuit_open")


class CircuitBreaker:
    """Stops calling a failing dependency until a cooldown has elapsed.

    After `failure_threshold` consecutive failures the circuit opens. Once
    `reset_timeout_seconds` pass, a single trial call is let through
    (half-open); every other caller is refused until the trial reports back.
    Success closes the circuit, failure reopens it.
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or CircuitBreakerConfig()
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> str:
        return self._state

    def can_attempt(self) -> bool:
        """Whether a call may go through now.

        A True answer in the half-open state claims the trial; the caller must
        follow up with `record_success`, `record_failure` or `release`.
        """
        if self._state == CircuitState.OPEN:
            if (self._clock() - self._opened_at) < self._config.reset_timeout_seconds:
                return False
            self._state = CircuitState.HALF_OPEN
        if self._state == CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                return False
            self._trial_in_flight = True
        return True

    def release(self) -> None:
        """Give up a claimed trial without an outcome (e.g. on cancellation)."""
        self._trial_in_flight = False

    def record_success(self) -> None:
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._trial_in_flight = False

    def record_failure(self) -> None:
        self._failures += 1
        self._trial_in_flight = False
        if self._state == CircuitState.HALF_OPEN or self._failures >= self._config.failure_threshold:
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()

    async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
        if not self.can_attempt():
            raise CircuitOpenError()
        try:
            result = await fn()
        except Exception:
            self.record_failure()
            raise
        except BaseException:
            self.release()
            raise
        else:
            self.record_success()
            return result
