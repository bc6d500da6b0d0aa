"""
Circuit breaker guarding the new generation pipeline.

The breaker counts failures reported by callers and, once too many land
inside the rolling window, opens: every routing decision then falls back
to the legacy pipeline. After a cooldown it moves to half-open and lets
the next outcome decide whether to close again or re-open.

States:
    CLOSED: Normal routing
    OPEN: Force legacy
    HALF_OPEN: Probing, next outcome decides

Transitions are evaluated under a single lock, so concurrent callers that
report the failure which crosses the threshold produce exactly one trip.

Example:
    >>> breaker = CircuitBreaker(failure_threshold=3)
    >>> for _ in range(3):
    ...     transition = breaker.record_failure()
    >>> transition.to_state
    <CircuitState.OPEN: 'open'>
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pipeshift.models import CircuitState

if TYPE_CHECKING:
    from pipeshift.config import MigrationConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CircuitTransition:
    """
    A state change performed by the breaker.

    Attributes:
        from_state: State before the transition.
        to_state: State after the transition.
        reason: What caused it (threshold, manual_trip, cooldown, probe_success,
            probe_failure, reset).
    """

    from_state: CircuitState
    to_state: CircuitState
    reason: str

    @property
    def tripped(self) -> bool:
        """True when this transition opened the circuit."""
        return self.to_state is CircuitState.OPEN


class CircuitBreaker:
    """
    Thread-safe circuit breaker with a rolling failure window.

    Attributes:
        name: Name for logging and identification.
        failure_threshold: Failures within the window that open the circuit.
        window_seconds: Length of the rolling failure window.
        recovery_timeout: Seconds an open circuit waits before half-open.
        enabled: When False the breaker is always closed and ignores outcomes.
    """

    def __init__(
        self,
        *,
        failure_threshold: int = 5,
        window_seconds: float = 60.0,
        recovery_timeout: float = 30.0,
        enabled: bool = True,
        name: str = "new_pipeline",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the circuit breaker.

        Args:
            failure_threshold: Failures within the window that open the circuit.
            window_seconds: Length of the rolling failure window in seconds.
            recovery_timeout: Cooldown in seconds before probing.
            enabled: Whether outcomes can trip the breaker.
            name: Name for logging and identification.
            clock: Monotonic clock, injectable for tests.
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.window_seconds = window_seconds
        self.recovery_timeout = recovery_timeout
        self.enabled = enabled
        self._clock = clock
        self._lock = threading.RLock()

        self._state = CircuitState.CLOSED
        self._failure_times: deque[float] = deque()
        self._success_count = 0
        self._tripped_at: float | None = None
        self._trip_count = 0

    @classmethod
    def from_config(
        cls,
        config: MigrationConfig,
        *,
        name: str = "new_pipeline",
        clock: Callable[[], float] = time.monotonic,
    ) -> CircuitBreaker:
        """Create a breaker with thresholds taken from a MigrationConfig."""
        return cls(
            failure_threshold=config.error_threshold,
            window_seconds=config.error_window_seconds,
            recovery_timeout=config.circuit_recovery_timeout,
            enabled=config.circuit_breaker_enabled,
            name=name,
            clock=clock,
        )

    def apply_config(self, config: MigrationConfig) -> None:
        """
        Adopt thresholds from a new config without resetting state.

        Disabling the breaker closes it, since a disabled breaker is
        permanently treated as closed.
        """
        with self._lock:
            self.failure_threshold = config.error_threshold
            self.window_seconds = config.error_window_seconds
            self.recovery_timeout = config.circuit_recovery_timeout
            if self.enabled and not config.circuit_breaker_enabled:
                self._clear(CircuitState.CLOSED)
            self.enabled = config.circuit_breaker_enabled

    # =========================================================================
    # Read API
    # =========================================================================

    @property
    def state(self) -> CircuitState:
        """Current state, moving OPEN -> HALF_OPEN if the cooldown elapsed."""
        with self._lock:
            if not self.enabled:
                return CircuitState.CLOSED
            self._check_cooldown()
            return self._state

    @property
    def failure_count(self) -> int:
        """Failures inside the rolling window since the last transition."""
        with self._lock:
            self._prune(self._clock())
            return len(self._failure_times)

    @property
    def success_count(self) -> int:
        """Successes since the last transition."""
        return self._success_count

    @property
    def tripped_at(self) -> float | None:
        """Clock value of the last transition into OPEN."""
        return self._tripped_at

    @property
    def trip_count(self) -> int:
        """Number of times the circuit has opened since the last reset."""
        return self._trip_count

    def get_time_until_retry(self) -> float:
        """Get seconds until an open circuit will probe."""
        with self._lock:
            if self._state != CircuitState.OPEN or self._tripped_at is None:
                return 0.0
            elapsed = self._clock() - self._tripped_at
            return max(0.0, self.recovery_timeout - elapsed)

    def snapshot(self) -> dict[str, Any]:
        """
        Get a consistent view of breaker state for status reports.

        Read-only: an elapsed cooldown is reported as half-open without
        performing the transition.
        """
        with self._lock:
            now = self._clock()
            cutoff = now - self.window_seconds
            return {
                "name": self.name,
                "enabled": self.enabled,
                "state": self._observed_state(now).value,
                "failure_count": sum(1 for t in self._failure_times if t >= cutoff),
                "success_count": self._success_count,
                "failure_threshold": self.failure_threshold,
                "trip_count": self._trip_count,
            }

    # =========================================================================
    # Mutations
    # =========================================================================

    def record_success(self) -> CircuitTransition | None:
        """
        Record a successful execution.

        Returns:
            The transition caused (HALF_OPEN -> CLOSED), or None.
        """
        with self._lock:
            if not self.enabled:
                return None
            self._check_cooldown()

            if self._state == CircuitState.HALF_OPEN:
                logger.info("Circuit breaker '%s' closing after successful probe", self.name)
                return self._transition(CircuitState.CLOSED, "probe_success")

            if self._state == CircuitState.CLOSED:
                # Failures must be consecutive to trip
                self._failure_times.clear()
                self._success_count += 1
            return None

    def record_failure(self) -> CircuitTransition | None:
        """
        Record a failed execution.

        Returns:
            The transition caused (CLOSED -> OPEN or HALF_OPEN -> OPEN), or None.
        """
        with self._lock:
            if not self.enabled:
                return None
            self._check_cooldown()
            now = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                logger.warning(
                    "Circuit breaker '%s' re-opening after failed probe",
                    self.name,
                )
                return self._transition(CircuitState.OPEN, "probe_failure")

            if self._state == CircuitState.OPEN:
                return None

            self._failure_times.append(now)
            self._prune(now)
            if len(self._failure_times) >= self.failure_threshold:
                logger.warning(
                    "Circuit breaker '%s' opening after %d failures within %.1fs",
                    self.name,
                    len(self._failure_times),
                    self.window_seconds,
                    extra={
                        "circuit_breaker": self.name,
                        "failure_count": len(self._failure_times),
                        "failure_threshold": self.failure_threshold,
                    },
                )
                return self._transition(CircuitState.OPEN, "threshold")
            return None

    def trip(self) -> CircuitTransition | None:
        """
        Force the circuit open.

        Ignored when the breaker is disabled or already open.

        Returns:
            The transition caused, or None.
        """
        with self._lock:
            if not self.enabled:
                logger.debug("Ignoring trip of disabled circuit breaker '%s'", self.name)
                return None
            self._check_cooldown()
            if self._state == CircuitState.OPEN:
                return None
            logger.warning("Circuit breaker '%s' tripped manually", self.name)
            return self._transition(CircuitState.OPEN, "manual_trip")

    def reset(self) -> CircuitTransition | None:
        """
        Force the circuit closed and clear all counters.

        Returns:
            The transition caused, or None when already closed.
        """
        with self._lock:
            previous = self._state
            self._clear(CircuitState.CLOSED)
            self._trip_count = 0
            if previous == CircuitState.CLOSED:
                return None
            logger.info("Circuit breaker '%s' reset from %s", self.name, previous.value)
            return CircuitTransition(previous, CircuitState.CLOSED, "reset")

    # =========================================================================
    # Internals (caller holds the lock)
    # =========================================================================

    def _cooldown_elapsed(self, now: float) -> bool:
        return (
            self._state == CircuitState.OPEN
            and self._tripped_at is not None
            and now - self._tripped_at >= self.recovery_timeout
        )

    def _observed_state(self, now: float) -> CircuitState:
        if not self.enabled:
            return CircuitState.CLOSED
        if self._cooldown_elapsed(now):
            return CircuitState.HALF_OPEN
        return self._state

    def _check_cooldown(self) -> None:
        now = self._clock()
        if self._cooldown_elapsed(now):
            elapsed = now - self._tripped_at
            logger.info(
                "Circuit breaker '%s' transitioning to half-open after %.1fs",
                self.name,
                elapsed,
            )
            self._transition(CircuitState.HALF_OPEN, "cooldown")

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._failure_times and self._failure_times[0] < cutoff:
            self._failure_times.popleft()

    def _transition(self, to_state: CircuitState, reason: str) -> CircuitTransition:
        transition = CircuitTransition(self._state, to_state, reason)
        self._clear(to_state)
        if to_state == CircuitState.OPEN:
            self._tripped_at = self._clock()
            self._trip_count += 1
        return transition

    def _clear(self, state: CircuitState) -> None:
        self._state = state
        self._failure_times.clear()
        self._success_count = 0
        if state == CircuitState.CLOSED:
            self._tripped_at = None


__all__ = [
    "CircuitBreaker",
    "CircuitTransition",
]
