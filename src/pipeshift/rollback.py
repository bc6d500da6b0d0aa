"""
RollbackManager - Checkpoints and restores controller state.

The controller checkpoints the live config and breaker state while the
migration is healthy. When the circuit breaker trips (with auto-rollback
enabled) or an operator asks for it, the manager hands back the most
recent checkpoint and appends an audit entry to its history.

Responsibilities:
    - Hold the most recent StateSnapshot
    - Restore it on request and record why
    - Keep an ordered, append-only rollback history for audit and health
    - Notify listeners after every rollback

Rollback on an empty manager is a no-op that reports "nothing to roll
back" rather than raising.

Usage:
    >>> manager = RollbackManager()
    >>> manager.checkpoint(StateSnapshot(config, CircuitState.CLOSED))
    >>> result = manager.rollback("error rate spike")
    >>> result.restored_state.config == config
    True
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pipeshift.models import RollbackEntry, RollbackResult, StateSnapshot

logger = logging.getLogger(__name__)

NOTHING_TO_ROLL_BACK = "nothing to roll back"

RollbackListener = Callable[[RollbackEntry], None]


class RollbackManager:
    """
    Holds the last checkpoint and the rollback audit trail.

    Attributes:
        max_history: Number of most recent entries retained.
    """

    def __init__(
        self,
        *,
        max_history: int = 100,
        listeners: list[RollbackListener] | None = None,
    ) -> None:
        """
        Initialize the rollback manager.

        Args:
            max_history: Number of most recent history entries to retain.
            listeners: Callables invoked with each new RollbackEntry.
        """
        if max_history < 1:
            raise ValueError(f"max_history must be >= 1, got {max_history}.")
        self.max_history = max_history
        self._lock = threading.RLock()
        self._current_state: StateSnapshot | None = None
        self._history: deque[RollbackEntry] = deque(maxlen=max_history)
        self._rollback_count = 0
        self._listeners: list[RollbackListener] = list(listeners or [])

    @property
    def current_state(self) -> StateSnapshot | None:
        """The most recent checkpoint, or None if none was taken."""
        return self._current_state

    @property
    def rollback_history(self) -> tuple[RollbackEntry, ...]:
        """Rollback entries, oldest first."""
        with self._lock:
            return tuple(self._history)

    @property
    def rollback_count(self) -> int:
        """Total rollbacks performed, including entries aged out of history."""
        return self._rollback_count

    def add_listener(self, listener: RollbackListener) -> None:
        """Register a callable notified after every rollback."""
        with self._lock:
            self._listeners.append(listener)

    def checkpoint(self, state: StateSnapshot) -> None:
        """
        Store a snapshot as the state to restore on rollback.

        Args:
            state: Config and breaker state to remember.
        """
        with self._lock:
            self._current_state = state

    def rollback(
        self,
        reason: str,
        *,
        trigger: str = "manual",
        operator: str | None = None,
    ) -> RollbackResult:
        """
        Restore the most recent checkpoint.

        Args:
            reason: Why the rollback is happening.
            trigger: What caused it (manual, circuit_breaker_tripped, ...).
            operator: Who requested it, when known.

        Returns:
            RollbackResult with the restored snapshot, or success=False and
            reason "nothing to roll back" when no checkpoint exists.
        """
        with self._lock:
            restored = self._current_state
            if restored is None:
                logger.info("Rollback requested (%s) but %s", reason, NOTHING_TO_ROLL_BACK)
                return RollbackResult(success=False, reason=NOTHING_TO_ROLL_BACK)

            entry = self._append(reason, trigger, operator, restored.to_dict())
            logger.warning(
                "Rolled back migration state: %s",
                reason,
                extra={
                    "trigger": trigger,
                    "operator": operator,
                    "restored_percentage": restored.config.new_pipeline_percentage,
                },
            )
            listeners = list(self._listeners)

        self._notify(listeners, entry)
        return RollbackResult(success=True, reason=reason, restored_state=restored, entry=entry)

    def record(
        self,
        reason: str,
        *,
        trigger: str,
        operator: str | None = None,
        previous_state: StateSnapshot | None = None,
    ) -> RollbackEntry:
        """
        Append a history entry for a rollback performed by the caller.

        Used for emergency rollbacks, which force legacy routing instead of
        restoring a checkpoint.
        """
        with self._lock:
            entry = self._append(
                reason,
                trigger,
                operator,
                previous_state.to_dict() if previous_state else {},
            )
            listeners = list(self._listeners)
        self._notify(listeners, entry)
        return entry

    def rollback_count_since(self, since: datetime) -> int:
        """Count retained history entries at or after a timestamp."""
        with self._lock:
            return sum(1 for entry in self._history if entry.timestamp >= since)

    def summary(self) -> dict[str, Any]:
        """Summarize rollback state for health reports."""
        with self._lock:
            last = self._history[-1] if self._history else None
            return {
                "rollback_count": self._rollback_count,
                "has_checkpoint": self._current_state is not None,
                "last_rollback": (
                    {
                        "timestamp": last.timestamp.isoformat(),
                        "reason": last.reason,
                        "trigger": last.trigger,
                        "operator": last.operator,
                    }
                    if last
                    else None
                ),
            }

    def reset(self) -> None:
        """Drop the checkpoint and history."""
        with self._lock:
            self._current_state = None
            self._history.clear()
            self._rollback_count = 0

    def _append(
        self,
        reason: str,
        trigger: str,
        operator: str | None,
        previous_state: dict[str, Any],
    ) -> RollbackEntry:
        entry = RollbackEntry(
            reason=reason,
            trigger=trigger,
            operator=operator,
            previous_state=previous_state,
        )
        self._history.append(entry)
        self._rollback_count += 1
        return entry

    @staticmethod
    def _notify(listeners: list[RollbackListener], entry: RollbackEntry) -> None:
        for listener in listeners:
            try:
                listener(entry)
            except Exception as e:
                # Listener errors are logged, the rollback stands
                logger.error(
                    "Rollback listener %r failed: %s",
                    listener,
                    e,
                    exc_info=True,
                )


__all__ = [
    "NOTHING_TO_ROLL_BACK",
    "RollbackListener",
    "RollbackManager",
]
