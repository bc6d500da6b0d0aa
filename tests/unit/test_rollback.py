"""
Unit tests for the RollbackManager.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from pipeshift.config import MigrationConfig
from pipeshift.models import CircuitState, RollbackEntry, StateSnapshot
from pipeshift.rollback import NOTHING_TO_ROLL_BACK, RollbackManager


@pytest.fixture
def manager() -> RollbackManager:
    return RollbackManager()


@pytest.fixture
def snapshot() -> StateSnapshot:
    return StateSnapshot(MigrationConfig(new_pipeline_percentage=25), CircuitState.CLOSED)


class TestRollback:
    """Tests for rollback()."""

    def test_nothing_to_roll_back(self, manager):
        result = manager.rollback("error spike")

        assert result.success is False
        assert result.reason == NOTHING_TO_ROLL_BACK
        assert result.restored_state is None
        assert manager.rollback_history == ()
        assert manager.rollback_count == 0

    def test_restores_checkpoint(self, manager, snapshot):
        manager.checkpoint(snapshot)

        result = manager.rollback("error spike", operator="alice")

        assert result.success is True
        assert result.restored_state is snapshot
        assert result.entry.reason == "error spike"
        assert result.entry.trigger == "manual"
        assert result.entry.operator == "alice"
        assert result.entry.previous_state["config"]["new_pipeline_percentage"] == 25

    def test_checkpoint_survives_rollback(self, manager, snapshot):
        manager.checkpoint(snapshot)
        manager.rollback("first")

        assert manager.rollback("second").restored_state is snapshot
        assert manager.rollback_count == 2

    def test_latest_checkpoint_wins(self, manager, snapshot):
        manager.checkpoint(snapshot)
        newer = StateSnapshot(MigrationConfig(new_pipeline_percentage=50), CircuitState.CLOSED)
        manager.checkpoint(newer)

        assert manager.rollback("spike").restored_state is newer

    def test_history_is_ordered(self, manager, snapshot):
        manager.checkpoint(snapshot)
        for i in range(3):
            manager.rollback(f"reason {i}", trigger="circuit_breaker_tripped")

        history = manager.rollback_history

        assert [entry.reason for entry in history] == ["reason 0", "reason 1", "reason 2"]
        assert all(entry.trigger == "circuit_breaker_tripped" for entry in history)
        assert history[0].timestamp <= history[-1].timestamp

    def test_history_is_bounded(self, snapshot):
        manager = RollbackManager(max_history=3)
        manager.checkpoint(snapshot)
        for i in range(5):
            manager.rollback(f"reason {i}")

        assert [entry.reason for entry in manager.rollback_history] == [
            "reason 2",
            "reason 3",
            "reason 4",
        ]
        assert manager.rollback_count == 5

    def test_invalid_max_history(self):
        with pytest.raises(ValueError):
            RollbackManager(max_history=0)


class TestRecord:
    """Tests for record()."""

    def test_record_appends_without_checkpoint(self, manager):
        entry = manager.record("incident", trigger="emergency_manual", operator="bob")

        assert manager.rollback_history == (entry,)
        assert entry.previous_state == {}
        assert manager.current_state is None

    def test_record_serializes_previous_state(self, manager, snapshot):
        entry = manager.record("incident", trigger="emergency_manual", previous_state=snapshot)

        assert entry.previous_state["breaker_state"] == "closed"


class TestListeners:
    """Tests for rollback notifications."""

    def test_listener_receives_entry(self, manager, snapshot):
        received: list[RollbackEntry] = []
        manager.add_listener(received.append)
        manager.checkpoint(snapshot)

        result = manager.rollback("spike")

        assert received == [result.entry]

    def test_failing_listener_does_not_block_rollback(self, snapshot, caplog):
        def broken(entry: RollbackEntry) -> None:
            raise RuntimeError("pager offline")

        received: list[RollbackEntry] = []
        manager = RollbackManager(listeners=[broken, received.append])
        manager.checkpoint(snapshot)

        result = manager.rollback("spike")

        assert result.success is True
        assert len(received) == 1
        assert "pager offline" in caplog.text

    def test_no_notification_when_nothing_rolled_back(self, manager):
        received: list[RollbackEntry] = []
        manager.add_listener(received.append)

        manager.rollback("spike")

        assert received == []


class TestSummary:
    """Tests for summary(), rollback_count_since() and reset()."""

    def test_empty_summary(self, manager):
        assert manager.summary() == {
            "rollback_count": 0,
            "has_checkpoint": False,
            "last_rollback": None,
        }

    def test_summary_after_rollback(self, manager, snapshot):
        manager.checkpoint(snapshot)
        manager.rollback("spike", operator="carol")

        summary = manager.summary()

        assert summary["rollback_count"] == 1
        assert summary["has_checkpoint"] is True
        assert summary["last_rollback"]["reason"] == "spike"
        assert summary["last_rollback"]["operator"] == "carol"

    def test_rollback_count_since(self, manager, snapshot):
        manager.checkpoint(snapshot)
        manager.rollback("spike")

        assert manager.rollback_count_since(datetime.now(UTC) - timedelta(minutes=1)) == 1
        assert manager.rollback_count_since(datetime.now(UTC) + timedelta(minutes=1)) == 0

    def test_reset(self, manager, snapshot):
        manager.checkpoint(snapshot)
        manager.rollback("spike")

        manager.reset()

        assert manager.current_state is None
        assert manager.rollback_history == ()
        assert manager.rollback_count == 0
