"""
Unit tests for pipeshift data models.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from pipeshift.config import MigrationConfig
from pipeshift.models import (
    CircuitState,
    ManualOverride,
    Pipeline,
    RollbackEntry,
    RollbackResult,
    RoutingDecision,
    RoutingReason,
    StateSnapshot,
)


class TestManualOverride:
    def test_pipeline_mapping(self):
        assert ManualOverride.NONE.pipeline is None
        assert ManualOverride.LEGACY.pipeline is Pipeline.LEGACY
        assert ManualOverride.NEW.pipeline is Pipeline.NEW


class TestRoutingDecision:
    def test_use_new_pipeline(self):
        assert RoutingDecision("users", Pipeline.NEW, RoutingReason.PERCENTAGE).use_new_pipeline
        assert not RoutingDecision("users", Pipeline.LEGACY, RoutingReason.PERCENTAGE).use_new_pipeline

    def test_to_dict(self):
        decision = RoutingDecision("users", Pipeline.NEW, RoutingReason.CANARY, is_canary=True)

        assert decision.to_dict() == {
            "entity_id": "users",
            "pipeline": "new",
            "reason": "canary",
            "is_canary": True,
        }


class TestSnapshots:
    def test_state_snapshot_to_dict(self):
        snapshot = StateSnapshot(MigrationConfig(new_pipeline_percentage=5), CircuitState.HALF_OPEN)

        data = snapshot.to_dict()

        assert data["config"]["new_pipeline_percentage"] == 5
        assert data["breaker_state"] == "half_open"
        assert data["taken_at"].endswith("+00:00")

    def test_rollback_entry_is_frozen(self):
        entry = RollbackEntry(reason="spike")

        with pytest.raises(ValidationError):
            entry.reason = "other"  # type: ignore[misc]

    def test_rollback_entry_defaults(self):
        entry = RollbackEntry(reason="spike")

        assert entry.trigger == "manual"
        assert entry.operator is None
        assert entry.previous_state == {}
        assert entry.timestamp.tzinfo is not None

    def test_rollback_result_to_dict(self):
        result = RollbackResult(success=False, reason="nothing to roll back")

        assert result.to_dict() == {
            "success": False,
            "reason": "nothing to roll back",
            "restored_state": None,
            "dry_run": False,
        }
