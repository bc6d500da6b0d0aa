"""
Unit tests for MigrationConfig.

Tests cover:
- Defaults
- Range and type validation
- Parsing raw settings and environment variables
- with_changes() and to_dict()
"""

from __future__ import annotations

import dataclasses

import pytest

from pipeshift.config import ENV_VARS, MigrationConfig
from pipeshift.exceptions import ConfigurationError, InvalidPercentageError
from pipeshift.models import ManualOverride


class TestDefaults:
    """Tests for default configuration values."""

    def test_defaults_route_everything_to_legacy(self):
        config = MigrationConfig()

        assert config.new_pipeline_percentage == 0
        assert config.manual_override is ManualOverride.NONE
        assert config.enable_canary_testing is False
        assert config.canary_sample_rate == 0

    def test_safety_defaults(self):
        config = MigrationConfig()

        assert config.circuit_breaker_enabled is True
        assert config.auto_rollback_enabled is False
        assert config.fallback_to_legacy_on_error is True
        assert config.track_performance_metrics is False
        assert config.error_threshold == 5
        assert config.error_window_seconds == 60.0
        assert config.circuit_recovery_timeout == 30.0
        assert config.new_pipeline_entities == ()

    def test_config_is_frozen(self):
        config = MigrationConfig()

        with pytest.raises(dataclasses.FrozenInstanceError):
            config.new_pipeline_percentage = 50  # type: ignore[misc]


class TestValidation:
    """Tests for range and type validation."""

    @pytest.mark.parametrize("value", [0, 1, 50, 99, 100])
    def test_percentage_boundaries_accepted(self, value):
        assert MigrationConfig(new_pipeline_percentage=value).new_pipeline_percentage == value

    @pytest.mark.parametrize("value", [-1, 101, 150])
    def test_percentage_out_of_range_rejected(self, value):
        with pytest.raises(InvalidPercentageError) as exc_info:
            MigrationConfig(new_pipeline_percentage=value)

        assert exc_info.value.field_name == "new_pipeline_percentage"
        assert exc_info.value.value == value

    def test_canary_rate_out_of_range_rejected(self):
        with pytest.raises(InvalidPercentageError) as exc_info:
            MigrationConfig(canary_sample_rate=101)

        assert exc_info.value.field_name == "canary_sample_rate"

    def test_invalid_percentage_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            MigrationConfig(new_pipeline_percentage=-5)

    def test_non_integer_percentage_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            MigrationConfig(new_pipeline_percentage=12.5)  # type: ignore[arg-type]

        assert not isinstance(exc_info.value, InvalidPercentageError)

    def test_bool_percentage_rejected(self):
        with pytest.raises(ConfigurationError):
            MigrationConfig(new_pipeline_percentage=True)

    def test_non_bool_flag_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            MigrationConfig(enable_canary_testing="yes")  # type: ignore[arg-type]

        assert exc_info.value.field_name == "enable_canary_testing"

    def test_unknown_override_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            MigrationConfig(manual_override="sideways")  # type: ignore[arg-type]

        assert exc_info.value.field_name == "manual_override"

    @pytest.mark.parametrize(
        "field_name,value",
        [
            ("error_threshold", 0),
            ("error_window_seconds", 0),
            ("circuit_recovery_timeout", -1.0),
            ("degraded_failure_rate", 1.5),
        ],
    )
    def test_breaker_tuning_validated(self, field_name, value):
        with pytest.raises(ConfigurationError) as exc_info:
            MigrationConfig(**{field_name: value})

        assert exc_info.value.field_name == field_name

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf"), "30"])
    @pytest.mark.parametrize(
        "field_name",
        ["error_window_seconds", "circuit_recovery_timeout", "degraded_failure_rate"],
    )
    def test_float_fields_must_be_finite_numbers(self, field_name, value):
        with pytest.raises(ConfigurationError) as exc_info:
            MigrationConfig(**{field_name: value})

        assert exc_info.value.field_name == field_name

    def test_validate_catches_non_numeric_mutation(self):
        config = MigrationConfig()
        object.__setattr__(config, "circuit_recovery_timeout", "soon")

        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()

        assert exc_info.value.field_name == "circuit_recovery_timeout"

    def test_validate_catches_mutation_behind_frozen_dataclass(self):
        config = MigrationConfig(new_pipeline_percentage=10)
        object.__setattr__(config, "new_pipeline_percentage", 250)

        with pytest.raises(InvalidPercentageError):
            config.validate()


class TestNormalization:
    """Tests for override and entity normalization."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("none", ManualOverride.NONE),
            ("", ManualOverride.NONE),
            ("legacy", ManualOverride.LEGACY),
            ("FORCE_LEGACY", ManualOverride.LEGACY),
            ("new", ManualOverride.NEW),
            ("force_new", ManualOverride.NEW),
            (None, ManualOverride.NONE),
        ],
    )
    def test_override_aliases(self, raw, expected):
        assert MigrationConfig(manual_override=raw).manual_override is expected  # type: ignore[arg-type]

    def test_entities_from_list(self):
        config = MigrationConfig(new_pipeline_entities=["users", "orders"])  # type: ignore[arg-type]

        assert config.new_pipeline_entities == ("users", "orders")

    def test_entities_from_comma_separated_string(self):
        config = MigrationConfig(new_pipeline_entities=" users, orders ,,")  # type: ignore[arg-type]

        assert config.new_pipeline_entities == ("users", "orders")


class TestParse:
    """Tests for MigrationConfig.parse()."""

    def test_parse_coerces_strings(self):
        config = MigrationConfig.parse(
            {
                "new_pipeline_percentage": "75",
                "enable_canary_testing": "true",
                "canary_sample_rate": " 10 ",
                "circuit_breaker_enabled": "false",
                "error_window_seconds": "120",
                "manual_override": "new",
            }
        )

        assert config.new_pipeline_percentage == 75
        assert config.enable_canary_testing is True
        assert config.canary_sample_rate == 10
        assert config.circuit_breaker_enabled is False
        assert config.error_window_seconds == 120.0
        assert config.manual_override is ManualOverride.NEW

    def test_parse_ignores_unknown_keys(self):
        config = MigrationConfig.parse({"new_pipeline_percentage": 5, "colour": "blue"})

        assert config.new_pipeline_percentage == 5

    def test_parse_empty_returns_defaults(self):
        assert MigrationConfig.parse({}) == MigrationConfig()
        assert MigrationConfig.parse(None) == MigrationConfig()

    def test_parse_non_numeric_percentage(self):
        with pytest.raises(ConfigurationError) as exc_info:
            MigrationConfig.parse({"new_pipeline_percentage": "lots"})

        assert exc_info.value.field_name == "new_pipeline_percentage"
        assert exc_info.value.__cause__ is not None

    @pytest.mark.parametrize("raw", ["nan", "inf", "-inf", "NaN"])
    @pytest.mark.parametrize("field_name", ["circuit_recovery_timeout", "error_window_seconds"])
    def test_parse_non_finite_float_rejected(self, field_name, raw):
        with pytest.raises(ConfigurationError) as exc_info:
            MigrationConfig.parse({field_name: raw})

        assert exc_info.value.field_name == field_name

    def test_parse_out_of_range_percentage(self):
        with pytest.raises(InvalidPercentageError):
            MigrationConfig.parse({"new_pipeline_percentage": "150"})


class TestFromEnv:
    """Tests for MigrationConfig.from_env()."""

    def test_reads_migration_variables(self):
        env = {
            "MIGRATION_NEW_PIPELINE_PCT": "30",
            "MIGRATION_MANUAL_OVERRIDE": "force_legacy",
            "MIGRATION_ENABLE_CANARY": "1",
            "MIGRATION_CANARY_SAMPLE_RATE": "5",
            "MIGRATION_AUTO_ROLLBACK": "true",
            "MIGRATION_NEW_PIPELINE_TABLES": "users,orders",
            "MIGRATION_ERROR_THRESHOLD": "3",
            "UNRELATED": "ignored",
        }

        config = MigrationConfig.from_env(env)

        assert config.new_pipeline_percentage == 30
        assert config.manual_override is ManualOverride.LEGACY
        assert config.enable_canary_testing is True
        assert config.canary_sample_rate == 5
        assert config.auto_rollback_enabled is True
        assert config.new_pipeline_entities == ("users", "orders")
        assert config.error_threshold == 3

    def test_empty_environment_gives_defaults(self):
        assert MigrationConfig.from_env({}) == MigrationConfig()

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("MIGRATION_NEW_PIPELINE_PCT", "42")

        assert MigrationConfig.from_env().new_pipeline_percentage == 42

    def test_invalid_environment_raises(self):
        with pytest.raises(InvalidPercentageError):
            MigrationConfig.from_env({"MIGRATION_NEW_PIPELINE_PCT": "-1"})

    def test_every_env_var_maps_to_a_field(self):
        fields = {f.name for f in dataclasses.fields(MigrationConfig)}

        assert set(ENV_VARS.values()) <= fields
        assert all(name.startswith("MIGRATION_") for name in ENV_VARS)


class TestWithChanges:
    """Tests for with_changes() and to_dict()."""

    def test_returns_new_config(self):
        config = MigrationConfig(new_pipeline_percentage=10)

        changed = config.with_changes(new_pipeline_percentage="20")

        assert changed.new_pipeline_percentage == 20
        assert config.new_pipeline_percentage == 10

    def test_unknown_field_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            MigrationConfig().with_changes(rollout_speed=3)

        assert exc_info.value.field_name == "rollout_speed"

    def test_invalid_change_rejected(self):
        with pytest.raises(InvalidPercentageError):
            MigrationConfig().with_changes(canary_sample_rate=200)

    def test_to_dict_uses_plain_values(self):
        config = MigrationConfig(
            manual_override=ManualOverride.NEW,
            new_pipeline_entities=("users",),
        )

        data = config.to_dict()

        assert data["manual_override"] == "new"
        assert data["new_pipeline_entities"] == ["users"]
        assert set(data) == {f.name for f in dataclasses.fields(MigrationConfig)}

    def test_to_dict_round_trips_through_parse(self):
        config = MigrationConfig(new_pipeline_percentage=40, enable_canary_testing=True)

        assert MigrationConfig.parse(config.to_dict()) == config
