"""
Configuration for the progressive migration controller.

This module provides:
- MigrationConfig: Immutable snapshot of every tunable rollout parameter
- ENV_VARS: Mapping of MIGRATION_* environment variables to config fields

Raw settings (a flat mapping, or the process environment) are converted
with pydantic's lax coercion, so "75", "true" and "off" are accepted the
same way they are written in deployment manifests. Anything that does not
convert, or falls outside its valid range, raises ConfigurationError.

Example:
    >>> config = MigrationConfig.parse({"new_pipeline_percentage": "25"})
    >>> config.new_pipeline_percentage
    25
    >>> config = MigrationConfig.from_env()
"""

from __future__ import annotations

import dataclasses
import math
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import TypeAdapter, ValidationError

from pipeshift.exceptions import ConfigurationError, InvalidPercentageError
from pipeshift.models import ManualOverride

_BOOL_ADAPTER = TypeAdapter(bool)
_INT_ADAPTER = TypeAdapter(int)
_FLOAT_ADAPTER = TypeAdapter(float)

# Accepted spellings for manual_override, including the force_* aliases
# used by older deployment manifests.
_OVERRIDE_ALIASES: dict[str, ManualOverride] = {
    "": ManualOverride.NONE,
    "none": ManualOverride.NONE,
    "off": ManualOverride.NONE,
    "legacy": ManualOverride.LEGACY,
    "force_legacy": ManualOverride.LEGACY,
    "new": ManualOverride.NEW,
    "force_new": ManualOverride.NEW,
}

ENV_VARS: dict[str, str] = {
    "MIGRATION_NEW_PIPELINE_PCT": "new_pipeline_percentage",
    "MIGRATION_MANUAL_OVERRIDE": "manual_override",
    "MIGRATION_ENABLE_CANARY": "enable_canary_testing",
    "MIGRATION_CANARY_SAMPLE_RATE": "canary_sample_rate",
    "MIGRATION_CIRCUIT_BREAKER": "circuit_breaker_enabled",
    "MIGRATION_TRACK_PERFORMANCE": "track_performance_metrics",
    "MIGRATION_AUTO_ROLLBACK": "auto_rollback_enabled",
    "MIGRATION_NEW_PIPELINE_TABLES": "new_pipeline_entities",
    "MIGRATION_FALLBACK_TO_LEGACY": "fallback_to_legacy_on_error",
    "MIGRATION_ERROR_THRESHOLD": "error_threshold",
    "MIGRATION_ERROR_WINDOW_SECONDS": "error_window_seconds",
    "MIGRATION_CIRCUIT_RECOVERY_TIMEOUT": "circuit_recovery_timeout",
    "MIGRATION_DEGRADED_FAILURE_RATE": "degraded_failure_rate",
}
"""Environment variable name -> MigrationConfig field."""

_PERCENTAGE_FIELDS = ("new_pipeline_percentage", "canary_sample_rate")
_BOOL_FIELDS = (
    "enable_canary_testing",
    "circuit_breaker_enabled",
    "track_performance_metrics",
    "auto_rollback_enabled",
    "fallback_to_legacy_on_error",
)
_FLOAT_FIELDS = (
    "error_window_seconds",
    "circuit_recovery_timeout",
    "degraded_failure_rate",
)


@dataclass(frozen=True)
class MigrationConfig:
    """
    Immutable rollout configuration.

    Controls how much traffic reaches the new pipeline, when the circuit
    breaker trips, and what the controller does when it does.

    Attributes:
        new_pipeline_percentage: Share (0-100) of ordinary traffic sent to
            the new pipeline
        manual_override: Force every decision to one pipeline (NONE disables)
        enable_canary_testing: Whether the canary band is active
        canary_sample_rate: Share (0-100) of traffic sent to the new
            pipeline as canaries, in addition to the percentage band
        circuit_breaker_enabled: Whether failures can trip the breaker
        track_performance_metrics: Whether to collect duration samples
        auto_rollback_enabled: Roll back to the last checkpoint when the
            breaker trips
        new_pipeline_entities: Entities always sent to the new pipeline
            (unless the breaker is open or an override is set)
        fallback_to_legacy_on_error: Retry failed new-pipeline executions
            on the legacy pipeline
        error_threshold: Failures within the window that trip the breaker
        error_window_seconds: Rolling window for counting failures
        circuit_recovery_timeout: Seconds before an open breaker probes
        degraded_failure_rate: Failure rate (0-1) above which health is
            reported as degraded

    Example:
        >>> config = MigrationConfig(new_pipeline_percentage=25)
        >>> rolled_out = config.with_changes(new_pipeline_percentage=50)
    """

    new_pipeline_percentage: int = 0
    manual_override: ManualOverride = ManualOverride.NONE

    # Canary band
    enable_canary_testing: bool = False
    canary_sample_rate: int = 0

    # Safety switches
    circuit_breaker_enabled: bool = True
    track_performance_metrics: bool = False
    auto_rollback_enabled: bool = False
    fallback_to_legacy_on_error: bool = True

    new_pipeline_entities: tuple[str, ...] = field(default_factory=tuple)

    # Circuit breaker tuning
    error_threshold: int = 5
    error_window_seconds: float = 60.0
    circuit_recovery_timeout: float = 30.0

    degraded_failure_rate: float = 0.1

    def __post_init__(self) -> None:
        """Normalize enum and sequence fields, then validate."""
        if not isinstance(self.manual_override, ManualOverride):
            object.__setattr__(self, "manual_override", _parse_override(self.manual_override))
        if not isinstance(self.new_pipeline_entities, tuple):
            object.__setattr__(
                self, "new_pipeline_entities", _parse_entities(self.new_pipeline_entities)
            )
        self.validate()

    def validate(self) -> None:
        """
        Check every invariant of this configuration.

        Runs on construction and again from health checks, so a config that
        was mutated behind the frozen dataclass is still caught.

        Raises:
            InvalidPercentageError: If a percentage is outside 0-100.
            ConfigurationError: If any other field is invalid.
        """
        for name in _PERCENTAGE_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(
                    f"{name} must be an integer, got {value!r}",
                    field_name=name,
                    value=value,
                )
            if not 0 <= value <= 100:
                raise InvalidPercentageError(name, value)

        for name in _BOOL_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, bool):
                raise ConfigurationError(
                    f"{name} must be a boolean, got {value!r}",
                    field_name=name,
                    value=value,
                )

        if not isinstance(self.manual_override, ManualOverride):
            raise ConfigurationError(
                f"manual_override must be a ManualOverride, got {self.manual_override!r}",
                field_name="manual_override",
                value=self.manual_override,
            )

        if isinstance(self.error_threshold, bool) or not isinstance(self.error_threshold, int):
            raise ConfigurationError(
                f"error_threshold must be an integer, got {self.error_threshold!r}",
                field_name="error_threshold",
                value=self.error_threshold,
            )
        if self.error_threshold < 1:
            raise ConfigurationError(
                f"error_threshold must be >= 1, got {self.error_threshold}. "
                "Use a value like 5 (default).",
                field_name="error_threshold",
                value=self.error_threshold,
            )

        for name in _FLOAT_FIELDS:
            value = getattr(self, name)
            if (
                isinstance(value, bool)
                or not isinstance(value, (int, float))
                or not math.isfinite(value)
            ):
                raise ConfigurationError(
                    f"{name} must be a finite number, got {value!r}",
                    field_name=name,
                    value=value,
                )

        if self.error_window_seconds <= 0:
            raise ConfigurationError(
                f"error_window_seconds must be positive, got {self.error_window_seconds}.",
                field_name="error_window_seconds",
                value=self.error_window_seconds,
            )

        if self.circuit_recovery_timeout <= 0:
            raise ConfigurationError(
                f"circuit_recovery_timeout must be positive, got {self.circuit_recovery_timeout}. "
                "Use a value like 30.0 (default) seconds.",
                field_name="circuit_recovery_timeout",
                value=self.circuit_recovery_timeout,
            )

        if not 0.0 <= self.degraded_failure_rate <= 1.0:
            raise ConfigurationError(
                f"degraded_failure_rate must be between 0.0 and 1.0, "
                f"got {self.degraded_failure_rate}.",
                field_name="degraded_failure_rate",
                value=self.degraded_failure_rate,
            )

    @classmethod
    def parse(cls, raw_settings: Mapping[str, Any] | None = None) -> MigrationConfig:
        """
        Build a config from a flat mapping of setting name -> value.

        Unknown keys are ignored and missing keys take their defaults.

        Args:
            raw_settings: Setting values, typically strings from a config
                file or the environment.

        Returns:
            A validated MigrationConfig.

        Raises:
            ConfigurationError: If a value does not convert or is out of range.
        """
        known = {f.name for f in dataclasses.fields(cls)}
        values: dict[str, Any] = {}
        for name, raw in (raw_settings or {}).items():
            if name not in known:
                continue
            values[name] = _coerce(name, raw)
        return cls(**values)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> MigrationConfig:
        """
        Build a config from MIGRATION_* environment variables.

        Args:
            environ: Environment mapping (defaults to os.environ).

        Returns:
            A validated MigrationConfig.

        Raises:
            ConfigurationError: If a variable does not convert or is out of range.
        """
        env = os.environ if environ is None else environ
        settings = {
            field_name: env[var_name] for var_name, field_name in ENV_VARS.items() if var_name in env
        }
        return cls.parse(settings)

    def with_changes(self, **changes: Any) -> MigrationConfig:
        """
        Return a validated copy with the given fields replaced.

        Values are coerced the same way as parse().

        Raises:
            ConfigurationError: If a field is unknown or a value is invalid.
        """
        known = {f.name for f in dataclasses.fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration fields: {', '.join(unknown)}",
                field_name=unknown[0],
            )
        coerced = {name: _coerce(name, value) for name, value in changes.items()}
        return dataclasses.replace(self, **coerced)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "new_pipeline_percentage": self.new_pipeline_percentage,
            "manual_override": self.manual_override.value,
            "enable_canary_testing": self.enable_canary_testing,
            "canary_sample_rate": self.canary_sample_rate,
            "circuit_breaker_enabled": self.circuit_breaker_enabled,
            "track_performance_metrics": self.track_performance_metrics,
            "auto_rollback_enabled": self.auto_rollback_enabled,
            "fallback_to_legacy_on_error": self.fallback_to_legacy_on_error,
            "new_pipeline_entities": list(self.new_pipeline_entities),
            "error_threshold": self.error_threshold,
            "error_window_seconds": self.error_window_seconds,
            "circuit_recovery_timeout": self.circuit_recovery_timeout,
            "degraded_failure_rate": self.degraded_failure_rate,
        }


def _coerce(name: str, raw: Any) -> Any:
    """Convert one raw setting to the type its field expects."""
    if name == "manual_override":
        return _parse_override(raw)
    if name == "new_pipeline_entities":
        return _parse_entities(raw)

    if name in _BOOL_FIELDS:
        adapter: TypeAdapter[Any] = _BOOL_ADAPTER
    elif name in _PERCENTAGE_FIELDS or name == "error_threshold":
        adapter = _INT_ADAPTER
    else:
        adapter = _FLOAT_ADAPTER

    if isinstance(raw, str):
        raw = raw.strip()
    try:
        return adapter.validate_python(raw)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid value for {name}: {raw!r} ({e.errors()[0]['msg']})",
            field_name=name,
            value=raw,
        ) from e


def _parse_override(raw: Any) -> ManualOverride:
    if raw is None:
        return ManualOverride.NONE
    if isinstance(raw, ManualOverride):
        return raw
    if isinstance(raw, str):
        override = _OVERRIDE_ALIASES.get(raw.strip().lower())
        if override is not None:
            return override
    raise ConfigurationError(
        f"manual_override must be one of none, legacy, new; got {raw!r}",
        field_name="manual_override",
        value=raw,
    )


def _parse_entities(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        return tuple(part.strip() for part in raw.split(",") if part.strip())
    if isinstance(raw, Iterable):
        return tuple(str(item) for item in raw)
    raise ConfigurationError(
        f"new_pipeline_entities must be a list or comma-separated string, got {raw!r}",
        field_name="new_pipeline_entities",
        value=raw,
    )


__all__ = [
    "ENV_VARS",
    "MigrationConfig",
]
