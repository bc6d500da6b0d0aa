"""
Shared pytest fixtures for the pipeshift tests.

This module provides:
- A manual clock for driving circuit breaker windows and cooldowns
- Controller fixtures wired with the manual clock and a MockTracer
- Fake pipeline executors for adapter tests
- OpenTelemetry metrics fixtures (metric_reader)
"""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

import pytest
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

import pipeshift.metrics as metrics_module
from pipeshift import MigrationConfig, MigrationController
from pipeshift.observability import MockTracer

# =============================================================================
# Clock
# =============================================================================


class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> ManualClock:
    """Provide a manual clock starting at t=1000."""
    return ManualClock()


# =============================================================================
# Controller Fixtures
# =============================================================================


@pytest.fixture
def tracer() -> MockTracer:
    return MockTracer()


@pytest.fixture
def make_controller(clock: ManualClock, tracer: MockTracer) -> Any:
    """
    Factory fixture for controllers sharing the test clock and tracer.

    Usage:
        def test_something(make_controller):
            controller = make_controller(new_pipeline_percentage=50)
    """

    def _make(**config_fields: Any) -> MigrationController:
        return MigrationController(
            MigrationConfig(**config_fields),
            clock=clock,
            tracer=tracer,
            enable_metrics=False,
        )

    return _make


@pytest.fixture
def controller(make_controller: Any) -> MigrationController:
    """Provide a controller with default configuration."""
    return make_controller()


# =============================================================================
# Pipeline Executors
# =============================================================================


class FakeExecutor:
    """Executor that records requests and optionally fails."""

    def __init__(self, name: str, error: Exception | None = None) -> None:
        self.name = name
        self.error = error
        self.requests: list[Any] = []

    def execute(self, request: Any) -> Any:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return f"{self.name}:{request}"


@pytest.fixture
def make_executor() -> Any:
    """Factory fixture for executors: make_executor("new", error=RuntimeError())."""
    return FakeExecutor


@pytest.fixture
def legacy_executor() -> FakeExecutor:
    return FakeExecutor("legacy")


@pytest.fixture
def new_executor() -> FakeExecutor:
    return FakeExecutor("new")


# =============================================================================
# OpenTelemetry Metrics
# =============================================================================


@pytest.fixture
def metric_reader(monkeypatch: pytest.MonkeyPatch) -> Generator[InMemoryMetricReader, None, None]:
    """
    Provide an InMemoryMetricReader wired to the pipeshift meter.

    The module-level meter is replaced with one from a private
    MeterProvider, so the global provider is never touched.

    Yields:
        InMemoryMetricReader: Reader for inspecting collected metrics.
    """
    reader = InMemoryMetricReader()
    provider = MeterProvider(metric_readers=[reader])
    monkeypatch.setattr(metrics_module, "_meter", provider.get_meter("pipeshift.test"))
    yield reader
    provider.shutdown()
    metrics_module.reset_meter()


@pytest.fixture
def collect_points(metric_reader: InMemoryMetricReader) -> Any:
    """Provide a function returning all data points recorded for a metric name."""

    def _collect(name: str) -> list[Any]:
        data = metric_reader.get_metrics_data()
        points: list[Any] = []
        if data is None:
            return points
        for resource_metrics in data.resource_metrics:
            for scope_metrics in resource_metrics.scope_metrics:
                for metric in scope_metrics.metrics:
                    if metric.name == name:
                        points.extend(metric.data.data_points)
        return points

    return _collect
