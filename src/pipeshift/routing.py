"""
RoutingPolicy - Decides which pipeline handles a unit of work.

The policy is a pure function of (entity id, config, breaker state). It
holds no state of its own, so the controller can call it under its lock
without any further coordination.

Decision Order (first match wins):
    1. Breaker OPEN -> legacy
    2. Manual override -> the override's pipeline
    3. Entity listed in new_pipeline_entities -> new
    4. Canary enabled and entity in the canary band -> new (canary)
    5. Entity in the percentage band -> new, otherwise legacy

Stable Partitioning:
    Bands are computed from stable_bucket(), a SHA-256 of the entity id
    truncated to 64 bits and reduced modulo 100. The same id always lands
    in the same bucket, in every process and in every language port. The
    canary band hashes the id with a "canary:" salt so canary sampling is
    independent of the percentage band.

Usage:
    >>> policy = RoutingPolicy()
    >>> decision = policy.decide("users", config, CircuitState.CLOSED)
    >>> decision.pipeline
    <Pipeline.LEGACY: 'legacy'>
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

from pipeshift.exceptions import RoutingError
from pipeshift.models import (
    CircuitState,
    ManualOverride,
    Pipeline,
    RoutingDecision,
    RoutingReason,
)

if TYPE_CHECKING:
    from pipeshift.config import MigrationConfig

BUCKET_COUNT = 100
CANARY_SALT = "canary"


def stable_bucket(entity_id: str | None, salt: str | None = None) -> int:
    """
    Map an entity id to a bucket in [0, 100).

    Uses the first 8 bytes of SHA-256 over the UTF-8 encoded id (prefixed
    with "<salt>:" when a salt is given), read big-endian, modulo 100.

    Args:
        entity_id: Entity identifier. None is treated as "".
        salt: Optional salt selecting an independent partitioning.

    Returns:
        Bucket number between 0 and 99 inclusive.

    Example:
        >>> stable_bucket("users") == stable_bucket("users")
        True
    """
    key = entity_id or ""
    if salt:
        key = f"{salt}:{key}"
    hash_bytes = hashlib.sha256(key.encode("utf-8")).digest()
    return int.from_bytes(hash_bytes[:8], byteorder="big") % BUCKET_COUNT


class RoutingPolicy:
    """
    Stateless routing rules.

    Example:
        >>> policy = RoutingPolicy()
        >>> policy.decide("orders", MigrationConfig(new_pipeline_percentage=100),
        ...               CircuitState.CLOSED).pipeline
        <Pipeline.NEW: 'new'>
    """

    def decide(
        self,
        entity_id: str | None,
        config: MigrationConfig | None,
        breaker_state: CircuitState | None,
    ) -> RoutingDecision:
        """
        Decide the pipeline for one entity.

        Args:
            entity_id: Entity being generated (table name, schema object).
            config: Live migration config.
            breaker_state: Current circuit breaker state.

        Returns:
            RoutingDecision with the pipeline and the rule that matched.

        Raises:
            RoutingError: If config or breaker state is missing.
        """
        entity = entity_id or ""
        if config is None:
            raise RoutingError("Routing requires a migration config", entity_id=entity)
        if breaker_state is None:
            raise RoutingError("Routing requires a circuit breaker state", entity_id=entity)

        if breaker_state == CircuitState.OPEN:
            return RoutingDecision(entity, Pipeline.LEGACY, RoutingReason.BREAKER_OPEN)

        forced = config.manual_override.pipeline
        if config.manual_override != ManualOverride.NONE and forced is not None:
            return RoutingDecision(entity, forced, RoutingReason.MANUAL_OVERRIDE)

        if entity in config.new_pipeline_entities:
            return RoutingDecision(entity, Pipeline.NEW, RoutingReason.FORCED_ENTITY)

        if self.in_canary_band(entity, config):
            return RoutingDecision(entity, Pipeline.NEW, RoutingReason.CANARY, is_canary=True)

        if stable_bucket(entity) < config.new_pipeline_percentage:
            return RoutingDecision(entity, Pipeline.NEW, RoutingReason.PERCENTAGE)
        return RoutingDecision(entity, Pipeline.LEGACY, RoutingReason.PERCENTAGE)

    @staticmethod
    def in_canary_band(entity_id: str | None, config: MigrationConfig) -> bool:
        """Check whether an entity falls in the canary band of a config."""
        if not config.enable_canary_testing:
            return False
        return stable_bucket(entity_id, CANARY_SALT) < config.canary_sample_rate


__all__ = [
    "BUCKET_COUNT",
    "CANARY_SALT",
    "RoutingPolicy",
    "stable_bucket",
]
