"""
Standard span and metric attribute names for pipeshift.

Using shared constants keeps attribute keys consistent between spans,
metrics and log records.
"""

ATTR_ENTITY_ID = "pipeshift.entity_id"
ATTR_PIPELINE = "pipeshift.pipeline"
ATTR_ROUTING_REASON = "pipeshift.routing.reason"
ATTR_IS_CANARY = "pipeshift.routing.canary"
ATTR_FELL_BACK = "pipeshift.outcome.fell_back"
ATTR_NEW_PIPELINE_PERCENTAGE = "pipeshift.config.new_pipeline_percentage"
ATTR_MANUAL_OVERRIDE = "pipeshift.config.manual_override"
ATTR_ROLLBACK_TRIGGER = "pipeshift.rollback.trigger"

__all__ = [
    "ATTR_ENTITY_ID",
    "ATTR_FELL_BACK",
    "ATTR_IS_CANARY",
    "ATTR_MANUAL_OVERRIDE",
    "ATTR_NEW_PIPELINE_PERCENTAGE",
    "ATTR_PIPELINE",
    "ATTR_ROLLBACK_TRIGGER",
    "ATTR_ROUTING_REASON",
]
