"""Pipeline event emission and metrics.

Event Emitters:
- EventEmitter: Abstract base class for event emission
- LoggingEventEmitter: Emits events as structured log entries
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- MetricsEventEmitter: Emits events as Prometheus metrics
- NullEventEmitter: Discards events (for testing)

Metrics:
- StewardMetrics: Container for all Prometheus metrics
- get_metrics: Get or create the metrics instance
- push_metrics: Push a registry to a Prometheus Pushgateway
"""

from steward.events.emitter import (
    CompositeEventEmitter,
    EventEmitter,
    EventSinkType,
    LoggingEventEmitter,
    NullEventEmitter,
    create_event_emitter,
)
from steward.events.metrics import (
    MetricsEventEmitter,
    StewardMetrics,
    get_metrics,
    push_metrics,
)
from steward.events.models import EventType, PipelineEvent

__all__ = [
    "EventType",
    "PipelineEvent",
    "EventEmitter",
    "LoggingEventEmitter",
    "CompositeEventEmitter",
    "MetricsEventEmitter",
    "NullEventEmitter",
    "StewardMetrics",
    "get_metrics",
    "push_metrics",
    "EventSinkType",
    "create_event_emitter",
]
