"""Event emitter implementations for pipeline observability.

This module defines the abstract EventEmitter interface and the sinks the
steward ships with:

- LoggingEventEmitter: Emits events as structured log entries
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- NullEventEmitter: Discards events

The Prometheus sink lives in metrics.py. create_event_emitter() builds the
emitter for a list of configured sink types.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from steward.events.models import EventType, PipelineEvent

logger = logging.getLogger(__name__)


class EventSinkType(str, Enum):
    """Types of event sinks supported by the pipeline.

    Attributes:
        LOGGING: Emit events as structured log entries.
        METRICS: Emit events as Prometheus metrics (counters, histograms).
    """

    LOGGING = "logging"
    METRICS = "metrics"


class EventEmitter(ABC):
    """Abstract base class for pipeline event emitters.

    Implementations are called from async contexts and must not let a
    failing sink disrupt the repository pipeline.
    """

    @abstractmethod
    async def emit(self, event: PipelineEvent) -> None:
        """Emit a pipeline event.

        Args:
            event: The pipeline event to emit.
        """

    async def close(self) -> None:
        """Close the emitter and release resources."""


class LoggingEventEmitter(EventEmitter):
    """Event emitter that logs events using structured logging.

    Events are logged at a level chosen by event type: errors at ERROR,
    timeouts at WARNING, and everything else at INFO.
    """

    def __init__(self, logger_name: Optional[str] = None):
        self._logger = logging.getLogger(logger_name) if logger_name else logger
        self._log_level_map = {
            EventType.STAGE_STARTED: logging.INFO,
            EventType.UPDATE_OUTCOME: logging.INFO,
            EventType.COMPLETION: logging.INFO,
            EventType.ERROR: logging.ERROR,
            EventType.TIMEOUT: logging.WARNING,
        }

    async def emit(self, event: PipelineEvent) -> None:
        log_level = self._log_level_map.get(event.event_type, logging.INFO)
        self._logger.log(
            log_level,
            "Pipeline event: %s for %s",
            event.event_type.value,
            event.repository,
            extra=event.to_log_dict(),
        )


class CompositeEventEmitter(EventEmitter):
    """Event emitter that delegates to multiple child emitters.

    Each child is called independently; a failing child is logged and the
    remaining children still receive the event.
    """

    def __init__(self, emitters: Optional[List[EventEmitter]] = None):
        self._emitters: List[EventEmitter] = emitters or []

    def add_emitter(self, emitter: EventEmitter) -> None:
        self._emitters.append(emitter)

    @property
    def emitters(self) -> List[EventEmitter]:
        return list(self._emitters)

    async def emit(self, event: PipelineEvent) -> None:
        for emitter in self._emitters:
            try:
                await emitter.emit(event)
            except Exception as e:
                logger.error(
                    "Failed to emit event to %s: %s",
                    type(emitter).__name__,
                    str(e),
                    extra={
                        "emitter_type": type(emitter).__name__,
                        "event_type": event.event_type.value,
                        "repository": event.repository,
                    },
                )

    async def close(self) -> None:
        for emitter in self._emitters:
            try:
                await emitter.close()
            except Exception as e:
                logger.error(
                    "Failed to close emitter %s: %s",
                    type(emitter).__name__,
                    str(e),
                )


class NullEventEmitter(EventEmitter):
    """Event emitter that discards all events."""

    async def emit(self, event: PipelineEvent) -> None:
        pass


def create_event_emitter(
    sink_types: Optional[List[EventSinkType]] = None,
    logger_name: Optional[str] = None,
    registry=None,
) -> EventEmitter:
    """Build an emitter for the requested sink types.

    Args:
        sink_types: Sinks to enable. If None or empty, returns a
            LoggingEventEmitter.
        logger_name: Optional logger name for the LoggingEventEmitter.
        registry: Optional Prometheus registry for the metrics sink.

    Returns:
        A single emitter, or a CompositeEventEmitter for several sinks.
    """
    if not sink_types:
        return LoggingEventEmitter(logger_name=logger_name)

    emitters: List[EventEmitter] = []
    for sink_type in sink_types:
        if sink_type == EventSinkType.LOGGING:
            emitters.append(LoggingEventEmitter(logger_name=logger_name))
        elif sink_type == EventSinkType.METRICS:
            # metrics.py imports this module
            from steward.events.metrics import MetricsEventEmitter

            emitters.append(MetricsEventEmitter(registry=registry))
        else:
            logger.warning("Unknown event sink type: %s, skipping", sink_type)

    if not emitters:
        return LoggingEventEmitter(logger_name=logger_name)
    if len(emitters) == 1:
        return emitters[0]
    return CompositeEventEmitter(emitters)
