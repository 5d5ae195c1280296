"""Prometheus metrics for steward runs.

Metrics Defined:
- steward_repos_processed_total: Counter of repositories processed, by result
- steward_repos_failed_total: Counter of failed repositories, by stage
- steward_repo_duration_seconds: Histogram of per-repository pipeline time
- steward_updates_total: Counter of applied updates, by action

The MetricsEventEmitter updates these metrics from pipeline events. A run
is a batch job, so the CLI pushes the registry to a Pushgateway when one
is configured instead of exposing an HTTP endpoint.
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    push_to_gateway,
)

from steward.events.emitter import EventEmitter
from steward.events.models import EventType, PipelineEvent

logger = logging.getLogger(__name__)

# 10 seconds to 1 hour; most repositories finish within a few minutes
DEFAULT_DURATION_BUCKETS = (10.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1200.0, 1800.0, 3600.0)


class StewardMetrics:
    """Container for all steward Prometheus metrics.

    Attributes:
        registry: The Prometheus registry for these metrics.
        repos_processed_total: Labels repository, result (success/failure).
        repos_failed_total: Labels repository, stage.
        repo_duration_seconds: Labels repository.
        updates_total: Labels action (created/reset/skipped/no_changes).
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.repos_processed_total = Counter(
            "steward_repos_processed_total",
            "Total number of repositories processed",
            labelnames=["repository", "result"],
            registry=self.registry,
        )
        self.repos_failed_total = Counter(
            "steward_repos_failed_total",
            "Total number of repository pipelines that failed",
            labelnames=["repository", "stage"],
            registry=self.registry,
        )
        self.repo_duration_seconds = Histogram(
            "steward_repo_duration_seconds",
            "Time spent on one repository's pipeline in seconds",
            labelnames=["repository"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )
        self.updates_total = Counter(
            "steward_updates_total",
            "Total number of updates handled, by action",
            labelnames=["action"],
            registry=self.registry,
        )

    def record_repo_processed(self, repository: str, success: bool) -> None:
        result = "success" if success else "failure"
        self.repos_processed_total.labels(repository=repository, result=result).inc()

    def record_repo_failed(self, repository: str, stage: str) -> None:
        self.repos_failed_total.labels(repository=repository, stage=stage).inc()

    def record_duration(self, repository: str, duration_seconds: float) -> None:
        self.repo_duration_seconds.labels(repository=repository).observe(duration_seconds)

    def record_update(self, action: str) -> None:
        self.updates_total.labels(action=action).inc()


_default_metrics: Optional[StewardMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> StewardMetrics:
    """Get the metrics for the default registry, or new ones for `registry`."""
    global _default_metrics

    if registry is not None:
        return StewardMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = StewardMetrics()

    return _default_metrics


def push_metrics(
    gateway_url: str,
    registry: Optional[CollectorRegistry] = None,
    job: str = "dependency-steward",
) -> None:
    """Push the registry to a Prometheus Pushgateway.

    Failures are logged and never fail the run.
    """
    try:
        push_to_gateway(gateway_url, job=job, registry=registry or REGISTRY)
        logger.info("Metrics pushed to gateway", extra={"gateway_url": gateway_url})
    except OSError as e:
        logger.warning(
            "Failed to push metrics",
            extra={"gateway_url": gateway_url, "error": str(e)},
        )


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    - UPDATE_OUTCOME: increments updates_total for the action
    - COMPLETION: records a successful repository and its duration
    - ERROR / TIMEOUT: records a failed repository, its stage and duration
    - STAGE_STARTED: ignored
    """

    def __init__(
        self,
        metrics: Optional[StewardMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        self._metrics = metrics if metrics is not None else get_metrics(registry)

    @property
    def metrics(self) -> StewardMetrics:
        return self._metrics

    async def emit(self, event: PipelineEvent) -> None:
        try:
            if event.event_type == EventType.UPDATE_OUTCOME:
                self._metrics.record_update(event.details.get("action", "unknown"))
            elif event.event_type == EventType.COMPLETION:
                self._metrics.record_repo_processed(event.repository, success=True)
                self._record_duration(event)
            elif event.event_type in (EventType.ERROR, EventType.TIMEOUT):
                self._metrics.record_repo_processed(event.repository, success=False)
                self._metrics.record_repo_failed(
                    event.repository, event.details.get("stage", "unknown")
                )
                self._record_duration(event)
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={"event_type": event.event_type.value, "repository": event.repository},
            )

    def _record_duration(self, event: PipelineEvent) -> None:
        duration = event.details.get("duration_seconds")
        if duration is not None:
            self._metrics.record_duration(event.repository, float(duration))
