"""Pipeline event models for observability.

This module defines the data models for pipeline events:
- EventType: Enum of all event types emitted by the pipeline
- PipelineEvent: Structured event with all required metadata

Events are emitted per repository as its pipeline progresses. They are
observability only: nothing in the pipeline reads them back.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted by the steward pipeline.

    Attributes:
        STAGE_STARTED: A repository's pipeline entered a stage
            (sync, discovery, apply).
        UPDATE_OUTCOME: An update was created, reset, skipped or was a no-op.
        COMPLETION: A repository's pipeline finished successfully.
        ERROR: A repository's pipeline failed at some stage.
        TIMEOUT: A repository's pipeline exceeded its time limit.
    """

    STAGE_STARTED = "stage_started"
    UPDATE_OUTCOME = "update_outcome"
    COMPLETION = "completion"
    ERROR = "error"
    TIMEOUT = "timeout"


class PipelineEvent(BaseModel):
    """Structured event emitted by the steward pipeline.

    Attributes:
        event_type: The category of event.
        repository: Repository path in format "{owner}/{repo}".
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.

    Details Field Conventions:
        STAGE_STARTED: stage
        UPDATE_OUTCOME: update, action, reason, branch, pr_url
        COMPLETION: duration_seconds, update_count
        ERROR: stage, error_message, duration_seconds
        TIMEOUT: stage, last_stage, timeout_seconds, duration_seconds
    """

    event_type: EventType = Field(
        ...,
        description="The category of event being emitted",
    )

    repository: str = Field(
        ...,
        min_length=1,
        description='Repository path in format "{owner}/{repo}"',
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context specific to the event type",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Flatten the event into a dictionary for structured logging."""
        return {
            "event_type": self.event_type.value,
            "repository": self.repository,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
