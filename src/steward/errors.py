"""Error taxonomy for the steward pipeline.

Every failure inside a repository's pipeline is raised as one of the
StewardError subclasses below. Each carries the pipeline stage it belongs
to, so the runner can report where a repository failed without inspecting
the underlying collaborator exception (available as __cause__).

Process-fatal conditions (CatalogError, AuthenticationError) abort the run
before any repository is processed.
"""

from typing import Optional


class StewardError(Exception):
    """Base class for all steward errors.

    Attributes:
        message: Human-readable error description.
        stage: Pipeline stage the error belongs to.
    """

    stage = "unknown"

    def __init__(self, message: str, stage: Optional[str] = None):
        self.message = message
        if stage is not None:
            self.stage = stage
        super().__init__(message)


class SyncError(StewardError):
    """Raised when clone, fetch, merge or push fails."""

    stage = "sync"


class DiscoveryError(StewardError):
    """Raised when the build tool cannot list outdated dependencies."""

    stage = "discovery"


class EditError(StewardError):
    """Raised when the version edit of an update fails."""

    stage = "apply"


class PublishError(StewardError):
    """Raised when the hosting platform rejects a pull request operation."""

    stage = "publish"


class CatalogError(StewardError):
    """Raised when the repository catalog cannot be read."""

    stage = "startup"


class AuthenticationError(StewardError):
    """Raised when the hosting platform rejects the configured credentials."""

    stage = "startup"
