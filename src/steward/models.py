"""Domain models shared by every stage of the steward pipeline.

This module defines the value types that flow between pipeline stages:
- Repo: identity of an upstream repository
- Branch: a named git branch
- Update: one outdated dependency and its newer versions
- LocalRepo: a cloned and synced fork inside the workspace
- LocalUpdate: an Update bound to the LocalRepo it applies to
- UpdateAction / UpdateOutcome: what the applier did with an update
- PipelineResult: outcome of one repository's pipeline run

Models are immutable pydantic models. Everything a stage needs is derived
from these values, so repeated runs over the same inputs locate the same
branches and pull requests.
"""

from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Repo(BaseModel):
    """Identity of an upstream repository on the hosting platform.

    Attributes:
        owner: User or organization owning the repository.
        name: Repository name.
    """

    model_config = ConfigDict(frozen=True)

    owner: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)

    @property
    def full_name(self) -> str:
        """Repository path in format "{owner}/{name}"."""
        return f"{self.owner}/{self.name}"

    def __str__(self) -> str:
        return self.full_name


class Branch(BaseModel):
    """A git branch, identified by name."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)

    def __str__(self) -> str:
        return self.name


class Update(BaseModel):
    """An outdated dependency discovered in a repository.

    Attributes:
        group_id: Organization of the dependency (e.g. "org.typelevel").
        artifact_id: Name of the dependency (e.g. "cats-core").
        current_version: Version currently declared by the build.
        newer_versions: Available newer versions, nearest first.
    """

    model_config = ConfigDict(frozen=True)

    group_id: str = Field(..., min_length=1)
    artifact_id: str = Field(..., min_length=1)
    current_version: str = Field(..., min_length=1)
    newer_versions: List[str] = Field(..., min_length=1)

    @property
    def next_version(self) -> str:
        """The version this update proposes to move to."""
        return self.newer_versions[0]

    @property
    def coordinates(self) -> str:
        return f"{self.group_id}:{self.artifact_id}"

    def show(self) -> str:
        """Render the update as "group:artifact : current -> v1 -> v2"."""
        versions = " -> ".join([self.current_version, *self.newer_versions])
        return f"{self.coordinates} : {versions}"


class LocalRepo(BaseModel):
    """A fork cloned into the workspace and synced with upstream.

    Attributes:
        repo: The upstream repository this clone stewards.
        working_directory: Directory holding the clone. Owned exclusively
            by one pipeline run and deleted when that run ends.
        base_branch: Branch tracking upstream's mainline.
    """

    model_config = ConfigDict(frozen=True)

    repo: Repo
    working_directory: Path
    base_branch: Branch


class LocalUpdate(BaseModel):
    """An update bound to the local repository it is applied to."""

    model_config = ConfigDict(frozen=True)

    local_repo: LocalRepo
    update: Update

    @property
    def update_branch(self) -> Branch:
        return update_branch_for(self.update)

    @property
    def commit_message(self) -> str:
        return f"Update {self.update.artifact_id} to {self.update.next_version}"


def update_branch_for(update: Update) -> Branch:
    """Name the branch dedicated to an update.

    The name only depends on the artifact and the proposed version, so
    every run finds the branch a previous run created for the same update.
    """
    return Branch(name=f"update/{update.artifact_id}-{update.next_version}")


class UpdateAction(str, Enum):
    """What the applier did with a single update.

    Attributes:
        CREATED: A new update branch was committed, pushed and published.
        RESET: An existing update branch was reset to base and refreshed.
        SKIPPED: An existing update branch was left untouched.
        NO_CHANGES: The version edit changed no file; nothing was pushed.
    """

    CREATED = "created"
    RESET = "reset"
    SKIPPED = "skipped"
    NO_CHANGES = "no_changes"


class PullRequestRef(BaseModel):
    """Reference to a pull request on the hosting platform."""

    model_config = ConfigDict(frozen=True)

    number: int
    url: str
    created: bool = Field(
        default=False,
        description="True when this run opened the pull request",
    )


class UpdateOutcome(BaseModel):
    """Result of applying one update to a repository."""

    model_config = ConfigDict(frozen=True)

    update: Update
    action: UpdateAction
    reason: str
    branch: Branch
    pull_request: Optional[PullRequestRef] = None


class PipelineResult(BaseModel):
    """Outcome of one repository's pipeline run.

    A failed result records the stage that failed and the error message,
    together with the outcomes of the updates that completed before the
    failure and the updates that were never attempted.
    """

    model_config = ConfigDict(frozen=True)

    repo: Repo
    success: bool
    elapsed_seconds: float
    stage: Optional[str] = None
    error: Optional[str] = None
    outcomes: List[UpdateOutcome] = Field(default_factory=list)
    unattempted: List[Update] = Field(default_factory=list)
