"""Hosting-platform capability used by the pipeline.

The pipeline never talks to GitHub directly; it depends on the
HostingService protocol below. GitHubClient is the live implementation,
tests use an in-memory one.
"""

from typing import Optional, Protocol, runtime_checkable

from steward.github.models import (
    AuthenticatedUser,
    NewPullRequest,
    PullRequestOut,
    RepoOut,
)
from steward.models import Repo


@runtime_checkable
class HostingService(Protocol):
    """Protocol of the hosting-platform operations the pipeline uses."""

    async def authenticated_user(self) -> AuthenticatedUser:
        """Resolve the account the steward acts as."""
        ...

    async def create_fork(self, repo: Repo) -> RepoOut:
        """Fork `repo` into the steward's account; idempotent."""
        ...

    async def find_pull_request(
        self, repo: Repo, head: str, base: str
    ) -> Optional[PullRequestOut]:
        """Find the open pull request from `head` into `base`, if any."""
        ...

    async def create_pull_request(
        self, repo: Repo, request: NewPullRequest
    ) -> PullRequestOut:
        """Open a pull request against `repo`."""
        ...

    def clone_url_with_credentials(self, fork: RepoOut, user: AuthenticatedUser) -> str:
        """Clone URL of `fork` that authenticates pushes as `user`."""
        ...
