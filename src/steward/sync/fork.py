"""Fork, clone and upstream synchronisation of a repository.

Before updates are applied, the steward's fork must contain everything
upstream's base branch contains. The fork is cloned into the working
directory allocated for this run, upstream is added as a second remote,
and upstream's base branch is merged into the fork's base branch.

The merge is fast-forward only and the base push is never forced: the
base branch only ever moves forward to upstream's tip. A fork whose base
branch has diverged from upstream fails with SyncError and the
repository is skipped for this run.
"""

import logging
from pathlib import Path

import httpx

from steward.errors import SyncError
from steward.git.client import GitCommandError, VersionControl
from steward.github.client import GitHubAPIError
from steward.github.models import AuthenticatedUser, RepoOut
from steward.github.service import HostingService
from steward.models import LocalRepo, Repo

logger = logging.getLogger(__name__)

UPSTREAM_REMOTE = "upstream"


class ForkSyncer:
    """Prepares a local clone of the steward's fork, synced with upstream.

    Attributes:
        hosting: Hosting-platform capability (forks, clone URLs).
        git: Version-control capability.
        user: Account owning the forks.
        author_name: Commit author name for every steward commit.
        author_email: Commit author email for every steward commit.
    """

    def __init__(
        self,
        hosting: HostingService,
        git: VersionControl,
        user: AuthenticatedUser,
        author_name: str,
        author_email: str,
    ):
        self.hosting = hosting
        self.git = git
        self.user = user
        self.author_name = author_name
        self.author_email = author_email

    async def ensure_fork(self, repo: Repo) -> RepoOut:
        """Create the steward's fork of a repository unless it exists.

        Raises:
            SyncError: If the hosting platform rejects the request.
        """
        try:
            return await self.hosting.create_fork(repo)
        except GitHubAPIError as exc:
            raise SyncError(f"Failed to fork {repo.full_name}: {exc}") from exc

    async def clone_and_sync(self, repo: Repo, directory: Path) -> LocalRepo:
        """Clone the fork into `directory` and bring its base branch up to date.

        Args:
            repo: Upstream repository to steward.
            directory: Fresh, empty working directory for this run.

        Returns:
            LocalRepo describing the synced clone.

        Raises:
            SyncError: If any git step fails, including a merge that
                cannot fast-forward.
        """
        logger.info("Clone and update", extra={"repository": repo.full_name})
        fork = await self.ensure_fork(repo)
        fork_url = self.hosting.clone_url_with_credentials(fork, self.user)

        try:
            await self.git.clone(fork_url, directory)
            await self.git.set_user(directory, self.author_name, self.author_email)
            await self.git.add_remote(
                directory, UPSTREAM_REMOTE, upstream_url(fork, repo)
            )
            await self.git.fetch(directory, UPSTREAM_REMOTE)
            base_branch = await self.git.current_branch(directory)
            await self.git.merge_fast_forward(
                directory, f"{UPSTREAM_REMOTE}/{base_branch.name}"
            )
            await self.git.push(directory, base_branch)
        except GitCommandError as exc:
            raise SyncError(f"Failed to sync {repo.full_name}: {exc}") from exc

        logger.info(
            "Synced fork with upstream",
            extra={"repository": repo.full_name, "base_branch": base_branch.name},
        )
        return LocalRepo(repo=repo, working_directory=directory, base_branch=base_branch)


def upstream_url(fork: RepoOut, repo: Repo) -> str:
    """Derive the upstream clone URL from the fork's clone URL."""
    url = httpx.URL(fork.clone_url)
    return str(url.copy_with(path=f"/{repo.owner}/{repo.name}.git"))
