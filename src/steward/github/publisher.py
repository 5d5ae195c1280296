"""Idempotent pull request publication.

For every update branch there is at most one open pull request into the
base branch. The publisher looks for it first and only opens a new one
when none exists, which makes repeated runs safe.
"""

import logging

from steward.errors import PublishError
from steward.github.client import GitHubAPIError
from steward.github.models import AuthenticatedUser, NewPullRequest
from steward.github.service import HostingService
from steward.models import LocalUpdate, PullRequestRef, Update

logger = logging.getLogger(__name__)


def pull_request_body(update: Update) -> str:
    """Render the pull request description for an update."""
    return (
        f"Updates {update.coordinates} from {update.current_version} "
        f"to {update.next_version}.\n"
        "\n"
        f"`{update.artifact_id} {update.current_version} → {update.next_version}`\n"
        "\n"
        "I'll automatically update this PR to resolve conflicts as long as "
        "you don't change it yourself.\n"
        "\n"
        "If you'd like to skip this version, you can just close this PR."
    )


class PullRequestPublisher:
    """Ensures exactly one open pull request per (base, update branch) pair.

    Attributes:
        hosting: Hosting-platform capability.
        user: The account owning the forks the update branches live in.
    """

    def __init__(self, hosting: HostingService, user: AuthenticatedUser):
        self.hosting = hosting
        self.user = user

    async def create_if_not_exists(self, local_update: LocalUpdate) -> PullRequestRef:
        """Open a pull request for an update unless one is already open.

        Args:
            local_update: The update whose branch has been pushed.

        Returns:
            Reference to the existing or newly created pull request.

        Raises:
            PublishError: If the hosting platform rejects a request.
        """
        repo = local_update.local_repo.repo
        base = local_update.local_repo.base_branch.name
        head = f"{self.user.login}:{local_update.update_branch.name}"

        try:
            existing = await self.hosting.find_pull_request(repo, head=head, base=base)
            if existing is not None:
                logger.info(
                    "Pull request already exists",
                    extra={
                        "repository": repo.full_name,
                        "head": head,
                        "pr_url": existing.html_url,
                    },
                )
                return PullRequestRef(number=existing.number, url=existing.html_url)

            created = await self.hosting.create_pull_request(
                repo,
                NewPullRequest(
                    title=local_update.commit_message,
                    body=pull_request_body(local_update.update),
                    head=head,
                    base=base,
                ),
            )
        except GitHubAPIError as exc:
            raise PublishError(
                f"Failed to publish pull request for {head} on {repo.full_name}: {exc}"
            ) from exc

        return PullRequestRef(number=created.number, url=created.html_url, created=True)
