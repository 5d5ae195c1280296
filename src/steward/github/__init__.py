"""GitHub integration for forks and pull requests.

This package provides:
- HostingService: the hosting capability the pipeline depends on
- GitHubClient: async httpx client implementing it, with rate limiting
  and retry logic
- PullRequestPublisher: idempotent pull request creation per update branch
"""

from steward.github.client import (
    GitHubAPIError,
    GitHubClient,
    RateLimitError,
)
from steward.github.models import (
    AuthenticatedUser,
    NewPullRequest,
    PullRequestOut,
    RepoOut,
)
from steward.github.publisher import PullRequestPublisher, pull_request_body
from steward.github.service import HostingService

__all__ = [
    "AuthenticatedUser",
    "GitHubAPIError",
    "GitHubClient",
    "HostingService",
    "NewPullRequest",
    "PullRequestOut",
    "PullRequestPublisher",
    "RateLimitError",
    "RepoOut",
    "pull_request_body",
]
