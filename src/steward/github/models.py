"""GitHub API request and response models.

Only the fields the steward reads are modelled; every other field of the
GitHub responses is ignored.
"""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field

from steward.models import Repo


class AuthenticatedUser(BaseModel):
    """The account the API token belongs to.

    Attributes:
        login: Account name; forks are created under it.
        token: The token itself, needed to push over HTTPS.
    """

    model_config = ConfigDict(frozen=True)

    login: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1, repr=False)


class RepoOut(BaseModel):
    """A repository as returned by the GitHub API.

    Attributes:
        repo: Owner and name of the repository.
        clone_url: HTTPS clone URL (without credentials).
    """

    model_config = ConfigDict(frozen=True)

    repo: Repo
    clone_url: str

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "RepoOut":
        return cls(
            repo=Repo(owner=data["owner"]["login"], name=data["name"]),
            clone_url=data["clone_url"],
        )


class NewPullRequest(BaseModel):
    """Request body for creating a pull request.

    Attributes:
        title: Pull request title.
        body: Pull request description in markdown.
        head: Source branch, "{fork owner}:{branch}" for cross-repo PRs.
        base: Target branch in the upstream repository.
    """

    title: str = Field(..., min_length=1)
    body: str
    head: str = Field(..., min_length=1)
    base: str = Field(..., min_length=1)


class PullRequestOut(BaseModel):
    """A pull request as returned by the GitHub API."""

    model_config = ConfigDict(frozen=True)

    number: int
    html_url: str
    state: str
    title: str

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "PullRequestOut":
        return cls(
            number=data["number"],
            html_url=data["html_url"],
            state=data["state"],
            title=data.get("title", ""),
        )
