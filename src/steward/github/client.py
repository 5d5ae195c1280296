"""GitHub API client for forks and pull requests.

This module provides an async wrapper around the GitHub REST API for the
operations the steward needs:
- Resolving the account behind the API token
- Creating (or finding) the account's fork of a repository
- Finding and creating pull requests

Includes rate limiting and retry logic for API resilience. Retries only
cover transient transport failures of a single request; a request that
still fails is reported to the caller, which decides what to do with the
repository.
"""

import asyncio
import logging
import random
import time
from typing import Any, Dict, List, Optional

import httpx

from steward.github.models import (
    AuthenticatedUser,
    NewPullRequest,
    PullRequestOut,
    RepoOut,
)
from steward.models import Repo

logger = logging.getLogger(__name__)


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response.
        response_body: Response body from GitHub API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)


class RateLimitError(GitHubAPIError):
    """Raised when GitHub API rate limit is exceeded.

    Attributes:
        reset_at: Unix timestamp when the rate limit resets.
        retry_after: Seconds to wait before retrying.
    """

    def __init__(
        self,
        message: str,
        reset_at: Optional[int] = None,
        retry_after: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at
        self.retry_after = retry_after


class GitHubClient:
    """Async GitHub API client with rate limiting and retry logic.

    Implements the HostingService protocol against github.com or a
    GitHub Enterprise Server.

    Attributes:
        token: GitHub API token (PAT or GitHub App token).
        base_url: Base URL for GitHub API (default: https://api.github.com).
        max_retries: Maximum number of retry attempts for transient failures.
        base_delay: Base delay in seconds for exponential backoff.
        max_delay: Maximum delay in seconds between retries.
        timeout: Request timeout in seconds.

    Example:
        >>> async with GitHubClient(token="ghp_xxx") as client:
        ...     user = await client.authenticated_user()
        ...     fork = await client.create_fork(Repo(owner="foo", name="bar"))
    """

    RETRYABLE_STATUS_CODES = {408, 500, 502, 503, 504}

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the GitHub client.

        Args:
            token: GitHub API token for authentication.
            base_url: Base URL for GitHub API.
            max_retries: Maximum number of retry attempts.
            base_delay: Base delay in seconds for exponential backoff.
            max_delay: Maximum delay in seconds between retries.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "dependency-steward/0.1",
        }

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Hosting operations
    # ------------------------------------------------------------------

    async def authenticated_user(self) -> AuthenticatedUser:
        """Resolve the account the token belongs to.

        Raises:
            GitHubAPIError: If the token is rejected or the API is unreachable.
        """
        response = await self._request(method="GET", path="/user")
        login = response.json()["login"]
        logger.info("Authenticated to GitHub", extra={"login": login})
        return AuthenticatedUser(login=login, token=self.token)

    async def create_fork(self, repo: Repo) -> RepoOut:
        """Fork a repository into the token's account.

        GitHub answers with the existing fork when one already exists, so
        calling this on every run is safe.
        """
        path = f"/repos/{repo.owner}/{repo.name}/forks"
        logger.info("Ensuring fork", extra={"repository": repo.full_name})
        response = await self._request(method="POST", path=path)
        fork = RepoOut.from_github_response(response.json())
        logger.info(
            "Fork ready",
            extra={"repository": repo.full_name, "fork": fork.repo.full_name},
        )
        return fork

    async def find_pull_request(
        self,
        repo: Repo,
        head: str,
        base: str,
    ) -> Optional[PullRequestOut]:
        """Find the open pull request from `head` into `base`.

        Args:
            repo: Upstream repository the pull request targets.
            head: Source branch as "{fork owner}:{branch}".
            base: Target branch name.

        Returns:
            The open pull request, or None if there is none.
        """
        path = f"/repos/{repo.owner}/{repo.name}/pulls"
        response = await self._request(
            method="GET",
            path=path,
            params={"head": head, "base": base, "state": "open"},
        )
        pulls: List[Dict[str, Any]] = response.json()
        if not pulls:
            return None
        return PullRequestOut.from_github_response(pulls[0])

    async def create_pull_request(
        self,
        repo: Repo,
        request: NewPullRequest,
    ) -> PullRequestOut:
        """Create a pull request against an upstream repository."""
        path = f"/repos/{repo.owner}/{repo.name}/pulls"

        logger.info(
            "Creating pull request",
            extra={
                "repository": repo.full_name,
                "title": request.title,
                "head": request.head,
                "base": request.base,
            },
        )

        response = await self._request(
            method="POST",
            path=path,
            json_data=request.model_dump(),
        )
        result = PullRequestOut.from_github_response(response.json())

        logger.info(
            "Pull request created successfully",
            extra={
                "repository": repo.full_name,
                "pr_number": result.number,
                "pr_url": result.html_url,
            },
        )
        return result

    def clone_url_with_credentials(self, fork: RepoOut, user: AuthenticatedUser) -> str:
        """Build an HTTPS clone URL that authenticates pushes as `user`."""
        url = httpx.URL(fork.clone_url).copy_with(
            username=user.login,
            password=user.token,
        )
        return str(url)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff with full jitter for the given attempt."""
        capped_delay = min(self.base_delay * (2 ** attempt), self.max_delay)
        return random.uniform(0, capped_delay)

    def _parse_int_header(self, headers: httpx.Headers, name: str) -> Optional[int]:
        value = headers.get(name)
        if value is not None:
            try:
                return int(value)
            except ValueError:
                pass
        return None

    def _is_rate_limited(self, response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        if response.status_code == 403:
            remaining = self._parse_int_header(response.headers, "x-ratelimit-remaining")
            return remaining == 0
        return False

    def _rate_limit_error(self, response: httpx.Response) -> RateLimitError:
        reset_at = self._parse_int_header(response.headers, "x-ratelimit-reset")
        retry_after = self._parse_int_header(response.headers, "retry-after")
        if retry_after is None and reset_at is not None:
            retry_after = max(0, reset_at - int(time.time()))

        logger.warning(
            "GitHub API rate limit exceeded",
            extra={"reset_at": reset_at, "retry_after": retry_after},
        )
        return RateLimitError(
            message="GitHub API rate limit exceeded",
            status_code=response.status_code,
            reset_at=reset_at,
            retry_after=retry_after,
            request_url=str(response.url),
        )

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """Make an HTTP request with retry logic.

        Transient failures (timeouts, connection errors, retryable status
        codes) are retried with exponential backoff. Rate limiting is
        reported immediately as RateLimitError.

        Raises:
            GitHubAPIError: If the request fails after all retries.
            RateLimitError: If rate limit is exceeded.
        """
        last_error: Optional[str] = None

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.request(
                    method=method,
                    url=path,
                    json=json_data,
                    params=params,
                )
            except httpx.TimeoutException as e:
                last_error = f"timeout: {e}"
            except httpx.RequestError as e:
                last_error = str(e)
            else:
                if self._is_rate_limited(response):
                    raise self._rate_limit_error(response)

                if response.status_code in self.RETRYABLE_STATUS_CODES:
                    last_error = f"HTTP {response.status_code}"
                elif response.status_code >= 400:
                    error_body = response.text
                    logger.error(
                        "GitHub API error",
                        extra={
                            "status_code": response.status_code,
                            "path": path,
                            "method": method,
                            "response_body": error_body[:500],
                        },
                    )
                    raise GitHubAPIError(
                        message=f"GitHub API error: {response.status_code}",
                        status_code=response.status_code,
                        response_body=error_body,
                        request_url=str(response.url),
                    )
                else:
                    return response

            if attempt < self.max_retries:
                delay = self._calculate_backoff(attempt)
                logger.warning(
                    "Transient GitHub API failure, retrying",
                    extra={
                        "error": last_error,
                        "attempt": attempt + 1,
                        "max_retries": self.max_retries,
                        "delay": delay,
                        "path": path,
                    },
                )
                await asyncio.sleep(delay)

        logger.error(
            "GitHub API request failed after all retries",
            extra={
                "path": path,
                "method": method,
                "max_retries": self.max_retries,
                "last_error": last_error,
            },
        )
        raise GitHubAPIError(
            message=f"Request failed after {self.max_retries} retries: {last_error}",
            request_url=f"{self.base_url}{path}",
        )
