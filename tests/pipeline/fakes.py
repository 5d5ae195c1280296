"""In-memory collaborators for pipeline tests.

InMemoryHosting stands in for GitHub, InMemoryGit simulates remotes,
clones and branch histories, and FakeBuildTool reports configured updates
and marks the clone dirty when it "edits" a version.
"""

import asyncio
import itertools
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from steward.buildtool.sbt import BuildToolError, Dependency
from steward.git.client import GitCommandError
from steward.github.client import GitHubAPIError
from steward.github.models import (
    AuthenticatedUser,
    NewPullRequest,
    PullRequestOut,
    RepoOut,
)
from steward.models import Branch, Repo, Update

BOT_LOGIN = "steward-bot"
BOT_NAME = "scala-steward"
BOT_EMAIL = "me@scala-steward.org"


def run_async(coro):
    return asyncio.run(coro)


def make_update(
    group_id: str = "com.x",
    artifact_id: str = "y",
    current_version: str = "1.0",
    newer_versions: Optional[List[str]] = None,
) -> Update:
    return Update(
        group_id=group_id,
        artifact_id=artifact_id,
        current_version=current_version,
        newer_versions=newer_versions or ["1.1"],
    )


def write_script(path: Path, body: str) -> Path:
    """Write an executable /bin/sh script standing in for git or sbt."""
    path.write_text("#!/bin/sh\n" + body + "\n")
    path.chmod(0o755)
    return path


def _repo_key(url: str) -> str:
    path = url.rstrip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    return "/".join(path.split("/")[-2:])


# ---------------------------------------------------------------------------
# Hosting
# ---------------------------------------------------------------------------


class InMemoryHosting:
    """HostingService keeping forks and pull requests in memory."""

    def __init__(self, login: str = BOT_LOGIN, token: str = "ghp_test"):
        self.user = AuthenticatedUser(login=login, token=token)
        self.forks: Dict[str, RepoOut] = {}
        self.pull_requests: List[Tuple[Repo, NewPullRequest, PullRequestOut]] = []
        self.failing_forks: Set[str] = set()
        self.fail_pull_requests = False
        self._numbers = itertools.count(1)

    async def authenticated_user(self) -> AuthenticatedUser:
        return self.user

    async def create_fork(self, repo: Repo) -> RepoOut:
        if repo.full_name in self.failing_forks:
            raise GitHubAPIError("GitHub API error: 404", status_code=404)
        fork = self.forks.get(repo.full_name)
        if fork is None:
            fork = RepoOut(
                repo=Repo(owner=self.user.login, name=repo.name),
                clone_url=f"https://github.com/{self.user.login}/{repo.name}.git",
            )
            self.forks[repo.full_name] = fork
        return fork

    async def find_pull_request(
        self, repo: Repo, head: str, base: str
    ) -> Optional[PullRequestOut]:
        if self.fail_pull_requests:
            raise GitHubAPIError("GitHub API error: 502", status_code=502)
        for pr_repo, request, pull_request in self.pull_requests:
            if pr_repo == repo and request.head == head and request.base == base:
                return pull_request
        return None

    async def create_pull_request(
        self, repo: Repo, request: NewPullRequest
    ) -> PullRequestOut:
        if self.fail_pull_requests:
            raise GitHubAPIError("GitHub API error: 502", status_code=502)
        number = next(self._numbers)
        pull_request = PullRequestOut(
            number=number,
            html_url=f"https://github.com/{repo.full_name}/pull/{number}",
            state="open",
            title=request.title,
        )
        self.pull_requests.append((repo, request, pull_request))
        return pull_request

    def clone_url_with_credentials(self, fork: RepoOut, user: AuthenticatedUser) -> str:
        return fork.clone_url.replace("https://", f"https://{user.login}:{user.token}@")

    def requests_for(self, repo: Repo) -> List[NewPullRequest]:
        return [request for pr_repo, request, _ in self.pull_requests if pr_repo == repo]


# ---------------------------------------------------------------------------
# Git
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Commit:
    sha: str
    author: str
    message: str


@dataclass
class RemoteRepo:
    full_name: str
    default_branch: str = "master"
    branches: Dict[str, List[Commit]] = field(default_factory=dict)


@dataclass
class Clone:
    origin: RemoteRepo
    branches: Dict[str, List[Commit]]
    current: str
    remotes: Dict[str, RemoteRepo] = field(default_factory=dict)
    user_name: Optional[str] = None
    dirty: bool = False


@dataclass(frozen=True)
class Push:
    repository: str
    branch: str
    force: bool


class InMemoryGit:
    """VersionControl simulating remotes and clones as commit lists.

    A branch is the list of its commits, oldest first. Branch relations
    (merged, behind, authors) are computed from the commit sets.
    """

    def __init__(self) -> None:
        self.remotes: Dict[str, RemoteRepo] = {}
        self.clones: Dict[Path, Clone] = {}
        self.pushes: List[Push] = []
        self.commits: List[Commit] = []
        self._shas = itertools.count(1)

    # -- seeding ------------------------------------------------------------

    def new_commit(self, author: str, message: str = "change") -> Commit:
        return Commit(sha=f"c{next(self._shas):04d}", author=author, message=message)

    def seed(self, upstream: str, fork_owner: str = BOT_LOGIN, history: int = 2) -> RemoteRepo:
        """Create an upstream repository and an identical fork of it."""
        commits = [self.new_commit("alice", f"initial {i}") for i in range(history)]
        self.remotes[upstream] = RemoteRepo(full_name=upstream, branches={"master": commits})
        fork_name = f"{fork_owner}/{upstream.split('/')[1]}"
        fork = RemoteRepo(full_name=fork_name, branches={"master": list(commits)})
        self.remotes[fork_name] = fork
        return fork

    def add_branch(
        self, remote: str, branch: str, authors: List[str], from_branch: str = "master"
    ) -> List[Commit]:
        repo = self.remotes[remote]
        history = list(repo.branches[from_branch])
        history.extend(self.new_commit(author, f"commit by {author}") for author in authors)
        repo.branches[branch] = history
        return history

    def advance(self, remote: str, branch: str = "master", author: str = "alice") -> None:
        self.remotes[remote].branches[branch].append(self.new_commit(author, "upstream work"))

    def make_dirty(self, directory: Path) -> None:
        self.clones[directory].dirty = True

    def upstream_of(self, directory: Path) -> str:
        clone = self.clones[directory]
        upstream = clone.remotes.get("upstream", clone.origin)
        return upstream.full_name

    def pushes_to(self, branch: str) -> List[Push]:
        return [push for push in self.pushes if push.branch == branch]

    # -- VersionControl -----------------------------------------------------

    async def clone(self, url: str, directory: Path) -> None:
        origin = self._lookup(url, ["clone", url])
        self.clones[directory] = Clone(
            origin=origin,
            branches={origin.default_branch: list(origin.branches[origin.default_branch])},
            current=origin.default_branch,
            remotes={"origin": origin},
        )

    async def set_user(self, directory: Path, name: str, email: str) -> None:
        self._clone(directory).user_name = name

    async def add_remote(self, directory: Path, name: str, url: str) -> None:
        self._clone(directory).remotes[name] = self._lookup(url, ["remote", "add", name, url])

    async def fetch(self, directory: Path, remote: str) -> None:
        if remote not in self._clone(directory).remotes:
            raise GitCommandError(["fetch", remote], 128, f"'{remote}' does not appear to be a git repository")

    async def current_branch(self, directory: Path) -> Branch:
        return Branch(name=self._clone(directory).current)

    async def remote_branch_exists(self, directory: Path, branch: Branch) -> bool:
        return branch.name in self._clone(directory).origin.branches

    async def create_branch(self, directory: Path, branch: Branch) -> None:
        clone = self._clone(directory)
        clone.branches[branch.name] = list(clone.branches[clone.current])
        clone.current = branch.name

    async def checkout_branch(self, directory: Path, branch: Branch) -> None:
        clone = self._clone(directory)
        if branch.name not in clone.branches:
            if branch.name not in clone.origin.branches:
                raise GitCommandError(
                    ["checkout", branch.name], 1, f"pathspec '{branch.name}' did not match"
                )
            clone.branches[branch.name] = list(clone.origin.branches[branch.name])
        clone.current = branch.name

    async def merge_fast_forward(self, directory: Path, ref: str) -> None:
        clone = self._clone(directory)
        remote_name, branch_name = ref.split("/", 1)
        target = clone.remotes[remote_name].branches[branch_name]
        local = clone.branches[clone.current]
        if local == target[: len(local)]:
            clone.branches[clone.current] = list(target)
        elif target != local[: len(target)]:
            raise GitCommandError(["merge", "--ff-only", ref], 128, "Not possible to fast-forward, aborting.")

    async def commit_all(self, directory: Path, message: str) -> None:
        clone = self._clone(directory)
        if not clone.dirty:
            raise GitCommandError(["commit", "--all", "-m", message], 1, "nothing to commit")
        commit = self.new_commit(clone.user_name or "unknown", message)
        clone.branches[clone.current].append(commit)
        self.commits.append(commit)
        clone.dirty = False

    async def push(self, directory: Path, branch: Branch, force: bool = False) -> None:
        clone = self._clone(directory)
        local = clone.branches[branch.name]
        remote = clone.origin.branches.get(branch.name)
        if remote is not None and not force and remote != local[: len(remote)]:
            raise GitCommandError(["push", "origin", branch.name], 1, "rejected (non-fast-forward)")
        clone.origin.branches[branch.name] = list(local)
        self.pushes.append(Push(clone.origin.full_name, branch.name, force))

    async def is_merged(self, directory: Path, head: Branch, base: Branch) -> bool:
        head_commits, base_commits = self._pair(directory, head, base)
        return {c.sha for c in head_commits} <= {c.sha for c in base_commits}

    async def is_behind(self, directory: Path, head: Branch, base: Branch) -> bool:
        head_commits, base_commits = self._pair(directory, head, base)
        return bool({c.sha for c in base_commits} - {c.sha for c in head_commits})

    async def branch_authors(self, directory: Path, head: Branch, base: Branch) -> List[str]:
        head_commits, base_commits = self._pair(directory, head, base)
        base_shas = {c.sha for c in base_commits}
        return [c.author for c in reversed(head_commits) if c.sha not in base_shas]

    async def reset_hard(self, directory: Path, ref: Branch) -> None:
        clone = self._clone(directory)
        clone.branches[clone.current] = list(clone.branches[ref.name])
        clone.dirty = False

    # -- helpers ------------------------------------------------------------

    def _lookup(self, url: str, command: List[str]) -> RemoteRepo:
        remote = self.remotes.get(_repo_key(url))
        if remote is None:
            raise GitCommandError(command, 128, "repository not found")
        return remote

    def _clone(self, directory: Path) -> Clone:
        clone = self.clones.get(directory)
        if clone is None:
            raise GitCommandError(["status"], 128, "not a git repository")
        return clone

    def _pair(self, directory: Path, head: Branch, base: Branch):
        clone = self._clone(directory)
        return clone.branches[head.name], clone.branches[base.name]


# ---------------------------------------------------------------------------
# Build tool
# ---------------------------------------------------------------------------


class FakeBuildTool:
    """BuildTool reporting configured updates per upstream repository.

    Attributes:
        updates: Updates reported for each upstream "owner/name".
        unchanged_artifacts: Artifacts whose version edit changes no file.
        failing_discovery: Repositories whose update listing fails.
        failing_edits: Artifacts whose version edit fails.
        discovery_delay: Seconds to sleep before listing updates.
    """

    def __init__(self, git: InMemoryGit, updates: Optional[Dict[str, List[Update]]] = None):
        self.git = git
        self.updates = updates or {}
        self.unchanged_artifacts: Set[str] = set()
        self.failing_discovery: Set[str] = set()
        self.failing_edits: Set[str] = set()
        self.discovery_delay: Dict[str, float] = {}
        self.edits: List[Update] = []

    async def list_outdated_dependencies(self, directory: Path) -> List[Update]:
        repository = self.git.upstream_of(directory)
        if repository in self.discovery_delay:
            await asyncio.sleep(self.discovery_delay[repository])
        if repository in self.failing_discovery:
            raise BuildToolError("sbt exited with code 1: [error] resolution failed", exit_code=1)
        return list(self.updates.get(repository, []))

    async def list_direct_dependencies(self, directory: Path) -> List[Dependency]:
        return [
            Dependency(group_id=u.group_id, artifact_id=u.artifact_id, version=u.current_version)
            for u in self.updates.get(self.git.upstream_of(directory), [])
        ]

    async def edit_version(self, directory: Path, update: Update) -> bool:
        if update.artifact_id in self.failing_edits:
            raise BuildToolError(f"Failed to edit build.sbt for {update.artifact_id}")
        self.edits.append(update)
        if update.artifact_id in self.unchanged_artifacts:
            return False
        self.git.make_dirty(directory)
        return True
