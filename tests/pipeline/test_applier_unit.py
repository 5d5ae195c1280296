"""Unit tests for UpdateApplier.

Each test clones a seeded fork into an InMemoryGit and applies updates
with a FakeBuildTool, then inspects branches, pushes and pull requests.
"""

from pathlib import Path

import pytest

from steward.errors import EditError, SyncError
from steward.github.publisher import PullRequestPublisher
from steward.models import Branch, LocalRepo, LocalUpdate, Repo, UpdateAction
from steward.updates.applier import UpdateApplier
from steward.updates.safety import BranchSafetyEvaluator
from tests.pipeline.fakes import (
    BOT_EMAIL,
    BOT_LOGIN,
    BOT_NAME,
    FakeBuildTool,
    InMemoryGit,
    InMemoryHosting,
    make_update,
    run_async,
)

REPO = Repo(owner="foo", name="bar")
FORK = f"{BOT_LOGIN}/bar"
UPDATE = make_update("com.x", "y", "1.0", ["1.1"])
BRANCH = "update/y-1.1"


class World:
    """A seeded fork with the collaborators an applier needs."""

    def __init__(self) -> None:
        self.hosting = InMemoryHosting()
        self.git = InMemoryGit()
        self.git.seed("foo/bar")
        self.build_tool = FakeBuildTool(self.git, {"foo/bar": [UPDATE]})
        self.applier = UpdateApplier(
            git=self.git,
            build_tool=self.build_tool,
            publisher=PullRequestPublisher(self.hosting, self.hosting.user),
            evaluator=BranchSafetyEvaluator(self.git, BOT_NAME),
        )

    def clone(self, directory: Path) -> LocalRepo:
        async def _clone():
            await self.git.clone(f"https://github.com/{FORK}.git", directory)
            await self.git.set_user(directory, BOT_NAME, BOT_EMAIL)
            await self.git.add_remote(directory, "upstream", "https://github.com/foo/bar.git")

        run_async(_clone())
        return LocalRepo(repo=REPO, working_directory=directory, base_branch=Branch(name="master"))

    def apply(self, directory: Path, update=UPDATE):
        local_repo = self.clone(directory)
        return run_async(self.applier.apply(LocalUpdate(local_repo=local_repo, update=update)))

    def fork_branch(self, name: str = BRANCH):
        return self.git.remotes[FORK].branches.get(name)


@pytest.fixture
def world():
    return World()


class TestNewUpdateBranch:
    def test_creates_branch_commit_push_and_pull_request(self, world, tmp_path):
        outcome = world.apply(tmp_path)

        assert outcome.action == UpdateAction.CREATED
        assert outcome.branch == Branch(name=BRANCH)
        assert outcome.pull_request is not None and outcome.pull_request.created

        branch = world.fork_branch()
        master = world.git.remotes[FORK].branches["master"]
        assert branch[: len(master)] == master
        assert [c.message for c in branch[len(master):]] == ["Update y to 1.1"]
        assert [c.author for c in branch[len(master):]] == [BOT_NAME]
        assert [(p.branch, p.force) for p in world.git.pushes] == [(BRANCH, False)]

        [request] = world.hosting.requests_for(REPO)
        assert request.head == f"{BOT_LOGIN}:{BRANCH}"
        assert "y 1.0 → 1.1" in request.body

    def test_returns_to_base_branch(self, world, tmp_path):
        world.apply(tmp_path)
        assert world.git.clones[tmp_path].current == "master"

    def test_no_change_means_no_branch(self, world, tmp_path):
        world.build_tool.unchanged_artifacts.add("y")

        outcome = world.apply(tmp_path)

        assert outcome.action == UpdateAction.NO_CHANGES
        assert outcome.pull_request is None
        assert world.fork_branch() is None
        assert world.git.pushes == []
        assert world.hosting.pull_requests == []

    def test_edit_failure_raises_edit_error_and_returns_to_base(self, world, tmp_path):
        world.build_tool.failing_edits.add("y")

        with pytest.raises(EditError) as exc_info:
            world.apply(tmp_path)

        assert exc_info.value.stage == "apply"
        assert world.git.clones[tmp_path].current == "master"


class TestIdempotence:
    def test_second_run_does_not_commit_or_open_another_pull_request(self, world, tmp_path):
        world.apply(tmp_path / "first")
        commits_after_first_run = list(world.git.commits)

        outcome = world.apply(tmp_path / "second")

        assert outcome.action == UpdateAction.SKIPPED
        assert outcome.reason == "already up to date"
        assert world.git.commits == commits_after_first_run
        assert len(world.git.pushes) == 1
        assert len(world.hosting.pull_requests) == 1

    def test_second_run_after_base_advanced_resets_without_duplicate_pull_request(
        self, world, tmp_path
    ):
        world.apply(tmp_path / "first")
        world.git.advance(FORK)

        outcome = world.apply(tmp_path / "second")

        assert outcome.action == UpdateAction.RESET
        assert outcome.reason == "base has advanced"
        assert outcome.pull_request is not None and not outcome.pull_request.created
        assert len(world.hosting.pull_requests) == 1
        assert world.git.pushes[-1].force is True
        master = world.git.remotes[FORK].branches["master"]
        assert world.fork_branch()[: len(master)] == master


class TestExistingBranch:
    def test_stale_bot_branch_without_change_is_reset_but_not_pushed(self, world, tmp_path):
        world.git.add_branch(FORK, BRANCH, [BOT_NAME, BOT_NAME])
        before = list(world.fork_branch())
        world.build_tool.unchanged_artifacts.add("y")

        outcome = world.apply(tmp_path)

        assert outcome.action == UpdateAction.NO_CHANGES
        assert outcome.reason.startswith("stale multi-commit bot branch")
        assert world.git.pushes == []
        assert world.hosting.pull_requests == []
        assert world.fork_branch() == before

    def test_stale_bot_branch_is_replaced_by_a_single_commit(self, world, tmp_path):
        world.git.add_branch(FORK, BRANCH, [BOT_NAME, BOT_NAME])

        outcome = world.apply(tmp_path)

        assert outcome.action == UpdateAction.RESET
        master = world.git.remotes[FORK].branches["master"]
        assert len(world.fork_branch()) == len(master) + 1
        assert [(p.branch, p.force) for p in world.git.pushes] == [(BRANCH, True)]
        assert len(world.hosting.pull_requests) == 1

    def test_branch_with_foreign_commits_is_left_alone(self, world, tmp_path):
        world.git.add_branch(FORK, BRANCH, [BOT_NAME, "alice"])
        world.git.advance(FORK)
        before = list(world.fork_branch())

        outcome = world.apply(tmp_path)

        assert outcome.action == UpdateAction.SKIPPED
        assert "alice" in outcome.reason
        assert world.fork_branch() == before
        assert world.git.pushes == []
        assert world.build_tool.edits == []
        assert world.git.clones[tmp_path].current == "master"

    def test_merged_branch_is_skipped(self, world, tmp_path):
        history = world.git.add_branch(FORK, BRANCH, [BOT_NAME])
        world.git.remotes[FORK].branches["master"] = list(history)

        outcome = world.apply(tmp_path)

        assert outcome.action == UpdateAction.SKIPPED
        assert outcome.reason == "already merged"
        assert world.git.pushes == []


class TestGitFailures:
    def test_missing_clone_raises_sync_error(self, world, tmp_path):
        local_repo = LocalRepo(repo=REPO, working_directory=tmp_path, base_branch=Branch(name="master"))

        with pytest.raises(SyncError):
            run_async(world.applier.apply(LocalUpdate(local_repo=local_repo, update=UPDATE)))
