"""Application of a single update to a local repository.

For an update without a branch on the fork, the version edit is applied on
the base branch; if it changed a file, a new update branch is created,
committed, pushed and published. For an update whose branch already
exists, BranchSafetyEvaluator decides whether the branch is left alone or
hard-reset onto the base branch and refreshed.

Nothing is committed, pushed or published when the version edit changes
no file. The applier always checks the original branch out again before
it returns, so the next update starts from the base branch.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Optional, TypeVar

from steward.buildtool.sbt import BuildTool, BuildToolError
from steward.errors import EditError, SyncError
from steward.git.client import GitCommandError, VersionControl
from steward.github.publisher import PullRequestPublisher
from steward.models import (
    Branch,
    LocalUpdate,
    PullRequestRef,
    UpdateAction,
    UpdateOutcome,
)
from steward.updates.safety import BranchDecision, BranchSafetyEvaluator

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UpdateApplier:
    """Creates, resets or skips the update branch of one update at a time.

    Attributes:
        git: Version-control capability.
        build_tool: Build-tool capability performing the version edit.
        publisher: Ensures the pull request of a pushed update branch.
        evaluator: Decides what happens to existing update branches.
    """

    def __init__(
        self,
        git: VersionControl,
        build_tool: BuildTool,
        publisher: PullRequestPublisher,
        evaluator: BranchSafetyEvaluator,
    ):
        self.git = git
        self.build_tool = build_tool
        self.publisher = publisher
        self.evaluator = evaluator

    async def apply(self, local_update: LocalUpdate) -> UpdateOutcome:
        """Apply one update and report what was done.

        Raises:
            SyncError: If a git operation fails.
            EditError: If the version edit fails.
            PublishError: If the pull request cannot be published.
        """
        directory = local_update.local_repo.working_directory
        branch = local_update.update_branch
        logger.info(
            "Apply update %s",
            local_update.update.show(),
            extra={"repository": local_update.local_repo.repo.full_name},
        )

        branch_exists = await self._git(
            self.git.remote_branch_exists(directory, branch),
            f"look up branch {branch.name}",
        )
        async with self._returning_to_current_branch(local_update):
            if branch_exists:
                return await self._reset_and_update(local_update)
            return await self._apply_new_update(local_update)

    async def _apply_new_update(self, local_update: LocalUpdate) -> UpdateOutcome:
        directory = local_update.local_repo.working_directory
        branch = local_update.update_branch

        if not await self._edit(local_update):
            logger.warning(
                "No files were changed",
                extra={"update": local_update.update.show()},
            )
            return self._outcome(
                local_update, UpdateAction.NO_CHANGES, "version edit changed no file"
            )

        logger.info("Create branch %s", branch.name)
        await self._git(self.git.create_branch(directory, branch), f"create {branch.name}")
        pull_request = await self._commit_push_and_publish(local_update, force=False)
        return self._outcome(
            local_update, UpdateAction.CREATED, "new update branch", pull_request
        )

    async def _reset_and_update(self, local_update: LocalUpdate) -> UpdateOutcome:
        directory = local_update.local_repo.working_directory
        base = local_update.local_repo.base_branch
        branch = local_update.update_branch

        await self._git(self.git.checkout_branch(directory, branch), f"check out {branch.name}")
        verdict = await self._git(
            self.evaluator.evaluate(local_update), f"inspect {branch.name}"
        )
        if verdict.decision == BranchDecision.SKIP:
            return self._outcome(local_update, UpdateAction.SKIPPED, verdict.reason)

        logger.info("Reset and update branch %s", branch.name, extra={"reason": verdict.reason})
        await self._git(self.git.reset_hard(directory, base), f"reset {branch.name}")

        if not await self._edit(local_update):
            logger.warning(
                "No files were changed after reset",
                extra={"update": local_update.update.show()},
            )
            return self._outcome(
                local_update,
                UpdateAction.NO_CHANGES,
                f"{verdict.reason}; version edit changed no file",
            )

        pull_request = await self._commit_push_and_publish(local_update, force=True)
        return self._outcome(local_update, UpdateAction.RESET, verdict.reason, pull_request)

    async def _commit_push_and_publish(
        self, local_update: LocalUpdate, force: bool
    ) -> PullRequestRef:
        directory = local_update.local_repo.working_directory
        branch = local_update.update_branch

        await self._git(
            self.git.commit_all(directory, local_update.commit_message),
            f"commit {branch.name}",
        )
        await self._git(self.git.push(directory, branch, force=force), f"push {branch.name}")
        return await self.publisher.create_if_not_exists(local_update)

    async def _edit(self, local_update: LocalUpdate) -> bool:
        try:
            return await self.build_tool.edit_version(
                local_update.local_repo.working_directory, local_update.update
            )
        except BuildToolError as exc:
            raise EditError(
                f"Failed to apply {local_update.update.show()}: {exc}"
            ) from exc

    @asynccontextmanager
    async def _returning_to_current_branch(
        self, local_update: LocalUpdate
    ) -> AsyncIterator[Branch]:
        directory = local_update.local_repo.working_directory
        original = await self._git(self.git.current_branch(directory), "read current branch")
        try:
            yield original
        finally:
            await self._git(
                self.git.checkout_branch(directory, original),
                f"return to {original.name}",
            )

    async def _git(self, operation: Awaitable[T], description: str) -> T:
        try:
            return await operation
        except GitCommandError as exc:
            raise SyncError(f"Failed to {description}: {exc}") from exc

    def _outcome(
        self,
        local_update: LocalUpdate,
        action: UpdateAction,
        reason: str,
        pull_request: Optional[PullRequestRef] = None,
    ) -> UpdateOutcome:
        return UpdateOutcome(
            update=local_update.update,
            action=action,
            reason=reason,
            branch=local_update.update_branch,
            pull_request=pull_request,
        )
