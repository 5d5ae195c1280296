"""Per-repository pipeline runner.

Drives every repository of the catalog through the same stages:

    allocate working directory -> sync fork -> discover updates
    -> apply each update in order -> release working directory

Each repository is one coroutine. Any failure inside it is caught at the
repository boundary and turned into a failed PipelineResult, so one broken
repository never stops or changes the processing of the others. The
working directory is released on every path, including timeouts, before
the result is produced.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import List, Optional, Sequence

from steward.errors import StewardError
from steward.events.emitter import EventEmitter
from steward.events.models import EventType, PipelineEvent
from steward.models import (
    LocalUpdate,
    PipelineResult,
    Repo,
    Update,
    UpdateOutcome,
)
from steward.sync.fork import ForkSyncer
from steward.updates.applier import UpdateApplier
from steward.updates.discoverer import UpdateDiscoverer
from steward.workspace import Workspace

logger = logging.getLogger(__name__)

TIMEOUT_STAGE = "timeout"


class _RepoProgress:
    """Mutable record of how far one repository's pipeline got."""

    def __init__(self) -> None:
        self.stage = "workspace"
        self.outcomes: List[UpdateOutcome] = []
        self.pending: List[Update] = []


class RepoPipelineRunner:
    """Runs the steward pipeline for each repository with fault isolation.

    Attributes:
        workspace: Allocates and releases working directories.
        fork_syncer: Forks, clones and syncs a repository.
        discoverer: Lists and filters outdated dependencies.
        applier: Applies one update at a time.
        event_emitter: Emits pipeline events for observability.
        repo_timeout_seconds: Time limit for one repository's pipeline.
        max_concurrency: Maximum number of repositories processed at once.
    """

    def __init__(
        self,
        workspace: Workspace,
        fork_syncer: ForkSyncer,
        discoverer: UpdateDiscoverer,
        applier: UpdateApplier,
        event_emitter: EventEmitter,
        repo_timeout_seconds: float = 3600,
        max_concurrency: int = 1,
    ):
        self.workspace = workspace
        self.fork_syncer = fork_syncer
        self.discoverer = discoverer
        self.applier = applier
        self.event_emitter = event_emitter
        self.repo_timeout_seconds = repo_timeout_seconds
        self.max_concurrency = max_concurrency

    async def run_all(self, repos: Sequence[Repo]) -> List[PipelineResult]:
        """Process every repository and return results in catalog order."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_bounded(repo: Repo) -> PipelineResult:
            async with semaphore:
                return await self.run_repo(repo)

        return list(await asyncio.gather(*(run_bounded(repo) for repo in repos)))

    async def run_repo(self, repo: Repo) -> PipelineResult:
        """Run the full pipeline for one repository.

        Never raises for failures inside the pipeline; they are returned
        as a failed PipelineResult.
        """
        repository = repo.full_name
        start_time = time.monotonic()
        progress = _RepoProgress()
        failure: Optional[tuple] = None
        directory = None

        logger.info("Steward repository", extra={"repository": repository})

        try:
            directory = self.workspace.allocate(repo)
            await asyncio.wait_for(
                self._steward(repo, directory, progress),
                timeout=self.repo_timeout_seconds,
            )
        except asyncio.TimeoutError:
            failure = (
                TIMEOUT_STAGE,
                f"Timed out after {self.repo_timeout_seconds}s during {progress.stage}",
            )
            logger.warning(
                "Repository pipeline timed out",
                extra={"repository": repository, "last_stage": progress.stage},
            )
        except StewardError as exc:
            failure = (exc.stage, exc.message)
            logger.exception(
                "Repository pipeline failed at stage %s",
                exc.stage,
                extra={"repository": repository, "stage": exc.stage},
            )
        except Exception as exc:
            failure = (progress.stage, f"{type(exc).__name__}: {exc}")
            logger.exception(
                "Unexpected error in stage %s",
                progress.stage,
                extra={"repository": repository, "stage": progress.stage},
            )
        finally:
            if directory is not None:
                await asyncio.to_thread(self.workspace.release, directory)

        elapsed = time.monotonic() - start_time

        if failure is None:
            await self._safe_emit(
                PipelineEvent(
                    event_type=EventType.COMPLETION,
                    repository=repository,
                    details={
                        "duration_seconds": elapsed,
                        "update_count": len(progress.outcomes),
                    },
                )
            )
            return PipelineResult(
                repo=repo,
                success=True,
                elapsed_seconds=elapsed,
                outcomes=progress.outcomes,
            )

        stage, message = failure
        await self._emit_failure(repository, stage, message, progress, elapsed)
        if progress.pending:
            logger.warning(
                "%d update(s) not attempted",
                len(progress.pending),
                extra={
                    "repository": repository,
                    "updates": [update.show() for update in progress.pending],
                },
            )
        return PipelineResult(
            repo=repo,
            success=False,
            elapsed_seconds=elapsed,
            stage=stage,
            error=message,
            outcomes=progress.outcomes,
            unattempted=progress.pending,
        )

    async def _steward(self, repo: Repo, directory: Path, progress: _RepoProgress) -> None:
        await self._enter_stage(repo, progress, "sync")
        local_repo = await self.fork_syncer.clone_and_sync(repo, directory)

        await self._enter_stage(repo, progress, "discovery")
        updates = self.discoverer.filter(await self.discoverer.discover(local_repo))
        progress.pending = list(updates)

        await self._enter_stage(repo, progress, "apply")
        for update in updates:
            outcome = await self.applier.apply(
                LocalUpdate(local_repo=local_repo, update=update)
            )
            progress.pending.pop(0)
            progress.outcomes.append(outcome)
            await self._emit_outcome(repo, outcome)

    async def _enter_stage(self, repo: Repo, progress: _RepoProgress, stage: str) -> None:
        progress.stage = stage
        await self._safe_emit(
            PipelineEvent(
                event_type=EventType.STAGE_STARTED,
                repository=repo.full_name,
                details={"stage": stage},
            )
        )

    async def _emit_outcome(self, repo: Repo, outcome: UpdateOutcome) -> None:
        logger.info(
            "Update %s: %s (%s)",
            outcome.update.show(),
            outcome.action.value,
            outcome.reason,
            extra={"repository": repo.full_name, "branch": outcome.branch.name},
        )
        await self._safe_emit(
            PipelineEvent(
                event_type=EventType.UPDATE_OUTCOME,
                repository=repo.full_name,
                details={
                    "update": outcome.update.show(),
                    "action": outcome.action.value,
                    "reason": outcome.reason,
                    "branch": outcome.branch.name,
                    "pr_url": outcome.pull_request.url if outcome.pull_request else None,
                },
            )
        )

    async def _emit_failure(
        self,
        repository: str,
        stage: str,
        message: str,
        progress: _RepoProgress,
        elapsed: float,
    ) -> None:
        if stage == TIMEOUT_STAGE:
            event = PipelineEvent(
                event_type=EventType.TIMEOUT,
                repository=repository,
                details={
                    "stage": stage,
                    "last_stage": progress.stage,
                    "timeout_seconds": self.repo_timeout_seconds,
                    "duration_seconds": elapsed,
                },
            )
        else:
            event = PipelineEvent(
                event_type=EventType.ERROR,
                repository=repository,
                details={
                    "stage": stage,
                    "error_message": message,
                    "duration_seconds": elapsed,
                },
            )
        await self._safe_emit(event)

    async def _safe_emit(self, event: PipelineEvent) -> None:
        """Emit an event, swallowing exceptions to avoid disrupting the pipeline."""
        try:
            await self.event_emitter.emit(event)
        except Exception:
            logger.exception(
                "Failed to emit pipeline event",
                extra={
                    "event_type": event.event_type.value,
                    "repository": event.repository,
                },
            )
