"""Command-line entry point for a steward run.

A run is a batch job: read the repository catalog, prepare the workspace,
authenticate to GitHub, steward every repository and print a per-repository
summary. Scheduling is left to the caller (cron, a Kubernetes CronJob).

Exit codes:
    0: every repository succeeded
    1: at least one repository failed
    2: the run could not start (configuration, catalog, workspace or
       authentication failure)
"""

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from steward.buildtool.sbt import BuildToolError, SbtBuildTool, install_global_plugins
from steward.catalog import read_catalog
from steward.config import StewardSettings, get_settings
from steward.errors import AuthenticationError, StewardError
from steward.events.emitter import EventSinkType, create_event_emitter
from steward.events.metrics import push_metrics
from steward.git.client import GitCli
from steward.github.client import GitHubAPIError, GitHubClient
from steward.github.models import AuthenticatedUser
from steward.github.publisher import PullRequestPublisher
from steward.models import PipelineResult, Repo
from steward.report import exit_code, format_summary
from steward.runner import RepoPipelineRunner
from steward.sync.fork import ForkSyncer
from steward.updates.applier import UpdateApplier
from steward.updates.discoverer import UpdateDiscoverer
from steward.updates.safety import BranchSafetyEvaluator
from steward.workspace import Workspace, WorkspaceConfig

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_FATAL = 2


def _redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: StewardSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Steward configuration:")
    logger.info(f"  GitHub Base URL: {settings.github_base_url}")
    logger.info(f"  GitHub Token: {_redact_secret(settings.github_token)}")
    logger.info(f"  Repos File: {settings.repos_file}")
    logger.info(f"  Workspace Base Path: {settings.workspace_base_path}")
    logger.info(f"  Git Author: {settings.git_author_name} <{settings.git_author_email}>")
    logger.info(f"  Git Timeout Seconds: {settings.git_timeout_seconds}")
    logger.info(f"  sbt Path: {settings.sbt_path}")
    logger.info(f"  Build Timeout Seconds: {settings.build_timeout_seconds}")
    logger.info(f"  Ignore Rules: {', '.join(settings.ignore_rules) or '-'}")
    logger.info(f"  Max Concurrency: {settings.max_concurrency}")
    logger.info(f"  Repo Timeout Seconds: {settings.repo_timeout_seconds}")
    logger.info(f"  Metrics Gateway URL: {settings.metrics_gateway_url or '-'}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="steward",
        description="Keep the dependencies of a list of sbt repositories up to date.",
    )
    parser.add_argument(
        "--repos-file",
        help="Repository catalog, one '- owner/repo' per line (overrides STEWARD_REPOS_FILE)",
    )
    parser.add_argument(
        "--workspace",
        help="Workspace root directory (overrides STEWARD_WORKSPACE_BASE_PATH)",
    )
    parser.add_argument(
        "--max-concurrency",
        type=int,
        help="Repositories processed at once (overrides STEWARD_MAX_CONCURRENCY)",
    )
    return parser


def _overrides(args: argparse.Namespace) -> dict:
    overrides = {}
    if args.repos_file:
        overrides["repos_file"] = args.repos_file
    if args.workspace:
        overrides["workspace_base_path"] = args.workspace
    if args.max_concurrency is not None:
        overrides["max_concurrency"] = args.max_concurrency
    return overrides


async def authenticate(github_client: GitHubClient) -> AuthenticatedUser:
    """Resolve the steward's account.

    Raises:
        AuthenticationError: If GitHub rejects the token or is unreachable.
    """
    try:
        return await github_client.authenticated_user()
    except GitHubAPIError as exc:
        raise AuthenticationError(f"Failed to authenticate to GitHub: {exc}") from exc


def build_runner(
    settings: StewardSettings,
    github_client: GitHubClient,
    user: AuthenticatedUser,
    workspace: Workspace,
) -> RepoPipelineRunner:
    """Wire the live collaborators into a RepoPipelineRunner."""
    git = GitCli(timeout_seconds=settings.git_timeout_seconds)
    build_tool = SbtBuildTool(
        sbt_path=settings.sbt_path,
        timeout_seconds=settings.build_timeout_seconds,
    )
    sink_types = [EventSinkType.LOGGING]
    if settings.metrics_gateway_url:
        sink_types.append(EventSinkType.METRICS)

    return RepoPipelineRunner(
        workspace=workspace,
        fork_syncer=ForkSyncer(
            hosting=github_client,
            git=git,
            user=user,
            author_name=settings.git_author_name,
            author_email=settings.git_author_email,
        ),
        discoverer=UpdateDiscoverer(build_tool, settings.parsed_ignore_rules()),
        applier=UpdateApplier(
            git=git,
            build_tool=build_tool,
            publisher=PullRequestPublisher(github_client, user),
            evaluator=BranchSafetyEvaluator(git, settings.git_author_name),
        ),
        event_emitter=create_event_emitter(sink_types),
        repo_timeout_seconds=settings.repo_timeout_seconds,
        max_concurrency=settings.max_concurrency,
    )


async def run(settings: StewardSettings) -> int:
    """Steward every repository of the catalog and return the exit code."""
    start_time = time.monotonic()

    try:
        repos: List[Repo] = read_catalog(Path(settings.repos_file))
        install_global_plugins(Path.home())
        workspace = Workspace(WorkspaceConfig(base_path=Path(settings.workspace_base_path)))
        workspace.prepare()
    except (StewardError, BuildToolError) as exc:
        logger.error("Steward run cannot start: %s", exc)
        return EXIT_FATAL

    logger.info("Found %d repositories", len(repos), extra={"repos_file": settings.repos_file})

    async with GitHubClient(
        token=settings.github_token,
        base_url=settings.github_base_url,
    ) as github_client:
        try:
            user = await authenticate(github_client)
        except AuthenticationError as exc:
            logger.error("Steward run cannot start: %s", exc)
            return EXIT_FATAL

        runner = build_runner(settings, github_client, user, workspace)
        try:
            results: List[PipelineResult] = await runner.run_all(repos)
        finally:
            await runner.event_emitter.close()

    for line in format_summary(results, time.monotonic() - start_time):
        logger.info(line)

    if settings.metrics_gateway_url:
        push_metrics(settings.metrics_gateway_url)

    return exit_code(results)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        settings = get_settings(**_overrides(args))
    except ValidationError as exc:
        logger.error("Invalid configuration: %s", exc)
        return EXIT_FATAL

    logging.getLogger().setLevel(settings.log_level)
    _log_configuration(settings)

    return asyncio.run(run(settings))


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
