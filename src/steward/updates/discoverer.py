"""Discovery of outdated dependencies in a local repository."""

import logging
from typing import Iterable, List, Sequence

from steward.buildtool.sbt import BuildTool, BuildToolError
from steward.errors import DiscoveryError
from steward.models import LocalRepo, Update
from steward.updates.ignore import IgnoreRule, filter_updates

logger = logging.getLogger(__name__)


class UpdateDiscoverer:
    """Asks the build tool for outdated dependencies and applies the ignore policy.

    Attributes:
        build_tool: Build-tool capability.
        ignore_rules: Updates matching any of these are dropped.
    """

    def __init__(self, build_tool: BuildTool, ignore_rules: Sequence[IgnoreRule] = ()):
        self.build_tool = build_tool
        self.ignore_rules = list(ignore_rules)

    async def discover(self, local_repo: LocalRepo) -> List[Update]:
        """List every dependency of the repository with a newer version.

        Raises:
            DiscoveryError: If the build tool fails.
        """
        logger.info(
            "Check updates",
            extra={"repository": local_repo.repo.full_name},
        )
        try:
            updates = await self.build_tool.list_outdated_dependencies(
                local_repo.working_directory
            )
        except BuildToolError as exc:
            raise DiscoveryError(
                f"Failed to list updates for {local_repo.repo.full_name}: {exc}"
            ) from exc

        logger.info(
            "Found %d update(s)",
            len(updates),
            extra={
                "repository": local_repo.repo.full_name,
                "updates": [update.show() for update in updates],
            },
        )
        return updates

    def filter(self, updates: Iterable[Update]) -> List[Update]:
        """Drop updates matched by the ignore policy, preserving order."""
        return filter_updates(updates, self.ignore_rules)
