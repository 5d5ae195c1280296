"""Workspace management for repository pipeline runs.

The workspace root holds one working directory per repository run. A
directory is allocated when a repository's pipeline starts and released
when it ends, whatever the outcome. The root itself is wiped when a run
starts, so directories left behind by a crashed process never leak into
the next run.
"""

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from steward.errors import StewardError
from steward.models import Repo

logger = logging.getLogger(__name__)

WORKSPACE_DIR_PERMISSIONS = 0o755


@dataclass
class WorkspaceConfig:
    """Configuration for the workspace.

    Attributes:
        base_path: Root directory under which working directories are created.
    """

    base_path: Path


class WorkspaceError(StewardError):
    """Raised when a working directory cannot be prepared."""

    stage = "workspace"


class Workspace:
    """Allocates and releases per-repository working directories.

    Attributes:
        config: Workspace configuration (base path).
    """

    def __init__(self, config: WorkspaceConfig):
        self.config = config

    def prepare(self) -> None:
        """Wipe and recreate the workspace root.

        Raises:
            WorkspaceError: If the root cannot be cleaned or created.
        """
        base_path = self.config.base_path
        logger.info("Cleaning workspace", extra={"workspace": str(base_path)})
        try:
            if base_path.exists():
                shutil.rmtree(base_path)
            base_path.mkdir(parents=True, exist_ok=True)
            base_path.chmod(WORKSPACE_DIR_PERMISSIONS)
        except OSError as exc:
            raise WorkspaceError(
                f"Failed to prepare workspace at {base_path}: {exc}"
            ) from exc

    def allocate(self, repo: Repo) -> Path:
        """Create a fresh, uniquely named working directory for a repository.

        Returns:
            Absolute path of the new, empty directory.

        Raises:
            WorkspaceError: If the directory cannot be created.
        """
        owner_dir = self.config.base_path / repo.owner
        try:
            owner_dir.mkdir(parents=True, exist_ok=True)
            directory = Path(tempfile.mkdtemp(prefix=f"{repo.name}-", dir=owner_dir))
            directory.chmod(WORKSPACE_DIR_PERMISSIONS)
        except OSError as exc:
            raise WorkspaceError(
                f"Failed to create working directory for {repo.full_name}: {exc}"
            ) from exc

        logger.debug(
            "Allocated working directory",
            extra={"repository": repo.full_name, "directory": str(directory)},
        )
        return directory

    def release(self, directory: Path) -> None:
        """Remove a working directory and all its contents."""
        try:
            shutil.rmtree(directory)
            logger.debug(
                "Released working directory",
                extra={"directory": str(directory)},
            )
        except FileNotFoundError:
            pass
        except OSError:
            logger.exception(
                "Failed to remove working directory",
                extra={"directory": str(directory)},
            )
