"""Repository catalog parsing.

The catalog is a line-oriented text file (usually markdown). Every line of
the form "- owner/repo" names one repository to steward; every other line
is ignored, so the file can carry headings and prose.
"""

import logging
import re
from pathlib import Path
from typing import Iterable, List

from steward.errors import CatalogError
from steward.models import Repo

logger = logging.getLogger(__name__)

CATALOG_LINE_PATTERN = re.compile(r"-\s+([^/\s]+)/([^/\s]+)")


def parse_catalog(lines: Iterable[str]) -> List[Repo]:
    """Extract repositories from catalog lines, in catalog order.

    Args:
        lines: Lines of the catalog text.

    Returns:
        One Repo per matching line.
    """
    repos: List[Repo] = []
    for line in lines:
        match = CATALOG_LINE_PATTERN.fullmatch(line.strip())
        if match is not None:
            repos.append(Repo(owner=match.group(1), name=match.group(2)))
    return repos


def read_catalog(path: Path) -> List[Repo]:
    """Read and parse the catalog file.

    Args:
        path: Location of the catalog file.

    Returns:
        Repositories listed in the catalog.

    Raises:
        CatalogError: If the file cannot be read.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CatalogError(f"Failed to read repository catalog {path}: {exc}") from exc

    repos = parse_catalog(text.splitlines())
    logger.info(
        "Loaded repository catalog",
        extra={"catalog": str(path), "repo_count": len(repos)},
    )
    return repos
