"""Ignore policy for discovered updates.

A rule is written "group[:artifact[:version]]". The artifact and version
parts are shell-style globs. A rule without a version part ignores every
update of the matching artifacts; a rule with a version part only ignores
updates whose proposed version matches it, which is how a major version is
pinned (e.g. "org.http4s:*:1.*").
"""

import logging
from fnmatch import fnmatchcase
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from steward.models import Update

logger = logging.getLogger(__name__)


class IgnoreRule(BaseModel):
    """A single entry of the ignore policy.

    Attributes:
        group_id: Exact group of the ignored dependencies.
        artifact_id: Glob matched against the artifact name.
        version: Optional glob matched against the proposed version.
    """

    model_config = ConfigDict(frozen=True)

    group_id: str = Field(..., min_length=1)
    artifact_id: str = Field(default="*", min_length=1)
    version: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "IgnoreRule":
        """Parse a rule from its "group[:artifact[:version]]" form.

        Raises:
            ValueError: If the rule has no group or too many parts.
        """
        parts = [part.strip() for part in text.strip().split(":")]
        if not parts[0] or len(parts) > 3 or any(not part for part in parts):
            raise ValueError(f"invalid ignore rule: {text!r}")
        return cls(
            group_id=parts[0],
            artifact_id=parts[1] if len(parts) > 1 else "*",
            version=parts[2] if len(parts) > 2 else None,
        )

    def matches(self, update: Update) -> bool:
        if update.group_id != self.group_id:
            return False
        if not fnmatchcase(update.artifact_id, self.artifact_id):
            return False
        if self.version is None:
            return True
        return fnmatchcase(update.next_version, self.version)

    def __str__(self) -> str:
        text = f"{self.group_id}:{self.artifact_id}"
        if self.version is not None:
            text += f":{self.version}"
        return text


# scala-library and scala-compiler follow scalaVersion, not a dependency line
DEFAULT_IGNORE_RULES = (
    IgnoreRule(group_id="org.scala-lang", artifact_id="scala-library"),
    IgnoreRule(group_id="org.scala-lang", artifact_id="scala-compiler"),
)


def filter_updates(
    updates: Iterable[Update],
    rules: Iterable[IgnoreRule],
) -> List[Update]:
    """Remove updates matched by any ignore rule, preserving order.

    Args:
        updates: Updates in discovery order.
        rules: The configured ignore policy.

    Returns:
        The updates no rule matched, in their original order.
    """
    rules = list(rules)
    kept: List[Update] = []
    for update in updates:
        rule = next((r for r in rules if r.matches(update)), None)
        if rule is None:
            kept.append(update)
            continue
        logger.info(
            "Ignoring update %s",
            update.show(),
            extra={"rule": str(rule)},
        )
    return kept
