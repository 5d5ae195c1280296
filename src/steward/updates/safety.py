"""Safety decisions for update branches that already exist.

When a previous run already pushed an update branch, the steward must
decide whether to leave it alone or to hard-reset it onto the current
base branch and re-apply the update. The decision is a pure function of a
BranchStatus, evaluated as an ordered rule table where the first matching
rule wins:

    1. merged into base                      -> SKIP
    2. two or more distinct authors          -> SKIP
    3. one author and >= 2 steward commits   -> RESET
    4. base has commits the branch lacks     -> RESET
    5. otherwise                             -> SKIP

Authorship is checked before staleness, so a branch somebody else
committed to is never reset, however far behind its base it is.
"""

import logging
from enum import Enum
from typing import List, Tuple

from pydantic import BaseModel, ConfigDict, Field

from steward.git.client import VersionControl
from steward.models import LocalUpdate

logger = logging.getLogger(__name__)


class BranchDecision(str, Enum):
    """What to do with an existing update branch."""

    SKIP = "skip"
    RESET = "reset"


class BranchStatus(BaseModel):
    """Facts about an existing update branch relative to its base branch.

    Attributes:
        merged: The branch has no commits that base lacks.
        behind: Base has commits the branch lacks.
        authors: Author of every branch commit since the divergence point.
        bot_commit_count: Number of those commits made by the steward.
    """

    model_config = ConfigDict(frozen=True)

    merged: bool
    behind: bool
    authors: Tuple[str, ...] = ()
    bot_commit_count: int = Field(default=0, ge=0)

    @property
    def distinct_authors(self) -> List[str]:
        return sorted(set(self.authors))


class SafetyVerdict(BaseModel):
    """A decision together with the reason it was taken."""

    model_config = ConfigDict(frozen=True)

    decision: BranchDecision
    reason: str


def decide(status: BranchStatus) -> SafetyVerdict:
    """Apply the branch safety rule table to a branch status."""
    distinct_authors = status.distinct_authors

    if status.merged:
        return SafetyVerdict(decision=BranchDecision.SKIP, reason="already merged")
    if len(distinct_authors) >= 2:
        return SafetyVerdict(
            decision=BranchDecision.SKIP,
            reason=f"branch has foreign commits by {', '.join(distinct_authors)}",
        )
    if len(distinct_authors) == 1 and status.bot_commit_count >= 2:
        return SafetyVerdict(
            decision=BranchDecision.RESET,
            reason="stale multi-commit bot branch",
        )
    if status.behind:
        return SafetyVerdict(decision=BranchDecision.RESET, reason="base has advanced")
    return SafetyVerdict(decision=BranchDecision.SKIP, reason="already up to date")


class BranchSafetyEvaluator:
    """Gathers the status of an update branch and decides SKIP or RESET.

    Attributes:
        git: Version-control capability.
        bot_name: Author name of the steward's commits.
    """

    def __init__(self, git: VersionControl, bot_name: str):
        self.git = git
        self.bot_name = bot_name

    async def inspect(self, local_update: LocalUpdate) -> BranchStatus:
        """Compare the update branch with the base branch.

        Raises:
            GitCommandError: If a git query fails.
        """
        directory = local_update.local_repo.working_directory
        base = local_update.local_repo.base_branch
        head = local_update.update_branch

        merged = await self.git.is_merged(directory, head, base)
        behind = await self.git.is_behind(directory, head, base)
        authors = await self.git.branch_authors(directory, head, base)

        return BranchStatus(
            merged=merged,
            behind=behind,
            authors=tuple(authors),
            bot_commit_count=sum(1 for author in authors if author == self.bot_name),
        )

    async def evaluate(self, local_update: LocalUpdate) -> SafetyVerdict:
        status = await self.inspect(local_update)
        verdict = decide(status)
        logger.info(
            "Branch %s: %s (%s)",
            local_update.update_branch.name,
            verdict.decision.value,
            verdict.reason,
            extra={
                "repository": local_update.local_repo.repo.full_name,
                "merged": status.merged,
                "behind": status.behind,
                "authors": list(status.authors),
                "bot_commit_count": status.bot_commit_count,
            },
        )
        return verdict
