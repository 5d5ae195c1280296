"""Version-control collaborator.

- VersionControl: protocol of the git operations the pipeline uses
- GitCli: live implementation running git as an async subprocess
- GitCommandError: raised when a git command fails
"""

from steward.git.client import (
    GitCli,
    GitCommandError,
    VersionControl,
    redact_credentials,
)

__all__ = [
    "GitCli",
    "GitCommandError",
    "VersionControl",
    "redact_credentials",
]
