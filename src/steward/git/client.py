"""Git command execution for the steward pipeline.

Defines the VersionControl protocol the pipeline depends on and GitCli,
its live implementation. GitCli runs the git executable as an asyncio
subprocess so that many repositories can be processed without blocking
the event loop.

Every command runs inside a repository's working directory, never in the
process's current directory. Clone URLs carry credentials; they are
redacted from every log entry and error message.
"""

import asyncio
import logging
import os
import re
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from steward.models import Branch
from steward.process import kill_process

logger = logging.getLogger(__name__)

DEFAULT_GIT_TIMEOUT_SECONDS = 600

_CREDENTIALS_PATTERN = re.compile(r"(https?://)[^@/\s]+@")


def redact_credentials(text: str) -> str:
    """Replace the userinfo part of any URL in text with "***"."""
    return _CREDENTIALS_PATTERN.sub(r"\1***@", text)


class GitCommandError(Exception):
    """Raised when a git command exits with a non-zero code or times out.

    Attributes:
        command: The git arguments that were run (credentials redacted).
        returncode: Exit code of the process (-1 for timeouts/OS errors).
        stderr: Captured standard error.
    """

    def __init__(self, command: Sequence[str], returncode: int, stderr: str):
        self.command = redact_credentials(" ".join(command))
        self.returncode = returncode
        self.stderr = redact_credentials(stderr.strip())
        super().__init__(
            f"git {self.command} failed with exit code {returncode}: {self.stderr}"
        )


@runtime_checkable
class VersionControl(Protocol):
    """Protocol of the version-control operations the pipeline uses.

    All operations act on the repository cloned in `directory`. Branch
    queries compare local branches: `head` is an update branch, `base` is
    the branch tracking upstream's mainline.
    """

    async def clone(self, url: str, directory: Path) -> None: ...

    async def set_user(self, directory: Path, name: str, email: str) -> None: ...

    async def add_remote(self, directory: Path, name: str, url: str) -> None: ...

    async def fetch(self, directory: Path, remote: str) -> None: ...

    async def current_branch(self, directory: Path) -> Branch: ...

    async def remote_branch_exists(self, directory: Path, branch: Branch) -> bool: ...

    async def create_branch(self, directory: Path, branch: Branch) -> None: ...

    async def checkout_branch(self, directory: Path, branch: Branch) -> None: ...

    async def merge_fast_forward(self, directory: Path, ref: str) -> None: ...

    async def commit_all(self, directory: Path, message: str) -> None: ...

    async def push(self, directory: Path, branch: Branch, force: bool = False) -> None: ...

    async def is_merged(self, directory: Path, head: Branch, base: Branch) -> bool: ...

    async def is_behind(self, directory: Path, head: Branch, base: Branch) -> bool: ...

    async def branch_authors(
        self, directory: Path, head: Branch, base: Branch
    ) -> List[str]: ...

    async def reset_hard(self, directory: Path, ref: Branch) -> None: ...


class GitCli:
    """VersionControl implementation backed by the git executable.

    Attributes:
        git_path: Path to the git executable.
        timeout_seconds: Upper bound for a single git invocation.
    """

    def __init__(
        self,
        git_path: str = "git",
        timeout_seconds: int = DEFAULT_GIT_TIMEOUT_SECONDS,
    ):
        self.git_path = git_path
        self.timeout_seconds = timeout_seconds

    async def clone(self, url: str, directory: Path) -> None:
        await self._run(["clone", url, str(directory)], cwd=directory.parent)

    async def set_user(self, directory: Path, name: str, email: str) -> None:
        await self._run(["config", "user.name", name], cwd=directory)
        await self._run(["config", "user.email", email], cwd=directory)

    async def add_remote(self, directory: Path, name: str, url: str) -> None:
        await self._run(["remote", "add", name, url], cwd=directory)

    async def fetch(self, directory: Path, remote: str) -> None:
        await self._run(["fetch", remote], cwd=directory)

    async def current_branch(self, directory: Path) -> Branch:
        output = await self._run(["rev-parse", "--abbrev-ref", "HEAD"], cwd=directory)
        return Branch(name=output.strip())

    async def remote_branch_exists(self, directory: Path, branch: Branch) -> bool:
        return await self._succeeds(
            ["rev-parse", "--verify", "--quiet", f"refs/remotes/origin/{branch.name}"],
            cwd=directory,
        )

    async def create_branch(self, directory: Path, branch: Branch) -> None:
        await self._run(["checkout", "-b", branch.name], cwd=directory)

    async def checkout_branch(self, directory: Path, branch: Branch) -> None:
        """Check out a branch, tracking the fork's copy if it is not local yet."""
        local_exists = await self._succeeds(
            ["rev-parse", "--verify", "--quiet", f"refs/heads/{branch.name}"],
            cwd=directory,
        )
        if local_exists:
            await self._run(["checkout", branch.name], cwd=directory)
        else:
            await self._run(
                ["checkout", "-b", branch.name, "--track", f"origin/{branch.name}"],
                cwd=directory,
            )

    async def merge_fast_forward(self, directory: Path, ref: str) -> None:
        await self._run(["merge", "--ff-only", ref], cwd=directory)

    async def commit_all(self, directory: Path, message: str) -> None:
        await self._run(["commit", "--all", "-m", message], cwd=directory)

    async def push(self, directory: Path, branch: Branch, force: bool = False) -> None:
        args = ["push"]
        if force:
            args.append("--force-with-lease")
        args.extend(["--set-upstream", "origin", branch.name])
        await self._run(args, cwd=directory)

    async def is_merged(self, directory: Path, head: Branch, base: Branch) -> bool:
        commits = await self._log(directory, "%h", f"{base.name}..{head.name}")
        return not commits

    async def is_behind(self, directory: Path, head: Branch, base: Branch) -> bool:
        commits = await self._log(directory, "%h", f"{head.name}..{base.name}")
        return bool(commits)

    async def branch_authors(
        self, directory: Path, head: Branch, base: Branch
    ) -> List[str]:
        return await self._log(directory, "%an", f"{base.name}..{head.name}")

    async def reset_hard(self, directory: Path, ref: Branch) -> None:
        await self._run(["reset", "--hard", ref.name], cwd=directory)

    async def _log(self, directory: Path, pretty: str, revision_range: str) -> List[str]:
        output = await self._run(
            ["log", f"--pretty=format:{pretty}", revision_range],
            cwd=directory,
        )
        return [line for line in output.splitlines() if line.strip()]

    async def _succeeds(self, args: List[str], cwd: Path) -> bool:
        returncode, _, _ = await self._exec(args, cwd)
        return returncode == 0

    async def _run(self, args: List[str], cwd: Path) -> str:
        """Run a git command and return its stdout.

        Raises:
            GitCommandError: If git exits non-zero, times out or cannot start.
        """
        returncode, stdout, stderr = await self._exec(args, cwd)
        if returncode != 0:
            raise GitCommandError(args, returncode, stderr or stdout)
        return stdout

    async def _exec(self, args: List[str], cwd: Path) -> tuple:
        logger.debug(
            "Running git %s",
            redact_credentials(" ".join(args)),
            extra={"cwd": str(cwd)},
        )
        process: Optional[asyncio.subprocess.Process] = None
        try:
            process = await asyncio.create_subprocess_exec(
                self.git_path,
                *args,
                cwd=str(cwd),
                env=self._environment(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            await kill_process(process)
            raise GitCommandError(
                args, -1, f"timed out after {self.timeout_seconds}s"
            ) from exc
        except OSError as exc:
            raise GitCommandError(args, -1, f"failed to execute git: {exc}") from exc
        except asyncio.CancelledError:
            await kill_process(process)
            raise

        return (
            process.returncode,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )

    def _environment(self) -> dict:
        env = os.environ.copy()
        # Never block on a credential prompt
        env["GIT_TERMINAL_PROMPT"] = "0"
        return env
