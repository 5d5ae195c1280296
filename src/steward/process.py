"""Helpers for the git and sbt child processes."""

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


async def kill_process(process: Optional[asyncio.subprocess.Process]) -> None:
    """Kill a child process that is still running and reap it.

    Used on timeout and on cancellation, so a child never outlives the
    repository run that started it.
    """
    if process is None or process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        pass
    await process.wait()
    logger.warning("Killed child process", extra={"pid": process.pid})
