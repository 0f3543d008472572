"""
Local command execution for mount and umount.
"""

import asyncio
import logging
import subprocess
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Exit status and combined stdout/stderr of a finished command."""

    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


CommandRunner = Callable[[Sequence[str]], Awaitable[CommandResult]]


async def run_command(argv: Sequence[str]) -> CommandResult:
    """
    Run a command in a worker thread and collect its output.

    A missing executable is reported as exit status 127 rather than raised.
    """
    logger.debug(f"Running: {' '.join(argv)}")
    try:
        completed = await asyncio.to_thread(
            subprocess.run,
            list(argv),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
    except FileNotFoundError as e:
        return CommandResult(returncode=127, output=str(e))
    return CommandResult(returncode=completed.returncode, output=completed.stdout or "")
