"""
Subprocess helpers shared by the audio backends.

Runs short control commands under a timeout and sweeps stray player
processes system-wide.
"""

import asyncio
import logging
import os
import signal
import sys
from dataclasses import dataclass
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

COMMAND_TIMEOUT_SECONDS = 5.0
TERMINATE_GRACE_SECONDS = 1.0


@dataclass
class CommandResult:
    """Outcome of a finished control command."""

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_command(
    *args: str, timeout: float = COMMAND_TIMEOUT_SECONDS
) -> Optional[CommandResult]:
    """
    Run a command and capture its output.

    Returns:
        CommandResult, or None if the command could not be started or timed out
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.debug(f"Could not run {args[0]}: {e}")
        return None

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Command timed out after {timeout}s: {' '.join(args)}")
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()
        return None

    return CommandResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )


async def find_pids(pattern: str) -> list[int]:
    """Find process ids whose command line matches a pattern."""
    if not pattern or sys.platform == "win32":
        return []
    result = await run_command("pgrep", "-f", pattern)
    if result is None or not result.ok:
        return []
    own = {os.getpid(), os.getppid()}
    pids = []
    for line in result.stdout.split():
        try:
            pid = int(line)
        except ValueError:
            continue
        if pid not in own:
            pids.append(pid)
    return pids


async def kill_processes(
    pattern: str,
    exclude: Iterable[int] = (),
    force: bool = False,
) -> int:
    """
    Kill every process matching a pattern, except the excluded pids.

    Args:
        pattern: Command line pattern (as understood by pgrep -f)
        exclude: Process ids to leave alone
        force: Send SIGKILL instead of SIGTERM

    Returns:
        Number of processes signalled
    """
    if sys.platform == "win32":
        result = await run_command("taskkill", "/F", "/IM", f"{pattern}.exe")
        return 1 if result is not None and result.ok else 0

    skip = set(exclude)
    sig = signal.SIGKILL if force else signal.SIGTERM
    killed = 0
    for pid in await find_pids(pattern):
        if pid in skip:
            continue
        try:
            os.kill(pid, sig)
            killed += 1
        except ProcessLookupError:
            pass
        except PermissionError as e:
            logger.warning(f"Not allowed to kill {pattern} process {pid}: {e}")
    if killed:
        logger.info(f"Killed {killed} stray '{pattern}' process(es)")
    return killed


async def terminate_process(
    proc: asyncio.subprocess.Process, grace: float = TERMINATE_GRACE_SECONDS
) -> None:
    """Terminate a child process, escalating to SIGKILL after a grace period."""
    if proc.returncode is not None:
        return
    try:
        proc.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(proc.wait(), timeout=grace)
    except asyncio.TimeoutError:
        logger.debug(f"Process {proc.pid} ignored SIGTERM, sending SIGKILL")
        try:
            proc.kill()
        except ProcessLookupError:
            return
        await proc.wait()
