"""Process inspection: liveness and uptime of managed server processes."""

import asyncio
import time
from typing import Optional

import psutil
import structlog

from .exceptions import ElapsedTimeParseError
from .models import ProcessInfo

logger = structlog.get_logger(__name__)

SECONDS_PER_DAY = 86400


def _parse_elapsed_time_strict(text: str) -> int:
    """Parse a ``ps`` etime value ([[DD-]HH:]MM:SS) into whole seconds.

    Raises:
        ElapsedTimeParseError: If the value is not in a recognized format
    """
    value = text.strip()
    days = 0

    if "-" in value:
        day_part, value = value.split("-", 1)
        if not day_part.isdigit():
            raise ElapsedTimeParseError(f"Invalid day count: {text!r}")
        days = int(day_part)

    parts = value.split(":")
    if len(parts) not in (2, 3) or not all(part.isdigit() for part in parts):
        raise ElapsedTimeParseError(f"Unrecognized elapsed time: {text!r}")

    numbers = [int(part) for part in parts]
    if len(numbers) == 2:
        hours, (minutes, seconds) = 0, numbers
    else:
        hours, minutes, seconds = numbers

    # A day count only appears in front of HH:MM:SS
    if days and len(numbers) != 3:
        raise ElapsedTimeParseError(f"Unrecognized elapsed time: {text!r}")

    return days * SECONDS_PER_DAY + hours * 3600 + minutes * 60 + seconds


def parse_elapsed_time(text: str) -> int:
    """Parse an elapsed-time string, degrading to 0 when unrecognized.

    Uptime is advisory, so a parse failure never fails a health check.

    Args:
        text: Elapsed time as reported by ``ps -o etime``

    Returns:
        int: Elapsed time in whole seconds
    """
    try:
        return _parse_elapsed_time_strict(text)
    except ElapsedTimeParseError as e:
        logger.debug("Could not parse elapsed time", value=text, error=str(e))
        return 0


class ProcessMonitor:
    """Inspects OS processes without signalling them."""

    async def inspect(self, pid: int) -> ProcessInfo:
        """Determine whether a process exists and how long it has run.

        Args:
            pid: Process ID

        Returns:
            ProcessInfo: Liveness and uptime of the process
        """
        try:
            process = psutil.Process(pid)
            if not process.is_running():
                return ProcessInfo(pid=pid, exists=False)
            if process.status() == psutil.STATUS_ZOMBIE:
                return ProcessInfo(pid=pid, exists=False)
        except psutil.NoSuchProcess:
            return ProcessInfo(pid=pid, exists=False)
        except psutil.AccessDenied:
            # Not ours to look at, but it is there
            return ProcessInfo(
                pid=pid,
                exists=True,
                uptime_seconds=await self._elapsed_from_ps(pid),
            )

        return ProcessInfo(
            pid=pid, exists=True, uptime_seconds=await self.get_uptime(process)
        )

    async def get_uptime(self, process: psutil.Process) -> int:
        """Get the uptime of a process in whole seconds."""
        try:
            return max(0, int(time.time() - process.create_time()))
        except psutil.AccessDenied:
            return await self._elapsed_from_ps(process.pid)
        except psutil.NoSuchProcess:
            return 0

    async def _elapsed_from_ps(self, pid: int) -> int:
        """Fall back to ``ps -o etime=`` for the elapsed time of a process."""
        output = await self._read_elapsed_time(pid)
        if output is None:
            return 0
        return parse_elapsed_time(output)

    async def _read_elapsed_time(self, pid: int) -> Optional[str]:
        """Run ``ps`` and return its etime column for a pid."""
        try:
            proc = await asyncio.create_subprocess_exec(
                "ps", "-o", "etime=", "-p", str(pid),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
            stdout, _ = await proc.communicate()
        except OSError as e:
            logger.warning("Failed to run ps", pid=pid, error=str(e))
            return None

        if proc.returncode != 0:
            return None
        return stdout.decode(errors="replace").strip()
