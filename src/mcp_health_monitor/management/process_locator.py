"""Discovery of managed server processes in the OS process table."""

import os
from typing import Dict, Iterator, List, Optional, Tuple

import psutil
import structlog

from .models import DetectionMethod, LocatedProcess, ServerSpec

logger = structlog.get_logger(__name__)


class ProcessLocator:
    """Maps a server spec to a live OS process.

    Processes spawned by the monitor itself are identified by the pid that
    was recorded at spawn time. Anything else is found by matching command
    lines, which is a heuristic: two servers sharing a command can be
    confused, and servers with no distinct process are not found at all.
    """

    def __init__(self, spawned_pids: Optional[Dict[str, int]] = None):
        self.spawned_pids: Dict[str, int] = (
            spawned_pids if spawned_pids is not None else {}
        )
        self._own_pid = os.getpid()

    def locate(self, spec: ServerSpec) -> Optional[LocatedProcess]:
        """Find the process running a server.

        Args:
            spec: Server launch specification

        Returns:
            Optional[LocatedProcess]: Matched process, or None if not found
        """
        spawned = self._spawned_process(spec.name)
        if spawned is not None:
            return LocatedProcess(pid=spawned, detection=DetectionMethod.SPAWNED)

        patterns = [p for p in (spec.command, spec.joined_args) if p]
        matches = self._matching_pids(patterns)
        if not matches:
            logger.debug("No process found for server", server=spec.name)
            return None

        if len(matches) > 1:
            logger.debug(
                "Multiple processes match server, using lowest pid",
                server=spec.name,
                pids=matches,
            )
        return LocatedProcess(pid=matches[0], detection=DetectionMethod.COMMAND_LINE)

    def find_matching(self, pattern: str) -> List[int]:
        """Get all pids whose command line contains a pattern."""
        if not pattern:
            return []
        return self._matching_pids([pattern])

    def record_spawn(self, name: str, pid: int) -> None:
        """Remember the pid of a process spawned for a server."""
        self.spawned_pids[name] = pid

    def forget_spawn(self, name: str) -> Optional[int]:
        """Drop the recorded pid of a server, returning it if present."""
        return self.spawned_pids.pop(name, None)

    def _spawned_process(self, name: str) -> Optional[int]:
        """Get the recorded pid of a server if that process is still alive."""
        pid = self.spawned_pids.get(name)
        if pid is None:
            return None

        try:
            process = psutil.Process(pid)
            if process.is_running() and process.status() != psutil.STATUS_ZOMBIE:
                return pid
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass

        logger.debug("Recorded process is gone", server=name, pid=pid)
        del self.spawned_pids[name]
        return None

    def _matching_pids(self, patterns: List[str]) -> List[int]:
        """Get sorted pids whose command line contains any pattern."""
        matches = [
            pid
            for pid, cmdline in self._iter_command_lines()
            if any(pattern in cmdline for pattern in patterns)
        ]
        return sorted(matches)

    def _iter_command_lines(self) -> Iterator[Tuple[int, str]]:
        """Yield (pid, command line) for every visible process."""
        # psutil skips vanished processes and reports denied fields as None
        for process in psutil.process_iter(["pid", "cmdline"]):
            pid = process.info["pid"]
            cmdline = process.info["cmdline"]

            if pid == self._own_pid or not cmdline:
                continue
            yield pid, " ".join(cmdline)
