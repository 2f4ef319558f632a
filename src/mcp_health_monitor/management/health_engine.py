"""Health engine producing server statuses from process probes."""

import asyncio
import time
from datetime import datetime
from typing import Dict, List, Optional

from ..config.logging import get_logger, log_performance
from ..config.settings import MonitorConfig
from .exceptions import ServerNotConfiguredError
from .health_cache import HealthCache
from .models import DetectionMethod, HealthState, ServerSpec, ServerStatus
from .process_locator import ProcessLocator
from .process_monitor import ProcessMonitor
from .server_registry import ServerRegistry

logger = get_logger(__name__)


class HealthEngine:
    """Owns the health cache and last-known statuses of all servers.

    A single instance is shared by the query surface and the restart
    orchestrator. Reads and writes of the shared maps happen under one
    asyncio lock, so concurrent tool calls never interleave a probe.
    """

    def __init__(
        self,
        registry: ServerRegistry,
        settings: Optional[MonitorConfig] = None,
        locator: Optional[ProcessLocator] = None,
        inspector: Optional[ProcessMonitor] = None,
        cache: Optional[HealthCache] = None,
    ):
        self.registry = registry
        self.settings = settings or MonitorConfig()
        self.locator = locator or ProcessLocator()
        self.inspector = inspector or ProcessMonitor()
        self.cache = cache or HealthCache(self.settings.health_check_interval)

        self.statuses: Dict[str, ServerStatus] = {}
        self.last_full_check: Optional[datetime] = None
        self._lock = asyncio.Lock()

    def load_specs(self) -> Dict[str, ServerSpec]:
        """Get all configured servers."""
        return self.registry.load()

    def get_spec(self, name: str) -> ServerSpec:
        """Get the launch specification of a server.

        Raises:
            ServerNotConfiguredError: If the server is not configured
        """
        spec = self.load_specs().get(name)
        if spec is None:
            raise ServerNotConfiguredError(name)
        return spec

    async def check_one(self, name: str, force: bool = False) -> ServerStatus:
        """Check the health of one configured server.

        Args:
            name: Server name
            force: Discard any cached verdict and probe the OS

        Returns:
            ServerStatus: Current status of the server

        Raises:
            ServerNotConfiguredError: If the server is not configured
        """
        return await self.check_spec(self.get_spec(name), force=force)

    async def check_spec(self, spec: ServerSpec, force: bool = False) -> ServerStatus:
        """Check the health of a server given its spec."""
        async with self._lock:
            if force:
                self.cache.invalidate(spec.name)

            entry = self.cache.get(spec.name)
            if entry is not None:
                previous = self.statuses.get(spec.name)
                return ServerStatus.from_spec(
                    spec,
                    healthy=entry.healthy,
                    state=entry.state,
                    last_checked=entry.observed_at,
                    detection=(
                        previous.detection if previous else DetectionMethod.NONE
                    ),
                    cached=True,
                )

            return await self._probe(spec)

    async def check_all(self, force: bool = False) -> List[ServerStatus]:
        """Check every configured server, in configuration order."""
        start_time = time.perf_counter()

        statuses = []
        for spec in self.load_specs().values():
            statuses.append(await self.check_spec(spec, force=force))

        self.last_full_check = self.cache.clock()
        log_performance(
            logger,
            "check_all",
            (time.perf_counter() - start_time) * 1000,
            servers=len(statuses),
            forced=force,
        )
        return statuses

    async def get_unhealthy(self) -> List[ServerStatus]:
        """Get the statuses of all servers that are not healthy."""
        return [status for status in await self.check_all() if not status.healthy]

    def invalidate(self, name: str) -> None:
        """Drop the cached verdict for a server."""
        self.cache.invalidate(name)

    def record_spawn(self, name: str, pid: int) -> None:
        """Remember the pid of a process spawned for a server."""
        self.locator.record_spawn(name, pid)

    def last_status(self, name: str) -> Optional[ServerStatus]:
        """Get the last probed status of a server, if any."""
        return self.statuses.get(name)

    async def _probe(self, spec: ServerSpec) -> ServerStatus:
        """Probe the OS for a server and record the verdict."""
        now = self.cache.clock()
        located = self.locator.locate(spec)

        pid = None
        uptime_seconds = None
        detection = DetectionMethod.NONE

        if located is not None:
            info = await self.inspector.inspect(located.pid)
            state = HealthState.HEALTHY if info.exists else HealthState.UNHEALTHY
            pid = located.pid
            uptime_seconds = info.uptime_seconds
            detection = located.detection
        else:
            state = await self._liveness_fallback(spec)

        healthy = state == HealthState.HEALTHY or (
            state == HealthState.UNKNOWN and self.settings.unknown_is_healthy
        )

        status = ServerStatus.from_spec(
            spec,
            healthy=healthy,
            state=state,
            last_checked=now,
            detection=detection,
            uptime_seconds=uptime_seconds,
            pid=pid,
        )

        self.cache.put(spec.name, state, healthy, now)
        self.statuses[spec.name] = status

        logger.debug(
            "Server probed",
            server=spec.name,
            state=state.value,
            pid=pid,
            detection=detection.value,
        )
        return status

    async def _liveness_fallback(self, spec: ServerSpec) -> HealthState:
        """Decide the state of a server with no discoverable process.

        There is no transport-level ping for stdio servers, so such a
        server can be neither confirmed alive nor dead.
        """
        logger.debug("No process to inspect, state unknown", server=spec.name)
        return HealthState.UNKNOWN
