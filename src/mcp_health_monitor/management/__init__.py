"""Server management package: health checks and restarts of managed servers."""

from .exceptions import (
    ElapsedTimeParseError,
    RestartError,
    ServerError,
    ServerNotConfiguredError,
)
from .models import (
    DetectionMethod,
    HealthState,
    RestartOutcome,
    RestartResult,
    ServerSpec,
    ServerStatus,
)
from .health_cache import HealthCache
from .process_locator import ProcessLocator
from .process_monitor import ProcessMonitor, parse_elapsed_time
from .server_registry import ServerRegistry
from .health_engine import HealthEngine
from .restart_orchestrator import RestartOrchestrator

__all__ = [
    "DetectionMethod",
    "ElapsedTimeParseError",
    "HealthCache",
    "HealthEngine",
    "HealthState",
    "ProcessLocator",
    "ProcessMonitor",
    "RestartError",
    "RestartOrchestrator",
    "RestartOutcome",
    "RestartResult",
    "ServerError",
    "ServerNotConfiguredError",
    "ServerRegistry",
    "ServerSpec",
    "ServerStatus",
    "parse_elapsed_time",
]
