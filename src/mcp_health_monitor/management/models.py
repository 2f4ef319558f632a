"""Data types shared by the health engine and the restart orchestrator."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class HealthState(Enum):
    """Outcome of a health probe."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class DetectionMethod(Enum):
    """How the process behind a server was identified."""

    SPAWNED = "spawned"
    COMMAND_LINE = "command_line"
    NONE = "none"


class RestartOutcome(Enum):
    """Final state of a restart attempt."""

    RESTARTED = "restarted"
    STILL_UNHEALTHY = "still_unhealthy"
    NOT_CONFIGURED = "not_configured"
    FAILED = "failed"


@dataclass(frozen=True)
class ServerSpec:
    """Launch specification of a managed server, as read from configuration."""

    name: str
    command: str
    args: Tuple[str, ...] = ()
    description: str = ""
    env: Dict[str, str] = field(default_factory=dict, hash=False, compare=False)
    cwd: Optional[str] = None

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "ServerSpec":
        """Create a spec from one entry of the servers configuration."""
        return cls(
            name=name,
            command=str(data["command"]),
            args=tuple(str(arg) for arg in data.get("args") or ()),
            description=str(data.get("description") or ""),
            env={str(k): str(v) for k, v in (data.get("env") or {}).items()},
            cwd=data.get("cwd"),
        )

    @property
    def joined_args(self) -> str:
        """Arguments as they appear in a process command line."""
        return " ".join(self.args)


@dataclass
class ProcessInfo:
    """Result of inspecting a single OS process."""

    pid: int
    exists: bool
    uptime_seconds: Optional[int] = None


@dataclass
class LocatedProcess:
    """A process matched to a managed server."""

    pid: int
    detection: DetectionMethod


@dataclass
class HealthCacheEntry:
    """Memoized health verdict for one server."""

    state: HealthState
    healthy: bool
    observed_at: datetime


@dataclass
class ServerStatus:
    """Health status of a managed server."""

    name: str
    description: str
    command: str
    args: Tuple[str, ...]
    healthy: bool
    state: HealthState
    last_checked: datetime
    detection: DetectionMethod = DetectionMethod.NONE
    uptime_seconds: Optional[int] = None
    pid: Optional[int] = None
    cached: bool = False

    @classmethod
    def from_spec(cls, spec: ServerSpec, **kwargs: Any) -> "ServerStatus":
        """Build a status carrying the static fields of a spec."""
        return cls(
            name=spec.name,
            description=spec.description,
            command=spec.command,
            args=spec.args,
            **kwargs,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "command": self.command,
            "args": list(self.args),
            "healthy": self.healthy,
            "state": self.state.value,
            "detection": self.detection.value,
            "lastChecked": self.last_checked.isoformat(),
            "cached": self.cached,
        }
        if self.uptime_seconds is not None:
            data["uptimeSeconds"] = self.uptime_seconds
        if self.pid is not None:
            data["pid"] = self.pid
        return data


@dataclass
class RestartResult:
    """Result of a single restart attempt."""

    name: str
    success: bool
    outcome: RestartOutcome
    message: str
    pid: Optional[int] = None

    def to_dict(self, include_name: bool = True) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: Dict[str, Any] = {}
        if include_name:
            data["name"] = self.name
        data["success"] = self.success
        data["message"] = self.message
        return data
