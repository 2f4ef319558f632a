"""Pytest configuration and shared fixtures."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict
from unittest.mock import AsyncMock, Mock

import pytest

from mcp_health_monitor.config.settings import MonitorConfig
from mcp_health_monitor.management.health_cache import HealthCache
from mcp_health_monitor.management.health_engine import HealthEngine
from mcp_health_monitor.management.models import ProcessInfo
from mcp_health_monitor.management.process_locator import ProcessLocator
from mcp_health_monitor.management.process_monitor import ProcessMonitor
from mcp_health_monitor.management.server_registry import ServerRegistry


class FakeClock:
    """Controllable replacement for the health cache clock."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def write_servers_config(path: Path, servers: Dict[str, Any]) -> Path:
    """Write a servers configuration file in the mcpServers layout."""
    path.write_text(json.dumps({"mcpServers": servers}), encoding="utf-8")
    return path


@pytest.fixture
def sample_servers() -> Dict[str, Any]:
    """Two managed servers in configuration form."""
    return {
        "alpha": {
            "command": "sleep",
            "args": ["999"],
            "description": "x",
        },
        "beta": {
            "command": "node",
            "args": ["/opt/mcp/beta/index.js", "--stdio"],
            "description": "Beta server",
        },
    }


@pytest.fixture
def servers_config(tmp_path, sample_servers) -> Path:
    """Servers configuration file with the sample servers."""
    return write_servers_config(tmp_path / "mcporter.json", sample_servers)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monitor_settings(servers_config) -> MonitorConfig:
    """Monitor settings with short timings for tests."""
    return MonitorConfig(
        config_path=str(servers_config),
        health_check_interval=30.0,
        startup_delay=0.05,
        ready_poll_interval=0.01,
        terminate_timeout=0.05,
    )


@pytest.fixture
def locator() -> Mock:
    """Process locator that finds nothing unless told otherwise."""
    mock_locator = Mock(spec=ProcessLocator)
    mock_locator.locate.return_value = None
    mock_locator.find_matching.return_value = []
    mock_locator.forget_spawn.return_value = None
    return mock_locator


@pytest.fixture
def inspector() -> Mock:
    """Process inspector reporting every pid as alive for 42 seconds."""
    mock_inspector = Mock(spec=ProcessMonitor)
    mock_inspector.inspect = AsyncMock(
        side_effect=lambda pid: ProcessInfo(pid=pid, exists=True, uptime_seconds=42)
    )
    return mock_inspector


@pytest.fixture
def engine(servers_config, monitor_settings, locator, inspector, clock) -> HealthEngine:
    """Health engine over the sample servers with mocked OS access."""
    return HealthEngine(
        ServerRegistry(servers_config),
        settings=monitor_settings,
        locator=locator,
        inspector=inspector,
        cache=HealthCache(monitor_settings.health_check_interval, clock=clock),
    )
