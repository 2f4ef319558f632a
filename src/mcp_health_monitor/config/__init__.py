"""Configuration package for the health monitor."""

from .exceptions import ConfigurationError
from .settings import LoggingConfig, MonitorConfig, ServerConfig, Settings

__all__ = [
    "ConfigurationError",
    "LoggingConfig",
    "MonitorConfig",
    "ServerConfig",
    "Settings",
]
