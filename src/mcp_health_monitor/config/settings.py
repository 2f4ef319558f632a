"""Application configuration settings."""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_SERVERS_CONFIG = "~/.openclaw/workspace/config/mcporter.json"


class LoggingConfig(BaseSettings):
    """Logging configuration settings."""

    level: str = Field(default="INFO", description="Log level")
    file_path: Optional[str] = Field(default=None, description="Log file path")
    json_format: bool = Field(default=True, description="Use JSON log format")

    class Config:
        env_prefix = "LOG_"


class ServerConfig(BaseSettings):
    """MCP server identity settings."""

    name: str = Field(default="mcp-health-monitor", description="Server name")
    version: str = Field(default="1.0.0", description="Server version")

    class Config:
        env_prefix = "SERVER_"


class MonitorConfig(BaseSettings):
    """Health checking and restart settings."""

    config_path: str = Field(
        default=DEFAULT_SERVERS_CONFIG,
        description="Managed servers configuration file",
    )
    health_check_interval: float = Field(
        default=30.0, description="Seconds a health verdict stays fresh"
    )
    startup_delay: float = Field(
        default=5.0, description="Grace period after spawning, in seconds"
    )
    ready_poll_interval: float = Field(
        default=0.5, description="Poll interval during the grace period"
    )
    terminate_timeout: float = Field(
        default=1.0, description="Seconds to wait for SIGTERM before SIGKILL"
    )
    unknown_is_healthy: bool = Field(
        default=False,
        description="Report servers with no discoverable process as healthy",
    )

    class Config:
        env_prefix = "MONITOR_"

    def get_config_path(self) -> Path:
        """Get the expanded managed servers configuration path."""
        return Path(self.config_path).expanduser()


class Settings(BaseSettings):
    """Main application settings."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
