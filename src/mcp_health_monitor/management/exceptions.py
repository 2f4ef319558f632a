"""Errors raised by the health engine and restart orchestrator."""

from typing import Dict, Optional


class ServerError(Exception):
    """Server management error with user-friendly messages."""

    def __init__(
        self,
        message: str,
        suggestion: Optional[str] = None,
        details: Optional[Dict] = None,
    ):
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}
        super().__init__(message)


class ServerNotConfiguredError(ServerError):
    """The requested server name is not present in the configuration."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Server {name} not found in configuration",
            "Check the managed servers configuration file",
        )


class RestartError(ServerError):
    """Terminating or spawning a server process failed."""


class ElapsedTimeParseError(ValueError):
    """A process elapsed-time string is not in a recognized format."""
