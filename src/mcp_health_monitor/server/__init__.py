"""MCP server implementation

Stdio MCP server exposing the six health monitoring tools.
"""

from .mcp_server import HealthMonitorServer, create_server

__all__ = ["HealthMonitorServer", "create_server"]
