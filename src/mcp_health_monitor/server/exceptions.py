"""MCP tool errors with JSON-RPC 2.0 error codes."""

import time
from typing import Any, Dict, Optional


class MCPServerError(Exception):
    """Base exception for MCP server errors with JSON-RPC 2.0 compliance."""

    def __init__(
        self, code: int, message: str, data: Optional[Dict[str, Any]] = None
    ):
        """Initialize MCP server error.

        Args:
            code: JSON-RPC 2.0 error code
            message: Human-readable error message
            data: Additional error context and debugging information
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data or {}
        self.timestamp = time.time()

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to JSON-RPC 2.0 error response format."""
        error_dict = {"code": self.code, "message": self.message}
        if self.data:
            error_dict["data"] = self.data
        return error_dict


class ValidationError(MCPServerError):
    """Parameter validation error (-32602 Invalid params)."""

    def __init__(self, parameter: str, message: str):
        super().__init__(
            code=-32602,
            message=message,
            data={"parameter": parameter, "error_type": "validation_error"},
        )


class ToolNotFoundError(MCPServerError):
    """Unknown tool name (-32601 Method not found)."""

    def __init__(self, tool_name: str):
        super().__init__(
            code=-32601,
            message=f"Unknown tool: {tool_name}",
            data={"error_type": "tool_not_found", "tool": tool_name},
        )


class ServerNotFoundError(MCPServerError):
    """Managed server missing from configuration (custom code -1001)."""

    def __init__(self, server_name: str):
        super().__init__(
            code=-1001,
            message=f"Server '{server_name}' not found in configuration",
            data={"error_type": "not_found_error", "server": server_name},
        )


class ToolExecutionError(MCPServerError):
    """A tool ran but reported failure; the message is the tool payload."""

    def __init__(self, payload: str):
        super().__init__(
            code=-32603,
            message=payload,
            data={"error_type": "tool_error"},
        )
