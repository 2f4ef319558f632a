"""MCP server exposing health monitoring tools for managed MCP servers.

AI agents use these tools to list the configured servers, check their
health, and restart the ones that have stopped.
"""

import asyncio
import json
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool

from mcp_health_monitor.config.logging import configure_logging, get_logger
from mcp_health_monitor.config.settings import Settings
from mcp_health_monitor.management import (
    HealthEngine,
    RestartOrchestrator,
    ServerNotConfiguredError,
    ServerRegistry,
    ServerStatus,
)
from mcp_health_monitor.server.exceptions import (
    MCPServerError,
    ServerNotFoundError,
    ToolExecutionError,
    ToolNotFoundError,
    ValidationError,
)

logger = get_logger(__name__)

NAME_ARGUMENT = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "description": "Name of the MCP server"}
    },
    "required": ["name"],
}
NO_ARGUMENTS = {"type": "object", "properties": {}}

TOOLS = [
    Tool(
        name="list_servers",
        description="List all configured MCP servers with their health status",
        inputSchema=NO_ARGUMENTS,
    ),
    Tool(
        name="check_health",
        description="Check health of a specific MCP server by name",
        inputSchema=NAME_ARGUMENT,
    ),
    Tool(
        name="check_all_health",
        description="Force check health of all MCP servers",
        inputSchema=NO_ARGUMENTS,
    ),
    Tool(
        name="restart_server",
        description="Restart a specific MCP server by name",
        inputSchema=NAME_ARGUMENT,
    ),
    Tool(
        name="get_unhealthy",
        description="Get list of all unhealthy MCP servers",
        inputSchema=NO_ARGUMENTS,
    ),
    Tool(
        name="restart_unhealthy",
        description="Restart all unhealthy MCP servers automatically",
        inputSchema=NO_ARGUMENTS,
    ),
]


@dataclass
class ToolResponse:
    """Text payload of a tool call and whether it reports an error."""

    text: str
    is_error: bool = False


def _summarize(statuses: List[ServerStatus]) -> Dict[str, int]:
    healthy = sum(1 for status in statuses if status.healthy)
    return {
        "total": len(statuses),
        "healthy": healthy,
        "unhealthy": len(statuses) - healthy,
    }


def _dump(payload: Any) -> str:
    return json.dumps(payload, indent=2)


class HealthMonitorServer:
    """MCP server wrapping the health engine and restart orchestrator."""

    def __init__(
        self,
        settings: Settings,
        engine: Optional[HealthEngine] = None,
        orchestrator: Optional[RestartOrchestrator] = None,
    ):
        """Initialize the MCP server.

        Args:
            settings: Application settings
            engine: Health engine (default: built from settings)
            orchestrator: Restart orchestrator (default: built on the engine)
        """
        self.settings = settings
        self.logger = get_logger(__name__)

        self.engine = engine or HealthEngine(
            ServerRegistry(settings.monitor.get_config_path()),
            settings=settings.monitor,
        )
        self.orchestrator = orchestrator or RestartOrchestrator(self.engine)

        self.server = Server(settings.server.name)
        self._register_handlers()

        self.logger.info(
            "MCP server initialized",
            name=settings.server.name,
            version=settings.server.version,
            config_path=str(settings.monitor.get_config_path()),
        )

    def _register_handlers(self) -> None:
        """Register MCP protocol handlers."""

        @self.server.list_tools()
        async def list_tools() -> List[Tool]:
            """List available tools."""
            return TOOLS

        @self.server.call_tool()
        async def call_tool(
            name: str, arguments: Optional[Dict[str, Any]]
        ) -> List[types.TextContent]:
            """Handle tool calls; error payloads are raised so the SDK flags them."""
            response = await self.call(name, arguments or {})
            if response.is_error:
                raise ToolExecutionError(response.text)
            return [types.TextContent(type="text", text=response.text)]

    async def call(self, name: str, arguments: Dict[str, Any]) -> ToolResponse:
        """Run a tool and render its result, catching every failure."""
        try:
            if name == "list_servers":
                return await self._list_servers()
            elif name == "check_health":
                return await self._check_health(self._require_name(arguments))
            elif name == "check_all_health":
                return await self._check_all_health()
            elif name == "restart_server":
                return await self._restart_server(self._require_name(arguments))
            elif name == "get_unhealthy":
                return await self._get_unhealthy()
            elif name == "restart_unhealthy":
                return await self._restart_unhealthy()
            else:
                raise ToolNotFoundError(name)

        except ServerNotFoundError as e:
            return ToolResponse(e.message, is_error=True)
        except MCPServerError as e:
            self.logger.warning("Tool call rejected", tool_name=name, error=e.message)
            return ToolResponse(f"Error: {e.message}", is_error=True)
        except Exception as e:
            self.logger.error(
                "Tool call failed",
                tool_name=name,
                arguments=arguments,
                error=str(e),
            )
            return ToolResponse(f"Error: {e}", is_error=True)

    def _require_name(self, arguments: Dict[str, Any]) -> str:
        name = arguments.get("name")
        if not name or not isinstance(name, str):
            raise ValidationError("name", "Server name is required")
        return name

    async def _list_servers(self) -> ToolResponse:
        statuses = await self.engine.check_all()
        last_checked = self.engine.last_full_check
        summary = _summarize(statuses)
        summary["lastChecked"] = last_checked.isoformat() if last_checked else "never"

        return ToolResponse(
            _dump(
                {
                    "summary": summary,
                    "servers": [status.to_dict() for status in statuses],
                }
            )
        )

    async def _check_health(self, server_name: str) -> ToolResponse:
        try:
            status = await self.engine.check_one(server_name, force=True)
        except ServerNotConfiguredError:
            raise ServerNotFoundError(server_name)

        return ToolResponse(_dump(status.to_dict()))

    async def _check_all_health(self) -> ToolResponse:
        statuses = await self.engine.check_all(force=True)
        summary = _summarize(statuses)
        summary["checkedAt"] = self.engine.cache.clock().isoformat()

        return ToolResponse(
            _dump(
                {
                    "summary": summary,
                    "servers": [status.to_dict() for status in statuses],
                }
            )
        )

    async def _restart_server(self, server_name: str) -> ToolResponse:
        result = await self.orchestrator.restart(server_name)
        return ToolResponse(
            _dump(result.to_dict(include_name=False)), is_error=not result.success
        )

    async def _get_unhealthy(self) -> ToolResponse:
        unhealthy = await self.engine.get_unhealthy()
        return ToolResponse(
            _dump(
                {
                    "count": len(unhealthy),
                    "servers": [status.to_dict() for status in unhealthy],
                }
            )
        )

    async def _restart_unhealthy(self) -> ToolResponse:
        results = await self.orchestrator.restart_all_unhealthy()
        successful = sum(1 for result in results if result.success)

        return ToolResponse(
            _dump(
                {
                    "summary": {
                        "total": len(results),
                        "successful": successful,
                        "failed": len(results) - successful,
                    },
                    "results": [result.to_dict() for result in results],
                }
            )
        )

    async def run_stdio(self) -> None:
        """Run the server with stdio transport."""
        self.logger.info("Starting MCP server with stdio transport")

        async with stdio_server() as (read_stream, write_stream):
            await self.server.run(
                read_stream, write_stream, self.server.create_initialization_options()
            )


def create_server(settings: Optional[Settings] = None) -> HealthMonitorServer:
    """Create and configure MCP server instance.

    Args:
        settings: Application settings, uses default if None

    Returns:
        Configured MCP server instance
    """
    if settings is None:
        settings = Settings()

    return HealthMonitorServer(settings)


async def main() -> None:
    """Main entry point for standalone server execution."""
    settings = Settings()
    configure_logging(
        level=settings.logging.level,
        log_file=settings.logging.file_path,
        json_logs=settings.logging.json_format,
    )

    server = create_server(settings)

    try:
        await server.run_stdio()
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception as e:
        logger.error("Server failed", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
