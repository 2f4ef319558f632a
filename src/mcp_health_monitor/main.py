"""Main CLI entry point for the MCP Health Monitor.

This module provides the command-line interface for running the health
monitor as an MCP server and for checking or restarting managed servers
directly from a shell.
"""

import asyncio
import json
import sys
import traceback
from typing import Any, Dict, List, Optional

import click
import yaml

from . import __version__
from .config.logging import configure_logging, get_logger
from .config.settings import Settings
from .management import (
    HealthEngine,
    RestartOrchestrator,
    ServerError,
    ServerRegistry,
    ServerStatus,
)

logger = get_logger(__name__)


class CLIError(Exception):
    """Base CLI error with user-friendly messages."""

    def __init__(self, message: str, suggestion: Optional[str] = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(message)


class CLIContext:
    """Global CLI context management."""

    def __init__(
        self,
        verbose: bool = False,
        quiet: bool = False,
        config_path: Optional[str] = None,
    ):
        self.verbose = verbose
        self.quiet = quiet
        self.settings = Settings()
        if config_path:
            self.settings.monitor.config_path = config_path

        self._engine: Optional[HealthEngine] = None
        self._orchestrator: Optional[RestartOrchestrator] = None

    @property
    def engine(self) -> HealthEngine:
        """Health engine built from the current settings."""
        if self._engine is None:
            self._engine = HealthEngine(
                ServerRegistry(self.settings.monitor.get_config_path()),
                settings=self.settings.monitor,
            )
        return self._engine

    @property
    def orchestrator(self) -> RestartOrchestrator:
        """Restart orchestrator sharing the context's health engine."""
        if self._orchestrator is None:
            self._orchestrator = RestartOrchestrator(self.engine)
        return self._orchestrator

    def log_level(self) -> str:
        if self.verbose:
            return "DEBUG"
        if self.quiet:
            return "ERROR"
        return self.settings.logging.level


def handle_cli_error(error: Exception, ctx: Optional[click.Context] = None):
    """Global CLI error handler."""
    if isinstance(error, (CLIError, ServerError)):
        click.echo(f"Error: {error.message}", err=True)
        if error.suggestion:
            click.echo(f"Suggestion: {error.suggestion}", err=True)
    elif isinstance(error, click.ClickException):
        error.show()
    else:
        verbose = bool(ctx and ctx.obj and ctx.obj.get("verbose"))
        click.echo(f"Unexpected error: {error}", err=True)
        if verbose:
            click.echo(traceback.format_exc(), err=True)
        else:
            click.echo(
                "Run with --verbose for detailed error information", err=True
            )

    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="mcp-health-monitor")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output with detailed logging",
)
@click.option(
    "--quiet", "-q", is_flag=True, help="Enable quiet mode with minimal output"
)
@click.option(
    "--config-path",
    "-c",
    type=click.Path(dir_okay=False),
    help="Managed servers configuration file (JSON or YAML)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool, config_path: Optional[str]):
    """MCP Health Monitor

    Monitor the MCP servers configured for this machine, report their
    health and restart the ones that have stopped.

    \b
    Examples:
      mcp-health-monitor serve
      mcp-health-monitor status --format json
      mcp-health-monitor check my-server
      mcp-health-monitor restart my-server
      mcp-health-monitor restart-unhealthy
    """
    if verbose and quiet:
        raise click.BadParameter("Cannot use both --verbose and --quiet options")

    ctx.ensure_object(dict)
    cli_context = CLIContext(verbose=verbose, quiet=quiet, config_path=config_path)

    ctx.obj["cli_context"] = cli_context
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    configure_logging(
        level=cli_context.log_level(),
        log_file=cli_context.settings.logging.file_path,
        json_logs=cli_context.settings.logging.json_format,
    )


@cli.command()
@click.pass_context
def serve(ctx: click.Context):
    """Run the health monitor as an MCP server on stdio.

    \b
    Tools exposed to MCP clients:
      list_servers, check_health, check_all_health,
      restart_server, get_unhealthy, restart_unhealthy
    """
    from .server.mcp_server import HealthMonitorServer

    cli_context: CLIContext = ctx.obj["cli_context"]

    try:
        server = HealthMonitorServer(
            cli_context.settings,
            engine=cli_context.engine,
            orchestrator=cli_context.orchestrator,
        )
        asyncio.run(server.run_stdio())
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception as error:
        handle_cli_error(error, ctx)


@cli.command()
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json", "yaml"]),
    default="table",
    help="Output format for status information",
)
@click.option(
    "--force", "-f", is_flag=True, help="Ignore cached health verdicts"
)
@click.pass_context
def status(ctx: click.Context, output_format: str, force: bool):
    """Show the health of every configured server."""
    cli_context: CLIContext = ctx.obj["cli_context"]

    try:
        statuses = asyncio.run(cli_context.engine.check_all(force=force))
    except Exception as error:
        handle_cli_error(error, ctx)
        return

    if output_format == "json":
        click.echo(json.dumps(_status_payload(statuses), indent=2))
    elif output_format == "yaml":
        click.echo(yaml.safe_dump(_status_payload(statuses), sort_keys=False))
    else:
        _display_status_table(statuses)


@cli.command()
@click.argument("name")
@click.pass_context
def check(ctx: click.Context, name: str):
    """Check the health of one server, bypassing the cache.

    Exits with status 1 when the server is not healthy.
    """
    cli_context: CLIContext = ctx.obj["cli_context"]

    try:
        server_status = asyncio.run(cli_context.engine.check_one(name, force=True))
    except Exception as error:
        handle_cli_error(error, ctx)
        return

    _display_status_table([server_status])
    if not server_status.healthy:
        sys.exit(1)


@cli.command()
@click.argument("name")
@click.pass_context
def restart(ctx: click.Context, name: str):
    """Restart one server and verify that it came back up."""
    cli_context: CLIContext = ctx.obj["cli_context"]

    if not cli_context.quiet:
        click.echo(f"🔄 Restarting {name}...")

    try:
        result = asyncio.run(cli_context.orchestrator.restart(name))
    except Exception as error:
        handle_cli_error(error, ctx)
        return

    if result.success:
        click.echo(f"✅ {result.message}")
    else:
        click.echo(f"❌ {result.message}", err=True)
        sys.exit(1)


@cli.command("restart-unhealthy")
@click.pass_context
def restart_unhealthy(ctx: click.Context):
    """Restart every server that is currently unhealthy."""
    cli_context: CLIContext = ctx.obj["cli_context"]

    try:
        results = asyncio.run(cli_context.orchestrator.restart_all_unhealthy())
    except Exception as error:
        handle_cli_error(error, ctx)
        return

    if not results:
        click.echo("ℹ️  No unhealthy servers found")
        return

    for result in results:
        mark = "✅" if result.success else "❌"
        click.echo(f"{mark} {result.name}: {result.message}")

    successful = sum(1 for r in results if r.success)
    if successful == len(results):
        click.echo(f"✅ Successfully restarted {successful} server(s)")
    else:
        click.echo(f"⚠️  Restarted {successful}/{len(results)} servers")
        sys.exit(1)


def _status_payload(statuses: List[ServerStatus]) -> Dict[str, Any]:
    healthy = sum(1 for s in statuses if s.healthy)
    return {
        "summary": {
            "total": len(statuses),
            "healthy": healthy,
            "unhealthy": len(statuses) - healthy,
        },
        "servers": [s.to_dict() for s in statuses],
    }


def _display_status_table(statuses: List[ServerStatus]):
    """Display status in table format."""
    if not statuses:
        click.echo("ℹ️  No servers configured")
        return

    click.echo(f"📊 MCP Server Health - {len(statuses)} server(s)")
    click.echo("=" * 60)

    for server_status in statuses:
        state_emoji = {
            "healthy": "🟢",
            "unhealthy": "🔴",
            "unknown": "⚪",
        }.get(server_status.state.value, "⚪")

        click.echo(f"🖥️  Server: {server_status.name}")
        click.echo(f"   Status: {state_emoji} {server_status.state.value}")
        if server_status.description:
            click.echo(f"   Description: {server_status.description}")
        click.echo(f"   Command: {server_status.command} {' '.join(server_status.args)}".rstrip())

        if server_status.pid is not None:
            uptime = _format_uptime(server_status.uptime_seconds or 0)
            click.echo(
                f"   PID: {server_status.pid} ({server_status.detection.value}) | Uptime: {uptime}"
            )
        cached = " (cached)" if server_status.cached else ""
        click.echo(f"   Last checked: {server_status.last_checked.isoformat()}{cached}")
        click.echo("-" * 40)


def _format_uptime(uptime_seconds: float) -> str:
    """Format uptime in human-readable format."""
    if uptime_seconds < 60:
        return f"{uptime_seconds:.0f}s"
    elif uptime_seconds < 3600:
        return f"{uptime_seconds/60:.0f}m"
    elif uptime_seconds < 86400:
        hours = int(uptime_seconds // 3600)
        minutes = int((uptime_seconds % 3600) // 60)
        return f"{hours}h {minutes}m"
    else:
        days = int(uptime_seconds // 86400)
        hours = int((uptime_seconds % 86400) // 3600)
        return f"{days}d {hours}h"


if __name__ == "__main__":
    cli()
