"""CLI commands for teams-bridge."""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from teams_bridge import __brand__, __logo__, __version__

app = typer.Typer(
    name="teams-bridge",
    help=f"{__logo__} {__brand__} - Microsoft Teams bridge for agent runtimes",
    no_args_is_help=True,
)

console = Console()


def _cli_fail(cause: str, fix: str | None = None, *, exit_code: int = 1) -> None:
    """Print a consistent CLI error block and exit."""
    console.print(f"[red]{cause}[/red]")
    if fix:
        console.print(f"[dim]Fix: {fix}[/dim]")
    raise typer.Exit(exit_code)


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} {__brand__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", "-v", callback=version_callback, is_eager=True),
):
    """teams-bridge - Microsoft Teams bridge for agent runtimes."""
    pass


@app.command("version")
def version_command():
    """Show teams-bridge version."""
    console.print(f"{__logo__} {__brand__} v{__version__}")


@app.command("config-schema")
def config_schema_command():
    """Print the configuration descriptor registered with hosts."""
    from teams_bridge.config.schema import CONFIG_SCHEMA

    console.print_json(json.dumps(CONFIG_SCHEMA))


@app.command("init")
def init_command(
    config_file: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
):
    """Create or refresh the config file, keeping existing values."""
    import secrets

    from teams_bridge.config.loader import get_config_path, load_config, save_config

    config_path = config_file or get_config_path()
    existed = config_path.exists()
    config = load_config(config_path)
    if not config.status_token:
        config = config.model_copy(update={"status_token": secrets.token_urlsafe(24)})
    save_config(config, config_path)

    verb = "Updated" if existed else "Created"
    console.print(f"[green]✓[/green] {verb} config at {config_path}")
    console.print(f"[dim]Status token: {config.status_token}[/dim]")
    console.print("\nNext: set appId, appPassword and tenantId, then run: teams-bridge serve")


def _configure_logging(level: str) -> None:
    from loguru import logger

    from teams_bridge.config.loader import get_data_path

    logger.remove()
    logger.add(sys.stderr, level=level.upper())
    log_dir = get_data_path() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    logger.add(log_dir / "teams-bridge.log", level=level.upper(), rotation="10 MB", retention=5)


@app.command()
def serve(
    config_file: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
    agent: str = typer.Option("echo", "--agent", "-a", help="Agent as module:attr or entry point name"),
    host: str = typer.Option(None, "--host", help="Override webhook bind host"),
    port: int = typer.Option(None, "--port", "-p", help="Override webhook port"),
    log_level: str = typer.Option("INFO", "--log-level", help="DEBUG|INFO|WARNING|ERROR"),
):
    """Start the webhook server and relay Teams messages to an agent."""
    from teams_bridge.agents import AgentHost, load_agent
    from teams_bridge.config.loader import convert_to_camel, get_config_path, load_config
    from teams_bridge.config.schema import resolve_credentials
    from teams_bridge.errors import ConfigurationError
    from teams_bridge.plugin import TeamsPlugin
    from teams_bridge.server import WebhookServer

    _configure_logging(log_level)

    config_path = config_file or get_config_path()
    config = load_config(config_path)
    if port is not None:
        config = config.model_copy(update={"webhook_port": port})
    if host:
        config = config.model_copy(update={"webhook_host": host})

    if not config.enabled:
        _cli_fail("MS Teams bridge is disabled.", f"Set \"enabled\": true in {config_path}")

    try:
        resolve_credentials(config, strict=True)
    except ConfigurationError as e:
        _cli_fail(str(e), f"Edit {config_path} or export the environment variable.")

    try:
        agent_callable = load_agent(agent)
    except (ImportError, ValueError, TypeError) as e:
        _cli_fail(f"Could not load agent '{agent}': {e}", "Use --agent package.module:attr")

    agent_host = AgentHost(agent_callable, config=convert_to_camel(config.model_dump()))
    plugin = TeamsPlugin()

    async def _run() -> None:
        await plugin.init(agent_host)
        server = WebhookServer(
            plugin=plugin,
            host=config.webhook_host,
            port=config.webhook_port,
            path=config.webhook_path,
            status_token=config.status_token,
        )
        try:
            await server.serve_forever()
        finally:
            await server.stop()
            await plugin.shutdown()

    console.print(f"{__logo__} Starting {__brand__} on {config.webhook_host}:{config.webhook_port}{config.webhook_path}")
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("\nGoodbye!")


def _fetch_status(api_base: str, token: str | None) -> dict[str, Any]:
    from teams_bridge.tools import ToolRegistry, register_status_tools

    registry = ToolRegistry()
    register_status_tools(registry, api_base)
    auth = {"token": token} if token else {}

    async def _collect() -> dict[str, Any]:
        result: dict[str, Any] = {}
        for name in registry.list():
            result[name] = await registry.get(name)({}, auth)
        return result

    return asyncio.run(_collect())


@app.command()
def status(
    url: str = typer.Option("http://127.0.0.1:3978", "--url", help="Base URL of a running bridge"),
    token: str = typer.Option(
        None, "--token", help="Bearer token for the status routes (default: statusToken from config)"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON"),
):
    """Show status of a running teams-bridge."""
    import httpx

    from teams_bridge.tools import ToolRequestError

    if not token:
        from teams_bridge.config.loader import load_config

        token = load_config().status_token or None

    try:
        data = _fetch_status(url, token)
    except (httpx.HTTPError, ToolRequestError) as e:
        _cli_fail(f"Could not reach teams-bridge at {url}: {e}", "Start it with: teams-bridge serve")

    if as_json:
        console.print_json(json.dumps(data))
        return

    info = data.get("getMsteamsStatus") or {}
    stats = data.get("getMsteamsMessageStats") or {}
    uptime_ms = info.get("uptimeMs")

    console.print(f"{__logo__} {__brand__} Status\n")
    online = "[green]✓ online[/green]" if info.get("online") else "[red]✗ offline[/red]"
    console.print(f"Bridge: {online}")
    console.print(f"Tenants: {info.get('connectedTenants', 0)}")
    console.print(f"Uptime: {uptime_ms // 1000 if isinstance(uptime_ms, int) else '-'}s")
    console.print(
        f"Messages: {stats.get('messagesProcessed', 0)} | "
        f"Conversations: {stats.get('activeConversations', 0)}"
    )

    teams = data.get("listTeams") or []
    channels = data.get("listMsteamsChannels") or []
    if teams:
        table = Table(title="Teams")
        table.add_column("Team", style="cyan")
        table.add_column("ID", style="dim")
        for team in teams:
            table.add_row(team.get("name", "-"), team.get("id", "-"))
        console.print(table)
    if channels:
        table = Table(title="Channels")
        table.add_column("Channel", style="green")
        table.add_column("Type", style="yellow")
        table.add_column("ID", style="dim")
        for channel in channels:
            table.add_row(channel.get("name", "-"), channel.get("type", "-"), channel.get("id", "-"))
        console.print(table)


if __name__ == "__main__":
    app()
