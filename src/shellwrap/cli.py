"""
shellwrap command line.

Usage:
    shellwrap serve --config tools.yaml
    shellwrap check --config tools.yaml
    shellwrap render list_files --config tools.yaml --args '{"path": "src"}'
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from shellwrap import __version__
from shellwrap.config import WrapperConfig, load_config
from shellwrap.errors import ConfigError, ShellwrapError
from shellwrap.logging import Loggers, configure_logging
from shellwrap.settings import ServerSettings
from shellwrap.templating import get_engine
from shellwrap.tools.runner import ToolRunner, select_platform_command

app = typer.Typer(
    name="shellwrap",
    help="Expose shell command line tools as MCP servers",
    no_args_is_help=True,
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)
logger = Loggers.cli()

ConfigOption = typer.Option(None, "--config", "-c", help="Configuration file path")
LogLevelOption = typer.Option(None, "--log-level", help="Log level (debug|info|warning|error)")


def _settings(config: Optional[Path], log_level: Optional[str] = None, **overrides) -> ServerSettings:
    """Build settings; CLI flags win over environment and .env."""
    values = {k: v for k, v in overrides.items() if v is not None}
    if config is not None:
        values["config_file"] = config
    if log_level is not None:
        values["log_level"] = log_level
    settings = ServerSettings(**values)
    configure_logging(settings)
    return settings


def _load(settings: ServerSettings) -> WrapperConfig:
    try:
        return load_config(settings.config_file)
    except ConfigError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]", highlight=False)
        raise typer.Exit(code=1) from e


def version_callback(value: bool) -> None:
    if value:
        console.print(f"shellwrap {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False, "--version", "-v", callback=version_callback, is_eager=True, help="Show version"
    ),
) -> None:
    """Expose shell command line tools as MCP servers."""


@app.command()
def serve(
    config: Optional[Path] = ConfigOption,
    name: Optional[str] = typer.Option(None, "--name", help="Server name"),
    server_version: Optional[str] = typer.Option(None, "--server-version", help="Server version"),
    log_level: Optional[str] = LogLevelOption,
) -> None:
    """Run the MCP server over stdio."""
    from shellwrap.server import ShellwrapServer
    from shellwrap.tools.audit import AuditConfig, AuditLogger

    settings = _settings(config, log_level, server_name=name, server_version=server_version)
    wrapper_config = _load(settings)

    audit_dir = str(settings.audit_log_dir) if settings.audit_log_dir else None
    server = ShellwrapServer(
        wrapper_config,
        name=settings.server_name,
        version=settings.server_version,
        audit=AuditLogger(AuditConfig(log_dir=audit_dir)),
    )

    logger.info("serve", config=str(settings.config_file), tools=len(wrapper_config.tools))
    try:
        asyncio.run(server.run_stdio())
    except KeyboardInterrupt:
        logger.info("interrupted")


@app.command()
def check(
    config: Optional[Path] = ConfigOption,
    log_level: Optional[str] = LogLevelOption,
) -> None:
    """Validate the configuration and list its tools."""
    settings = _settings(config, log_level)
    wrapper_config = _load(settings)
    policy = wrapper_config.policy_manager().policy
    engine = get_engine()

    table = Table(title=f"{settings.config_file} ({policy.level.value} policy)")
    table.add_column("Tool", style="cyan")
    table.add_column("Variables")
    table.add_column("Command")

    for key, definition in wrapper_config.tools.items():
        try:
            template = select_platform_command(definition.cmd)
        except ConfigError as e:
            table.add_row(definition.display_name(key), "", f"[yellow]{escape(str(e))}[/yellow]")
            continue
        variables = engine.extract_variables(engine.parse(template))
        table.add_row(definition.display_name(key), ", ".join(variables), escape(template))

    console.print(table)
    console.print(f"[green]Configuration OK[/green]: {len(wrapper_config.tools)} tool(s)")


@app.command()
def render(
    tool: str = typer.Argument(..., help="Tool name (config key or display name)"),
    config: Optional[Path] = ConfigOption,
    args: str = typer.Option("{}", "--args", "-a", help="Tool arguments as a JSON object"),
    log_level: Optional[str] = LogLevelOption,
) -> None:
    """Print the securely rendered command without executing it."""
    from shellwrap.server import ShellwrapServer

    settings = _settings(config, log_level)
    wrapper_config = _load(settings)

    try:
        arguments = json.loads(args)
    except json.JSONDecodeError as e:
        err_console.print(f"[red]Invalid --args JSON: {escape(str(e))}[/red]", highlight=False)
        raise typer.Exit(code=1) from e
    if not isinstance(arguments, dict):
        err_console.print("[red]--args must be a JSON object[/red]")
        raise typer.Exit(code=1)

    try:
        runner: ToolRunner = ShellwrapServer(wrapper_config).find_runner(tool)
        command = runner.render(arguments)
    except ShellwrapError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]", highlight=False)
        raise typer.Exit(code=1) from e

    # Plain stdout so the command can be piped
    typer.echo(command)


def main() -> None:
    """Entry point for the ``shellwrap`` script."""
    app()


if __name__ == "__main__":
    main()
