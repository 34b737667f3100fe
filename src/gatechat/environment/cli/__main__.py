"""Command-line entry point.

Usage:
    gatechat chat "What's on my calendar today?"
    gatechat chat --gateway-url https://gateway.example.com/mcp
    gatechat logout
    uv run python -m gatechat.environment.cli chat
"""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer

from gatechat.agent.config import ConfigurationError, Settings, get_settings
from gatechat.environment.chat import run_chat
from gatechat.lib.credentials import CredentialStore
from gatechat.lib.events import LogLevel
from gatechat.lib.gateway import GatewayConnectionError
from gatechat.version import VERSION

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="gatechat",
    help="Chat with an agent that acts through MCP gateway tools",
    no_args_is_help=True,
    add_completion=False,
)


def _version(value: bool) -> None:
    if value:
        typer.echo(VERSION)
        raise typer.Exit()


@app.callback()
def callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version,
            is_eager=True,
            help="Show the version and exit",
        ),
    ] = False,
) -> None:
    """Chat with an agent that acts through MCP gateway tools."""


def _fail(e: Exception) -> typer.Exit:
    typer.echo(f"Error: {e}", err=True)
    return typer.Exit(1)


def _load_settings() -> Settings:
    try:
        return get_settings()
    except ConfigurationError as e:
        raise _fail(e) from e


def _configure_logging(logs_path: Path, verbose: bool) -> None:
    """Send the full log to a file; the terminal shows notifier events."""
    logs_path.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        filename=logs_path / f"gatechat_{datetime.now():%Y%m%d}.log",
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def chat(
    message: Annotated[
        str | None,
        typer.Argument(help="The message to start the chat session with"),
    ] = None,
    gateway_url: Annotated[
        str | None,
        typer.Option(
            "--gateway-url",
            "-g",
            help="MCP gateway URL (overrides the GATEWAY_URL env var)",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug output"),
    ] = False,
) -> None:
    """Start an interactive chat session with the agent."""
    settings = _load_settings()
    try:
        url = settings.require_gateway_url(gateway_url)
    except ConfigurationError as e:
        raise _fail(e) from e

    _configure_logging(settings.logs_path, verbose)
    level = LogLevel.DEBUG if verbose else LogLevel.parse(settings.log_level)

    try:
        asyncio.run(run_chat(settings, url, initial_message=message, level=level))
    except GatewayConnectionError as e:
        logger.error("Gateway bootstrap failed: %s", e)
        raise _fail(e) from e


@app.command()
def logout() -> None:
    """Forget the stored OAuth client registration and tokens."""
    removed = CredentialStore(_load_settings().credentials_dir).clear()
    if removed:
        typer.echo(f"Removed {len(removed)} credential file(s).")
    else:
        typer.echo("No stored credentials.")


if __name__ == "__main__":
    app()
