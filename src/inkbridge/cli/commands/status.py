"""
inkbridge status - Configuration and backend status.

Usage:
    inkbridge status
    inkbridge status --check
"""

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer

from inkbridge.cli.output import console, print_error, print_success, print_table, print_warning
from inkbridge.config import Config, ConfigurationError, load_config
from inkbridge.platforms.runtime import create_backend

app = typer.Typer(
    name="status",
    help="Show bridge configuration and backend status.",
    invoke_without_command=True,
)


def _platform_rows(config: Config) -> list[list[str]]:
    """Rows of (platform, status, credentials) for the status table."""
    telegram = config.platforms.telegram
    teams = config.platforms.teams

    rows = []
    if telegram.enable:
        creds = "[green]✓ bot token[/green]" if telegram.bot_token else "[yellow]⚠ missing bot_token[/yellow]"
        rows.append(["telegram", "[green]Enabled[/green]", creds])
    else:
        rows.append(["telegram", "[dim]Disabled[/dim]", "[dim]-[/dim]"])

    if teams.enable:
        creds = "[green]✓ refresh token[/green]" if teams.refresh_token else "[yellow]access token only[/yellow]"
        rows.append(["teams", "[green]Enabled[/green]", creds])
    else:
        rows.append(["teams", "[dim]Disabled[/dim]", "[dim]-[/dim]"])

    return rows


async def _check_backend(config: Config) -> bool:
    backend = create_backend(config)
    try:
        return await backend.health_check()
    finally:
        await backend.close()


@app.callback(invoke_without_command=True)
def status_overview(
    check: Annotated[
        bool,
        typer.Option(
            "--check",
            help="Also check that the backend is reachable.",
        ),
    ] = False,
    config_file: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Config file to use instead of ~/.inkbridge/config.yaml.",
        ),
    ] = None,
) -> None:
    """Show overall status."""
    try:
        config = load_config(config_path=config_file)
    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)

    console.print("[bold]InkBridge Status[/bold]\n")
    console.print(f"  [dim]Backend:[/dim] {config.backend.base_url}")
    console.print(f"  [dim]Response mode:[/dim] {config.bridge.response_mode}")
    console.print(f"  [dim]Flush interval:[/dim] {config.bridge.min_flush_interval}s\n")

    print_table(["Platform", "Status", "Credentials"], _platform_rows(config), title="Platforms")

    if not config.enabled_platforms():
        print_warning("No platforms enabled")

    if check:
        if asyncio.run(_check_backend(config)):
            print_success(f"Backend reachable at {config.backend.base_url}")
        else:
            print_error(f"Backend not reachable at {config.backend.base_url}")
            raise typer.Exit(1)
