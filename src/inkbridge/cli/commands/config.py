"""
inkbridge config - Configuration commands.

Usage:
    inkbridge config show
    inkbridge config show bridge
    inkbridge config validate
    inkbridge config init
"""

import json
from pathlib import Path
from typing import Annotated, Optional

import typer
import yaml
from rich.panel import Panel
from rich.syntax import Syntax

from inkbridge.cli.output import console, print_error, print_info, print_success, print_warning
from inkbridge.config import Config, ConfigurationError, load_config
from inkbridge.config.loader import save_yaml_file
from inkbridge.config.merger import get_nested_value
from inkbridge.storage.paths import get_global_config_path

app = typer.Typer(
    name="config",
    help="Configuration management.",
)

SECRET_KEYS = {"bot_token", "client_secret", "access_token", "refresh_token"}

STARTER_CONFIG = {
    "backend": {"base_url": "http://127.0.0.1:4096"},
    "bridge": {"response_mode": "stream"},
    "platforms": {
        "telegram": {"enable": False, "bot_token": "${TELEGRAM_BOT_TOKEN}"},
        "teams": {
            "enable": False,
            "client_id": "",
            "tenant_id": "common",
            "refresh_token": "${TEAMS_REFRESH_TOKEN}",
        },
    },
    "logging": {"level": "INFO"},
}


def mask_secrets(value):
    """Replace credential values with a short masked form."""
    if isinstance(value, dict):
        return {
            k: ("****" + str(v)[-4:] if k in SECRET_KEYS and v else mask_secrets(v))
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [mask_secrets(v) for v in value]
    return value


@app.command()
def show(
    section: Annotated[
        Optional[str],
        typer.Argument(
            help="Config section to show (e.g., 'bridge', 'platforms.teams').",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output as JSON.",
        ),
    ] = False,
    reveal: Annotated[
        bool,
        typer.Option(
            "--reveal",
            help="Show credentials unmasked.",
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
    """Show the effective (merged) configuration."""
    try:
        config = load_config(config_path=config_file)
    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)

    value = config.model_dump(mode="json")
    if section:
        value = get_nested_value(value, section)
        if value is None:
            print_error(f"Section '{section}' not found in configuration.")
            raise typer.Exit(1)
    if not reveal:
        value = mask_secrets(value)

    if json_output:
        console.print(Syntax(json.dumps(value, indent=2, ensure_ascii=False), "json"))
        return

    output = yaml.dump(value, default_flow_style=False, sort_keys=False, allow_unicode=True)
    if section:
        console.print(Panel(Syntax(output, "yaml"), title=f"[cyan]{section}[/cyan]"))
    else:
        console.print(Syntax(output, "yaml"))


@app.command("validate")
def validate(
    config_file: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Config file to validate.",
        ),
    ] = None,
) -> None:
    """Validate the merged configuration."""
    path = config_file or get_global_config_path()
    console.print(f"Validating: {path}")
    try:
        config = load_config(config_path=config_file)
    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)

    print_success("Configuration is valid.")
    enabled = config.enabled_platforms()
    print_info(f"Enabled platforms: {', '.join(enabled) if enabled else 'none'}")


@app.command("init")
def init(
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Overwrite an existing config file.",
        ),
    ] = False,
) -> None:
    """Write a starter config file to ~/.inkbridge/config.yaml."""
    path = get_global_config_path()
    if path.exists() and not force:
        print_warning(f"Configuration already exists: {path}")
        console.print("[dim]Use --force to overwrite.[/dim]")
        raise typer.Exit(1)

    Config.model_validate(STARTER_CONFIG)
    try:
        save_yaml_file(path, STARTER_CONFIG)
    except ConfigurationError as e:
        print_error(str(e))
        raise typer.Exit(1)
    print_success(f"Created configuration: {path}")
