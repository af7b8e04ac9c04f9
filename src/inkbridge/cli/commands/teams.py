"""
inkbridge teams - Microsoft Teams OAuth helpers.

Usage:
    inkbridge teams auth-url
    inkbridge teams exchange CODE [--save]
"""

import asyncio
from typing import Annotated, Optional

import typer
from pydantic import ValidationError

from inkbridge.cli.output import console, print_error, print_info, print_success
from inkbridge.config import Config, ConfigurationError, TeamsConfig
from inkbridge.config.loader import (
    apply_env_overrides,
    load_yaml_file,
    resolve_env_references,
    save_yaml_file,
)
from inkbridge.config.merger import get_nested_value, merge_layers, set_nested_value
from inkbridge.platforms.exceptions import TokenRefreshFailedError
from inkbridge.platforms.token_manager import build_authorize_url, exchange_code
from inkbridge.storage.paths import get_global_config_path

app = typer.Typer(
    name="teams",
    help="Microsoft Teams OAuth helpers.",
)


def _load_teams_section() -> TeamsConfig:
    """Read platforms.teams without the enabled-section token check.

    The OAuth commands run before any token exists, so a section with
    ``enable: true`` and only a client ID must still load.
    """
    raw = merge_layers(Config().model_dump(), load_yaml_file(get_global_config_path()))
    section = resolve_env_references(get_nested_value(apply_env_overrides(raw), "platforms.teams"))
    try:
        return TeamsConfig.model_validate({**section, "enable": False})
    except ValidationError as e:
        raise ConfigurationError(f"Invalid platforms.teams section: {e}") from e


def _teams_settings(client_id: Optional[str], tenant_id: Optional[str]):
    """Merge command-line overrides with the platforms.teams section."""
    try:
        teams = _load_teams_section()
    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)

    client_id = client_id or teams.client_id
    if not client_id:
        print_error("No client ID. Pass --client-id or set platforms.teams.client_id.")
        raise typer.Exit(1)
    return client_id, tenant_id or teams.tenant_id, teams


@app.command("auth-url")
def auth_url(
    client_id: Annotated[
        Optional[str],
        typer.Option("--client-id", help="Azure AD application ID."),
    ] = None,
    tenant_id: Annotated[
        Optional[str],
        typer.Option("--tenant-id", help="Tenant ID (default: common)."),
    ] = None,
) -> None:
    """Print the sign-in URL that starts the authorization code flow."""
    client_id, tenant_id, teams = _teams_settings(client_id, tenant_id)
    url = build_authorize_url(client_id, tenant_id, redirect_uri=teams.redirect_uri)

    console.print("[bold]1.[/bold] Open this URL in your browser:\n")
    console.print(url, soft_wrap=True)
    console.print("\n[bold]2.[/bold] Sign in and grant permissions")
    console.print(f"[bold]3.[/bold] Copy the [cyan]code[/cyan] parameter from {teams.redirect_uri}")
    console.print("[bold]4.[/bold] Run [bold]inkbridge teams exchange CODE --save[/bold]")


@app.command("exchange")
def exchange(
    code: Annotated[str, typer.Argument(help="Authorization code from the redirect URL.")],
    client_id: Annotated[
        Optional[str],
        typer.Option("--client-id", help="Azure AD application ID."),
    ] = None,
    tenant_id: Annotated[
        Optional[str],
        typer.Option("--tenant-id", help="Tenant ID (default: common)."),
    ] = None,
    save: Annotated[
        bool,
        typer.Option("--save", help="Store the tokens in ~/.inkbridge/config.yaml."),
    ] = False,
) -> None:
    """Redeem an authorization code for access and refresh tokens."""
    client_id, tenant_id, teams = _teams_settings(client_id, tenant_id)

    try:
        tokens = asyncio.run(
            exchange_code(
                client_id,
                code,
                tenant_id=tenant_id,
                redirect_uri=teams.redirect_uri,
                client_secret=teams.client_secret,
            )
        )
    except TokenRefreshFailedError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_success(f"Tokens received (access token expires in {tokens.get('expires_in', '?')}s)")

    if not save:
        console.print(f"\n[dim]refresh_token:[/dim] {tokens.get('refresh_token', '')}")
        print_info("Re-run with --save to store the tokens in your config file.")
        return

    path = get_global_config_path()
    try:
        data = load_yaml_file(path)
        set_nested_value(data, "platforms.teams.client_id", client_id)
        set_nested_value(data, "platforms.teams.tenant_id", tenant_id)
        set_nested_value(data, "platforms.teams.access_token", tokens.get("access_token"))
        if tokens.get("refresh_token"):
            set_nested_value(data, "platforms.teams.refresh_token", tokens["refresh_token"])
        save_yaml_file(path, data)
    except ConfigurationError as e:
        print_error(str(e))
        raise typer.Exit(1)
    print_success(f"Saved Teams credentials to {path}")
