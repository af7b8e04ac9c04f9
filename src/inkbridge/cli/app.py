"""Root typer application for the inkbridge CLI."""

from typing import Annotated

import typer

from inkbridge import __version__
from inkbridge.cli.commands import config, run, status, teams
from inkbridge.cli.output import print_info

app = typer.Typer(
    name="inkbridge",
    help="Bridge Telegram and Microsoft Teams chats to an opencode agent.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
)

for group in (run, status, config, teams):
    app.add_typer(group.app, name=group.app.info.name)


def _show_version(value: bool) -> None:
    if value:
        print_info(f"inkbridge version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=_show_version,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    [bold blue]inkbridge[/bold blue] connects chat platforms to opencode sessions.

    Start the bridge with [bold]inkbridge run[/bold]; check the setup with
    [bold]inkbridge status --check[/bold].
    """
