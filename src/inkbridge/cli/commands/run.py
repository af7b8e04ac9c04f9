"""
inkbridge run - Start the bridge.

Usage:
    inkbridge run
    inkbridge run --platform telegram
    inkbridge run --verbose
"""

import asyncio
import signal
from pathlib import Path
from typing import Annotated, Optional

import typer

from inkbridge.cli.output import console, print_error, print_success, print_warning, setup_logging
from inkbridge.config import Config, ConfigurationError, load_config
from inkbridge.platforms.runtime import bootstrap, shutdown

app = typer.Typer(
    name="run",
    help="Start the bridge.",
    invoke_without_command=True,
)


async def _serve(config: Config, platform_filter: Optional[str] = None) -> None:
    """Bootstrap the bridge and run until interrupted."""
    state = await bootstrap(config, platform_filter=platform_filter)

    keys = state.mux.keys
    if not keys:
        print_warning("No platforms enabled; only the backend listener is running")
    else:
        print_success(f"Bridge started with {len(keys)} platform(s)")
        for key in keys:
            console.print(f"  [cyan]•[/cyan] {key}")
    console.print(f"  [dim]Backend:[/dim] {config.backend.base_url}")
    console.print(f"  [dim]Response mode:[/dim] {config.bridge.response_mode}")
    console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # not available on this platform, Ctrl+C raises KeyboardInterrupt instead
            pass

    try:
        await stop.wait()
    finally:
        console.print("\n[yellow]Stopping bridge...[/yellow]")
        await shutdown()
        print_success("Bridge stopped")


@app.callback(invoke_without_command=True)
def run(
    platform: Annotated[
        Optional[str],
        typer.Option(
            "--platform",
            "-p",
            help="Start only this platform (telegram or teams).",
        ),
    ] = None,
    config_file: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Config file to use instead of ~/.inkbridge/config.yaml.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable debug logging.",
        ),
    ] = False,
) -> None:
    """Start the bridge and run until stopped with Ctrl+C."""
    try:
        config = load_config(config_path=config_file)
    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)

    setup_logging("DEBUG" if verbose else config.logging.level)

    try:
        asyncio.run(_serve(config, platform_filter=platform))
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped by user[/yellow]")
    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)
    except ImportError as e:
        print_error(f"Platform library missing: {e}")
        raise typer.Exit(1)
