"""CLI command modules."""

from inkbridge.cli.commands import config, run, status, teams

__all__ = ["config", "run", "status", "teams"]
