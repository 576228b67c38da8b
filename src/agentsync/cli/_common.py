"""Shared utilities for all CLI command modules.

Provides the Rich console, logging setup, the provider option and the
error exit used by every command group.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import NoReturn, Optional

import click
from rich.console import Console
from rich.markup import escape

from ..engine import SyncEngine
from ..errors import SyncError, format_error
from ..models import SyncStatus
from ..providers.base import ProviderKind

console = Console()
logger = logging.getLogger("agentsync.cli")

PROVIDER_IDS = [k.value for k in ProviderKind]


def configure_logging(verbose: bool = False) -> None:
    """Configure the root logger once per process."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def verbose_option(func):
    """``--verbose`` on a subcommand, same effect as on the main group."""

    def _enable(ctx, param, value):
        if value:
            configure_logging(True)
        return value

    return click.option(
        "--verbose", "-v", is_flag=True, expose_value=False,
        callback=_enable, help="Show debug logging.",
    )(func)


def provider_option(func):
    return click.option(
        "--provider", "-p", "providers", multiple=True,
        type=click.Choice(PROVIDER_IDS),
        help="Limit to this assistant (repeatable). Default: all.",
    )(func)


def get_engine(sync_dir: Optional[Path] = None) -> SyncEngine:
    return SyncEngine(sync_dir=sync_dir)


def fail(error: Exception) -> NoReturn:
    """Print an error the way users should see it and exit 1."""
    if isinstance(error, SyncError):
        logger.debug("%s: %s (%s)", error.code.value, error.message, error.context)
        console.print(f"\n[bold red]{escape(format_error(error))}[/]\n", highlight=False)
    else:
        console.print(f"\n[bold red]Error:[/] {escape(str(error))}\n", highlight=False)
    sys.exit(1)


def status_label(status: SyncStatus) -> str:
    return {
        SyncStatus.UNSYNCED: "[yellow]never synced[/]",
        SyncStatus.UP_TO_DATE: "[bold green]up to date[/]",
        SyncStatus.LOCAL_AHEAD: "[bold yellow]local changes[/]",
        SyncStatus.REMOTE_AHEAD: "[bold cyan]remote changes[/]",
    }.get(status, "[dim]unknown[/]")
