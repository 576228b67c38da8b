"""
agentsync CLI -- push, pull and inspect assistant settings.

Each command group lives in its own module and is attached to the main
Click group through a ``register_*_commands`` function.

Entry point: agentsync.cli:main
"""

from __future__ import annotations

import click

from .. import __version__
from ._common import configure_logging


@click.group()
@click.version_option(version=__version__, prog_name="agentsync")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def main(verbose):
    """agentsync -- encrypted settings sync for AI coding assistants.

    OpenCode, Claude Code, Codex and Gemini CLI, kept in step through a
    private GitHub Gist.
    """
    configure_logging(verbose)


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .init_cmd import register_init_commands
from .sync_cmd import register_sync_commands
from .mcp_cmd import register_mcp_commands

register_init_commands(main)
register_sync_commands(main)
register_mcp_commands(main)
