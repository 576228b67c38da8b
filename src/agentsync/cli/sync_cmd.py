"""Sync commands: push, pull, status."""

from __future__ import annotations

import difflib

import click
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from ..collector import format_size
from ..errors import SyncError
from ..hashing import short_hash
from ..models import FileConflict, PullResult
from ..storage.state import format_last_sync
from ._common import console, fail, get_engine, provider_option, status_label, verbose_option


def conflict_diff(conflict: FileConflict) -> str:
    """Unified diff from the local file to the remote one."""
    return "".join(difflib.unified_diff(
        conflict.local_content.splitlines(keepends=True),
        conflict.remote_content.splitlines(keepends=True),
        fromfile=f"local/{conflict.provider_id}/{conflict.path}",
        tofile=f"remote/{conflict.provider_id}/{conflict.path}",
    ))


def _print_plan(result: PullResult) -> None:
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("Assistant", style="bold cyan")
    table.add_column("New", justify="right")
    table.add_column("Changed", justify="right")
    table.add_column("Same", justify="right", style="dim")
    for pid, plan in result.plans.items():
        table.add_row(pid, str(len(plan.creates)), str(len(plan.updates)), str(len(plan.unchanged)))
    console.print(table)
    for pid, plan in result.plans.items():
        for path in plan.skipped:
            console.print(f"  [yellow]Skipping[/] {pid}/{escape(path)} [dim](unsafe or blocked path)[/]")
    console.print(
        f"  MCP servers: {result.mcp_server_count}   "
        f"Session contexts: {result.context_count}"
    )


def _confirm_pull(result: PullResult) -> bool:
    console.print()
    if result.remote_updated_at:
        console.print(f"  [dim]Remote updated {result.remote_updated_at}[/]")
    _print_plan(result)

    for conflict in result.conflicts:
        console.print(f"\n  [bold yellow]Conflict:[/] {conflict.provider_id}/{conflict.path}")
        console.print(Syntax(conflict_diff(conflict), "diff", theme="ansi_dark"))

    if result.conflicts:
        prompt = f"\n  Overwrite {len(result.conflicts)} locally changed file(s) with the remote version?"
    else:
        prompt = "\n  Apply remote configuration?"
    return click.confirm(prompt, default=False)


def register_sync_commands(main: click.Group) -> None:
    """Register push, pull and status."""

    @main.command("push")
    @click.option("--force", "-f", is_flag=True, help="Upload even if nothing changed.")
    @provider_option
    @verbose_option
    def push(force, providers):
        """Encrypt local assistant settings and upload them."""
        engine = get_engine()
        console.print("\n  Collecting and uploading...", end=" ")
        try:
            result = engine.push(list(providers), force=force)
        except (SyncError, ValueError) as exc:
            console.print("[red]failed[/]")
            fail(exc)

        if not result.pushed:
            console.print("[yellow]no changes[/]")
            console.print("  [dim]Use --force to upload anyway.[/]\n")
            return

        console.print("[green]done[/]")
        for pid, count in result.file_counts.items():
            console.print(f"    [cyan]{pid}[/]: {count} file(s)")
        console.print(f"    MCP servers: {result.mcp_server_count}")
        console.print(f"    Session contexts: {result.context_count}")
        verb = "Created" if result.created else "Updated"
        console.print(f"  [green]{verb} gist[/] {result.container_id}\n")

    @main.command("pull")
    @click.option("--force", "-f", is_flag=True, help="Overwrite local files without asking.")
    @provider_option
    @verbose_option
    def pull(force, providers):
        """Download remote settings and apply them locally."""
        engine = get_engine()
        console.print("\n  Fetching and decrypting...")
        try:
            result = engine.pull(
                list(providers),
                force=force,
                confirm=None if force else _confirm_pull,
            )
        except (SyncError, ValueError) as exc:
            fail(exc)

        if not result.applied:
            console.print("  [yellow]Nothing written.[/]\n")
            return

        for pid, count in result.written.items():
            console.print(f"    [cyan]{pid}[/]: {count} file(s) written")
        if result.payload_version == 1:
            console.print("  [dim]Remote data is in the legacy single-provider format.[/]")
        console.print("  [green]Pull complete.[/]\n")

    @main.command("status")
    @provider_option
    @verbose_option
    def status(providers):
        """Show what would be pushed. Makes no network calls."""
        engine = get_engine()
        try:
            report = engine.status(list(providers))
        except (SyncError, ValueError) as exc:
            fail(exc)

        configured = "[green]yes[/]" if report.configured else "[red]no[/] (run agentsync init)"
        console.print()
        console.print(
            Panel(
                f"Configured: {configured}\n"
                f"State: {status_label(report.status)}\n"
                f"Gist: {report.container_id or '[dim]none[/]'}\n"
                f"Last sync: {format_last_sync(report.last_sync)}\n"
                f"Config changed: {'yes' if report.config_changed else 'no'}\n"
                f"Contexts changed: {'yes' if report.contexts_changed else 'no'}\n"
                f"Session contexts: {report.context_count}",
                title="agentsync",
                border_style="cyan",
            )
        )

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Assistant", style="bold cyan")
        table.add_column("Root", style="dim")
        table.add_column("Files", justify="right")
        table.add_column("Size", justify="right")
        table.add_column("Hash", style="dim")
        for row in report.providers:
            if not row.installed:
                table.add_row(row.name, str(row.config_root), "[dim]not installed[/]", "", "")
                continue
            table.add_row(
                row.name,
                str(row.config_root),
                str(row.file_count),
                format_size(row.total_size),
                short_hash(row.combined_hash) if row.combined_hash else "-",
            )
        console.print(table)
        console.print()
