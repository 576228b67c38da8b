"""MCP server commands: list, add, remove."""

from __future__ import annotations

from typing import Optional

import click
from pydantic import ValidationError
from rich.table import Table

from ..errors import SyncError
from ..models import MCPServerConfig, MCPTransport
from ..providers.base import ProviderKind
from ..providers.registry import build_registry
from ._common import PROVIDER_IDS, console, fail, verbose_option


def _parse_pairs(values: tuple[str, ...], label: str) -> Optional[dict[str, str]]:
    pairs = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint=label)
        pairs[key] = value
    return pairs or None


def register_mcp_commands(main: click.Group) -> None:
    """Register the mcp command group."""

    target_option = click.option(
        "--provider", "-p", "provider_id",
        type=click.Choice(PROVIDER_IDS), default=ProviderKind.OPENCODE.value,
        help="Assistant whose servers to change. opencode uses the shared ~/.mcp.json.",
    )

    @main.group()
    def mcp():
        """Manage MCP server definitions.

        The shared ~/.mcp.json (the opencode target) is the list that
        push and pull carry between devices.
        """

    @mcp.command("list")
    @click.option("--provider", "-p", "provider_id", type=click.Choice(PROVIDER_IDS),
                  default=None, help="Only this assistant. Default: all.")
    @verbose_option
    def mcp_list(provider_id):
        """List MCP servers per assistant."""
        registry = build_registry()
        providers = registry.select([provider_id] if provider_id else None)

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Assistant", style="bold cyan")
        table.add_column("Name")
        table.add_column("Type")
        table.add_column("Command / URL", style="dim")
        table.add_column("Enabled")

        for provider in providers:
            for server in provider.list_mcp_servers():
                where = server.url or " ".join([server.command or "", *(server.args or [])])
                table.add_row(
                    provider.name,
                    server.name,
                    server.type.value,
                    where.strip(),
                    "[green]yes[/]" if server.enabled else "[red]no[/]",
                )

        console.print(table)

    @mcp.command("add")
    @click.argument("name")
    @click.option("--type", "transport", type=click.Choice([t.value for t in MCPTransport]),
                  default=MCPTransport.STDIO.value)
    @click.option("--command", default=None, help="Executable (stdio).")
    @click.option("--arg", "args", multiple=True, help="Command argument (repeatable).")
    @click.option("--env", multiple=True, help="KEY=VALUE (repeatable).")
    @click.option("--url", default=None, help="Server URL (http/sse).")
    @click.option("--header", "headers", multiple=True, help="KEY=VALUE (repeatable).")
    @click.option("--cwd", default=None)
    @click.option("--disabled", is_flag=True, help="Add but keep disabled.")
    @target_option
    @verbose_option
    def mcp_add(name, transport, command, args, env, url, headers, cwd, disabled, provider_id):
        """Add or replace an MCP server."""
        try:
            server = MCPServerConfig(
                name=name,
                type=transport,
                command=command,
                args=list(args) or None,
                env=_parse_pairs(env, "--env"),
                url=url,
                headers=_parse_pairs(headers, "--header"),
                cwd=cwd,
                enabled=not disabled,
            )
        except ValidationError as exc:
            fail(ValueError(exc.errors()[0]["msg"]))

        provider = build_registry().get(provider_id)
        try:
            provider.upsert_mcp_server(server)
        except (SyncError, ValueError) as exc:
            fail(exc)
        console.print(f"  [green]Saved[/] {name} for {provider.name}")

    @mcp.command("remove")
    @click.argument("name")
    @target_option
    @verbose_option
    def mcp_remove(name, provider_id):
        """Remove an MCP server."""
        provider = build_registry().get(provider_id)
        try:
            removed = provider.remove_mcp_server(name)
        except (SyncError, ValueError) as exc:
            fail(exc)
        if removed:
            console.print(f"  [green]Removed[/] {name} from {provider.name}")
        else:
            console.print(f"  [yellow]{name} not found for {provider.name}[/]")
