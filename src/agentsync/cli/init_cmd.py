"""Init command: store a GitHub token and encryption passphrase."""

from __future__ import annotations

import click
import requests

from ..config import load_settings
from ..crypto import generate_passphrase
from ..errors import AuthError, ErrorCode, to_sync_error
from ..gist import GistClient
from ..models import Credentials
from ..paths import sync_home
from ..storage import CredentialStore, StateStore
from ._common import console, fail, verbose_option

MIN_TOKEN_LENGTH = 10
MIN_PASSPHRASE_LENGTH = 8


def register_init_commands(main: click.Group) -> None:
    """Register the init command."""

    @main.command("init")
    @click.option("--force", is_flag=True, help="Replace existing credentials.")
    @verbose_option
    def init(force):
        """Set up the GitHub token and encryption passphrase.

        Use the SAME passphrase on every device; it is the only way to
        read the synced data.
        """
        store = CredentialStore()
        if store.is_configured() and not force:
            console.print("\n  [green]Already configured.[/]")
            console.print(f"  [dim]Sync storage: {sync_home()}[/]")
            console.print("  [dim]Use --force to reconfigure.[/]\n")
            return

        settings = load_settings()

        console.print("\n  [bold]Step 1:[/] GitHub token with the [cyan]gist[/] scope")
        console.print("  [dim]Create one at https://github.com/settings/tokens/new[/]\n")
        token = click.prompt("  GitHub token", hide_input=True).strip()
        if len(token) < MIN_TOKEN_LENGTH:
            fail(AuthError("Token too short", ErrorCode.AUTH_INVALID_TOKEN))

        client = GistClient(token, api_url=settings.api_url, timeout=settings.timeout)
        console.print("  Validating token...", end=" ")
        if not client.validate_token():
            console.print("[red]rejected[/]")
            fail(AuthError("Token rejected", ErrorCode.AUTH_MISSING_SCOPE))
        try:
            user = client.get_user()
        except requests.RequestException as exc:
            fail(to_sync_error(exc, operation="init"))
        who = user["login"] + (f" ({user['name']})" if user.get("name") else "")
        console.print(f"[green]ok[/] as [cyan]{who}[/]")

        console.print("\n  [bold]Step 2:[/] Encryption passphrase")
        console.print(f"  [dim]Suggested: {generate_passphrase()}[/]\n")
        passphrase = click.prompt(
            "  Passphrase", hide_input=True, confirmation_prompt=True,
        )
        if len(passphrase) < MIN_PASSPHRASE_LENGTH:
            fail(ValueError(f"Passphrase must be at least {MIN_PASSPHRASE_LENGTH} characters."))

        console.print("\n  Looking for existing sync data...", end=" ")
        try:
            existing = client.find_sync_container()
        except requests.RequestException as exc:
            console.print("[red]failed[/]")
            fail(to_sync_error(exc, operation="init"))

        container_id = None
        if existing is None:
            console.print("[dim]none[/]")
        else:
            console.print(f"[green]found[/] {existing.id}")
            if click.confirm("  Use this gist for sync?", default=True):
                container_id = existing.id

        store.save(Credentials(
            remote_token=token,
            passphrase=passphrase,
            remote_container_id=container_id,
        ))
        StateStore().clear()

        console.print("\n  [green]Credentials saved.[/]")
        if container_id:
            console.print("  Next: [cyan]agentsync pull[/]\n")
        else:
            console.print("  Next: [cyan]agentsync push[/]\n")
