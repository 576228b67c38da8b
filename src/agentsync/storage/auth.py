"""
Credential store -- GitHub token, passphrase and gist id.

The token is sealed with the same envelope used for sync data, keyed by
the passphrase plus a machine key. The passphrase itself is stored as-is:
the user has to type it on every other device anyway.
"""

from __future__ import annotations

import getpass
import json
import logging
import platform
import sys
from pathlib import Path
from typing import Optional

from ..crypto import Envelope, decrypt, encrypt
from ..errors import ErrorCode, StorageError, SyncError
from ..models import Credentials
from ..paths import sync_home
from ._io import write_json

logger = logging.getLogger("agentsync.storage.auth")

AUTH_FILENAME = "auth.json"

# Architecture names as other clients report them.
_ARCH_ALIASES = {
    "x86_64": "x64",
    "amd64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "ia32",
    "i686": "ia32",
}


def machine_key() -> str:
    """Per-user, per-platform string mixed into the token encryption key."""
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "user"
    machine = platform.machine().lower()
    arch = _ARCH_ALIASES.get(machine, machine)
    return "-".join([user or "user", sys.platform, arch, "opencodesync-v1"])


class CredentialStore:
    """Reads and writes ``auth.json`` in the sync home.

    Args:
        home: Sync home directory. Defaults to ``paths.sync_home()``.
    """

    def __init__(self, home: Optional[Path] = None) -> None:
        self.home = home or sync_home()
        self.path = self.home / AUTH_FILENAME

    def is_configured(self) -> bool:
        return self.path.exists()

    def save(self, credentials: Credentials) -> None:
        sealed = encrypt(credentials.remote_token, credentials.passphrase + machine_key())
        stored = {
            "encryptedToken": sealed.to_wire(),
            "passphrase": credentials.passphrase,
            "version": 1,
        }
        if credentials.remote_container_id:
            stored["gistId"] = credentials.remote_container_id
        try:
            write_json(self.path, stored)
            self.path.chmod(0o600)
        except OSError as exc:
            raise StorageError(
                f"Cannot write {self.path}: {exc}",
                ErrorCode.STORAGE_WRITE_ERROR,
                {"path": str(self.path)},
            ) from exc
        logger.debug("Saved credentials to %s", self.path)

    def load(self) -> Optional[Credentials]:
        """Return stored credentials, or None if absent or unreadable."""
        if not self.path.exists():
            return None
        try:
            stored = json.loads(self.path.read_text(encoding="utf-8"))
            if stored.get("version") != 1:
                logger.warning("Unknown auth version: %s", stored.get("version"))
                return None
            envelope = Envelope.model_validate(stored["encryptedToken"])
            token = decrypt(envelope, stored["passphrase"] + machine_key())
        except (OSError, ValueError, KeyError, AttributeError, SyncError) as exc:
            logger.warning("Failed to load credentials: %s", exc)
            return None
        return Credentials(
            remote_token=token,
            passphrase=stored["passphrase"],
            remote_container_id=stored.get("gistId"),
        )

    def update_container_id(self, container_id: str) -> Credentials:
        """Remember the gist id after the first push.

        Raises:
            SyncError: If no credentials are stored yet.
        """
        credentials = self.load()
        if credentials is None:
            raise SyncError("No credentials stored", ErrorCode.AUTH_NOT_CONFIGURED)
        updated = credentials.model_copy(update={"remote_container_id": container_id})
        self.save(updated)
        return updated

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
