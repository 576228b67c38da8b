"""
Error taxonomy for sync operations.

Library code raises the narrow subclasses below. Remote and filesystem
exceptions are left to propagate untouched until the orchestrator feeds
them through ``to_sync_error``, which attaches a code, the operation and
the container id so the CLI can print a message and a way out.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

import requests


class ErrorCode(str, Enum):
    """Machine-readable failure codes."""

    AUTH_NOT_CONFIGURED = "AUTH_NOT_CONFIGURED"
    AUTH_INVALID_TOKEN = "AUTH_INVALID_TOKEN"
    AUTH_TOKEN_EXPIRED = "AUTH_TOKEN_EXPIRED"
    AUTH_MISSING_SCOPE = "AUTH_MISSING_SCOPE"

    ENCRYPTION_FAILED = "ENCRYPTION_FAILED"
    DECRYPTION_FAILED = "DECRYPTION_FAILED"
    INVALID_PASSPHRASE = "INVALID_PASSPHRASE"

    NETWORK_ERROR = "NETWORK_ERROR"
    CONTAINER_NOT_FOUND = "CONTAINER_NOT_FOUND"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    RATE_LIMITED = "RATE_LIMITED"

    STORAGE_READ_ERROR = "STORAGE_READ_ERROR"
    STORAGE_WRITE_ERROR = "STORAGE_WRITE_ERROR"

    SYNC_CONFLICT = "SYNC_CONFLICT"
    SYNC_NO_CHANGES = "SYNC_NO_CHANGES"
    SYNC_VERSION_MISMATCH = "SYNC_VERSION_MISMATCH"

    UNKNOWN_ERROR = "UNKNOWN_ERROR"


_USER_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.AUTH_NOT_CONFIGURED: "Sync not configured. Run 'agentsync init' to set up.",
    ErrorCode.AUTH_INVALID_TOKEN: "Invalid GitHub token. Run 'agentsync init --force' to reconfigure.",
    ErrorCode.AUTH_TOKEN_EXPIRED: "GitHub token has expired. Create a new token and run 'agentsync init --force'.",
    ErrorCode.AUTH_MISSING_SCOPE: "GitHub token is missing the 'gist' scope.",
    ErrorCode.ENCRYPTION_FAILED: "Failed to encrypt data. Please try again.",
    ErrorCode.DECRYPTION_FAILED: "Decryption failed. Check that your passphrase is correct.",
    ErrorCode.INVALID_PASSPHRASE: "Decryption failed. Check that your passphrase is correct.",
    ErrorCode.NETWORK_ERROR: "Network error. Check your internet connection.",
    ErrorCode.CONTAINER_NOT_FOUND: "Sync data not found. The Gist may have been deleted or its ID is wrong.",
    ErrorCode.PERMISSION_DENIED: "Permission denied. Check that your GitHub token has gist access.",
    ErrorCode.RATE_LIMITED: "GitHub API rate limit exceeded. Please try again later.",
    ErrorCode.STORAGE_READ_ERROR: "Failed to read local data. Check file permissions.",
    ErrorCode.STORAGE_WRITE_ERROR: "Failed to write local data. Check disk space and permissions.",
    ErrorCode.SYNC_CONFLICT: "Sync conflict detected. Use --force to overwrite or resolve manually.",
    ErrorCode.SYNC_NO_CHANGES: "No changes to sync.",
    ErrorCode.SYNC_VERSION_MISMATCH: "Sync data was written by a newer agentsync. Please upgrade.",
}

_TOKEN_STEPS = [
    "1. Go to: https://github.com/settings/tokens/new",
    "2. Create a token with the 'gist' scope",
    "3. Run: agentsync init --force",
]

_SUGGESTIONS: dict[ErrorCode, list[str]] = {
    ErrorCode.AUTH_NOT_CONFIGURED: ["Run: agentsync init"],
    ErrorCode.AUTH_INVALID_TOKEN: _TOKEN_STEPS,
    ErrorCode.AUTH_TOKEN_EXPIRED: _TOKEN_STEPS,
    ErrorCode.AUTH_MISSING_SCOPE: _TOKEN_STEPS,
    ErrorCode.PERMISSION_DENIED: _TOKEN_STEPS,
    ErrorCode.DECRYPTION_FAILED: [
        "Use the same passphrase as on your other devices.",
        "If it is lost, start fresh with 'agentsync init --force'.",
    ],
    ErrorCode.INVALID_PASSPHRASE: [
        "Use the same passphrase as on your other devices.",
        "If it is lost, start fresh with 'agentsync init --force'.",
    ],
    ErrorCode.NETWORK_ERROR: [
        "Check your internet connection",
        "Try again in a few moments",
    ],
    ErrorCode.RATE_LIMITED: [
        "Wait a few minutes before trying again",
        "Authenticated requests are limited to 5000 per hour",
    ],
    ErrorCode.SYNC_CONFLICT: [
        "Use 'agentsync pull --force' to overwrite local changes",
        "Or 'agentsync push --force' to overwrite remote",
    ],
    ErrorCode.SYNC_VERSION_MISMATCH: ["Upgrade: pip install -U agentsync"],
}


class SyncError(Exception):
    """Base error for every sync failure surfaced to callers.

    Args:
        code: Classification code.
        message: Technical detail (usually the underlying exception text).
        context: Extra fields such as ``operation`` and ``container_id``.
    """

    default_code = ErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str = "",
        code: Optional[ErrorCode] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context = context or {}

    def user_message(self) -> str:
        """Return the human-readable explanation for ``code``."""
        return _USER_MESSAGES.get(self.code) or self.message or "An unknown error occurred."

    def recovery_suggestions(self) -> list[str]:
        """Return follow-up steps the user can take."""
        return list(_SUGGESTIONS.get(self.code, []))


class AuthError(SyncError):
    """Missing, invalid, expired or under-scoped remote credential."""

    default_code = ErrorCode.AUTH_INVALID_TOKEN


class DecryptionError(SyncError):
    """Authentication tag did not verify: wrong passphrase or tampered data."""

    default_code = ErrorCode.DECRYPTION_FAILED


class TransportError(SyncError):
    """Network failure or an error status from the remote store."""

    default_code = ErrorCode.NETWORK_ERROR


class StorageError(SyncError):
    """Local read/write failure."""

    default_code = ErrorCode.STORAGE_WRITE_ERROR


class ConflictError(SyncError):
    """Unresolved conflicts when no interactive resolution is possible."""

    default_code = ErrorCode.SYNC_CONFLICT

    def __init__(self, message: str = "", conflicts: Optional[list] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.conflicts = conflicts or []


class SchemaError(SyncError):
    """Payload or envelope version this client does not understand."""

    default_code = ErrorCode.SYNC_VERSION_MISMATCH


def _classify_http(exc: requests.HTTPError) -> SyncError:
    response = exc.response
    status = response.status_code if response is not None else 0
    headers = response.headers if response is not None else {}

    if status == 401:
        return AuthError(str(exc), ErrorCode.AUTH_INVALID_TOKEN)
    if status == 429 or (status == 403 and headers.get("X-RateLimit-Remaining") == "0"):
        return TransportError(str(exc), ErrorCode.RATE_LIMITED)
    if status == 403:
        return TransportError(str(exc), ErrorCode.PERMISSION_DENIED)
    if status == 404:
        return TransportError(str(exc), ErrorCode.CONTAINER_NOT_FOUND)
    return TransportError(str(exc), ErrorCode.NETWORK_ERROR)


def to_sync_error(exc: BaseException, **context: Any) -> SyncError:
    """Classify any exception into the sync taxonomy.

    Args:
        exc: The exception raised by a collaborator.
        **context: Fields merged into ``SyncError.context``.

    Returns:
        A SyncError (the original one if ``exc`` already is one).
    """
    if isinstance(exc, SyncError):
        err = exc
    elif isinstance(exc, requests.HTTPError):
        err = _classify_http(exc)
    elif isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        err = TransportError(str(exc), ErrorCode.NETWORK_ERROR)
    elif isinstance(exc, requests.RequestException):
        err = TransportError(str(exc), ErrorCode.NETWORK_ERROR)
    elif isinstance(exc, OSError):
        err = StorageError(str(exc), ErrorCode.STORAGE_WRITE_ERROR)
    else:
        err = SyncError(str(exc), ErrorCode.UNKNOWN_ERROR)

    for key, value in context.items():
        err.context.setdefault(key, value)
    return err


def format_error(error: SyncError) -> str:
    """Render an error and its suggestions for terminal output."""
    lines = [f"Error: {error.user_message()}"]
    suggestions = error.recovery_suggestions()
    if suggestions:
        lines.append("")
        lines.append("Suggestions:")
        lines.extend(f"  {s}" for s in suggestions)
    return "\n".join(lines)
