"""
Content fingerprinting for change detection.

Every snapshot, payload and state comparison in agentsync reduces to
SHA-256 hex digests produced here.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any, Iterable, Union

Content = Union[str, bytes]

SEPARATOR = b"\0"


def _as_bytes(content: Content) -> bytes:
    if isinstance(content, str):
        return content.encode("utf-8")
    return content


def fingerprint(content: Content) -> str:
    """Compute the SHA-256 hex digest of a string or byte sequence.

    Args:
        content: Text (encoded as UTF-8) or raw bytes.

    Returns:
        64-character lowercase hex digest.
    """
    return hashlib.sha256(_as_bytes(content)).hexdigest()


def fingerprint_many(contents: Iterable[Content]) -> str:
    """Hash several contents in order, each followed by a NUL separator.

    The result depends on the order of ``contents``; callers that want an
    order-independent digest must sort first.

    Args:
        contents: Sequence of strings or bytes.

    Returns:
        Hex digest of the separated concatenation.
    """
    h = hashlib.sha256()
    for content in contents:
        h.update(_as_bytes(content))
        h.update(SEPARATOR)
    return h.hexdigest()


def hash_object(obj: Any) -> str:
    """Hash a JSON-serializable object with keys sorted."""
    return fingerprint(json.dumps(obj, sort_keys=True, separators=(",", ":")))


def hash_equals(first: str, second: str) -> bool:
    """Constant-time digest comparison."""
    return hmac.compare_digest(first.encode(), second.encode())


def short_hash(digest: str, length: int = 8) -> str:
    """Truncate a digest for display."""
    return digest[:length]
