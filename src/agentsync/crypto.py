"""
Passphrase envelope -- AES-256-GCM over PBKDF2-SHA256.

Nothing leaves the machine in the clear. Each call to ``encrypt`` draws a
fresh 256-bit salt and 96-bit IV. The key comes from 100,000 PBKDF2
rounds over the passphrase and the plaintext is sealed with a 128-bit
GCM tag.

There is no separate passphrase check: a wrong passphrase and a flipped
bit anywhere in the envelope both surface as a tag that does not verify,
raised as ``DecryptionError``.

Envelope wire format (stable across clients):

    {"ciphertext": b64, "iv": b64, "tag": b64, "salt": b64, "version": 1}
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import os
import secrets
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.hashes import SHA256
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .errors import DecryptionError, SchemaError

ENVELOPE_VERSION = 1
KEY_LENGTH = 32
IV_LENGTH = 12
SALT_LENGTH = 32
TAG_LENGTH = 16
PBKDF2_ITERATIONS = 100_000

_PASSPHRASE_WORDS = [
    "alpha", "bravo", "charlie", "delta", "echo", "foxtrot", "golf", "hotel",
    "india", "juliet", "kilo", "lima", "mike", "november", "oscar", "papa",
    "quebec", "romeo", "sierra", "tango", "uniform", "victor", "whiskey",
    "xray", "yankee", "zulu", "red", "blue", "green", "black", "white",
    "orange", "purple", "silver", "golden", "cosmic", "thunder", "shadow",
    "crystal", "phoenix", "dragon", "falcon", "tiger", "eagle", "wolf",
]


class Envelope(BaseModel):
    """Encrypted-at-rest wrapper around one serialized payload.

    The auth tag travels as ``tag``; ``authTag`` is accepted on read.
    """

    model_config = ConfigDict(populate_by_name=True)

    ciphertext: str
    iv: str
    auth_tag: str = Field(
        validation_alias=AliasChoices("tag", "authTag", "auth_tag"),
        serialization_alias="tag",
    )
    salt: str
    version: int = ENVELOPE_VERSION

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _unb64(value: str, field: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecryptionError(f"Envelope field '{field}' is not valid base64") from exc


def derive_key(passphrase: str, salt: bytes) -> bytes:
    """Stretch a passphrase into a 256-bit key with PBKDF2-HMAC-SHA256.

    Deliberately slow (tens to hundreds of milliseconds).

    Args:
        passphrase: User passphrase.
        salt: Random per-envelope salt.

    Returns:
        32 bytes of key material.
    """
    kdf = PBKDF2HMAC(
        algorithm=SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def encrypt(plaintext: str, passphrase: str) -> Envelope:
    """Encrypt text under a passphrase.

    Args:
        plaintext: Text to seal (encoded as UTF-8).
        passphrase: User passphrase.

    Returns:
        A new Envelope with fresh salt and IV.
    """
    salt = os.urandom(SALT_LENGTH)
    iv = os.urandom(IV_LENGTH)
    key = derive_key(passphrase, salt)

    sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]

    return Envelope(
        ciphertext=_b64(ciphertext),
        iv=_b64(iv),
        auth_tag=_b64(tag),
        salt=_b64(salt),
        version=ENVELOPE_VERSION,
    )


def decrypt(envelope: Envelope, passphrase: str) -> str:
    """Authenticate and decrypt an envelope.

    Args:
        envelope: Envelope produced by ``encrypt`` (here or on another device).
        passphrase: User passphrase.

    Returns:
        The original plaintext.

    Raises:
        SchemaError: If the envelope version is unknown.
        DecryptionError: If the tag does not verify or a field is malformed.
    """
    if envelope.version != ENVELOPE_VERSION:
        raise SchemaError(f"Unsupported encryption version: {envelope.version}")

    ciphertext = _unb64(envelope.ciphertext, "ciphertext")
    iv = _unb64(envelope.iv, "iv")
    tag = _unb64(envelope.auth_tag, "tag")
    salt = _unb64(envelope.salt, "salt")

    if len(iv) != IV_LENGTH or len(tag) != TAG_LENGTH:
        raise DecryptionError("Envelope IV or tag has the wrong length")

    key = derive_key(passphrase, salt)
    try:
        plain = AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as exc:
        raise DecryptionError(
            "Decryption failed: invalid passphrase or corrupted data"
        ) from exc

    try:
        return plain.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecryptionError("Decrypted data is not valid UTF-8") from exc


def encrypt_object(obj: Any, passphrase: str) -> Envelope:
    """JSON-serialize then encrypt."""
    return encrypt(json.dumps(obj), passphrase)


def decrypt_object(envelope: Envelope, passphrase: str) -> Any:
    """Decrypt then JSON-parse."""
    return json.loads(decrypt(envelope, passphrase))


async def encrypt_object_async(obj: Any, passphrase: str) -> Envelope:
    """``encrypt_object`` on a worker thread so key derivation does not stall the loop."""
    return await asyncio.to_thread(encrypt_object, obj, passphrase)


async def decrypt_object_async(envelope: Envelope, passphrase: str) -> Any:
    """``decrypt_object`` on a worker thread so key derivation does not stall the loop."""
    return await asyncio.to_thread(decrypt_object, envelope, passphrase)


def is_envelope(data: Any) -> bool:
    """Check whether ``data`` has the shape of a serialized envelope."""
    if not isinstance(data, dict):
        return False
    tag = data.get("tag", data.get("authTag"))
    return (
        isinstance(data.get("ciphertext"), str)
        and isinstance(data.get("iv"), str)
        and isinstance(tag, str)
        and isinstance(data.get("salt"), str)
        and data.get("version") == ENVELOPE_VERSION
    )


def generate_passphrase(word_count: int = 4) -> str:
    """Suggest a memorable passphrase like ``falcon-delta-cosmic-lima``."""
    return "-".join(secrets.choice(_PASSPHRASE_WORDS) for _ in range(word_count))
