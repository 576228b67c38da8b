"""Tests for the passphrase envelope (AES-256-GCM over PBKDF2)."""

from __future__ import annotations

import asyncio
import base64

import pytest

from agentsync.crypto import (
    ENVELOPE_VERSION,
    Envelope,
    decrypt,
    decrypt_object,
    decrypt_object_async,
    encrypt,
    encrypt_object,
    encrypt_object_async,
    generate_passphrase,
    is_envelope,
)
from agentsync.errors import DecryptionError, ErrorCode, SchemaError

PASSPHRASE = "correct-horse-battery"


def _flip_bit(value: str) -> str:
    raw = bytearray(base64.b64decode(value))
    raw[0] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")


@pytest.fixture(scope="module")
def sealed() -> Envelope:
    return encrypt_object({"providers": {"opencode": {"files": []}}, "n": 3}, PASSPHRASE)


class TestRoundTrip:
    def test_text(self):
        assert decrypt(encrypt("héllo wörld", PASSPHRASE), PASSPHRASE) == "héllo wörld"

    def test_object(self, sealed):
        assert decrypt_object(sealed, PASSPHRASE) == {
            "providers": {"opencode": {"files": []}},
            "n": 3,
        }

    def test_async_variants(self):
        async def run():
            env = await encrypt_object_async([1, "two", None], PASSPHRASE)
            return await decrypt_object_async(env, PASSPHRASE)

        assert asyncio.run(run()) == [1, "two", None]

    def test_fresh_salt_and_iv_each_call(self):
        first = encrypt("same", PASSPHRASE)
        second = encrypt("same", PASSPHRASE)
        assert first.salt != second.salt
        assert first.iv != second.iv
        assert first.ciphertext != second.ciphertext

    def test_field_sizes(self, sealed):
        assert len(base64.b64decode(sealed.salt)) == 32
        assert len(base64.b64decode(sealed.iv)) == 12
        assert len(base64.b64decode(sealed.auth_tag)) == 16
        assert sealed.version == ENVELOPE_VERSION


class TestTamperDetection:
    """Any modified field must fail authentication, never yield garbage."""

    @pytest.mark.parametrize("field", ["ciphertext", "auth_tag", "iv"])
    def test_flipped_bit(self, sealed, field):
        tampered = sealed.model_copy(update={field: _flip_bit(getattr(sealed, field))})
        with pytest.raises(DecryptionError) as exc_info:
            decrypt(tampered, PASSPHRASE)
        assert exc_info.value.code == ErrorCode.DECRYPTION_FAILED

    def test_wrong_passphrase(self, sealed):
        with pytest.raises(DecryptionError):
            decrypt_object(sealed, "not-the-passphrase")

    def test_malformed_base64(self, sealed):
        broken = sealed.model_copy(update={"iv": "!!not base64!!"})
        with pytest.raises(DecryptionError):
            decrypt(broken, PASSPHRASE)

    def test_unknown_version_fails_closed(self, sealed):
        future = sealed.model_copy(update={"version": 2})
        with pytest.raises(SchemaError):
            decrypt(future, PASSPHRASE)


class TestWireFormat:
    def test_tag_field_name(self, sealed):
        wire = sealed.to_wire()
        assert set(wire) == {"ciphertext", "iv", "tag", "salt", "version"}

    def test_accepts_auth_tag_alias(self, sealed):
        wire = sealed.to_wire()
        wire["authTag"] = wire.pop("tag")
        parsed = Envelope.model_validate(wire)
        assert decrypt_object(parsed, PASSPHRASE)["n"] == 3

    def test_is_envelope(self, sealed):
        assert is_envelope(sealed.to_wire())
        assert not is_envelope({"ciphertext": "x"})
        assert not is_envelope("nope")


class TestPassphrase:
    def test_word_count(self):
        assert len(generate_passphrase().split("-")) == 4
        assert len(generate_passphrase(6).split("-")) == 6
