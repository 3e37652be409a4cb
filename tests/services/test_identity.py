"""Tests for identity keypairs and signed blobs."""

from __future__ import annotations

import hashlib

import pytest

from inproto.core.errors import ValidationError
from inproto.services import identity
from inproto.utils.hash import b64url_decode, b64url_encode

FIXED_TS = 1_700_000_000_123


def test_generate_produces_fixed_width_keypair() -> None:
    keypair = identity.generate()
    assert len(keypair) == identity.KEYPAIR_ENCODED_LENGTH
    pubkey = identity.public_key_of(keypair)
    assert len(pubkey) == identity.PUBKEY_ENCODED_LENGTH
    assert len(b64url_decode(pubkey)) == identity.PUBKEY_LENGTH_BYTES
    assert len(identity.secret_key_of(keypair)) == identity.SECRET_KEY_LENGTH_BYTES


def test_generate_is_random() -> None:
    assert identity.generate() != identity.generate()


def test_secret_key_embeds_public_key() -> None:
    keypair = identity.generate()
    secret = identity.secret_key_of(keypair)
    assert b64url_encode(secret[32:]) == identity.public_key_of(keypair)


def test_sign_and_open_round_trip() -> None:
    keypair = identity.generate()
    payload = identity.digest("hello")
    blob = identity.sign(payload, keypair, timestamp_ms=FIXED_TS)

    assert blob.startswith(identity.public_key_of(keypair))
    opened = identity.open_signed(blob)
    assert opened is not None
    assert opened.pubkey == identity.public_key_of(keypair)
    assert opened.message == f"{FIXED_TS}{payload}"
    assert opened.timestamp_ms == FIXED_TS
    assert opened.payload == payload


def test_sign_uses_current_time_by_default(mocker) -> None:
    mocker.patch("inproto.services.identity.time.time", return_value=FIXED_TS / 1000)
    keypair = identity.generate()
    opened = identity.open_signed(identity.sign("token", keypair))
    assert opened is not None
    assert opened.timestamp_ms == FIXED_TS


def test_open_rejects_tampered_signature() -> None:
    keypair = identity.generate()
    blob = identity.sign("payload", keypair)
    raw = bytearray(b64url_decode(blob[identity.PUBKEY_ENCODED_LENGTH:]))
    raw[-1] ^= 0x01
    tampered = blob[: identity.PUBKEY_ENCODED_LENGTH] + b64url_encode(bytes(raw))
    assert identity.open_signed(tampered) is None


def test_open_rejects_swapped_signer() -> None:
    signer = identity.generate()
    impostor = identity.generate()
    blob = identity.sign("payload", signer)
    swapped = identity.public_key_of(impostor) + blob[identity.PUBKEY_ENCODED_LENGTH:]
    assert identity.open_signed(swapped) is None


@pytest.mark.parametrize("blob", ["", "short", "A" * 44, None])
def test_open_rejects_malformed_blobs(blob) -> None:
    assert identity.open_signed(blob) is None


def test_digest_is_base64_sha256() -> None:
    expected = b64url_encode(hashlib.sha256(b"abc").digest())
    assert identity.digest("abc") == expected
    assert len(identity.digest("abc")) == 44


def test_split_timestamp_without_prefix() -> None:
    assert identity.split_timestamp("abc") == (None, "abc")
    assert identity.split_timestamp("1700000000123abc") == (FIXED_TS, "abc")


def test_validate_public_key_rejects_bad_values() -> None:
    with pytest.raises(ValidationError):
        identity.validate_public_key("tooshort")
    with pytest.raises(ValidationError):
        identity.validate_public_key("A" * 44)
    with pytest.raises(ValidationError):
        identity.validate_public_key(None)  # type: ignore[arg-type]


def test_validate_public_key_accepts_generated_key() -> None:
    pubkey = identity.public_key_of(identity.generate())
    assert len(identity.validate_public_key(pubkey)) == 32


def test_secret_key_of_rejects_truncated_keypair() -> None:
    keypair = identity.generate()
    with pytest.raises(ValidationError):
        identity.secret_key_of(keypair[:-4])
