# src/inproto/services/identity.py
"""Identity keypairs and detached-message signing built on Ed25519.

An identity is persisted as a single string: the padded URL-safe base64
public key (always 44 characters) followed by the encoded 64-byte secret key.
Every signed blob uses the same layout, ``public ∥ signed-message``, so the
claimed signer can be recovered by slicing the first 44 characters.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass

from nacl.bindings import crypto_sign_keypair
from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from inproto.core.errors import ValidationError
from inproto.utils.hash import b64url_decode, b64url_encode, sha256_digest

PUBKEY_ENCODED_LENGTH = 44
PUBKEY_LENGTH_BYTES = 32
SECRET_KEY_LENGTH_BYTES = 64
KEYPAIR_ENCODED_LENGTH = 132

_TIMESTAMP_PREFIX = re.compile(r"^(\d{13})")


@dataclass(frozen=True)
class OpenedMessage:
    """Result of successfully verifying a signed blob."""

    pubkey: str
    message: str

    @property
    def timestamp_ms(self) -> int | None:
        """Advisory millisecond timestamp prefixed by the signer, if present."""
        return split_timestamp(self.message)[0]

    @property
    def payload(self) -> str:
        """The signed content with the timestamp prefix removed."""
        return split_timestamp(self.message)[1]


def generate() -> str:
    """Generate a fresh Ed25519 identity and return the encoded keypair string."""
    public_key, secret_key = crypto_sign_keypair()
    return b64url_encode(public_key) + b64url_encode(secret_key)


def public_key_of(keypair: str) -> str:
    """Return the encoded public key embedded in a keypair string."""
    return keypair[:PUBKEY_ENCODED_LENGTH]


def secret_key_of(keypair: str) -> bytes:
    """Return the raw 64-byte Ed25519 secret key from a keypair string.

    Raises:
        ValidationError: If the keypair string is malformed.
    """
    if not isinstance(keypair, str) or len(keypair) != KEYPAIR_ENCODED_LENGTH:
        raise ValidationError("Keypairs must be 132 encoded characters")
    try:
        secret = b64url_decode(keypair[PUBKEY_ENCODED_LENGTH:])
    except ValueError as err:
        raise ValidationError("Invalid keypair encoding") from err
    if len(secret) != SECRET_KEY_LENGTH_BYTES:
        raise ValidationError("Ed25519 secret keys must be 64 bytes")
    return secret


def validate_public_key(pubkey: str) -> bytes:
    """Validate an encoded Ed25519 public key and return its raw bytes.

    Raises:
        ValidationError: If the value is not a 44-character key decoding to 32 bytes.
    """
    if not isinstance(pubkey, str) or len(pubkey) != PUBKEY_ENCODED_LENGTH:
        raise ValidationError("Public keys must be 44 encoded characters")
    try:
        raw = b64url_decode(pubkey)
    except ValueError as err:
        raise ValidationError(str(err)) from err
    if len(raw) != PUBKEY_LENGTH_BYTES:
        raise ValidationError("Ed25519 public keys must be 32 bytes")
    return raw


def digest(text: str) -> str:
    """Return the SHA-256 digest of UTF-8 ``text`` as URL-safe base64."""
    return b64url_encode(sha256_digest(text.encode("utf-8")))


def sign(payload_digest: str, keypair: str, *, timestamp_ms: int | None = None) -> str:
    """Sign ``timestamp ∥ payload_digest`` with the keypair's secret key.

    Args:
        payload_digest: Text to sign, usually the output of :func:`digest` or a
            challenge token.
        keypair: Encoded keypair string from :func:`generate`.
        timestamp_ms: Override for the advisory timestamp prefix.

    Returns:
        The encoded public key followed by the encoded signed message.
    """
    seed = secret_key_of(keypair)[:32]
    ts = int(time.time() * 1000) if timestamp_ms is None else int(timestamp_ms)
    signed = SigningKey(seed).sign(f"{ts}{payload_digest}".encode())
    return public_key_of(keypair) + b64url_encode(bytes(signed))


def open_signed(signed_blob: str) -> OpenedMessage | None:
    """Verify a signed blob and recover the signer and message.

    The timestamp is not checked; callers needing freshness inspect
    :attr:`OpenedMessage.timestamp_ms` themselves.

    Returns:
        The opened message, or ``None`` if the blob is malformed or the
        signature does not verify.
    """
    if not isinstance(signed_blob, str) or len(signed_blob) <= PUBKEY_ENCODED_LENGTH:
        return None
    pubkey = signed_blob[:PUBKEY_ENCODED_LENGTH]
    try:
        verify_key = VerifyKey(validate_public_key(pubkey))
        message = verify_key.verify(b64url_decode(signed_blob[PUBKEY_ENCODED_LENGTH:]))
        return OpenedMessage(pubkey=pubkey, message=message.decode("utf-8"))
    except (BadSignatureError, ValidationError, ValueError, TypeError):
        return None


def split_timestamp(message: str) -> tuple[int | None, str]:
    """Split a signed message into its millisecond timestamp and payload."""
    match = _TIMESTAMP_PREFIX.match(message)
    if match is None:
        return None, message
    return int(match.group(1)), message[match.end():]
