# src/inproto/services/envelope.py
"""Envelope encryption using Ed25519 identities converted to Curve25519.

Each identity publishes only its Ed25519 signing key. Key agreement converts
that key to its Curve25519 counterpart, so a sender can address a box to any
identity it knows. A message produces one envelope holding two boxes: one for
the recipient and one for the sender's own copy. Readers try every box with
their own key; a box that fails to open is indistinguishable from a box meant
for someone else.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from threading import Lock
from typing import Any

from nacl.bindings import (
    crypto_sign_ed25519_pk_to_curve25519,
    crypto_sign_ed25519_sk_to_curve25519,
)
from nacl.exceptions import CryptoError
from nacl.public import Box as NaclBox
from nacl.public import PrivateKey, PublicKey
from nacl.utils import random as nacl_random

from inproto.core.errors import ValidationError
from inproto.services.identity import public_key_of, secret_key_of, validate_public_key
from inproto.utils.hash import b64url_decode, b64url_encode

logger = logging.getLogger(__name__)

NONCE_LENGTH_BYTES = NaclBox.NONCE_SIZE
MESSAGE_TYPE_DM = "dm"


@dataclass(frozen=True)
class Box:
    """One authenticated ciphertext addressed to a single reader."""

    nonce: str
    box: str

    def to_dict(self) -> dict[str, str]:
        return {"nonce": self.nonce, "box": self.box}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Box:
        nonce = data.get("nonce")
        box = data.get("box")
        if not isinstance(nonce, str) or not isinstance(box, str):
            raise ValidationError("Boxes require string nonce and box fields")
        return cls(nonce=nonce, box=box)


@dataclass(frozen=True)
class Envelope:
    """Relay-visible unit of transport: sender key plus one box per reader."""

    sender: str
    boxes: tuple[Box, ...]
    received_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "from": self.sender,
            "boxes": [box.to_dict() for box in self.boxes],
        }
        if self.received_at is not None:
            payload["receivedAt"] = self.received_at
        return payload

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Envelope:
        sender = data.get("from")
        raw_boxes = data.get("boxes")
        if not isinstance(sender, str) or not isinstance(raw_boxes, list):
            raise ValidationError("Envelopes require a sender and a list of boxes")
        boxes = tuple(Box.from_mapping(item) for item in raw_boxes if isinstance(item, Mapping))
        received_at = data.get("receivedAt")
        return cls(
            sender=sender,
            boxes=boxes,
            received_at=received_at if isinstance(received_at, str) else None,
        )


@dataclass(frozen=True)
class DirectMessage:
    """Plaintext message; only ever exists inside an opened box."""

    sender: str
    recipient: str
    body: str
    ts: int = field(default_factory=lambda: int(time.time() * 1000))
    url: str | None = None
    type: str = MESSAGE_TYPE_DM

    def to_json(self) -> str:
        payload: dict[str, Any] = {
            "type": self.type,
            "from": self.sender,
            "to": self.recipient,
            "ts": self.ts,
            "body": self.body,
        }
        if self.url is not None:
            payload["url"] = self.url
        return json.dumps(payload, separators=(",", ":"))

    @classmethod
    def from_json(cls, text: str) -> DirectMessage | None:
        """Parse a decrypted plaintext, returning None for anything that is not a DM."""
        try:
            data = json.loads(text)
        except ValueError:
            return None
        if not isinstance(data, dict) or data.get("type") != MESSAGE_TYPE_DM:
            return None
        sender = data.get("from")
        recipient = data.get("to")
        body = data.get("body")
        if not isinstance(sender, str) or not isinstance(recipient, str):
            return None
        if not isinstance(body, str):
            return None
        ts = data.get("ts")
        url = data.get("url")
        return cls(
            sender=sender,
            recipient=recipient,
            body=body,
            ts=int(ts) if isinstance(ts, int | float) else 0,
            url=url if isinstance(url, str) else None,
        )


def to_curve_public(signing_pubkey: str) -> bytes:
    """Convert an encoded Ed25519 public key to a raw Curve25519 public key."""
    raw = validate_public_key(signing_pubkey)
    try:
        return crypto_sign_ed25519_pk_to_curve25519(raw)
    except (RuntimeError, CryptoError, ValueError) as err:
        raise ValidationError("Public key is not a valid Ed25519 point") from err


def to_curve_secret(signing_secret: bytes) -> bytes:
    """Convert a raw 64-byte Ed25519 secret key to a raw Curve25519 secret key."""
    return crypto_sign_ed25519_sk_to_curve25519(signing_secret)


class EnvelopeCodec:
    """Creates and opens boxes for identities addressed by their signing keys."""

    def __init__(self, nonce_source: Callable[[int], bytes] = nacl_random) -> None:
        self._nonce_source = nonce_source

    def encrypt_for(
        self,
        plaintext: str,
        recipient_signing_pubkey: str,
        own_signing_secret: bytes,
    ) -> Box:
        """Encrypt ``plaintext`` to the recipient with a fresh random nonce."""
        box = NaclBox(
            PrivateKey(to_curve_secret(own_signing_secret)),
            PublicKey(to_curve_public(recipient_signing_pubkey)),
        )
        nonce = self._nonce_source(NONCE_LENGTH_BYTES)
        encrypted = box.encrypt(plaintext.encode("utf-8"), nonce)
        return Box(nonce=b64url_encode(nonce), box=b64url_encode(encrypted.ciphertext))

    def seal_message(self, message: DirectMessage, keypair: str) -> Envelope:
        """Encrypt a direct message into a recipient box and a self box."""
        sender = public_key_of(keypair)
        if message.sender != sender:
            raise ValidationError("Message sender does not match the signing identity")
        secret = secret_key_of(keypair)
        plaintext = message.to_json()
        boxes = (
            self.encrypt_for(plaintext, message.recipient, secret),
            self.encrypt_for(plaintext, sender, secret),
        )
        return Envelope(sender=sender, boxes=boxes)

    def decrypt_envelope(self, envelope: Envelope, own_signing_secret: bytes) -> str | None:
        """Return the first box plaintext readable with our key, or None if none are."""
        return self.decrypt_with_curve_secret(envelope, to_curve_secret(own_signing_secret))

    def decrypt_with_curve_secret(self, envelope: Envelope, curve_secret: bytes) -> str | None:
        """Like :meth:`decrypt_envelope` but with an already converted secret key."""
        try:
            sender_curve = PublicKey(to_curve_public(envelope.sender))
            box = NaclBox(PrivateKey(curve_secret), sender_curve)
        except (ValidationError, CryptoError, ValueError, TypeError):
            return None
        for entry in envelope.boxes:
            try:
                opened = box.decrypt(b64url_decode(entry.box), b64url_decode(entry.nonce))
                return opened.decode("utf-8")
            except (CryptoError, ValueError, TypeError):
                continue
        return None

    def open_message(self, envelope: Envelope, keypair: str) -> DirectMessage | None:
        """Decrypt and parse an envelope for the identity in ``keypair``."""
        plaintext = self.decrypt_envelope(envelope, secret_key_of(keypair))
        if plaintext is None:
            return None
        return DirectMessage.from_json(plaintext)

    def open_all(self, envelopes: Iterable[Envelope], keypair: str) -> list[DirectMessage]:
        """Return the messages in ``envelopes`` readable by ``keypair``."""
        secret = to_curve_secret(secret_key_of(keypair))
        messages: list[DirectMessage] = []
        for envelope in envelopes:
            plaintext = self.decrypt_with_curve_secret(envelope, secret)
            if plaintext is None:
                continue
            message = DirectMessage.from_json(plaintext)
            if message is not None:
                messages.append(message)
        return messages


class CodecProvider:
    """Lazily constructs one shared :class:`EnvelopeCodec`.

    Construction happens on the first :meth:`get` call from any thread and is
    never repeated. Tests can pass their own factory to observe it.
    """

    def __init__(self, factory: Callable[[], EnvelopeCodec] = EnvelopeCodec) -> None:
        self._factory = factory
        self._codec: EnvelopeCodec | None = None
        self._lock = Lock()

    @property
    def constructed(self) -> bool:
        return self._codec is not None

    def get(self) -> EnvelopeCodec:
        codec = self._codec
        if codec is not None:
            return codec
        with self._lock:
            if self._codec is None:
                logger.debug("Constructing envelope codec")
                self._codec = self._factory()
            return self._codec
