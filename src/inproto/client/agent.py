"""Background delivery agent that turns relay pushes into notifications.

The agent holds only the Curve25519 secret derived from the identity, never
the signing key. Every failure path (no stored key, a payload that is not a
direct message, a box that does not open) ends silently with no
notification, since most pushes on a blind relay are meant for someone else.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from inproto.client.keystore import AGENT_KEY, KeyValueStore
from inproto.core.errors import InprotoError, ValidationError
from inproto.services.envelope import (
    MESSAGE_TYPE_DM,
    CodecProvider,
    DirectMessage,
    Envelope,
    to_curve_secret,
)
from inproto.services.identity import public_key_of, secret_key_of
from inproto.utils.hash import b64url_decode, b64url_encode

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Inproto"
DEFAULT_BODY = "New message"
DEFAULT_URL = "/"
DEFAULT_ICON = "/dovepurple_sm.png"
CURVE_SECRET_LENGTH_BYTES = 32


@dataclass(frozen=True)
class Notification:
    """What the platform should display for one decrypted message."""

    title: str
    body: str
    url: str = DEFAULT_URL
    icon: str = DEFAULT_ICON


def _parse_payload(payload: str | bytes | Mapping[str, Any]) -> Mapping[str, Any] | None:
    if isinstance(payload, Mapping):
        return payload
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError:
            return None
    try:
        decoded = json.loads(payload)
    except (TypeError, ValueError):
        return None
    return decoded if isinstance(decoded, Mapping) else None


class DeliveryAgent:
    """Decrypts pushed envelopes with the locally stored key."""

    def __init__(self, store: KeyValueStore, codec_provider: CodecProvider | None = None) -> None:
        self.store = store
        self.codecs = codec_provider or CodecProvider()

    def set_key(self, pubkey: str, curve_secret: str) -> None:
        self.store.set(AGENT_KEY, {"pubkey": pubkey, "curveSecret": curve_secret})

    def clear_key(self) -> None:
        self.store.delete(AGENT_KEY)

    def sync_identity(self, keypair: str | None) -> None:
        """Install the agent key for ``keypair``, or clear it when there is no identity."""
        if not keypair:
            self.clear_key()
            return
        curve_secret = to_curve_secret(secret_key_of(keypair))
        self.set_key(public_key_of(keypair), b64url_encode(curve_secret))

    def stored_pubkey(self) -> str | None:
        stored = self.store.get(AGENT_KEY)
        if isinstance(stored, Mapping) and isinstance(stored.get("pubkey"), str):
            return stored["pubkey"]
        return None

    def _curve_secret(self) -> bytes | None:
        try:
            stored = self.store.get(AGENT_KEY)
        except InprotoError as err:
            logger.debug("Agent key unavailable: %s", err)
            return None
        if not isinstance(stored, Mapping):
            return None
        encoded = stored.get("curveSecret")
        if not isinstance(encoded, str) or not encoded:
            return None
        try:
            secret = b64url_decode(encoded)
        except ValueError:
            return None
        return secret if len(secret) == CURVE_SECRET_LENGTH_BYTES else None

    def handle_push(self, payload: str | bytes | Mapping[str, Any]) -> Notification | None:
        """Return the notification for a pushed envelope, or None if it is not ours."""
        data = _parse_payload(payload)
        if data is None or data.get("type") != MESSAGE_TYPE_DM:
            return None
        curve_secret = self._curve_secret()
        if curve_secret is None:
            return None
        try:
            envelope = Envelope.from_mapping(data)
        except ValidationError:
            return None

        plaintext = self.codecs.get().decrypt_with_curve_secret(envelope, curve_secret)
        if plaintext is None:
            return None
        try:
            message = json.loads(plaintext)
        except ValueError:
            return None
        if not isinstance(message, dict):
            return None

        sender = message.get("from")
        body = message.get("body")
        url = message.get("url")
        icon = data.get("icon")
        title = DEFAULT_TITLE
        if isinstance(sender, str) and sender:
            title = f"Message from {sender[:10]}"
        return Notification(
            title=title,
            body=body if isinstance(body, str) else DEFAULT_BODY,
            url=url if isinstance(url, str) else DEFAULT_URL,
            icon=icon if isinstance(icon, str) and icon else DEFAULT_ICON,
        )

    def inbox(self, envelopes: Iterable[Envelope]) -> list[DirectMessage]:
        """Decrypt a relay listing and keep only the messages readable by this agent."""
        curve_secret = self._curve_secret()
        if curve_secret is None:
            return []
        codec = self.codecs.get()
        messages: list[DirectMessage] = []
        for envelope in envelopes:
            plaintext = codec.decrypt_with_curve_secret(envelope, curve_secret)
            if plaintext is None:
                continue
            message = DirectMessage.from_json(plaintext)
            if message is not None:
                messages.append(message)
        return messages
