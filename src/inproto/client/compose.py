"""Composition of outgoing direct messages."""

from __future__ import annotations

import time

from inproto.core.errors import ValidationError
from inproto.services.envelope import CodecProvider, DirectMessage, Envelope
from inproto.services.identity import public_key_of, validate_public_key

_default_codecs = CodecProvider()


def compose_direct_message(
    keypair: str,
    to: str,
    body: str,
    *,
    url: str | None = None,
    ts: int | None = None,
    codecs: CodecProvider | None = None,
) -> Envelope:
    """Encrypt a direct message from ``keypair`` to ``to``.

    The message body is trimmed; the resulting envelope carries one box for
    the recipient and one for the sender.

    Raises:
        ValidationError: If the recipient or body is missing, or a key is malformed.
    """
    recipient = (to or "").strip()
    if not recipient:
        raise ValidationError("no target pubkey set")
    text = (body or "").strip()
    if not text:
        raise ValidationError("message body required")
    validate_public_key(recipient)

    message = DirectMessage(
        sender=public_key_of(keypair),
        recipient=recipient,
        body=text,
        ts=int(time.time() * 1000) if ts is None else int(ts),
        url=url,
    )
    return (codecs or _default_codecs).get().seal_message(message, keypair)
