"""Tests for composing outgoing direct messages."""

from __future__ import annotations

import pytest

from inproto.client.compose import compose_direct_message
from inproto.core.errors import ValidationError
from inproto.services import identity
from inproto.services.envelope import CodecProvider, EnvelopeCodec


def test_compose_produces_recipient_and_self_boxes(alice: str, bob: str) -> None:
    bob_pub = identity.public_key_of(bob)
    envelope = compose_direct_message(alice, bob_pub, "  hello bob  ", url="/dm", ts=1234)

    assert envelope.sender == identity.public_key_of(alice)
    assert len(envelope.boxes) == 2

    codec = EnvelopeCodec()
    for reader in (alice, bob):
        message = codec.open_message(envelope, reader)
        assert message is not None
        assert (message.body, message.recipient, message.ts, message.url) == (
            "hello bob",
            bob_pub,
            1234,
            "/dm",
        )


@pytest.mark.parametrize(
    ("to", "body", "reason"),
    [
        ("", "hi", "no target pubkey set"),
        ("   ", "hi", "no target pubkey set"),
        ("TARGET", "   ", "message body required"),
    ],
)
def test_compose_rejects_missing_fields(alice: str, bob: str, to: str, body: str, reason: str) -> None:
    target = identity.public_key_of(bob) if to == "TARGET" else to
    with pytest.raises(ValidationError, match=reason):
        compose_direct_message(alice, target, body)


def test_compose_rejects_malformed_recipient(alice: str) -> None:
    with pytest.raises(ValidationError):
        compose_direct_message(alice, "not-a-key", "hi")


def test_compose_uses_supplied_codecs(alice: str, bob: str) -> None:
    codecs = CodecProvider()
    compose_direct_message(alice, identity.public_key_of(bob), "hi", codecs=codecs)
    assert codecs.constructed
