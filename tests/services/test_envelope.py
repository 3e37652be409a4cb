"""Tests for envelope encryption and the lazily built codec."""

from __future__ import annotations

import json
import threading

import pytest

from inproto.core.errors import ValidationError
from inproto.services import identity
from inproto.services.envelope import (
    Box,
    CodecProvider,
    DirectMessage,
    Envelope,
    EnvelopeCodec,
    to_curve_public,
    to_curve_secret,
)
from inproto.utils.hash import b64url_decode, b64url_encode


def _message(sender: str, recipient: str, body: str = "hi") -> DirectMessage:
    return DirectMessage(
        sender=identity.public_key_of(sender),
        recipient=identity.public_key_of(recipient),
        body=body,
        ts=1_700_000_000_000,
        url="https://example.test/#peer",
    )


def test_seal_produces_recipient_and_self_boxes(alice: str, bob: str) -> None:
    envelope = EnvelopeCodec().seal_message(_message(alice, bob), alice)

    assert envelope.sender == identity.public_key_of(alice)
    assert len(envelope.boxes) == 2
    for box in envelope.boxes:
        assert len(b64url_decode(box.nonce)) == 24


def test_recipient_and_sender_can_read(alice: str, bob: str) -> None:
    codec = EnvelopeCodec()
    envelope = codec.seal_message(_message(alice, bob, "hello bob"), alice)

    for reader in (alice, bob):
        message = codec.open_message(envelope, reader)
        assert message is not None
        assert message.body == "hello bob"
        assert message.sender == identity.public_key_of(alice)
        assert message.recipient == identity.public_key_of(bob)
        assert message.url == "https://example.test/#peer"


def test_third_party_cannot_read(alice: str, bob: str, carol: str) -> None:
    codec = EnvelopeCodec()
    envelope = codec.seal_message(_message(alice, bob), alice)
    assert codec.open_message(envelope, carol) is None


def test_nonces_are_fresh_per_box(alice: str, bob: str) -> None:
    envelope = EnvelopeCodec().seal_message(_message(alice, bob), alice)
    assert envelope.boxes[0].nonce != envelope.boxes[1].nonce


def test_injected_nonce_source_is_used(alice: str, bob: str) -> None:
    codec = EnvelopeCodec(nonce_source=lambda size: b"\x01" * size)
    box = codec.encrypt_for("x", identity.public_key_of(bob), identity.secret_key_of(alice))
    assert b64url_decode(box.nonce) == b"\x01" * 24


def test_seal_rejects_mismatched_sender(alice: str, bob: str) -> None:
    with pytest.raises(ValidationError):
        EnvelopeCodec().seal_message(_message(alice, bob), bob)


def test_tampered_box_is_skipped(alice: str, bob: str) -> None:
    codec = EnvelopeCodec()
    envelope = codec.seal_message(_message(alice, bob), alice)
    raw = bytearray(b64url_decode(envelope.boxes[0].box))
    raw[0] ^= 0xFF
    broken = Envelope(
        sender=envelope.sender,
        boxes=(Box(nonce=envelope.boxes[0].nonce, box=b64url_encode(bytes(raw))),),
    )
    assert codec.open_message(broken, bob) is None


def test_malformed_boxes_fail_closed(alice: str, bob: str) -> None:
    codec = EnvelopeCodec()
    good = codec.seal_message(_message(alice, bob), alice)
    envelope = Envelope(
        sender=good.sender,
        boxes=(Box(nonce="not-a-nonce", box="###"), Box(nonce="", box=""), *good.boxes),
    )
    message = codec.open_message(envelope, bob)
    assert message is not None
    assert message.body == "hi"


def test_invalid_sender_key_fails_closed(bob: str) -> None:
    envelope = Envelope(sender="A" * 44, boxes=(Box(nonce="AAAA", box="AAAA"),))
    assert EnvelopeCodec().open_message(envelope, bob) is None


def test_curve_conversion_is_consistent(alice: str) -> None:
    from nacl.public import PrivateKey

    curve_secret = to_curve_secret(identity.secret_key_of(alice))
    derived_public = bytes(PrivateKey(curve_secret).public_key)
    assert derived_public == to_curve_public(identity.public_key_of(alice))


def test_open_all_filters_unreadable(alice: str, bob: str, carol: str) -> None:
    codec = EnvelopeCodec()
    for_bob = codec.seal_message(_message(alice, bob, "one"), alice)
    for_carol = codec.seal_message(_message(alice, carol, "two"), alice)

    messages = codec.open_all([for_bob, for_carol], bob)
    assert [message.body for message in messages] == ["one"]


def test_direct_message_json_shape(alice: str, bob: str) -> None:
    payload = json.loads(_message(alice, bob).to_json())
    assert payload == {
        "type": "dm",
        "from": identity.public_key_of(alice),
        "to": identity.public_key_of(bob),
        "ts": 1_700_000_000_000,
        "body": "hi",
        "url": "https://example.test/#peer",
    }


def test_direct_message_from_json_ignores_other_types() -> None:
    assert DirectMessage.from_json('{"type": "feed", "body": "x"}') is None
    assert DirectMessage.from_json("not json") is None
    assert DirectMessage.from_json("[1, 2]") is None


def test_envelope_mapping_round_trip(alice: str, bob: str) -> None:
    envelope = EnvelopeCodec().seal_message(_message(alice, bob), alice)
    data = envelope.to_dict()
    assert set(data) == {"from", "boxes"}
    assert Envelope.from_mapping(data) == envelope


def test_envelope_from_mapping_requires_sender() -> None:
    with pytest.raises(ValidationError):
        Envelope.from_mapping({"boxes": []})
    with pytest.raises(ValidationError):
        Envelope.from_mapping({"from": "x", "boxes": "nope"})


def test_codec_provider_is_lazy() -> None:
    calls: list[int] = []

    def factory() -> EnvelopeCodec:
        calls.append(1)
        return EnvelopeCodec()

    provider = CodecProvider(factory)
    assert provider.constructed is False
    assert calls == []

    first = provider.get()
    assert provider.get() is first
    assert provider.constructed is True
    assert calls == [1]


def test_codec_provider_constructs_once_across_threads() -> None:
    calls: list[int] = []
    barrier = threading.Barrier(8)

    def factory() -> EnvelopeCodec:
        calls.append(1)
        return EnvelopeCodec()

    provider = CodecProvider(factory)
    seen: list[EnvelopeCodec] = []

    def worker() -> None:
        barrier.wait()
        seen.append(provider.get())

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(calls) == 1
    assert all(codec is seen[0] for codec in seen)
