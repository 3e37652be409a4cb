"""HTTP tests for envelope submission and listing."""

from __future__ import annotations

import json

from fastapi.testclient import TestClient

from inproto.client.compose import compose_direct_message
from inproto.repositories import SubscriptionRepository
from inproto.services import identity
from inproto.services.envelope import Envelope, EnvelopeCodec
from tests.helpers import FakeTransport, subscribe_via_api

HTTP_OK = 200
HTTP_BAD_REQUEST = 400


def test_direct_message_flow(
    client: TestClient, transport: FakeTransport, alice: str, bob: str, carol: str
) -> None:
    for keypair, endpoint in ((alice, "a"), (bob, "b"), (carol, "c")):
        assert subscribe_via_api(client, keypair, f"https://push.example.test/{endpoint}").status_code == HTTP_OK

    envelope = compose_direct_message(alice, identity.public_key_of(bob), "  hi bob  ")
    response = client.post("/message", json=envelope.to_dict())

    assert response.status_code == HTTP_OK
    body = response.json()
    assert body["sent"] == 3
    assert body["pruned"] == 0
    assert body["failed"] == 0
    assert body["receivedAt"].endswith("Z")

    codec = EnvelopeCodec()
    pushed = {binding.endpoint: json.loads(payload) for binding, payload in transport.sent}
    assert set(pushed) == {f"https://push.example.test/{name}" for name in "abc"}

    for_bob = codec.open_message(Envelope.from_mapping(pushed["https://push.example.test/b"]), bob)
    assert for_bob is not None
    assert for_bob.body == "hi bob"
    own_copy = codec.open_message(Envelope.from_mapping(pushed["https://push.example.test/a"]), alice)
    assert own_copy is not None and own_copy.body == "hi bob"
    assert codec.open_message(Envelope.from_mapping(pushed["https://push.example.test/c"]), carol) is None


def test_gone_endpoint_is_pruned(
    client: TestClient,
    transport: FakeTransport,
    subscriptions: SubscriptionRepository,
    alice: str,
    bob: str,
) -> None:
    subscribe_via_api(client, alice, "https://push.example.test/a")
    subscribe_via_api(client, bob, "https://push.example.test/gone")
    transport.failures["https://push.example.test/gone"] = 410

    envelope = compose_direct_message(alice, identity.public_key_of(bob), "hello")
    body = client.post("/message", json=envelope.to_dict()).json()

    assert body["sent"] == 1
    assert body["pruned"] == 1
    assert subscriptions.get("https://push.example.test/gone") is None


def test_transient_failure_keeps_binding(
    client: TestClient,
    transport: FakeTransport,
    subscriptions: SubscriptionRepository,
    alice: str,
    bob: str,
) -> None:
    subscribe_via_api(client, bob, "https://push.example.test/flaky")
    transport.failures["https://push.example.test/flaky"] = 503

    envelope = compose_direct_message(alice, identity.public_key_of(bob), "hello")
    body = client.post("/message", json=envelope.to_dict()).json()

    assert (body["sent"], body["pruned"], body["failed"]) == (0, 0, 1)
    assert subscriptions.get("https://push.example.test/flaky") is not None


def test_message_rejects_malformed_envelope(client: TestClient, alice: str, bob: str) -> None:
    envelope = compose_direct_message(alice, identity.public_key_of(bob), "hello").to_dict()

    missing_boxes = client.post("/message", json={"from": envelope["from"]})
    assert missing_boxes.status_code == HTTP_BAD_REQUEST

    bad_sender = client.post("/message", json={**envelope, "from": "nope"})
    assert bad_sender.status_code == HTTP_BAD_REQUEST

    no_boxes = client.post("/message", json={**envelope, "boxes": []})
    assert no_boxes.status_code == HTTP_BAD_REQUEST


def test_messages_listing(client: TestClient, alice: str, bob: str) -> None:
    first = compose_direct_message(alice, identity.public_key_of(bob), "one")
    second = compose_direct_message(bob, identity.public_key_of(alice), "two")
    client.post("/message", json=first.to_dict())
    client.post("/message", json=second.to_dict())

    listing = client.get("/messages").json()["messages"]
    assert [item["from"] for item in listing] == [
        identity.public_key_of(alice),
        identity.public_key_of(bob),
    ]
    assert all(item["receivedAt"].endswith("Z") for item in listing)

    limited = client.get("/messages", params={"limit": 1}).json()["messages"]
    assert [item["from"] for item in limited] == [identity.public_key_of(bob)]

    codec = EnvelopeCodec()
    envelopes = [Envelope.from_mapping(item) for item in listing]
    assert [m.body for m in codec.open_all(envelopes, bob)] == ["one", "two"]


def test_messages_since_filters_older(client: TestClient, alice: str, bob: str) -> None:
    envelope = compose_direct_message(alice, identity.public_key_of(bob), "one")
    received_at = client.post("/message", json=envelope.to_dict()).json()["receivedAt"]

    response = client.get("/messages", params={"since": received_at})
    assert response.status_code == HTTP_OK
    assert response.json()["messages"] == []
