"""Shared fakes and request builders for the test suite."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi.testclient import TestClient

from inproto.core.errors import PushDeliveryError
from inproto.repositories import SubscriptionBinding
from inproto.services import identity
from inproto.utils.hash import b64url_encode, sha256_digest


@dataclass
class FakeClock:
    """Manually advanced clock in epoch seconds."""

    now: float = 1_700_000_000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class FakeTransport:
    """Push transport that records deliveries instead of sending them.

    ``failures`` maps an endpoint to the status code its sends fail with;
    ``None`` as a status code simulates a network error.
    """

    sent: list[tuple[SubscriptionBinding, str]] = field(default_factory=list)
    failures: dict[str, int | None] = field(default_factory=dict)

    def send(self, binding: SubscriptionBinding, payload: str) -> None:
        if binding.endpoint in self.failures:
            status_code = self.failures[binding.endpoint]
            raise PushDeliveryError(f"push failed ({status_code})", status_code=status_code)
        self.sent.append((binding, payload))

    def endpoints(self) -> list[str]:
        return [binding.endpoint for binding, _ in self.sent]


def subscriber_keys(endpoint: str) -> dict[str, str]:
    """Return a fresh P-256 client key and an auth secret derived from ``endpoint``."""
    point = ec.generate_private_key(ec.SECP256R1()).public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )
    auth = sha256_digest(endpoint.encode())[:16]
    return {
        "p256dh": b64url_encode(point).rstrip("="),
        "auth": b64url_encode(auth).rstrip("="),
    }


def push_subscription(endpoint: str) -> dict[str, Any]:
    """Return a browser-shaped push subscription for ``endpoint``."""
    return {"endpoint": endpoint, "expirationTime": None, "keys": subscriber_keys(endpoint)}


def subscribe_via_api(
    client: TestClient,
    keypair: str,
    endpoint: str,
    *,
    target: str | None = None,
) -> Any:
    """Run the challenge-response handshake for ``keypair`` over HTTP."""
    pubkey = identity.public_key_of(keypair)
    challenge = client.get("/subscribe/challenge", params={"pubkey": pubkey}).json()["challenge"]
    return client.post(
        "/subscribe",
        json={
            "subscription": push_subscription(endpoint),
            "userPubKey": pubkey,
            "targetPubKey": target,
            "challenge": challenge,
            "signature": identity.sign(challenge, keypair),
        },
    )
