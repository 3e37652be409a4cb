# src/inproto/services/relay.py
"""Blind store-and-forward relay for encrypted envelopes.

The relay checks only the shape of what it receives. It persists each
envelope verbatim and pushes it to every bound endpoint, because boxes carry
no recipient metadata it could route on. Readers decide locally whether an
envelope is theirs.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from inproto.core.errors import PushDeliveryError, ValidationError
from inproto.core.settings import settings
from inproto.repositories.envelopes import EnvelopeRepository
from inproto.repositories.subscriptions import SubscriptionBinding, SubscriptionRepository
from inproto.services.challenges import ChallengeAuthority
from inproto.services.envelope import MESSAGE_TYPE_DM, NONCE_LENGTH_BYTES, Envelope
from inproto.services.identity import validate_public_key
from inproto.services.push import PushTransport
from inproto.utils.hash import b64url_decode

logger = logging.getLogger(__name__)

MAX_BOXES_PER_ENVELOPE = 16
MAX_BOX_BYTES = 64 * 1024
# Poly1305 tag length; an empty plaintext still yields this many bytes.
MIN_BOX_BYTES = 16
# Uncompressed P-256 point (0x04 prefix) and the Web Push auth secret.
P256DH_LENGTH_BYTES = 65
AUTH_SECRET_LENGTH_BYTES = 16


@dataclass(frozen=True)
class DeliveryReport:
    """Outcome of pushing one payload to every bound endpoint."""

    sent: int = 0
    pruned: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SubscribeResult:
    binding: SubscriptionBinding
    created: bool


def deliver_to_all(
    subscriptions: SubscriptionRepository,
    transport: PushTransport,
    payload: str,
) -> DeliveryReport:
    """Send ``payload`` to each binding in turn and apply the outcome policy.

    Endpoints the provider reports as gone are pruned at once. Any other
    failure is logged and the binding is kept; the next payload is the retry.
    """
    bindings = subscriptions.list_all()
    delivered: list[str] = []
    pruned: list[str] = []
    failed: list[str] = []
    for binding in bindings:
        try:
            transport.send(binding, payload)
        except PushDeliveryError as err:
            if err.permanent:
                logger.warning("Removing expired subscription: %s", binding.id)
                subscriptions.prune([binding.id])
                pruned.append(binding.id)
            else:
                logger.error("Push failed for %s: %s", binding.id, err)
                failed.append(binding.id)
            continue
        delivered.append(binding.id)

    subscriptions.mark_notified(delivered)
    return DeliveryReport(sent=len(delivered), pruned=pruned, failed=failed)


def validate_envelope(envelope: Envelope) -> None:
    """Check that an envelope is well formed without looking inside its boxes.

    Raises:
        ValidationError: If the sender key or any box is malformed.
    """
    validate_public_key(envelope.sender)
    if not envelope.boxes:
        raise ValidationError("Envelopes need at least one box")
    if len(envelope.boxes) > MAX_BOXES_PER_ENVELOPE:
        raise ValidationError(f"Envelopes carry at most {MAX_BOXES_PER_ENVELOPE} boxes")
    for box in envelope.boxes:
        try:
            nonce = b64url_decode(box.nonce)
            ciphertext = b64url_decode(box.box)
        except ValueError as err:
            raise ValidationError("Box fields must be base64 encoded") from err
        if len(nonce) != NONCE_LENGTH_BYTES:
            raise ValidationError(f"Box nonces must be {NONCE_LENGTH_BYTES} bytes")
        if not MIN_BOX_BYTES <= len(ciphertext) <= MAX_BOX_BYTES:
            raise ValidationError("Box ciphertext has an invalid length")


def _check_subscription_keys(p256dh: str, auth: str) -> None:
    try:
        point = b64url_decode(p256dh)
        secret = b64url_decode(auth)
    except ValueError as err:
        raise ValidationError("invalid subscription keys") from err
    if len(point) != P256DH_LENGTH_BYTES or point[0] != 0x04:
        raise ValidationError("invalid subscription keys")
    if len(secret) != AUTH_SECRET_LENGTH_BYTES:
        raise ValidationError("invalid subscription keys")


def parse_push_subscription(descriptor: Any) -> tuple[str, str, str]:
    """Extract ``(endpoint, p256dh, auth)`` from a browser push subscription.

    Raises:
        ValidationError: If any of the three fields is missing, or the keys
            are not a P-256 point and a 16-byte auth secret.
    """
    if not isinstance(descriptor, Mapping):
        raise ValidationError("missing fields")
    endpoint = descriptor.get("endpoint")
    keys = descriptor.get("keys")
    if not isinstance(keys, Mapping):
        raise ValidationError("missing fields")
    p256dh = keys.get("p256dh")
    auth = keys.get("auth")
    for value in (endpoint, p256dh, auth):
        if not isinstance(value, str) or not value.strip():
            raise ValidationError("missing fields")
    _check_subscription_keys(p256dh, auth)
    return endpoint, p256dh, auth


class RelayService:
    """Subscription binding and envelope relay operations."""

    def __init__(
        self,
        *,
        subscriptions: SubscriptionRepository,
        envelopes: EnvelopeRepository,
        authority: ChallengeAuthority,
        transport: PushTransport,
        icon_url: str | None = None,
    ) -> None:
        self.subscriptions = subscriptions
        self.envelopes = envelopes
        self.authority = authority
        self.transport = transport
        self.icon_url = settings.push_icon_url if icon_url is None else icon_url

    def subscribe(
        self,
        *,
        user_pubkey: str | None,
        challenge: str | None,
        signature: str | None,
        subscription: Any,
        target_pubkey: str | None = None,
    ) -> SubscribeResult:
        """Bind a push endpoint to an identity that proved ownership of its key.

        Everything is validated before the proof is checked, and the proof is
        checked before anything is written.

        Raises:
            ValidationError: For missing or malformed fields.
            AuthError: For a missing, expired, foreign or badly signed challenge.
        """
        if not user_pubkey:
            raise ValidationError("missing pubkey")
        validate_public_key(user_pubkey)
        target = (target_pubkey or "").strip() or user_pubkey
        validate_public_key(target)
        if not challenge or not signature:
            raise ValidationError("missing proof")
        endpoint, p256dh, auth = parse_push_subscription(subscription)

        self.authority.authenticate(user_pubkey, signature, challenge)

        binding, created = self.subscriptions.upsert(
            endpoint=endpoint,
            p256dh=p256dh,
            auth=auth,
            user_pubkey=user_pubkey,
            target_pubkey=target,
        )
        logger.info("%s subscription %s", "Created" if created else "Re-bound", binding.id)
        return SubscribeResult(binding=binding, created=created)

    def unsubscribe(self, endpoint: str | None) -> bool:
        """Remove the binding for ``endpoint``; a missing binding is not an error."""
        if not endpoint:
            raise ValidationError("missing endpoint")
        removed = self.subscriptions.remove(endpoint)
        if removed:
            logger.info("Removed subscription for endpoint")
        return removed

    def relay(self, envelope: Envelope) -> tuple[Envelope, DeliveryReport]:
        """Persist an envelope and broadcast it to every bound endpoint."""
        validate_envelope(envelope)
        stored = self.envelopes.append(envelope)
        report = deliver_to_all(self.subscriptions, self.transport, self.push_payload(stored))
        logger.info(
            "Relayed envelope from %s: sent=%d pruned=%d failed=%d",
            stored.sender[:10],
            report.sent,
            len(report.pruned),
            len(report.failed),
        )
        return stored, report

    def push_payload(self, envelope: Envelope) -> str:
        payload: dict[str, Any] = {"type": MESSAGE_TYPE_DM, **envelope.to_dict()}
        if self.icon_url:
            payload["icon"] = self.icon_url
        return json.dumps(payload, separators=(",", ":"))

    def list_envelopes(self, *, limit: int, since: datetime | None = None) -> list[Envelope]:
        return self.envelopes.list_recent(limit=limit, since=since)

    def peers(self, pubkey: str | None) -> list[str]:
        if not pubkey:
            raise ValidationError("missing pubkey")
        return self.subscriptions.list_peers(pubkey)
