"""Async HTTP client for the relay endpoints."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from inproto.core.errors import InprotoError
from inproto.services import identity
from inproto.services.challenges import IssuedChallenge
from inproto.services.envelope import Envelope

logger = logging.getLogger(__name__)

HTTP_OK = 200
DEFAULT_TIMEOUT_SECONDS = 10.0


class RelayClientError(InprotoError):
    """Raised when the relay rejects a request or cannot be reached."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class SendReceipt:
    """Relay acknowledgement for a submitted envelope."""

    sent: int
    pruned: int
    failed: int
    received_at: str | None = None


class RelayClient:
    """Talks to one relay over HTTP."""

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout_seconds
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self._timeout),
                )
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_data: Any | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        client = await self._ensure_client()
        try:
            response = await client.request(
                method,
                f"{self.base_url}{path}",
                json=json_data,
                params=params,
            )
        except httpx.HTTPError as exc:
            raise RelayClientError(f"Relay request failed: {exc}") from exc
        if response.status_code != HTTP_OK:
            detail = _error_detail(response)
            logger.info("Relay rejected %s %s: %s", method, path, detail)
            raise RelayClientError(detail, status_code=response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise RelayClientError("Relay returned invalid JSON") from exc

    async def vapid_public_key(self) -> str:
        payload = await self._request("GET", "/vapid-public-key")
        key = payload.get("key") if isinstance(payload, dict) else None
        if not isinstance(key, str) or not key:
            raise RelayClientError("Failed to load VAPID public key")
        return key

    async def request_challenge(self, pubkey: str) -> IssuedChallenge:
        payload = await self._request("GET", "/subscribe/challenge", params={"pubkey": pubkey})
        token = payload.get("challenge") if isinstance(payload, dict) else None
        if not isinstance(token, str) or not token:
            raise RelayClientError("Challenge request failed")
        return IssuedChallenge(token=token, issued_at_ms=int(payload.get("issuedAt") or 0))

    async def subscribe(
        self,
        subscription: Mapping[str, Any],
        keypair: str,
        *,
        target_pubkey: str | None = None,
    ) -> bool:
        """Prove ownership of ``keypair`` and bind ``subscription`` to it.

        Args:
            subscription: Browser push subscription (``endpoint`` and ``keys``).
            keypair: Encoded keypair of the subscribing identity.
            target_pubkey: Identity the endpoint wants notifications for;
                defaults to the subscriber.

        Returns:
            True if a new binding was created, False if an existing one was re-bound.
        """
        user_pubkey = identity.public_key_of(keypair)
        challenge = await self.request_challenge(user_pubkey)
        body = {
            "subscription": dict(subscription),
            "userPubKey": user_pubkey,
            "targetPubKey": target_pubkey,
            "challenge": challenge.token,
            "signature": identity.sign(challenge.token, keypair),
        }
        payload = await self._request("POST", "/subscribe", json_data=body)
        return bool(payload.get("created")) if isinstance(payload, dict) else False

    async def unsubscribe(self, endpoint: str) -> bool:
        payload = await self._request("POST", "/unsubscribe", json_data={"endpoint": endpoint})
        return bool(payload.get("removed")) if isinstance(payload, dict) else False

    async def send_envelope(self, envelope: Envelope) -> SendReceipt:
        payload = await self._request("POST", "/message", json_data=envelope.to_dict())
        if not isinstance(payload, dict):
            raise RelayClientError("send failed")
        return SendReceipt(
            sent=int(payload.get("sent", 0)),
            pruned=int(payload.get("pruned", 0)),
            failed=int(payload.get("failed", 0)),
            received_at=payload.get("receivedAt"),
        )

    async def fetch_messages(
        self,
        *,
        limit: int | None = None,
        since: str | None = None,
    ) -> list[Envelope]:
        """Return stored envelopes, skipping any the relay returned malformed."""
        params: dict[str, Any] = {}
        if limit is not None:
            params["limit"] = limit
        if since is not None:
            params["since"] = since
        payload = await self._request("GET", "/messages", params=params or None)
        items = payload.get("messages") if isinstance(payload, dict) else None
        envelopes: list[Envelope] = []
        for item in items or []:
            if not isinstance(item, Mapping):
                continue
            try:
                envelopes.append(Envelope.from_mapping(item))
            except InprotoError:
                logger.debug("Skipping malformed envelope from relay")
        return envelopes

    async def close(self) -> None:
        """Release the HTTP client if this instance created it."""
        async with self._client_lock:
            if self._owns_client and self._client is not None:
                await self._client.aclose()
                self._client = None


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return f"Relay responded with {response.status_code}"
    if isinstance(payload, dict) and isinstance(payload.get("detail"), str):
        return payload["detail"]
    return f"Relay responded with {response.status_code}"
