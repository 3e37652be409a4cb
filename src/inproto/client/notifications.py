"""Notification on/off control for a client identity.

The platform push manager (a browser's, a mobile OS's) is outside this
package and is reached through :class:`PushRegistrar`. The toggle records
which identity the active push subscription was bound for, so switching
identities first unbinds the stale endpoint before binding it again.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from inproto.client.agent import DeliveryAgent
from inproto.client.keystore import IdentityManager, KeyValueStore
from inproto.client.relay_client import RelayClient
from inproto.core.errors import InprotoError
from inproto.services.identity import public_key_of

logger = logging.getLogger(__name__)

PUSH_IDENTITY_KEY = "inproto:pushIdentity"


class PushRegistrationError(InprotoError):
    """Raised by registrars when the platform refuses a push operation."""


class ToggleState(Enum):
    """Whether this client currently receives notifications."""

    UNKNOWN = "unknown"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"


@dataclass(frozen=True)
class ToggleResult:
    ok: bool
    state: ToggleState
    reason: str | None = None


class PushRegistrar(Protocol):
    """Platform push manager."""

    async def request_permission(self) -> bool:
        """Ask the user to allow notifications; True if granted."""

    async def current(self) -> Mapping[str, Any] | None:
        """Return the active push subscription, if any."""

    async def subscribe(self, application_server_key: str) -> Mapping[str, Any]:
        """Create a push subscription for the relay's VAPID key."""

    async def unsubscribe(self) -> bool:
        """Drop the active push subscription; True if one existed."""


def _endpoint_of(subscription: Mapping[str, Any] | None) -> str | None:
    if not subscription:
        return None
    endpoint = subscription.get("endpoint")
    return endpoint if isinstance(endpoint, str) and endpoint else None


class NotificationToggle:
    """Turns relay notifications on and off for the local identity."""

    def __init__(
        self,
        *,
        relay: RelayClient,
        registrar: PushRegistrar,
        identities: IdentityManager,
        store: KeyValueStore,
        agent: DeliveryAgent | None = None,
        target_provider: Callable[[], str | None] | None = None,
    ) -> None:
        self.relay = relay
        self.registrar = registrar
        self.identities = identities
        self.store = store
        self.agent = agent
        self.target_provider = target_provider
        self.state = ToggleState.UNKNOWN

    def _result(self, ok: bool, reason: str | None = None) -> ToggleResult:
        return ToggleResult(ok=ok, state=self.state, reason=reason)

    async def refresh(self) -> ToggleResult:
        """Re-read the platform subscription and update :attr:`state`.

        A subscription bound for another identity is torn down here, so the
        caller is offered to subscribe again rather than to turn it off.
        """
        try:
            subscription = await self.registrar.current()
            endpoint = _endpoint_of(subscription)
            if endpoint and self._bound_to_other_identity():
                await self._drop_stale(endpoint)
                endpoint = None
        except InprotoError as err:
            logger.warning("Unable to read push subscription: %s", err)
            self.state = ToggleState.UNSUBSCRIBED
            return self._result(False, "refresh failed")
        self.state = ToggleState.SUBSCRIBED if endpoint else ToggleState.UNSUBSCRIBED
        return self._result(True)

    def _bound_to_other_identity(self, pubkey: str | None = None) -> bool:
        if pubkey is None:
            pubkey = self.identities.public_key()
        return self.store.get(PUSH_IDENTITY_KEY) != pubkey

    async def _drop_stale(self, endpoint: str) -> None:
        logger.info("Push subscription belongs to another identity; dropping it")
        await self._drop_binding(endpoint)
        await self.registrar.unsubscribe()
        self.store.delete(PUSH_IDENTITY_KEY)

    async def subscribe(self) -> ToggleResult:
        """Bind this client's push endpoint to the local identity."""
        keypair = self.identities.load()
        if keypair is None:
            return self._result(False, "generate a keypair first")
        try:
            return await self._subscribe(keypair)
        except InprotoError as err:
            logger.error("Subscribe failed: %s", err)
            return self._result(False, "subscribe failed")

    async def _subscribe(self, keypair: str) -> ToggleResult:
        if not await self.registrar.request_permission():
            return self._result(False, "permission denied")

        pubkey = public_key_of(keypair)
        subscription = await self.registrar.current()
        endpoint = _endpoint_of(subscription)
        if endpoint and self._bound_to_other_identity(pubkey):
            await self._drop_stale(endpoint)
            subscription = None

        if not _endpoint_of(subscription):
            server_key = await self.relay.vapid_public_key()
            subscription = await self.registrar.subscribe(server_key)

        target = self.target_provider() if self.target_provider else None
        await self.relay.subscribe(subscription, keypair, target_pubkey=target)
        self.store.set(PUSH_IDENTITY_KEY, pubkey)
        if self.agent is not None:
            self.agent.sync_identity(keypair)
        self.state = ToggleState.SUBSCRIBED
        return self._result(True, "subscribed")

    async def _drop_binding(self, endpoint: str) -> None:
        try:
            await self.relay.unsubscribe(endpoint)
        except InprotoError as err:
            # The relay forgets dead endpoints on its own once pushes fail.
            logger.warning("Could not remove stale binding: %s", err)

    async def unsubscribe(self) -> ToggleResult:
        """Drop the push subscription and remove its binding from the relay."""
        try:
            subscription = await self.registrar.current()
            endpoint = _endpoint_of(subscription)
            if endpoint is None:
                self.state = ToggleState.UNSUBSCRIBED
                return self._result(False, "not subscribed")
            await self.registrar.unsubscribe()
            await self.relay.unsubscribe(endpoint)
        except InprotoError as err:
            logger.error("Unsubscribe failed: %s", err)
            return self._result(False, "unsubscribe failed")
        self.store.delete(PUSH_IDENTITY_KEY)
        self.state = ToggleState.UNSUBSCRIBED
        return self._result(True, "unsubscribed")
