"""Shared FastAPI dependencies for the relay endpoints."""

from __future__ import annotations

from collections.abc import AsyncIterator
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, status

from inproto.core.errors import (
    AuthError,
    InprotoError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from inproto.repositories.envelopes import EnvelopeRepository
from inproto.repositories.relay_state import RelayStateRepository, VapidConfig
from inproto.repositories.subscriptions import SubscriptionRepository
from inproto.services.challenges import ChallengeAuthority, get_challenge_authority
from inproto.services.feed import FeedPoller
from inproto.services.push import PushTransport, WebPushTransport, ensure_vapid_config
from inproto.services.relay import RelayService


@lru_cache(maxsize=1)
def get_subscription_repository() -> SubscriptionRepository:
    """Return the process-wide binding store."""
    return SubscriptionRepository()


@lru_cache(maxsize=1)
def get_envelope_repository() -> EnvelopeRepository:
    """Return the process-wide envelope log."""
    return EnvelopeRepository()


@lru_cache(maxsize=1)
def get_state_repository() -> RelayStateRepository:
    """Return the process-wide relay state store."""
    return RelayStateRepository()


def get_vapid_config(
    state: Annotated[RelayStateRepository, Depends(get_state_repository)],
) -> VapidConfig:
    return ensure_vapid_config(state)


@lru_cache(maxsize=1)
def _web_push_transport() -> WebPushTransport:
    return WebPushTransport(ensure_vapid_config(get_state_repository()))


def get_push_transport() -> PushTransport:
    """Return the shared Web Push transport."""
    return _web_push_transport()


def get_authority_dep() -> ChallengeAuthority:
    return get_challenge_authority()


SubscriptionRepoDep = Annotated[SubscriptionRepository, Depends(get_subscription_repository)]
EnvelopeRepoDep = Annotated[EnvelopeRepository, Depends(get_envelope_repository)]
StateRepoDep = Annotated[RelayStateRepository, Depends(get_state_repository)]
TransportDep = Annotated[PushTransport, Depends(get_push_transport)]
AuthorityDep = Annotated[ChallengeAuthority, Depends(get_authority_dep)]


def get_relay_service(
    subscriptions: SubscriptionRepoDep,
    envelopes: EnvelopeRepoDep,
    authority: AuthorityDep,
    transport: TransportDep,
) -> RelayService:
    return RelayService(
        subscriptions=subscriptions,
        envelopes=envelopes,
        authority=authority,
        transport=transport,
    )


async def get_feed_poller(
    state: StateRepoDep,
    subscriptions: SubscriptionRepoDep,
    transport: TransportDep,
) -> AsyncIterator[FeedPoller]:
    """Yield a one-shot poller for manually triggered polls."""
    poller = FeedPoller(state=state, subscriptions=subscriptions, transport=transport)
    try:
        yield poller
    finally:
        await poller.stop()


RelayServiceDep = Annotated[RelayService, Depends(get_relay_service)]
FeedPollerDep = Annotated[FeedPoller, Depends(get_feed_poller)]


def http_error(err: InprotoError) -> HTTPException:
    """Translate a relay exception into the HTTP error returned to clients."""
    if isinstance(err, ValidationError | AuthError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(err))
    if isinstance(err, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(err))
    if isinstance(err, StorageError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="storage unavailable",
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(err))
