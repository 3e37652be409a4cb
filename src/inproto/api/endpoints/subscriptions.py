# src/inproto/api/endpoints/subscriptions.py
"""Push subscription endpoints for the inproto relay."""

from __future__ import annotations

import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from inproto.api.dependencies import (
    AuthorityDep,
    RelayServiceDep,
    get_vapid_config,
    http_error,
)
from inproto.core.errors import InprotoError
from inproto.repositories.relay_state import VapidConfig
from inproto.schemas.subscription import (
    ChallengeResponse,
    PeersResponse,
    SubscribeRequest,
    SubscribeResponse,
    UnsubscribeRequest,
    UnsubscribeResponse,
    VapidKeyResponse,
)
from inproto.services.identity import validate_public_key

router = APIRouter(tags=["subscriptions"])

VapidConfigDep = Annotated[VapidConfig, Depends(get_vapid_config)]


@router.get("/vapid-public-key", response_model=VapidKeyResponse)
async def vapid_public_key(config: VapidConfigDep) -> VapidKeyResponse:
    """Return the application server key browsers subscribe with."""
    return VapidKeyResponse(key=config.public_key)


@router.get(
    "/subscribe/challenge",
    summary="Issue a proof-of-ownership challenge",
    response_model=ChallengeResponse,
)
async def issue_challenge(
    authority: AuthorityDep,
    pubkey: str | None = Query(None),
) -> ChallengeResponse:
    """Issue a single-use token that the identity must sign to subscribe."""
    if not pubkey:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing pubkey")
    try:
        validate_public_key(pubkey)
    except InprotoError as err:
        raise http_error(err) from err
    issued = authority.issue_challenge(pubkey)
    return ChallengeResponse(challenge=issued.token, issued_at=issued.issued_at_ms)


@router.post("/subscribe", summary="Bind a push endpoint to an identity", response_model=SubscribeResponse)
async def subscribe(payload: SubscribeRequest, relay: RelayServiceDep) -> SubscribeResponse:
    """Bind the caller's push endpoint after checking its signed challenge."""
    try:
        result = await asyncio.to_thread(
            relay.subscribe,
            user_pubkey=payload.user_pubkey,
            challenge=payload.challenge,
            signature=payload.signature,
            subscription=payload.push_subscription(),
            target_pubkey=payload.target_pubkey,
        )
    except InprotoError as err:
        raise http_error(err) from err
    return SubscribeResponse(created=result.created)


@router.post("/unsubscribe", response_model=UnsubscribeResponse)
async def unsubscribe(payload: UnsubscribeRequest, relay: RelayServiceDep) -> UnsubscribeResponse:
    """Remove the binding for an endpoint; unknown endpoints succeed too."""
    try:
        removed = await asyncio.to_thread(relay.unsubscribe, payload.endpoint)
    except InprotoError as err:
        raise http_error(err) from err
    return UnsubscribeResponse(removed=removed)


@router.get("/peers", response_model=PeersResponse)
async def list_peers(relay: RelayServiceDep, pubkey: str | None = Query(None)) -> PeersResponse:
    """List the distinct targets an identity has bound endpoints for."""
    try:
        peers = await asyncio.to_thread(relay.peers, pubkey)
    except InprotoError as err:
        raise http_error(err) from err
    return PeersResponse(peers=peers)
