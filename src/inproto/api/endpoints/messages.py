# src/inproto/api/endpoints/messages.py
"""Envelope relay endpoints for the inproto relay."""

from __future__ import annotations

import asyncio
from datetime import datetime

from fastapi import APIRouter, Query, status

from inproto.api.dependencies import RelayServiceDep, http_error
from inproto.core.errors import InprotoError
from inproto.core.settings import settings
from inproto.schemas.message import (
    EnvelopeCreate,
    EnvelopeResponse,
    MessageSentResponse,
    MessagesResponse,
)

router = APIRouter(tags=["messages"])


@router.post("/message", status_code=status.HTTP_200_OK, response_model=MessageSentResponse)
async def send_message(payload: EnvelopeCreate, relay: RelayServiceDep) -> MessageSentResponse:
    """Store an encrypted envelope and push it to every bound endpoint."""
    try:
        stored, report = await asyncio.to_thread(relay.relay, payload.to_envelope())
    except InprotoError as err:
        raise http_error(err) from err
    return MessageSentResponse(
        sent=report.sent,
        pruned=len(report.pruned),
        failed=len(report.failed),
        received_at=stored.received_at,
    )


@router.get("/messages", response_model=MessagesResponse)
async def list_messages(
    relay: RelayServiceDep,
    limit: int = Query(settings.messages_page_limit, ge=1, le=1000),
    since: datetime | None = Query(None, description="Only envelopes received after this time"),
) -> MessagesResponse:
    """Return stored envelopes for clients to decrypt and filter locally."""
    try:
        envelopes = await asyncio.to_thread(relay.list_envelopes, limit=limit, since=since)
    except InprotoError as err:
        raise http_error(err) from err
    return MessagesResponse(messages=[EnvelopeResponse.from_envelope(item) for item in envelopes])
