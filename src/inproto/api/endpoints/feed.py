# src/inproto/api/endpoints/feed.py
"""Manual triggers for the external feed poller."""

from __future__ import annotations

from fastapi import APIRouter

from inproto.api.dependencies import FeedPollerDep
from inproto.schemas.feed import PollResponse

router = APIRouter(tags=["feed"])


@router.post("/poll-now", response_model=PollResponse, response_model_exclude_none=True)
async def poll_now(poller: FeedPollerDep) -> PollResponse:
    """Poll the feed once, broadcasting only if the latest item is new."""
    result = await poller.poll()
    return PollResponse(**result.to_dict())


@router.post("/push-latest", response_model=PollResponse, response_model_exclude_none=True)
async def push_latest(poller: FeedPollerDep) -> PollResponse:
    """Poll the feed and broadcast the latest item even if it was seen before."""
    result = await poller.poll(force=True)
    return PollResponse(**result.to_dict())
