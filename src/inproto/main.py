# src/inproto/main.py
"""Main entry point for the inproto relay."""

from __future__ import annotations

import asyncio
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from inproto import __version__
from inproto.api import feed_router, messages_router, subscriptions_router
from inproto.api.dependencies import (
    get_push_transport,
    get_state_repository,
    get_subscription_repository,
)
from inproto.core.log import configure_logging
from inproto.core.settings import settings
from inproto.db.session import create_tables
from inproto.services.feed import FeedPoller

configure_logging()
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="inproto relay",
    description="Blind push relay for end-to-end encrypted direct messages",
    version=__version__,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

app.include_router(subscriptions_router)
app.include_router(messages_router)
app.include_router(feed_router)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed bodies as 400 like every other client error."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "invalid request", "errors": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, object]]:
    return [
        {"loc": list(error.get("loc", ())), "msg": str(error.get("msg", ""))}
        for error in exc.errors()
    ]


@app.on_event("startup")
async def on_startup() -> None:
    await asyncio.to_thread(create_tables)
    transport = await asyncio.to_thread(get_push_transport)
    if settings.feed_poll_enabled:
        poller = FeedPoller(
            state=get_state_repository(),
            subscriptions=get_subscription_repository(),
            transport=transport,
        )
        await poller.start()
        app.state.feed_poller = poller
    else:
        app.state.feed_poller = None
    logger.info("Relay ready on %s:%s", settings.host, settings.port)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    poller: FeedPoller | None = getattr(app.state, "feed_poller", None)
    if poller:
        await poller.stop()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the relay."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "description": "Blind push relay for end-to-end encrypted direct messages",
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("inproto.main:app", host=settings.host, port=settings.port, reload=settings.debug)
