# src/inproto/api/__init__.py
"""HTTP API for the inproto relay."""

from .endpoints import feed_router, messages_router, subscriptions_router

__all__ = [
    "feed_router",
    "messages_router",
    "subscriptions_router",
]
