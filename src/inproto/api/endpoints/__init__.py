# src/inproto/api/endpoints/__init__.py
"""API endpoint modules."""

from .feed import router as feed_router
from .messages import router as messages_router
from .subscriptions import router as subscriptions_router

__all__ = [
    "feed_router",
    "messages_router",
    "subscriptions_router",
]
