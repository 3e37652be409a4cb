"""Repositories wrapping durable relay storage."""

from .envelopes import EnvelopeRepository
from .relay_state import FeedCursor, RelayStateRepository, VapidConfig
from .subscriptions import SubscriptionBinding, SubscriptionRepository

__all__ = [
    "EnvelopeRepository",
    "FeedCursor",
    "RelayStateRepository",
    "SubscriptionBinding",
    "SubscriptionRepository",
    "VapidConfig",
]
