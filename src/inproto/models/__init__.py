"""SQLAlchemy models for the inproto relay."""

from .envelope import RelayEnvelope
from .relay_state import FeedState, RelayConfig
from .subscription import PushSubscription

__all__ = [
    "FeedState",
    "PushSubscription",
    "RelayConfig",
    "RelayEnvelope",
]
