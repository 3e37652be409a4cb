"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .feed import PollResponse
from .message import (
    BoxPayload,
    EnvelopeCreate,
    EnvelopeResponse,
    MessageSentResponse,
    MessagesResponse,
)
from .subscription import (
    ChallengeResponse,
    PeersResponse,
    SubscribeRequest,
    SubscribeResponse,
    UnsubscribeRequest,
    UnsubscribeResponse,
    VapidKeyResponse,
)

__all__ = [
    "BoxPayload", "EnvelopeCreate", "EnvelopeResponse", "MessageSentResponse", "MessagesResponse",
    "ChallengeResponse", "PeersResponse", "SubscribeRequest", "SubscribeResponse",
    "UnsubscribeRequest", "UnsubscribeResponse", "VapidKeyResponse",
    "PollResponse",
]
