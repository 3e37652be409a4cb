"""Client-side components: identity storage, composition, delivery and notifications."""

from .agent import DeliveryAgent, Notification
from .compose import compose_direct_message
from .keystore import IdentityManager, JsonFileKeyStore, KeyValueStore, MemoryKeyStore
from .notifications import NotificationToggle, PushRegistrar, ToggleResult, ToggleState
from .relay_client import RelayClient, RelayClientError, SendReceipt

__all__ = [
    "DeliveryAgent",
    "IdentityManager",
    "JsonFileKeyStore",
    "KeyValueStore",
    "MemoryKeyStore",
    "Notification",
    "NotificationToggle",
    "PushRegistrar",
    "RelayClient",
    "RelayClientError",
    "SendReceipt",
    "ToggleResult",
    "ToggleState",
    "compose_direct_message",
]
