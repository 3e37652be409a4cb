"""Data access helpers for single-row relay records."""
from __future__ import annotations

from dataclasses import dataclass

from inproto.models.relay_state import FeedState, RelayConfig
from inproto.repositories.base import Repository

__all__ = ["FeedCursor", "RelayStateRepository", "VapidConfig"]

_SINGLETON_ID = 1


@dataclass(frozen=True)
class FeedCursor:
    """Last feed item the poller has seen."""

    last_seen_id: str | None = None
    last_seen_hash: str | None = None


@dataclass(frozen=True)
class VapidConfig:
    """Application server identity used to sign Web Push requests."""

    public_key: str
    private_key: str
    subject: str


class RelayStateRepository(Repository):
    """Reads and writes the feed cursor and the VAPID configuration."""

    def load_cursor(self) -> FeedCursor:
        with self.reading() as db:
            row = db.get(FeedState, _SINGLETON_ID)
            if row is None:
                return FeedCursor()
            return FeedCursor(last_seen_id=row.last_seen_id, last_seen_hash=row.last_seen_hash)

    def save_cursor(self, cursor: FeedCursor) -> None:
        with self.transaction() as db:
            row = db.get(FeedState, _SINGLETON_ID)
            if row is None:
                row = FeedState(id=_SINGLETON_ID)
                db.add(row)
            row.last_seen_id = cursor.last_seen_id
            row.last_seen_hash = cursor.last_seen_hash

    def load_vapid_config(self) -> VapidConfig | None:
        with self.reading() as db:
            row = db.get(RelayConfig, _SINGLETON_ID)
            if row is None:
                return None
            return VapidConfig(
                public_key=row.vapid_public_key,
                private_key=row.vapid_private_key,
                subject=row.vapid_subject,
            )

    def save_vapid_config(self, config: VapidConfig) -> None:
        with self.transaction() as db:
            row = db.get(RelayConfig, _SINGLETON_ID)
            if row is None:
                row = RelayConfig(id=_SINGLETON_ID)
                db.add(row)
            row.vapid_public_key = config.public_key
            row.vapid_private_key = config.private_key
            row.vapid_subject = config.subject
