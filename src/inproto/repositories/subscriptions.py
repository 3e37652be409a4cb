"""Data access helpers for push subscription bindings."""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select, update

from inproto.db.time import isoformat, utcnow
from inproto.models.subscription import PushSubscription
from inproto.repositories.base import Repository
from inproto.utils.hash import subscription_id

__all__ = ["SubscriptionBinding", "SubscriptionRepository"]


@dataclass(frozen=True)
class SubscriptionBinding:
    """Detached snapshot of a stored binding."""

    id: str
    endpoint: str
    p256dh: str
    auth: str
    user_pubkey: str
    target_pubkey: str
    created_at: datetime | None = None
    last_notified_at: datetime | None = None

    @classmethod
    def from_model(cls, row: PushSubscription) -> SubscriptionBinding:
        return cls(
            id=row.id,
            endpoint=row.endpoint,
            p256dh=row.p256dh,
            auth=row.auth,
            user_pubkey=row.user_pubkey,
            target_pubkey=row.target_pubkey,
            created_at=row.created_at,
            last_notified_at=row.last_notified_at,
        )

    def subscription_info(self) -> dict[str, Any]:
        """Return the endpoint descriptor in Web Push subscription form."""
        return {"endpoint": self.endpoint, "keys": {"p256dh": self.p256dh, "auth": self.auth}}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "endpoint": self.endpoint,
            "keys": {"p256dh": self.p256dh, "auth": self.auth},
            "userPubKey": self.user_pubkey,
            "targetPubKey": self.target_pubkey,
            "createdAt": isoformat(self.created_at),
            "lastNotifiedAt": isoformat(self.last_notified_at),
        }


class SubscriptionRepository(Repository):
    """Binding store keyed by the hash of each push endpoint."""

    def upsert(
        self,
        *,
        endpoint: str,
        p256dh: str,
        auth: str,
        user_pubkey: str,
        target_pubkey: str,
    ) -> tuple[SubscriptionBinding, bool]:
        """Insert a binding or re-bind an existing endpoint.

        Returns:
            The stored binding and True if a new row was created.
        """
        binding_id = subscription_id(endpoint)
        with self.transaction() as db:
            row = db.get(PushSubscription, binding_id)
            created = row is None
            if row is None:
                row = PushSubscription(
                    id=binding_id,
                    endpoint=endpoint,
                    p256dh=p256dh,
                    auth=auth,
                    user_pubkey=user_pubkey,
                    target_pubkey=target_pubkey,
                    created_at=utcnow(),
                )
                db.add(row)
            else:
                row.p256dh = p256dh
                row.auth = auth
                row.user_pubkey = user_pubkey
                row.target_pubkey = target_pubkey
            db.flush()
            return SubscriptionBinding.from_model(row), created

    def remove(self, endpoint: str) -> bool:
        """Delete the binding for ``endpoint``; returns False if there was none."""
        with self.transaction() as db:
            result = db.execute(
                delete(PushSubscription).where(PushSubscription.id == subscription_id(endpoint))
            )
            return bool(result.rowcount)

    def get(self, endpoint: str) -> SubscriptionBinding | None:
        with self.reading() as db:
            row = db.get(PushSubscription, subscription_id(endpoint))
            return SubscriptionBinding.from_model(row) if row is not None else None

    def list_all(self) -> list[SubscriptionBinding]:
        """Return every binding in creation order."""
        with self.reading() as db:
            rows = db.scalars(
                select(PushSubscription).order_by(PushSubscription.created_at, PushSubscription.id)
            )
            return [SubscriptionBinding.from_model(row) for row in rows]

    def list_peers(self, pubkey: str) -> list[str]:
        """Return the distinct targets that ``pubkey`` has bound endpoints for."""
        peers: list[str] = []
        for binding in self.list_all():
            if binding.user_pubkey != pubkey:
                continue
            target = binding.target_pubkey.strip()
            if target and target not in peers:
                peers.append(target)
        return peers

    def prune(self, binding_ids: Iterable[str]) -> int:
        """Delete the given bindings by id; returns how many were removed."""
        ids = list(binding_ids)
        if not ids:
            return 0
        with self.transaction() as db:
            result = db.execute(delete(PushSubscription).where(PushSubscription.id.in_(ids)))
            return int(result.rowcount or 0)

    def mark_notified(self, binding_ids: Iterable[str], when: datetime | None = None) -> None:
        """Stamp ``last_notified_at`` on bindings that still exist."""
        ids = list(binding_ids)
        if not ids:
            return
        with self.transaction() as db:
            db.execute(
                update(PushSubscription)
                .where(PushSubscription.id.in_(ids))
                .values(last_notified_at=when or utcnow())
            )
