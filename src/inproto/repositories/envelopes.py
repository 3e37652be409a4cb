"""Data access helpers for the relay's envelope log."""
from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import select

from inproto.db.time import isoformat, utcnow_ms
from inproto.models.envelope import RelayEnvelope
from inproto.repositories.base import Repository
from inproto.services.envelope import Box, Envelope

__all__ = ["EnvelopeRepository"]


def _to_envelope(row: RelayEnvelope) -> Envelope:
    return Envelope(
        sender=row.sender_pubkey,
        boxes=tuple(Box(nonce=item["nonce"], box=item["box"]) for item in row.boxes),
        received_at=isoformat(row.received_at),
    )


class EnvelopeRepository(Repository):
    """Append-only store of opaque envelopes."""

    def append(self, envelope: Envelope) -> Envelope:
        """Persist ``envelope`` verbatim and return it stamped with ``receivedAt``."""
        with self.transaction() as db:
            row = RelayEnvelope(
                sender_pubkey=envelope.sender,
                boxes=[box.to_dict() for box in envelope.boxes],
                received_at=utcnow_ms(),
            )
            db.add(row)
            db.flush()
            return _to_envelope(row)

    def list_recent(self, *, limit: int, since: datetime | None = None) -> list[Envelope]:
        """Return up to ``limit`` envelopes in arrival order, newest last."""
        stmt = select(RelayEnvelope)
        if since is not None:
            since = since.astimezone(UTC) if since.tzinfo else since.replace(tzinfo=UTC)
            stmt = stmt.where(RelayEnvelope.received_at > since)
        stmt = stmt.order_by(RelayEnvelope.id.desc()).limit(limit)
        with self.reading() as db:
            rows = list(db.scalars(stmt))
        return [_to_envelope(row) for row in reversed(rows)]
