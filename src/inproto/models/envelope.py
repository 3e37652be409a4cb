"""Models describing encrypted envelopes held by the relay."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from inproto.db.session import Base
from inproto.db.time import utcnow


class RelayEnvelope(Base):
    """Opaque envelope submitted by a client.

    The relay stores the boxes verbatim and never decrypts them; the only
    cleartext field is the sender's public key.
    """

    __tablename__ = "relay_envelope"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sender_pubkey: Mapped[str] = mapped_column(String(44), nullable=False)
    # List of {"nonce": str, "box": str} entries, one per intended reader.
    boxes: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
