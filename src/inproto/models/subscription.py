"""Models binding push endpoints to proven identities."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inproto.db.session import Base
from inproto.db.time import utcnow


class PushSubscription(Base):
    """A push endpoint bound to the identity that proved ownership for it.

    The primary key is the SHA-256 hex digest of the endpoint URL, so each
    endpoint holds at most one binding.
    """

    __tablename__ = "push_subscription"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    endpoint: Mapped[str] = mapped_column(Text, nullable=False)
    p256dh: Mapped[str] = mapped_column(Text, nullable=False)
    auth: Mapped[str] = mapped_column(Text, nullable=False)

    user_pubkey: Mapped[str] = mapped_column(String(44), nullable=False, index=True)
    target_pubkey: Mapped[str] = mapped_column(String(44), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    last_notified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
