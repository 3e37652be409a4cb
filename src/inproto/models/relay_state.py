"""Single-row bookkeeping records for the relay."""

from sqlalchemy import Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from inproto.db.session import Base


class FeedState(Base):
    """Dedupe cursor for the external feed poller.

    Exactly one of ``last_seen_id`` and ``last_seen_hash`` is set after a poll
    that observed new content.
    """

    __tablename__ = "feed_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    last_seen_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_seen_hash: Mapped[str | None] = mapped_column(Text, nullable=True)


class RelayConfig(Base):
    """VAPID keypair and subject, generated once and reused thereafter."""

    __tablename__ = "relay_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    vapid_public_key: Mapped[str] = mapped_column(Text, nullable=False)
    vapid_private_key: Mapped[str] = mapped_column(Text, nullable=False)
    vapid_subject: Mapped[str] = mapped_column(Text, nullable=False)
