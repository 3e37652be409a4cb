"""Engine and session factory for the relay database."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from inproto.core.settings import settings

_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


# Model modules register their tables on Base.metadata when imported.
import inproto.models  # noqa: E402,F401


def _engine_options(url: str) -> dict[str, Any]:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    # Push delivery runs in worker threads, so SQLite connections must be shareable.
    options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if url in _MEMORY_URLS:
        # An in-memory database only exists on the connection that created it.
        options["poolclass"] = StaticPool
    return options


def build_engine(url: str, *, echo: bool = False) -> Engine:
    """Create an engine for ``url`` with the pool settings the relay needs."""
    return create_engine(url, echo=echo, **_engine_options(url))


engine = build_engine(settings.effective_database_url, echo=settings.sql_debug)

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def _ensure_sqlite_directory(url: str) -> None:
    if not url.startswith("sqlite:///") or url in _MEMORY_URLS:
        return
    Path(url.removeprefix("sqlite:///")).parent.mkdir(parents=True, exist_ok=True)


def create_tables() -> None:
    """Create any missing relay tables on the configured engine."""
    _ensure_sqlite_directory(settings.effective_database_url)
    Base.metadata.create_all(bind=engine)
