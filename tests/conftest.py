# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Generator, Iterator
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("FEED_POLL_ENABLED", "false")

from inproto.api import dependencies as deps
from inproto.db.session import Base
from inproto.main import app as fastapi_app
from inproto.repositories import (
    EnvelopeRepository,
    RelayStateRepository,
    SubscriptionRepository,
)
from inproto.services import identity
from inproto.services.challenges import ChallengeAuthority, ChallengeStore
from inproto.services.relay import RelayService
from tests.helpers import FakeClock, FakeTransport

TEST_DB_URL = "sqlite://"


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> Iterator[sessionmaker[Session]]:
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    try:
        yield factory
    finally:
        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def subscriptions(session_factory: sessionmaker[Session]) -> SubscriptionRepository:
    return SubscriptionRepository(session_factory)


@pytest.fixture()
def envelopes(session_factory: sessionmaker[Session]) -> EnvelopeRepository:
    return EnvelopeRepository(session_factory)


@pytest.fixture()
def relay_state(session_factory: sessionmaker[Session]) -> RelayStateRepository:
    return RelayStateRepository(session_factory)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def authority(clock: FakeClock) -> ChallengeAuthority:
    return ChallengeAuthority(ChallengeStore(), ttl_seconds=300, clock=clock)


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def relay_service(
    subscriptions: SubscriptionRepository,
    envelopes: EnvelopeRepository,
    authority: ChallengeAuthority,
    transport: FakeTransport,
) -> RelayService:
    return RelayService(
        subscriptions=subscriptions,
        envelopes=envelopes,
        authority=authority,
        transport=transport,
        icon_url="/icon.png",
    )


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_relay_dependencies(
    app: FastAPI,
    subscriptions: SubscriptionRepository,
    envelopes: EnvelopeRepository,
    relay_state: RelayStateRepository,
    authority: ChallengeAuthority,
    transport: FakeTransport,
) -> Iterator[None]:
    overrides: dict[Any, Any] = {
        deps.get_subscription_repository: lambda: subscriptions,
        deps.get_envelope_repository: lambda: envelopes,
        deps.get_state_repository: lambda: relay_state,
        deps.get_authority_dep: lambda: authority,
        deps.get_push_transport: lambda: transport,
    }
    app.dependency_overrides.update(overrides)
    try:
        yield
    finally:
        for dependency in overrides:
            app.dependency_overrides.pop(dependency, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def alice() -> str:
    return identity.generate()


@pytest.fixture()
def bob() -> str:
    return identity.generate()


@pytest.fixture()
def carol() -> str:
    return identity.generate()

