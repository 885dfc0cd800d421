"""
Pytest fixtures for test database, client, identities and notifications.

Every test gets its own SQLite file so that concurrent requests use separate
connections and really contend for the database lock. Environment variables
are set before any eventreg import so pydantic-settings picks them up.

SQLite transactions start with BEGIN IMMEDIATE (see eventreg.db.session), so
tests never keep a session open across API calls: each helper opens a short
session and closes it.
"""

import dataclasses
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DATABASE_URL_SYNC", "sqlite:///:memory:")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("NOTIFICATION_SINK", "log")
os.environ.setdefault("NOTIFICATION_RELAY_INTERVAL_SECONDS", "0")

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from eventreg.core.config import RegistrationPolicy, get_policy
from eventreg.core.security import Principal, create_access_token
from eventreg.db.base import Base
from eventreg.db.session import build_engine, get_db, get_session_factory
from eventreg.main import app
from eventreg.models.event import Event
from eventreg.models.ledger import CapacityLedger
from eventreg.models.notification import EventNotification
from eventreg.models.registration import Registration
from eventreg.schemas.registration import ParticipantInfo
from eventreg.services.admission_service import register_participant
from eventreg.services.interfaces.notification_sink import NotificationSink
from eventreg.services.sink_factory import get_notification_sink
from eventreg.services.waitlist_service import cancel_registration


class RecordingSink(NotificationSink):
    """Keeps every delivered payload in memory."""

    name = "recording"

    def __init__(self):
        self.payloads: list[dict] = []

    async def send(self, payload: dict) -> None:
        self.payloads.append(payload)

    def of_type(self, type_: str) -> list[dict]:
        return [p for p in self.payloads if p["type"] == type_]


class FailingSink(NotificationSink):
    """Simulates an unreachable notification collaborator."""

    name = "failing"

    def __init__(self):
        self.calls = 0

    async def send(self, payload: dict) -> None:
        self.calls += 1
        raise ConnectionError("notification service unreachable")


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh schema in a per-test SQLite file."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'registrations.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def policy() -> RegistrationPolicy:
    return RegistrationPolicy(max_retries=5, retry_backoff_seconds=0.001)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, policy, sink) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with one test-database session per request."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_policy] = lambda: policy
    app.dependency_overrides[get_notification_sink] = lambda: sink

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_event(session_factory):
    """Insert a published event that requires registration."""

    async def _make(
        max_participants: Optional[int] = 2,
        registration_deadline: Optional[datetime] = None,
        status: str = "published",
        registration_required: bool = True,
        title: str = "Science Fair",
    ) -> Event:
        async with session_factory() as db:
            event = Event(
                title=title,
                status=status,
                registration_required=registration_required,
                registration_deadline=registration_deadline,
                max_participants=max_participants,
            )
            db.add(event)
            await db.commit()
            await db.refresh(event)
            return event

    return _make


@pytest.fixture
def past_deadline() -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=1)


@pytest.fixture
def future_deadline() -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=7)


def principal_for(user_id: int) -> Principal:
    return Principal(id=user_id, display_name=f"User {user_id}", email=f"user{user_id}@example.com")


def auth_headers_for(user_id: int) -> dict:
    principal = principal_for(user_id)
    token = create_access_token(
        data={"sub": str(principal.id), "name": principal.display_name, "email": principal.email}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def register(session_factory, policy):
    """Run the admission controller for one user in its own session."""

    async def _register(event_id: int, user_id: int, info: Optional[ParticipantInfo] = None, **overrides):
        effective = dataclasses.replace(policy, **overrides)
        async with session_factory() as db:
            return await register_participant(
                db, event_id, principal_for(user_id), info or ParticipantInfo(), effective
            )

    return _register


@pytest.fixture
def cancel(session_factory, policy):
    """Run a cancellation for one user in its own session."""

    async def _cancel(event_id: int, user_id: int, **overrides):
        effective = dataclasses.replace(policy, **overrides)
        async with session_factory() as db:
            return await cancel_registration(db, event_id, principal_for(user_id), effective)

    return _cancel


@pytest.fixture
def fetch(session_factory):
    """Read helpers that never hold a transaction open."""

    class _Fetch:
        async def registrations(self, event_id: int) -> list[Registration]:
            async with session_factory() as db:
                result = await db.execute(
                    select(Registration)
                    .where(Registration.event_id == event_id)
                    .order_by(Registration.id)
                )
                return list(result.scalars().all())

        async def by_user(self, event_id: int) -> dict[int, Registration]:
            return {r.user_id: r for r in await self.registrations(event_id)}

        async def ledger(self, event_id: int) -> Optional[CapacityLedger]:
            async with session_factory() as db:
                return await db.get(CapacityLedger, event_id)

        async def notifications(self, event_id: Optional[int] = None) -> list[EventNotification]:
            async with session_factory() as db:
                query = select(EventNotification).order_by(EventNotification.id)
                if event_id is not None:
                    query = query.where(EventNotification.event_id == event_id)
                result = await db.execute(query)
                return list(result.scalars().all())

    return _Fetch()


@pytest.fixture
def auth_headers():
    """Factory: bearer headers for a given user id."""
    return auth_headers_for


@pytest.fixture
def failing_sink() -> FailingSink:
    return FailingSink()
