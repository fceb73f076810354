"""
Pytest configuration for Vantage backend tests.

Tests run against an in-memory SQLite database via aiosqlite; emails go to a
recording notifier and time comes from a controllable clock.
"""

import os

os.environ.setdefault("IDP_JWT_SECRET", "test-idp-secret-key-with-at-least-32-chars")

from datetime import UTC, date, datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from vantage.core.config import settings
from vantage.core.database import get_db, session_scope
from vantage.core.dependencies import get_notifier
from vantage.core.exceptions import DependencyUnavailable
from vantage.core.store import SQLAlchemyEntityStore
from vantage.main import app
from vantage.models import Base, MemberRole, Membership, MembershipStatus, UserProfile
from vantage.models.heartbeat import Confidence, HealthSignal
from vantage.schemas.heartbeat import HeartbeatCreate
from vantage.schemas.objective import (
    InitiativeCreateRequest,
    KeyResultSeed,
    ObjectiveCreateRequest,
    OutcomeSeed,
)
from vantage.services.heartbeat_service import HeartbeatService
from vantage.services.objective_service import ObjectiveService
from vantage.services.organization_service import TenancyService
from vantage.services.reminder_service import ReminderService

OWNER_SUB = "idp|alice"
OWNER_EMAIL = "alice@acme.test"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class RecordingNotifier:
    """Keeps sent emails in memory; ``fail`` simulates an unavailable queue."""

    def __init__(self) -> None:
        self.sent: list[dict[str, str]] = []
        self.fail = False

    async def send_email(self, to_address, subject, text_body, html_body) -> None:
        if self.fail:
            raise DependencyUnavailable("Email queue is unavailable")
        self.sent.append(
            {"to": to_address, "subject": subject, "text": text_body, "html": html_body}
        )


class FakeClock:
    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime.now(UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 0, hours: int = 0) -> None:
        self.now += timedelta(days=days, hours=hours)

    def today(self) -> date:
        return self.now.date()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session):
    return SQLAlchemyEntityStore(session)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return FakeClock()


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

@pytest.fixture
def tenancy(store, notifier, clock):
    return TenancyService(store, notifier, clock)


@pytest.fixture
def heartbeats(store, tenancy, clock):
    return HeartbeatService(store, tenancy, clock)


@pytest.fixture
def objectives(store, tenancy, heartbeats, clock):
    return ObjectiveService(store, tenancy, heartbeats, clock)


@pytest.fixture
def reminders(store, notifier, clock):
    return ReminderService(store, notifier, clock)


# ---------------------------------------------------------------------------
# Data helpers
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def org(tenancy):
    """Acme, owned by alice."""
    await tenancy.ensure_user_profile(OWNER_SUB, OWNER_EMAIL, "Alice")
    return await tenancy.create_organization(OWNER_SUB, "Acme")


@pytest.fixture
def add_member(store):
    """Insert a profile plus membership directly, skipping the invite flow."""

    async def _add(
        org_id,
        sub: str,
        role: MemberRole = MemberRole.member,
        status: MembershipStatus = MembershipStatus.active,
    ) -> Membership:
        name = sub.split("|")[-1]
        if await store.get_by(UserProfile, user_sub=sub) is None:
            await store.create(
                UserProfile, user_sub=sub, email=f"{name}@acme.test", display_name=name.title()
            )
        return await store.create(
            Membership, org_id=org_id, user_sub=sub, role=role, status=status
        )

    return _add


def objective_request(owner_id: str = OWNER_SUB, **overrides) -> ObjectiveCreateRequest:
    """One outcome, one key result, two initiatives."""
    data = {
        "name": "Grow revenue",
        "owner_id": owner_id,
        "target_date": date(2027, 12, 31),
        "outcomes": [
            OutcomeSeed(
                goal="Enterprise adoption",
                owner_id=owner_id,
                key_results=[
                    KeyResultSeed(
                        description="Sign 10 enterprise customers",
                        owner_id=owner_id,
                        initiatives=[
                            InitiativeCreateRequest(name="Outbound campaign", owner_id=owner_id),
                            InitiativeCreateRequest(name="Partner program", owner_id=owner_id),
                        ],
                    )
                ],
            )
        ],
    }
    data.update(overrides)
    return ObjectiveCreateRequest(**data)


def heartbeat_request(
    period_end: date,
    signal: HealthSignal = HealthSignal.green,
    confidence: Confidence = Confidence.high,
    **overrides,
) -> HeartbeatCreate:
    data = {
        "period_start": period_end - timedelta(days=6),
        "period_end": period_end,
        "health_signal": signal,
        "confidence": confidence,
        "narrative": "Weekly update",
    }
    data.update(overrides)
    return HeartbeatCreate(**data)


@pytest.fixture
def make_objective(objectives, org):
    async def _make(**overrides):
        result = await objectives.create_objective(OWNER_SUB, org.id, objective_request(**overrides))
        return result.objective

    return _make


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

def mint_token(sub: str, email: str, name: str | None = None) -> str:
    claims = {"sub": sub, "email": email}
    if name:
        claims["name"] = name
    return jwt.encode(claims, settings.IDP_JWT_SECRET, algorithm=settings.IDP_JWT_ALGORITHM)


def auth(sub: str, email: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {mint_token(sub, email)}"}


@pytest_asyncio.fixture
async def client(session_factory, notifier):
    async def override_get_db():
        async with session_scope(session_factory) as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
