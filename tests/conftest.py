"""
Pytest fixtures for HoldGate tests.

Each test gets a fresh SQLite database file. Engine operations run through
`run`, which mirrors the API unit of work: one session, commit, then
dispatch the outbox to a recording notifier.
"""

import os
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update

# Ensure test config is set before importing holdgate modules.
os.environ.setdefault("HOLDGATE_ALLOW_INSECURE_DEV", "true")
os.environ.setdefault("HOLDGATE_ENV", "development")
os.environ.setdefault("HOLDGATE_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from holdgate.db.base import build_engine, build_session_factory, init_db
from holdgate.db.repositories import UnitRepository, UserRepository
from holdgate.db.tables import ClaimTable
from holdgate.engine import ReservationEngine
from holdgate.events import EventChannel
from holdgate.models import Actor, ClientInfo, Role, Unit, UnitStatus
from holdgate.utils.time import utc_now

pytest_plugins = ("pytest_asyncio",)

START = date(2026, 1, 1)


class RecordingNotifier:
    """Notifier that keeps every delivery in memory."""

    def __init__(self):
        self.sent: list[dict[str, Any]] = []

    async def notify(
        self,
        recipient_ids,
        title: str,
        body: str,
        link: Optional[str] = None,
        dedupe_key: Optional[str] = None,
    ) -> None:
        self.sent.append(
            {
                "recipient_ids": list(recipient_ids),
                "title": title,
                "body": body,
                "link": link,
                "dedupe_key": dedupe_key,
            }
        )

    def to(self, recipient_id: UUID) -> list[dict[str, Any]]:
        return [n for n in self.sent if recipient_id in n["recipient_ids"]]

    def titles_for(self, recipient_id: UUID) -> list[str]:
        return [n["title"] for n in self.to(recipient_id)]


@dataclass
class Directory:
    owner: Actor
    manager: Actor
    admin: Actor
    agent_a: Actor
    agent_b: Actor
    designer: Actor
    fitter: Actor
    unit: Unit
    other_unit: Unit


def client_info(phone: str = "9000000001", name: str = "Acme Foods") -> ClientInfo:
    return ClientInfo(name=name, phone=phone, email="ads@acme.test")


@pytest.fixture
async def db_engine(tmp_path):
    """Fresh SQLite database per test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'holdgate_test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def channel():
    return EventChannel(buffer_size=100)


@pytest.fixture
def run(session_factory, notifier, channel) -> Callable[..., Awaitable[Any]]:
    """Run one engine operation in its own committed unit of work."""

    async def _run(operation: Callable[[ReservationEngine], Awaitable[Any]]) -> Any:
        async with session_factory() as session:
            engine = ReservationEngine(session)
            try:
                result = await operation(engine)
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        await engine.outbox.dispatch(notifier, channel)
        return result

    return _run


@pytest.fixture
async def directory(session_factory) -> Directory:
    """Seed users and units."""
    async with session_factory() as session:
        users = UserRepository(session)
        units = UnitRepository(session)
        seeded = Directory(
            owner=await users.create("Olivia Owner", Role.OWNER),
            manager=await users.create("Mina Manager", Role.MANAGER),
            admin=await users.create("Arun Admin", Role.ADMIN),
            agent_a=await users.create("Asha Agent", Role.AGENT),
            agent_b=await users.create("Bilal Agent", Role.AGENT),
            designer=await users.create("Dev Designer", Role.DESIGNER),
            fitter=await users.create("Farah Fitter", Role.FITTER),
            unit=await units.create(
                "HG-001",
                city="Pune",
                area="Baner",
                landmark="Balewadi High Street",
                side="North",
                width_cm=600,
                height_cm=300,
            ),
            other_unit=await units.create("HG-002", city="Pune", area="Aundh"),
        )
        await session.commit()
    return seeded


async def fetch_unit(session_factory, unit_id: UUID) -> Unit:
    async with session_factory() as session:
        unit = await UnitRepository(session).get(unit_id)
        await session.commit()
    return unit


async def set_unit_status(session_factory, unit_id: UUID, status: UnitStatus) -> None:
    async with session_factory() as session:
        unit = await UnitRepository(session).get(unit_id)
        await UnitRepository(session).compare_and_set_status(
            unit_id, status, expected=[unit.status]
        )
        await session.commit()


async def add_user(session_factory, name: str, role: Role, is_active: bool = True) -> Actor:
    async with session_factory() as session:
        actor = await UserRepository(session).create(name, role, is_active=is_active)
        await session.commit()
    return actor


@pytest.fixture
async def client(session_factory, notifier, channel):
    """Async test client with overridden dependencies."""
    from holdgate.api.deps import get_engine, verify_api_key
    from holdgate.main import app

    async def override_get_engine():
        async with session_factory() as session:
            engine = ReservationEngine(session)
            try:
                yield engine
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        await engine.outbox.dispatch(notifier, channel)

    async def override_verify_api_key():
        return None

    app.dependency_overrides[get_engine] = override_get_engine
    app.dependency_overrides[verify_api_key] = override_verify_api_key

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def backdate_claim(session_factory, claim_id: UUID, hours: int = 1) -> None:
    """Move a claim's expiry into the past."""
    async with session_factory() as session:
        await session.execute(
            update(ClaimTable)
            .where(ClaimTable.claim_id == claim_id)
            .values(expires_at=utc_now() - timedelta(hours=hours))
        )
        await session.commit()
