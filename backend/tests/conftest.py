"""
Pytest configuration and fixtures for Keystone tests.
"""

import os

# Must be set before keystone.config is first imported
os.environ.setdefault("KEYSTONE_DATABASE_URL", "sqlite+aiosqlite://")

import uuid
from datetime import date

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import keystone.models  # noqa: F401
from keystone.database import get_session
from keystone.main import app
from keystone.models.enums import RelationshipType
from keystone.services.coordinator import ScheduleCoordinator, get_coordinator
from keystone.services.snapshot import (
    RelationshipRecord,
    ScheduleSettings,
    ScheduleSnapshot,
    TaskRecord,
)

# In-memory SQLite shared by every connection of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite://"

# 2024-01-01 is a Monday
MONDAY = date(2024, 1, 1)


class ScheduleBuilder:
    """
    Builds snapshots by WBS code.

        schedule = ScheduleBuilder()
        schedule.task("1", duration=5)
        schedule.task("2", duration=3)
        schedule.link("1", "2")
    """

    def __init__(self, anchor_date: date | None = MONDAY):
        self.snapshot = ScheduleSnapshot(
            project_id=uuid.uuid4(),
            settings=ScheduleSettings(anchor_date=anchor_date),
        )
        self.ids: dict[str, uuid.UUID] = {}

    def __getitem__(self, wbs_code: str) -> uuid.UUID:
        return self.ids[wbs_code]

    def task(self, wbs_code: str, duration: int = 1, name: str | None = None, **fields) -> uuid.UUID:
        parent_code = wbs_code.rsplit(".", 1)[0] if "." in wbs_code else None
        task = TaskRecord(
            id=uuid.uuid4(),
            project_id=self.snapshot.project_id,
            name=name or f"Task {wbs_code}",
            wbs_code=wbs_code,
            duration_days=duration,
            parent_task_id=self.ids.get(parent_code) if parent_code else None,
            **fields,
        )
        self.snapshot.tasks[task.id] = task
        self.ids[wbs_code] = task.id
        return task.id

    def link(
        self,
        predecessor: str,
        successor: str,
        type: RelationshipType = RelationshipType.FINISH_TO_START,
        lag: int = 0,
    ) -> RelationshipRecord:
        rel = RelationshipRecord(
            predecessor_id=self.ids[predecessor],
            successor_id=self.ids[successor],
            type=type,
            lag_days=lag,
        )
        self.snapshot.relationships[rel.key] = rel
        return rel

    def get(self, wbs_code: str, snapshot: ScheduleSnapshot | None = None) -> TaskRecord:
        return (snapshot or self.snapshot).tasks[self.ids[wbs_code]]


@pytest.fixture
def schedule() -> ScheduleBuilder:
    return ScheduleBuilder()


@pytest.fixture
def example_schedule() -> ScheduleBuilder:
    """A (5d) -> B (3d) plus an unconnected C (2d), anchored on a Monday."""
    builder = ScheduleBuilder()
    builder.task("1", duration=5, name="A")
    builder.task("2", duration=3, name="B")
    builder.task("3", duration=2, name="C")
    builder.link("1", "2")
    return builder


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    # Drop all tables after tests
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def test_session(session_maker):
    """Create a test database session."""
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_maker):
    """Create an async test client with test database and a private coordinator."""
    async def override_get_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    test_coordinator = ScheduleCoordinator(busy_timeout=0.5)

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_coordinator] = lambda: test_coordinator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
