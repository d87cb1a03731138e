"""Pytest configuration and shared fixtures.

Each test gets its own SQLite database file with the full schema and a
small seeded school: one admin, two teachers, three students and one group.
"""

import os
import tempfile

# Настройки окружения до импорта приложения
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(
    tempfile.mkdtemp(prefix="driving-school-"), "app.db"
)
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "text"
os.environ["LOG_LEVEL"] = "WARNING"

from datetime import date, datetime, time
from types import SimpleNamespace

import httpx
import pytest

from app.core.database import (
    create_engine_for,
    create_session_factory,
    db_manager,
    get_session,
)
from app.core.logging_utils import error_tracker
from app.core.permissions import Actor, RoleType
from app.main import app
from app.staff.crud.slots import publish_slot
from app.staff.models import Group, GroupMember, GroupTeacher, User
from app.students.crud.progress import progress_cache

# Фиксированное "сейчас" для команд, принимающих now
NOW = datetime(2030, 1, 10, 9, 0)
LESSON_DAY = date(2030, 1, 15)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: pure functions, no database")
    config.addinivalue_line(
        "markers", "integration: runs against a temporary SQLite database"
    )


@pytest.fixture(autouse=True)
def reset_process_state():
    progress_cache.clear()
    error_tracker.reset_stats()
    yield
    progress_cache.clear()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def lesson_day() -> date:
    return LESSON_DAY


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'school.db'}")
    await db_manager.create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def world(session_factory) -> SimpleNamespace:
    """Seeded users, one group with an assigned teacher and two members"""
    async with session_factory() as session:
        session.add_all(
            [
                User(id=1, role="admin", display_name="Admin", email="admin@school.test"),
                User(id=2, role="teacher", display_name="Aigerim", email="t1@school.test"),
                User(id=3, role="teacher", display_name="Daniyar", email="t2@school.test"),
                User(id=4, role="student", display_name="Alina", email="s1@school.test"),
                User(id=5, role="student", display_name="Bekzat", email="s2@school.test"),
                User(id=6, role="student", display_name="Timur", email="s3@school.test"),
            ]
        )
        session.add(Group(id=1, name="Category B, evening"))
        await session.flush()
        session.add_all(
            [
                GroupTeacher(group_id=1, teacher_id=2),
                GroupMember(group_id=1, student_id=4, phase="conduite"),
                GroupMember(group_id=1, student_id=5, phase="conduite"),
            ]
        )
        await session.commit()

    return SimpleNamespace(
        admin=Actor(user_id=1, role=RoleType.admin),
        teacher=Actor(user_id=2, role=RoleType.teacher),
        other_teacher=Actor(user_id=3, role=RoleType.teacher),
        student=Actor(user_id=4, role=RoleType.student),
        classmate=Actor(user_id=5, role=RoleType.student),
        outsider=Actor(user_id=6, role=RoleType.student),
        group_id=1,
    )


@pytest.fixture
def make_slot(session, world):
    """Publish a slot for the group's teacher on LESSON_DAY"""

    async def _make_slot(
        lesson_type="theoretical",
        slot_date=LESSON_DAY,
        start_time=time(10, 0),
        end_time=time(12, 0),
        max_capacity=3,
        actor=None,
        **kwargs,
    ):
        return await publish_slot(
            session,
            actor or world.teacher,
            lesson_type,
            slot_date,
            start_time,
            end_time,
            max_capacity=max_capacity,
            now=kwargs.pop("now", NOW),
            **kwargs,
        )

    return _make_slot


@pytest.fixture
def auth_headers():
    def _headers(actor: Actor) -> dict:
        return {"X-User-Id": str(actor.user_id), "X-User-Role": actor.role.value}

    return _headers


@pytest.fixture
async def client(session_factory, world):
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
