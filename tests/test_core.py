"""Tests for authorization, command results, transaction retries and schema setup."""

import sqlite3
from datetime import date, datetime, time
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.core.database import (
    TransactionManager,
    create_engine_for,
    is_contention_error,
    is_unique_violation,
)
from app.core.dependencies import get_current_actor
from app.core.init_db import init_database, reset_database, verify_database_setup
from app.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ContentionError,
    ForbiddenError,
    SlotFullError,
    UnavailableError,
)
from app.core.permissions import Actor, RoleType, authorize
from app.core.results import CommandResult, run_command
from app.core.validations import clean_skills, lead_time_satisfied
from app.students.models.bookings import ACTIVE_BOOKING_INDEX, Booking

pytestmark = pytest.mark.unit

ADMIN = Actor(user_id=1, role=RoleType.admin)
TEACHER = Actor(user_id=2, role=RoleType.teacher)
STUDENT = Actor(user_id=4, role=RoleType.student)


def _locked() -> OperationalError:
    return OperationalError("UPDATE slots", {}, sqlite3.OperationalError("database is locked"))


def _mock_session() -> AsyncMock:
    session = AsyncMock()
    session.begin_nested = MagicMock(return_value=MagicMock())
    return session


class TestAuthorize:
    def test_role_not_allowed(self) -> None:
        with pytest.raises(ForbiddenError) as exc_info:
            authorize(STUDENT, "publish_slot", resource_owner_id=STUDENT.user_id)
        assert exc_info.value.kind == "Forbidden"

    def test_owner_only(self) -> None:
        authorize(TEACHER, "update_slot", resource_owner_id=TEACHER.user_id)
        with pytest.raises(ForbiddenError):
            authorize(TEACHER, "update_slot", resource_owner_id=3)

    def test_admin_bypasses_ownership(self) -> None:
        authorize(ADMIN, "update_slot", resource_owner_id=3)

    def test_teacher_reads_any_student(self) -> None:
        authorize(TEACHER, "view_progress", resource_owner_id=STUDENT.user_id)
        with pytest.raises(ForbiddenError):
            authorize(STUDENT, "view_progress", resource_owner_id=5)

    def test_unknown_operation(self) -> None:
        with pytest.raises(ForbiddenError):
            authorize(ADMIN, "drop_database")


class TestCurrentActor:
    async def test_valid_headers(self) -> None:
        actor = await get_current_actor(x_user_id="4", x_user_role="Student")
        assert actor == STUDENT

    @pytest.mark.parametrize(
        "user_id, role",
        [(None, "student"), ("4", None), ("four", "student"), ("4", "owner")],
    )
    async def test_invalid_headers(self, user_id, role) -> None:
        with pytest.raises(AuthenticationError):
            await get_current_actor(x_user_id=user_id, x_user_role=role)


class TestCommandResult:
    async def test_success(self) -> None:
        async def operation(value):
            return value * 2

        result = await run_command(operation, 21)
        assert result.success is True
        assert result.data == 42
        assert result.error is None

    async def test_domain_failure(self) -> None:
        async def operation():
            raise SlotFullError(7)

        result = await run_command(operation)
        assert result.success is False
        assert result.error.kind == "SlotFull"
        assert result.error.details == {"schedule_id": 7}

    async def test_storage_failure(self) -> None:
        async def operation():
            raise IntegrityError("INSERT", {}, Exception("boom"))

        result = await run_command(operation)
        assert result.error.kind == "Unavailable"

    def test_envelope(self) -> None:
        assert CommandResult.ok([1]).model_dump() == {"success": True, "data": [1], "error": None}


class TestTransactionManager:
    def test_sqlite_lock_is_contention(self) -> None:
        assert is_contention_error(_locked())
        assert not is_contention_error(
            OperationalError("SELECT 1", {}, sqlite3.OperationalError("no such table: slots"))
        )

    async def test_conflicts_are_retried(self) -> None:
        session = _mock_session()
        calls = []

        async def operation(s):
            calls.append(s)
            if len(calls) < 3:
                raise _locked()
            return "done"

        assert await TransactionManager(session, max_attempts=3).execute(operation) == "done"
        assert len(calls) == 3
        assert session.rollback.await_count == 2
        assert session.commit.await_count == 1

    async def test_gives_up_with_contention_error(self) -> None:
        session = _mock_session()

        async def operation(s):
            raise _locked()

        with pytest.raises(ContentionError) as exc_info:
            await TransactionManager(session, max_attempts=2).execute(operation)
        assert exc_info.value.retryable is True
        assert session.commit.await_count == 0

    async def test_domain_errors_are_not_retried(self) -> None:
        session = _mock_session()
        operation = AsyncMock(side_effect=SlotFullError(1))

        with pytest.raises(SlotFullError):
            await TransactionManager(session, max_attempts=5).execute(operation)
        assert operation.await_count == 1
        assert session.rollback.await_count == 0
        assert session.commit.await_count == 1


class TestUniqueViolation:
    def _error(self, orig) -> IntegrityError:
        return IntegrityError("INSERT INTO bookings", {}, orig)

    def test_sqlite_names_the_columns(self) -> None:
        exc = self._error(
            sqlite3.IntegrityError("UNIQUE constraint failed: bookings.student_id, bookings.schedule_id")
        )
        assert is_unique_violation(exc, Booking.__table__, ACTIVE_BOOKING_INDEX)

    def test_other_constraints_are_not_duplicates(self) -> None:
        assert not is_unique_violation(
            self._error(sqlite3.IntegrityError("FOREIGN KEY constraint failed")),
            Booking.__table__,
            ACTIVE_BOOKING_INDEX,
        )
        assert not is_unique_violation(
            self._error(sqlite3.IntegrityError("NOT NULL constraint failed: bookings.teacher_id")),
            Booking.__table__,
            ACTIVE_BOOKING_INDEX,
        )

    def test_postgres_constraint_name(self) -> None:
        class ForeignKeyViolation(Exception):
            constraint_name = "bookings_student_id_fkey"

        class UniqueViolation(Exception):
            constraint_name = ACTIVE_BOOKING_INDEX

        assert not is_unique_violation(
            self._error(ForeignKeyViolation("violates foreign key")), Booking.__table__, ACTIVE_BOOKING_INDEX
        )
        assert is_unique_violation(
            self._error(UniqueViolation("duplicate key")), Booking.__table__, ACTIVE_BOOKING_INDEX
        )


class TestValidations:
    def test_clean_skills(self) -> None:
        assert clean_skills([" parking", "parking ", None, "", "lanes"]) == ["parking", "lanes"]

    def test_lead_time(self) -> None:
        lesson = (date(2030, 1, 15), time(10, 0))
        assert lead_time_satisfied(*lesson, datetime(2030, 1, 15, 8, 0), 2)
        assert not lead_time_satisfied(*lesson, datetime(2030, 1, 15, 8, 1), 2)


class TestInitDatabase:
    async def test_init_creates_and_verifies_schema(self, tmp_path) -> None:
        engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'fresh.db'}")
        try:
            with pytest.raises(UnavailableError) as exc_info:
                await verify_database_setup(engine)
            assert "slots" in exc_info.value.details["missing_tables"]

            await init_database(engine)
            assert await verify_database_setup(engine) is True
        finally:
            await engine.dispose()

    async def test_reset_refused_outside_development(self, monkeypatch) -> None:
        monkeypatch.setenv("ENVIRONMENT", "production")
        with pytest.raises(ConfigurationError):
            await reset_database()
