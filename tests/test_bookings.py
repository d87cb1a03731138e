"""Tests for the booking ledger: booking, cancellation and completion."""

import asyncio
from datetime import datetime, time

import pytest
from sqlalchemy import select, update

from app.core.exceptions import (
    AlreadyBookedError,
    AlreadyCancelledError,
    AlreadyCompletedError,
    ForbiddenError,
    InvalidTransitionError,
    NotYetOccurredError,
    PhaseRestrictedError,
    SlotFullError,
    TooLateError,
    ValidationError,
)
from app.core.results import run_command
from app.staff.crud.slots import get_slot
from app.staff.models import Group, GroupMember, LearningPhase, NotificationEvent
from app.students.crud.bookings import (
    add_teacher_notes,
    cancel_booking,
    complete_booking,
    create_booking,
    get_booking,
    list_for_student,
    list_for_teacher,
    list_ready_for_completion,
)
from app.students.models.bookings import Booking, BookingStatus

pytestmark = pytest.mark.integration

AFTER_LESSON = datetime(2030, 1, 15, 13, 0)


async def _events(session, event_type):
    result = await session.execute(
        select(NotificationEvent)
        .where(NotificationEvent.type == event_type)
        .order_by(NotificationEvent.id)
    )
    return list(result.scalars().all())


class TestCreateBooking:
    async def test_books_a_seat(self, session, make_slot, world, now) -> None:
        slot = await make_slot(location="Room 1")

        booking = await create_booking(session, world.student, slot.id, notes="first", now=now)

        assert booking.status == BookingStatus.confirmed.value
        assert booking.teacher_id == world.teacher.user_id
        assert booking.lesson_type == "theoretical"
        assert booking.date == slot.date
        assert booking.start_time == time(10, 0)
        assert booking.location == "Room 1"
        assert booking.booked_at == now
        assert (await get_slot(session, slot.id)).current_bookings == 1

    async def test_confirmation_goes_to_student_and_teacher(self, session, make_slot, world, now) -> None:
        slot = await make_slot()
        booking = await create_booking(session, world.student, slot.id, now=now)

        events = await _events(session, "booking_confirmed")
        assert sorted(e.recipient_id for e in events) == sorted(
            [world.teacher.user_id, world.student.user_id]
        )
        assert events[0].payload["booking_id"] == booking.id

    async def test_second_booking_for_same_slot(self, session, make_slot, world, now) -> None:
        slot = await make_slot()
        await create_booking(session, world.student, slot.id, now=now)

        with pytest.raises(AlreadyBookedError):
            await create_booking(session, world.student, slot.id, now=now)
        assert (await get_slot(session, slot.id)).current_bookings == 1

    async def test_full_slot(self, session, make_slot, world, now) -> None:
        slot = await make_slot(lesson_type="practical", max_capacity=1)
        await create_booking(session, world.student, slot.id, now=now)

        with pytest.raises(SlotFullError):
            await create_booking(session, world.classmate, slot.id, now=now)

    async def test_inside_lead_time(self, session, make_slot, world) -> None:
        slot = await make_slot()

        with pytest.raises(TooLateError):
            await create_booking(session, world.student, slot.id, now=datetime(2030, 1, 15, 8, 30))

        booking = await create_booking(session, world.student, slot.id, now=datetime(2030, 1, 15, 8, 0))
        assert booking.status == BookingStatus.confirmed.value

    async def test_only_students_book(self, session, make_slot, world, now) -> None:
        slot = await make_slot()

        with pytest.raises(ForbiddenError):
            await create_booking(session, world.teacher, slot.id, now=now)

    async def test_rebook_after_cancel(self, session, make_slot, world, now) -> None:
        slot = await make_slot()
        first = await create_booking(session, world.student, slot.id, now=now)
        await cancel_booking(session, world.student, first.id, now=now)

        second = await create_booking(session, world.student, slot.id, now=now)

        assert second.id != first.id
        assert (await get_slot(session, slot.id)).current_bookings == 1

    async def test_last_seat_race(self, session_factory, make_slot, world, now) -> None:
        slot = await make_slot(lesson_type="practical", max_capacity=1)

        async def attempt(actor):
            async with session_factory() as session:
                return await run_command(create_booking, session, actor, slot.id, now=now)

        results = await asyncio.gather(attempt(world.student), attempt(world.classmate))

        assert sorted(r.success for r in results) == [False, True]
        loser = next(r for r in results if not r.success)
        assert loser.error.kind == "SlotFull"
        async with session_factory() as session:
            assert (await get_slot(session, slot.id)).current_bookings == 1

    async def test_double_booking_race(self, session_factory, make_slot, world, now) -> None:
        slot = await make_slot()

        async def attempt():
            async with session_factory() as session:
                return await run_command(create_booking, session, world.student, slot.id, now=now)

        results = await asyncio.gather(attempt(), attempt())

        assert sorted(r.success for r in results) == [False, True]
        loser = next(r for r in results if not r.success)
        assert loser.error.kind == "AlreadyBooked"
        async with session_factory() as session:
            rows = await session.execute(
                select(Booking.id).where(
                    Booking.student_id == world.student.user_id,
                    Booking.schedule_id == slot.id,
                )
            )
            assert len(rows.all()) == 1
            assert (await get_slot(session, slot.id)).current_bookings == 1

    async def test_rejection_keeps_earlier_results_readable(self, session, make_slot, world, now) -> None:
        slot = await make_slot()
        booking = await create_booking(session, world.student, slot.id, now=now)

        result = await run_command(create_booking, session, world.student, slot.id, now=now)

        assert result.error.kind == "AlreadyBooked"
        assert booking.status == BookingStatus.confirmed.value
        assert slot.max_capacity == 3


class TestLearningPhase:
    async def test_code_phase_cannot_book(self, session, make_slot, world, now) -> None:
        slot = await make_slot()
        await session.execute(
            update(GroupMember)
            .where(GroupMember.student_id == world.classmate.user_id)
            .values(phase=LearningPhase.code.value)
        )
        await session.commit()

        with pytest.raises(PhaseRestrictedError) as exc_info:
            await create_booking(session, world.classmate, slot.id, now=now)
        assert exc_info.value.kind == "PhaseRestricted"
        assert (await get_slot(session, slot.id)).current_bookings == 0

    async def test_student_without_group_books(self, session, make_slot, world, now) -> None:
        slot = await make_slot()

        booking = await create_booking(session, world.outsider, slot.id, now=now)
        assert booking.status == BookingStatus.confirmed.value

    async def test_one_progressed_membership_is_enough(self, session, make_slot, world, now) -> None:
        slot = await make_slot()
        session.add(Group(id=2, name="Category B, morning"))
        await session.flush()
        session.add(
            GroupMember(group_id=2, student_id=world.outsider.user_id, phase=LearningPhase.code.value)
        )
        await session.commit()

        with pytest.raises(PhaseRestrictedError):
            await create_booking(session, world.outsider, slot.id, now=now)

        session.add(
            GroupMember(group_id=1, student_id=world.outsider.user_id, phase=LearningPhase.creneau.value)
        )
        await session.commit()

        booking = await create_booking(session, world.outsider, slot.id, now=now)
        assert booking.student_id == world.outsider.user_id


class TestCancelBooking:
    async def test_student_cancels_own(self, session, make_slot, world, now) -> None:
        slot = await make_slot()
        booking = await create_booking(session, world.student, slot.id, now=now)

        cancelled = await cancel_booking(session, world.student, booking.id, reason="ill", now=now)

        assert cancelled.status == BookingStatus.cancelled.value
        assert cancelled.cancelled_by == world.student.user_id
        assert cancelled.cancellation_reason == "ill"
        assert (await get_slot(session, slot.id)).current_bookings == 0
        assert len(await _events(session, "booking_cancelled")) == 2

    async def test_teacher_cancels_on_own_slot(self, session, make_slot, world, now) -> None:
        slot = await make_slot()
        booking = await create_booking(session, world.student, slot.id, now=now)

        cancelled = await cancel_booking(session, world.teacher, booking.id, now=now)
        assert cancelled.cancelled_by == world.teacher.user_id

    async def test_strangers_cannot_cancel(self, session, make_slot, world, now) -> None:
        slot = await make_slot()
        booking = await create_booking(session, world.student, slot.id, now=now)

        with pytest.raises(ForbiddenError):
            await cancel_booking(session, world.classmate, booking.id, now=now)
        with pytest.raises(ForbiddenError):
            await cancel_booking(session, world.other_teacher, booking.id, now=now)

    async def test_double_cancel(self, session, make_slot, world, now) -> None:
        slot = await make_slot()
        booking = await create_booking(session, world.student, slot.id, now=now)
        await cancel_booking(session, world.student, booking.id, now=now)

        with pytest.raises(AlreadyCancelledError):
            await cancel_booking(session, world.student, booking.id, now=now)
        assert (await get_slot(session, slot.id)).current_bookings == 0

    async def test_completed_booking_cannot_be_cancelled(self, session, make_slot, world, now) -> None:
        slot = await make_slot()
        booking = await create_booking(session, world.student, slot.id, now=now)
        await complete_booking(session, world.teacher, booking.id, 2, 4, now=AFTER_LESSON)

        with pytest.raises(InvalidTransitionError):
            await cancel_booking(session, world.student, booking.id, now=AFTER_LESSON)
        assert (await get_slot(session, slot.id)).current_bookings == 1


class TestCompleteBooking:
    async def test_records_performance(self, session, make_slot, world, now) -> None:
        slot = await make_slot()
        booking = await create_booking(session, world.student, slot.id, now=now)

        completed = await complete_booking(
            session,
            world.teacher,
            booking.id,
            hours_completed=2,
            performance_rating=4,
            skills_improved=[" parking ", "parking", "", "signals"],
            areas_to_improve="mirrors",
            ready_for_next_level=True,
            now=AFTER_LESSON,
        )

        assert completed.status == BookingStatus.completed.value
        assert completed.hours_completed == 2.0
        assert completed.performance_rating == 4
        assert completed.skills_improved == ["parking", "signals"]
        assert completed.ready_for_next_level is True
        assert completed.completed_by == world.teacher.user_id
        assert completed.completed_at == AFTER_LESSON
        assert len(await _events(session, "lesson_completed")) == 1

    async def test_second_completion_keeps_first_result(self, session, make_slot, world, now) -> None:
        slot = await make_slot()
        booking = await create_booking(session, world.student, slot.id, now=now)
        await complete_booking(session, world.teacher, booking.id, 2, 4, now=AFTER_LESSON)

        with pytest.raises(AlreadyCompletedError):
            await complete_booking(session, world.teacher, booking.id, 3, 1, now=AFTER_LESSON)

        stored = await get_booking(session, booking.id)
        assert stored.hours_completed == 2.0
        assert stored.performance_rating == 4

    async def test_lesson_not_started(self, session, make_slot, world, now) -> None:
        slot = await make_slot()
        booking = await create_booking(session, world.student, slot.id, now=now)

        with pytest.raises(NotYetOccurredError):
            await complete_booking(session, world.teacher, booking.id, 2, 4, now=datetime(2030, 1, 15, 9, 59))

    async def test_cancelled_booking_cannot_be_completed(self, session, make_slot, world, now) -> None:
        slot = await make_slot()
        booking = await create_booking(session, world.student, slot.id, now=now)
        await cancel_booking(session, world.student, booking.id, now=now)

        with pytest.raises(InvalidTransitionError):
            await complete_booking(session, world.teacher, booking.id, 2, 4, now=AFTER_LESSON)

    @pytest.mark.parametrize("hours, rating", [(0, 4), (2, 0), (2, 6), (-1, 3)])
    async def test_invalid_performance_data(self, session, make_slot, world, now, hours, rating) -> None:
        slot = await make_slot()
        booking = await create_booking(session, world.student, slot.id, now=now)

        with pytest.raises(ValidationError):
            await complete_booking(session, world.teacher, booking.id, hours, rating, now=AFTER_LESSON)

    async def test_only_slot_teacher_completes(self, session, make_slot, world, now) -> None:
        slot = await make_slot()
        booking = await create_booking(session, world.student, slot.id, now=now)

        with pytest.raises(ForbiddenError):
            await complete_booking(session, world.other_teacher, booking.id, 2, 4, now=AFTER_LESSON)
        with pytest.raises(ForbiddenError):
            await complete_booking(session, world.student, booking.id, 2, 4, now=AFTER_LESSON)

        completed = await complete_booking(session, world.admin, booking.id, 2, 4, now=AFTER_LESSON)
        assert completed.completed_by == world.admin.user_id


class TestTeacherNotesAndLists:
    async def test_teacher_notes(self, session, make_slot, world, now) -> None:
        slot = await make_slot()
        booking = await create_booking(session, world.student, slot.id, now=now)

        noted = await add_teacher_notes(session, world.teacher, booking.id, "  bring license ", now=now)
        assert noted.teacher_notes == "bring license"
        assert noted.teacher_notes_updated_at == now

        with pytest.raises(ValidationError):
            await add_teacher_notes(session, world.teacher, booking.id, "   ", now=now)

    async def test_student_history_newest_first(self, session, make_slot, world, now) -> None:
        first = await make_slot(start_time=time(8, 0), end_time=time(9, 0))
        second = await make_slot(start_time=time(10, 0), end_time=time(11, 0))
        b1 = await create_booking(session, world.student, first.id, now=now)
        b2 = await create_booking(session, world.student, second.id, now=now)
        await cancel_booking(session, world.student, b1.id, now=now)

        history = await list_for_student(session, world.student, world.student.user_id)
        assert [b.id for b in history] == [b2.id, b1.id]

        cancelled = await list_for_student(session, world.student, world.student.user_id, status="cancelled")
        assert [b.id for b in cancelled] == [b1.id]

        with pytest.raises(ValidationError):
            await list_for_student(session, world.student, world.student.user_id, status="lost")
        with pytest.raises(ForbiddenError):
            await list_for_student(session, world.classmate, world.student.user_id)

    async def test_teacher_views(self, session, make_slot, world, now) -> None:
        morning = await make_slot(start_time=time(8, 0), end_time=time(9, 0))
        noon = await make_slot(start_time=time(12, 0), end_time=time(13, 0))
        early = await create_booking(session, world.student, morning.id, now=now)
        late = await create_booking(session, world.classmate, noon.id, now=now)

        bookings = await list_for_teacher(session, world.teacher, world.teacher.user_id)
        assert [b.id for b in bookings] == [early.id, late.id]

        ready = await list_ready_for_completion(
            session, world.teacher, world.teacher.user_id, now=datetime(2030, 1, 15, 10, 0)
        )
        assert [b.id for b in ready] == [early.id]

        with pytest.raises(ForbiddenError):
            await list_for_teacher(session, world.other_teacher, world.teacher.user_id)
