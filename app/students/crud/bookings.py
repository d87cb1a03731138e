"""
Booking Ledger - create, cancel and complete student reservations.

Every command is one transaction run through `run_in_transaction`: the slot
counter update, the booking row and its outbox events commit together or not
at all. Status changes are compare-and-swap UPDATEs on the current status, so
two concurrent cancels (or completes) of one booking cannot both apply.
"""
import logging
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import and_, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import clock
from app.core.config import BOOKING_LEAD_TIME_HOURS
from app.core.database import db_operation, is_unique_violation, run_in_transaction
from app.core.exceptions import (
    AlreadyBookedError,
    AlreadyCancelledError,
    AlreadyCompletedError,
    CapacityExceededError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    NotYetOccurredError,
    PhaseRestrictedError,
    SlotFullError,
    TooLateError,
    ValidationError,
)
from app.core.logging_utils import log_business_event
from app.core.permissions import Actor, authorize
from app.core.validations import (
    clean_skills,
    lead_time_satisfied,
    lesson_datetime,
    require_text,
)
from app.staff.crud.groups import get_student_phases, is_group_member, is_group_teacher
from app.staff.crud.slots import get_slot, list_available, release_capacity, reserve_capacity
from app.staff.models.group_members import LearningPhase
from app.staff.models.slots import Slot
from app.staff.services import notification_service
from app.students.crud.progress import progress_cache
from app.students.models.bookings import ACTIVE_BOOKING_INDEX, Booking, BookingStatus

logger = logging.getLogger(__name__)


def _event_payload(booking: Booking) -> dict:
    return {
        "booking_id": booking.id,
        "schedule_id": booking.schedule_id,
        "student_id": booking.student_id,
        "teacher_id": booking.teacher_id,
        "lesson_type": booking.lesson_type,
        "date": booking.date,
        "start_time": booking.start_time,
        "end_time": booking.end_time,
    }


@db_operation
async def get_booking(session: AsyncSession, booking_id: int) -> Booking:
    result = await session.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError("Booking", str(booking_id))
    return booking


def _parse_status(status) -> str:
    try:
        return BookingStatus(status).value
    except ValueError:
        raise ValidationError(
            f"Unknown booking status '{status}'",
            details={"allowed": [s.value for s in BookingStatus]},
        )


def _raise_for_status(booking: Booking, target: BookingStatus) -> None:
    """Ошибка для брони, которая уже не в статусе confirmed"""
    if booking.status == BookingStatus.cancelled.value:
        if target == BookingStatus.cancelled:
            raise AlreadyCancelledError(booking.id)
        raise InvalidTransitionError("Booking", booking.status, target.value)
    if booking.status == BookingStatus.completed.value:
        if target == BookingStatus.completed:
            raise AlreadyCompletedError(booking.id)
        raise InvalidTransitionError("Booking", booking.status, target.value)


async def _transition(
    session: AsyncSession, booking: Booking, target: BookingStatus, values: dict
) -> Booking:
    """Compare-and-swap confirmed -> target"""
    result = await session.execute(
        update(Booking)
        .where(
            and_(
                Booking.id == booking.id,
                Booking.status == BookingStatus.confirmed.value,
            )
        )
        .values(status=target.value, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # Параллельная команда успела раньше
        _raise_for_status(await get_booking(session, booking.id), target)
    return await get_booking(session, booking.id)


# === Create ===
async def _create_booking_tx(
    session: AsyncSession,
    actor: Actor,
    schedule_id: int,
    notes: Optional[str],
    now: datetime,
) -> Booking:
    slot = await get_slot(session, schedule_id)

    # Студент без групп бронирует свободно; в группах нужна хотя бы одна фаза после code
    phases = await get_student_phases(session, actor.user_id)
    if phases and all(phase == LearningPhase.code.value for phase in phases):
        raise PhaseRestrictedError(LearningPhase.code.value)

    if not lead_time_satisfied(slot.date, slot.start_time, now, BOOKING_LEAD_TIME_HOURS):
        raise TooLateError(BOOKING_LEAD_TIME_HOURS)

    existing = await session.execute(
        select(Booking.id).where(
            and_(
                Booking.student_id == actor.user_id,
                Booking.schedule_id == schedule_id,
                Booking.status != BookingStatus.cancelled.value,
            )
        )
    )
    if existing.first() is not None:
        raise AlreadyBookedError(actor.user_id, schedule_id)

    try:
        await reserve_capacity(session, schedule_id)
    except CapacityExceededError:
        raise SlotFullError(schedule_id)

    booking = Booking(
        student_id=actor.user_id,
        schedule_id=slot.id,
        teacher_id=slot.teacher_id,
        lesson_type=slot.lesson_type,
        date=slot.date,
        start_time=slot.start_time,
        end_time=slot.end_time,
        location=slot.location,
        status=BookingStatus.confirmed.value,
        notes=notes,
        booked_at=now,
        skills_improved=[],
    )
    session.add(booking)
    try:
        await session.flush()
    except IntegrityError as e:
        # Частичный уникальный индекс: параллельная запись того же студента
        if is_unique_violation(e, Booking.__table__, ACTIVE_BOOKING_INDEX):
            raise AlreadyBookedError(actor.user_id, schedule_id)
        raise

    await notification_service.emit_to_many(
        session,
        notification_service.BOOKING_CONFIRMED,
        [booking.student_id, booking.teacher_id],
        _event_payload(booking),
        now,
    )
    return booking


async def create_booking(
    session: AsyncSession,
    actor: Actor,
    schedule_id: int,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Book a seat in a slot for the calling student.

    Validates, in order:
    - a student whose group memberships are all in the code phase may not
      book individual lessons yet (PhaseRestricted)
    - the slot starts at least BOOKING_LEAD_TIME_HOURS from now (TooLate)
    - the student has no non-cancelled booking for the slot (AlreadyBooked)
    - the slot has a free seat (SlotFull)
    """
    authorize(actor, "create_booking", resource="booking")

    booking = await run_in_transaction(
        session, _create_booking_tx, actor, schedule_id, notes, now or clock.now()
    )

    log_business_event(
        "booking_created",
        "booking",
        booking.id,
        {"schedule_id": schedule_id, "student_id": actor.user_id},
        actor_id=actor.user_id,
    )
    return booking


# === Cancel ===
async def _cancel_booking_tx(
    session: AsyncSession,
    actor: Actor,
    booking_id: int,
    reason: Optional[str],
    now: datetime,
) -> Booking:
    booking = await get_booking(session, booking_id)

    # Студент владеет своей бронью, преподаватель - бронями своих слотов
    owner_id = booking.student_id if actor.is_student else booking.teacher_id
    authorize(actor, "cancel_booking", resource_owner_id=owner_id, resource="booking")

    _raise_for_status(booking, BookingStatus.cancelled)

    booking = await _transition(
        session,
        booking,
        BookingStatus.cancelled,
        {"cancelled_at": now, "cancelled_by": actor.user_id, "cancellation_reason": reason},
    )
    await release_capacity(session, booking.schedule_id)

    payload = _event_payload(booking)
    payload.update({"cancelled_by": actor.user_id, "reason": reason})
    await notification_service.emit_to_many(
        session,
        notification_service.BOOKING_CANCELLED,
        [booking.student_id, booking.teacher_id],
        payload,
        now,
    )
    return booking


async def cancel_booking(
    session: AsyncSession,
    actor: Actor,
    booking_id: int,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Booking:
    """Cancel a confirmed booking and give its seat back to the slot"""
    booking = await run_in_transaction(
        session, _cancel_booking_tx, actor, booking_id, reason, now or clock.now()
    )

    progress_cache.invalidate(booking.student_id)
    log_business_event(
        "booking_cancelled",
        "booking",
        booking.id,
        {"schedule_id": booking.schedule_id, "reason": reason},
        actor_id=actor.user_id,
    )
    return booking


# === Complete ===
def _validate_completion(hours_completed, performance_rating) -> None:
    if hours_completed is None or hours_completed <= 0 or hours_completed > 24:
        raise ValidationError(
            "hours_completed must be greater than 0 and at most 24",
            details={"hours_completed": hours_completed},
        )
    if (
        isinstance(performance_rating, bool)
        or not isinstance(performance_rating, int)
        or not 1 <= performance_rating <= 5
    ):
        raise ValidationError(
            "performance_rating must be an integer from 1 to 5",
            details={"performance_rating": performance_rating},
        )


async def _complete_booking_tx(
    session: AsyncSession,
    actor: Actor,
    booking_id: int,
    values: dict,
    now: datetime,
) -> Booking:
    booking = await get_booking(session, booking_id)
    authorize(
        actor, "complete_booking", resource_owner_id=booking.teacher_id, resource="booking"
    )

    _raise_for_status(booking, BookingStatus.completed)

    if lesson_datetime(booking.date, booking.start_time) > now:
        raise NotYetOccurredError(booking.id)

    values = dict(values, completed_at=now, completed_by=actor.user_id)
    booking = await _transition(session, booking, BookingStatus.completed, values)

    await notification_service.emit_event(
        session,
        notification_service.LESSON_COMPLETED,
        booking.student_id,
        {
            **_event_payload(booking),
            "hours_completed": booking.hours_completed,
            "performance_rating": booking.performance_rating,
            "ready_for_next_level": booking.ready_for_next_level,
        },
        now,
    )
    return booking


async def complete_booking(
    session: AsyncSession,
    actor: Actor,
    booking_id: int,
    hours_completed: float,
    performance_rating: int,
    skills_improved: Optional[List[str]] = None,
    areas_to_improve: Optional[str] = None,
    ready_for_next_level: bool = False,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Record the outcome of a lesson that has started.

    Applies once: a repeat call fails with AlreadyCompleted and leaves the
    stored performance data untouched.
    """
    _validate_completion(hours_completed, performance_rating)

    values = {
        "hours_completed": float(hours_completed),
        "performance_rating": performance_rating,
        "skills_improved": clean_skills(skills_improved),
        "areas_to_improve": areas_to_improve,
        "ready_for_next_level": bool(ready_for_next_level),
    }
    booking = await run_in_transaction(
        session, _complete_booking_tx, actor, booking_id, values, now or clock.now()
    )

    progress_cache.invalidate(booking.student_id)
    log_business_event(
        "lesson_completed",
        "booking",
        booking.id,
        {
            "student_id": booking.student_id,
            "hours_completed": booking.hours_completed,
            "performance_rating": booking.performance_rating,
        },
        actor_id=actor.user_id,
    )
    return booking


# === Teacher notes ===
async def _add_teacher_notes_tx(
    session: AsyncSession, actor: Actor, booking_id: int, notes: str, now: datetime
) -> Booking:
    booking = await get_booking(session, booking_id)
    authorize(
        actor, "add_teacher_notes", resource_owner_id=booking.teacher_id, resource="booking"
    )

    booking.teacher_notes = notes
    booking.teacher_notes_updated_at = now
    await session.flush()
    return booking


async def add_teacher_notes(
    session: AsyncSession,
    actor: Actor,
    booking_id: int,
    notes: str,
    now: Optional[datetime] = None,
) -> Booking:
    notes = require_text(notes, "notes")
    booking = await run_in_transaction(
        session, _add_teacher_notes_tx, actor, booking_id, notes, now or clock.now()
    )
    log_business_event(
        "teacher_notes_added", "booking", booking.id, actor_id=actor.user_id
    )
    return booking


# === Read paths ===
@db_operation
async def list_for_student(
    session: AsyncSession,
    actor: Actor,
    student_id: int,
    status: Optional[str] = None,
) -> List[Booking]:
    """Student's bookings, most recent lesson first"""
    authorize(
        actor, "list_student_bookings", resource_owner_id=student_id, resource="booking"
    )

    conditions = [Booking.student_id == student_id]
    if status:
        conditions.append(Booking.status == _parse_status(status))

    result = await session.execute(
        select(Booking)
        .where(and_(*conditions))
        .order_by(Booking.date.desc(), Booking.start_time.desc(), Booking.id.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


@db_operation
async def list_for_teacher(
    session: AsyncSession,
    actor: Actor,
    teacher_id: int,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    status: Optional[str] = None,
) -> List[Booking]:
    """Bookings on a teacher's slots in lesson order"""
    authorize(
        actor, "list_teacher_bookings", resource_owner_id=teacher_id, resource="booking"
    )

    conditions = [Booking.teacher_id == teacher_id]
    if date_from:
        conditions.append(Booking.date >= date_from)
    if date_to:
        conditions.append(Booking.date <= date_to)
    if status:
        conditions.append(Booking.status == _parse_status(status))

    result = await session.execute(
        select(Booking)
        .where(and_(*conditions))
        .order_by(Booking.date, Booking.start_time, Booking.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


@db_operation
async def list_ready_for_completion(
    session: AsyncSession,
    actor: Actor,
    teacher_id: int,
    now: Optional[datetime] = None,
) -> List[Booking]:
    """Confirmed bookings whose lesson has already ended"""
    authorize(
        actor, "list_teacher_bookings", resource_owner_id=teacher_id, resource="booking"
    )
    now = now or clock.now()
    today = now.date()

    result = await session.execute(
        select(Booking)
        .where(
            and_(
                Booking.teacher_id == teacher_id,
                Booking.status == BookingStatus.confirmed.value,
                or_(
                    Booking.date < today,
                    and_(Booking.date == today, Booking.end_time <= now.time()),
                ),
            )
        )
        .order_by(Booking.date, Booking.start_time, Booking.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def list_available_for_group(
    session: AsyncSession,
    actor: Actor,
    group_id: int,
    lesson_type: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    now: Optional[datetime] = None,
) -> List[Slot]:
    """Open slots of the teachers assigned to the group"""
    authorize(actor, "list_available_for_group", resource="group")

    if actor.is_student and not await is_group_member(session, group_id, actor.user_id):
        raise ForbiddenError("list_available_for_group", "group", "student is not a member")
    if actor.is_teacher and not await is_group_teacher(session, group_id, actor.user_id):
        raise ForbiddenError("list_available_for_group", "group", "teacher is not assigned")

    return await list_available(
        session,
        date_from=date_from,
        date_to=date_to,
        lesson_type=lesson_type,
        group_id=group_id,
        now=now,
    )
