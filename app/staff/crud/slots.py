"""
Slot Directory - teacher-published lesson slots and their capacity counters.

`current_bookings` is written only by `reserve_capacity` / `release_capacity`,
each a single conditional UPDATE run inside the Booking Ledger's
transaction. The WHERE clause carries the bound check, so two writers can
never both take the last seat.
"""
import logging
from datetime import date, datetime, time
from typing import List, Optional

from sqlalchemy import and_, or_, update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import clock
from app.core.database import db_operation, run_in_transaction
from app.core.exceptions import CapacityExceededError, NotFoundError, ValidationError
from app.core.logging_utils import log_business_event
from app.core.permissions import Actor, authorize
from app.core.validations import ensure_not_in_past, validate_time_window
from app.staff.crud.groups import get_teacher
from app.staff.models.group_teachers import GroupTeacher
from app.staff.models.slots import LessonType, Slot

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = ("date", "start_time", "end_time", "max_capacity", "location", "notes")


def _parse_lesson_type(lesson_type) -> LessonType:
    try:
        return LessonType(lesson_type)
    except ValueError:
        raise ValidationError(
            f"Unknown lesson type '{lesson_type}'",
            details={"allowed": [t.value for t in LessonType]},
        )


def _validate_capacity(lesson_type: LessonType, max_capacity: int) -> None:
    if max_capacity is None or max_capacity < 1:
        raise ValidationError("max_capacity must be at least 1")
    # Практическое занятие всегда один на один
    if lesson_type == LessonType.practical and max_capacity != 1:
        raise ValidationError(
            "Practical lessons are exclusive: max_capacity must be 1",
            details={"lesson_type": lesson_type.value, "max_capacity": max_capacity},
        )


@db_operation
async def get_slot(session: AsyncSession, slot_id: int) -> Slot:
    """Свежее состояние слота (счетчик меняется условными UPDATE в обход identity map)"""
    result = await session.execute(
        select(Slot)
        .where(Slot.id == slot_id)
        .execution_options(populate_existing=True)
    )
    slot = result.scalar_one_or_none()
    if not slot:
        raise NotFoundError("Slot", str(slot_id))
    return slot


async def _publish_slot_tx(
    session: AsyncSession,
    teacher_id: int,
    lesson_type: LessonType,
    slot_date: date,
    start_time: time,
    end_time: time,
    max_capacity: int,
    location: Optional[str],
    notes: Optional[str],
) -> Slot:
    await get_teacher(session, teacher_id)

    slot = Slot(
        teacher_id=teacher_id,
        lesson_type=lesson_type.value,
        date=slot_date,
        start_time=start_time,
        end_time=end_time,
        max_capacity=max_capacity,
        current_bookings=0,
        location=location,
        notes=notes,
    )
    session.add(slot)
    await session.flush()
    await session.refresh(slot)
    return slot


async def publish_slot(
    session: AsyncSession,
    actor: Actor,
    lesson_type,
    slot_date: date,
    start_time: time,
    end_time: time,
    max_capacity: int = 1,
    teacher_id: Optional[int] = None,
    location: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Slot:
    """
    Publish a slot for a teacher.

    A teacher publishes for themself; an admin publishes on behalf of any
    teacher and must name them.
    """
    if teacher_id is None and actor.is_teacher:
        teacher_id = actor.user_id

    authorize(actor, "publish_slot", resource_owner_id=teacher_id, resource="slot")
    if teacher_id is None:
        raise ValidationError("teacher_id is required when publishing on behalf of a teacher")

    lesson_type = _parse_lesson_type(lesson_type)
    validate_time_window(start_time, end_time)
    ensure_not_in_past(slot_date, start_time, now or clock.now())
    _validate_capacity(lesson_type, max_capacity)

    slot = await run_in_transaction(
        session,
        _publish_slot_tx,
        teacher_id,
        lesson_type,
        slot_date,
        start_time,
        end_time,
        max_capacity,
        location,
        notes,
    )

    log_business_event(
        "slot_published",
        "slot",
        slot.id,
        {
            "teacher_id": teacher_id,
            "lesson_type": lesson_type.value,
            "date": slot_date.isoformat(),
            "max_capacity": max_capacity,
        },
        actor_id=actor.user_id,
    )
    return slot


@db_operation
async def list_available(
    session: AsyncSession,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    lesson_type: Optional[str] = None,
    teacher_id: Optional[int] = None,
    group_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[Slot]:
    """
    Slots with spare capacity that have not started yet, ordered by
    (date, start_time, id).
    """
    now = now or clock.now()
    today = now.date()

    conditions = [
        Slot.current_bookings < Slot.max_capacity,
        or_(
            Slot.date > today,
            and_(Slot.date == today, Slot.start_time > now.time()),
        ),
    ]

    if date_from:
        conditions.append(Slot.date >= date_from)
    if date_to:
        conditions.append(Slot.date <= date_to)
    if lesson_type:
        conditions.append(Slot.lesson_type == _parse_lesson_type(lesson_type).value)
    if teacher_id:
        conditions.append(Slot.teacher_id == teacher_id)
    if group_id:
        group_teachers = select(GroupTeacher.teacher_id).where(
            and_(GroupTeacher.group_id == group_id, GroupTeacher.is_active.is_(True))
        )
        conditions.append(Slot.teacher_id.in_(group_teachers))

    result = await session.execute(
        select(Slot)
        .where(and_(*conditions))
        .order_by(Slot.date, Slot.start_time, Slot.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


@db_operation
async def list_teacher_slots(
    session: AsyncSession,
    actor: Actor,
    teacher_id: int,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> List[Slot]:
    """All slots of one teacher, including full and past ones"""
    authorize(actor, "list_teacher_slots", resource_owner_id=teacher_id, resource="slot")

    conditions = [Slot.teacher_id == teacher_id]
    if date_from:
        conditions.append(Slot.date >= date_from)
    if date_to:
        conditions.append(Slot.date <= date_to)

    result = await session.execute(
        select(Slot)
        .where(and_(*conditions))
        .order_by(Slot.date, Slot.start_time, Slot.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def reserve_capacity(session: AsyncSession, schedule_id: int) -> None:
    """
    Take one seat. Runs inside the caller's transaction.

    Raises:
        NotFoundError: slot does not exist
        CapacityExceededError: slot is already full
    """
    result = await session.execute(
        update(Slot)
        .where(and_(Slot.id == schedule_id, Slot.current_bookings < Slot.max_capacity))
        .values(current_bookings=Slot.current_bookings + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return

    slot = await get_slot(session, schedule_id)
    raise CapacityExceededError("Slot", schedule_id, slot.max_capacity)


async def release_capacity(session: AsyncSession, schedule_id: int) -> None:
    """Return one seat; never drops below zero"""
    result = await session.execute(
        update(Slot)
        .where(and_(Slot.id == schedule_id, Slot.current_bookings > 0))
        .values(current_bookings=Slot.current_bookings - 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # Счетчик уже 0: запись о брони есть, а места нет, логируем расхождение
        logger.warning(
            f"release_capacity found no seat to release on slot {schedule_id}",
            extra={"schedule_id": schedule_id},
        )


async def _update_slot_tx(
    session: AsyncSession, actor: Actor, slot_id: int, changes: dict, now: datetime
) -> Slot:
    slot = await get_slot(session, slot_id)
    authorize(actor, "update_slot", resource_owner_id=slot.teacher_id, resource="slot")

    lesson_type = LessonType(slot.lesson_type)
    new_date = changes.get("date", slot.date)
    new_start = changes.get("start_time", slot.start_time)
    new_end = changes.get("end_time", slot.end_time)
    new_capacity = changes.get("max_capacity", slot.max_capacity)

    validate_time_window(new_start, new_end)
    if "date" in changes or "start_time" in changes:
        ensure_not_in_past(new_date, new_start, now)
    _validate_capacity(lesson_type, new_capacity)

    # Уменьшение вместимости ниже числа записей проверяется в том же UPDATE
    result = await session.execute(
        update(Slot)
        .where(and_(Slot.id == slot_id, Slot.current_bookings <= new_capacity))
        .values(**changes)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ValidationError(
            "max_capacity cannot be lower than the number of current bookings",
            details={"slot_id": slot_id, "max_capacity": new_capacity},
        )

    return await get_slot(session, slot_id)


async def update_slot(
    session: AsyncSession,
    actor: Actor,
    slot_id: int,
    now: Optional[datetime] = None,
    **changes,
) -> Slot:
    """
    Edit time, capacity, location or notes of a slot. Existing bookings keep
    their own snapshot of date and time.
    """
    unknown = set(changes) - set(_EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(
            "Unsupported slot fields", details={"fields": sorted(unknown)}
        )
    changes = {key: value for key, value in changes.items() if value is not None}
    if not changes:
        raise ValidationError("Nothing to update")

    slot = await run_in_transaction(
        session, _update_slot_tx, actor, slot_id, changes, now or clock.now()
    )

    log_business_event(
        "slot_updated",
        "slot",
        slot_id,
        {"fields": sorted(changes)},
        actor_id=actor.user_id,
    )
    return slot


async def _delete_slot_tx(session: AsyncSession, actor: Actor, slot_id: int) -> None:
    slot = await get_slot(session, slot_id)
    authorize(actor, "delete_slot", resource_owner_id=slot.teacher_id, resource="slot")

    try:
        result = await session.execute(
            delete(Slot)
            .where(and_(Slot.id == slot_id, Slot.current_bookings == 0))
            .execution_options(synchronize_session=False)
        )
    except IntegrityError:
        raise ValidationError(
            "Slot has booking history and cannot be deleted",
            details={"slot_id": slot_id},
        )

    if result.rowcount != 1:
        raise ValidationError(
            "Slot with active bookings cannot be deleted",
            details={"slot_id": slot_id},
        )
    session.expunge(slot)


async def delete_slot(session: AsyncSession, actor: Actor, slot_id: int) -> None:
    await run_in_transaction(session, _delete_slot_tx, actor, slot_id)
    log_business_event("slot_deleted", "slot", slot_id, actor_id=actor.user_id)
