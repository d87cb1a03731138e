"""
Exam forms - group-scoped exam sittings published by teachers.

`current_requests` is written only by `reserve_form_place`, a conditional
UPDATE that also checks `is_open`, so a closed or full form can never take
another request.
"""
import logging
from datetime import date, datetime, time
from typing import List, Optional

from sqlalchemy import and_, update
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import clock
from app.core.database import db_operation, run_in_transaction
from app.core.exceptions import (
    ForbiddenError,
    FormClosedError,
    FormFullError,
    NotFoundError,
    ValidationError,
)
from app.core.logging_utils import log_business_event
from app.core.permissions import Actor, authorize
from app.core.validations import lesson_datetime, require_text
from app.staff.crud.groups import (
    get_active_member_ids,
    get_group_by_id,
    is_group_member,
    is_group_teacher,
)
from app.staff.models.exam_forms import ExamForm, ExamType
from app.staff.services import notification_service

logger = logging.getLogger(__name__)

MAX_REQUESTS_LIMIT = 50
TITLE_MAX_LENGTH = 200


def parse_exam_type(exam_type) -> ExamType:
    try:
        return ExamType(exam_type)
    except ValueError:
        raise ValidationError(
            f"Unknown exam type '{exam_type}'",
            details={"allowed": [t.value for t in ExamType]},
        )


@db_operation
async def get_exam_form(session: AsyncSession, form_id: int) -> ExamForm:
    result = await session.execute(
        select(ExamForm)
        .where(ExamForm.id == form_id)
        .execution_options(populate_existing=True)
    )
    form = result.scalar_one_or_none()
    if not form:
        raise NotFoundError("ExamForm", str(form_id))
    return form


async def reserve_form_place(session: AsyncSession, form_id: int) -> None:
    """
    Take one request place on an open form, inside the caller's transaction.

    Raises:
        NotFoundError, FormClosedError, FormFullError
    """
    result = await session.execute(
        update(ExamForm)
        .where(
            and_(
                ExamForm.id == form_id,
                ExamForm.is_open.is_(True),
                ExamForm.current_requests < ExamForm.max_requests,
            )
        )
        .values(current_requests=ExamForm.current_requests + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return

    form = await get_exam_form(session, form_id)
    if not form.is_open:
        raise FormClosedError(form_id)
    raise FormFullError(form_id)


async def _create_exam_form_tx(
    session: AsyncSession,
    actor: Actor,
    group_id: int,
    title: str,
    exam_type: ExamType,
    exam_date: date,
    exam_time: time,
    max_requests: int,
    now: datetime,
) -> ExamForm:
    group = await get_group_by_id(session, group_id)

    if actor.is_teacher and not await is_group_teacher(session, group.id, actor.user_id):
        raise ForbiddenError("create_exam_form", "group", "teacher is not assigned to this group")

    form = ExamForm(
        group_id=group.id,
        teacher_id=actor.user_id,
        title=title,
        exam_type=exam_type.value,
        exam_date=exam_date,
        exam_time=exam_time,
        is_open=True,
        max_requests=max_requests,
        current_requests=0,
    )
    session.add(form)
    await session.flush()
    await session.refresh(form)

    payload = {
        "form_id": form.id,
        "group_id": group.id,
        "title": title,
        "exam_type": exam_type.value,
        "exam_date": exam_date,
        "exam_time": exam_time,
        "max_requests": max_requests,
    }
    await notification_service.emit_to_many(
        session,
        notification_service.EXAM_FORM_OPENED,
        await get_active_member_ids(session, group.id),
        payload,
        now,
    )
    await notification_service.record_activity(
        session,
        group.id,
        actor.user_id,
        notification_service.ACTIVITY_EXAM_FORM_CREATED,
        payload,
        now,
    )
    return form


async def create_exam_form(
    session: AsyncSession,
    actor: Actor,
    group_id: int,
    title: str,
    exam_type,
    exam_date: date,
    exam_time: time,
    max_requests: int,
    now: Optional[datetime] = None,
) -> ExamForm:
    """
    Open an exam form for a group and notify its active members.

    Only a teacher assigned to the group, or an admin, may publish one.
    """
    authorize(actor, "create_exam_form", resource="exam_form")
    now = now or clock.now()

    title = require_text(title, "title")
    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationError(f"title must be at most {TITLE_MAX_LENGTH} characters")
    exam_type = parse_exam_type(exam_type)
    if (
        isinstance(max_requests, bool)
        or not isinstance(max_requests, int)
        or not 1 <= max_requests <= MAX_REQUESTS_LIMIT
    ):
        raise ValidationError(
            f"max_requests must be between 1 and {MAX_REQUESTS_LIMIT}",
            details={"max_requests": max_requests},
        )
    if lesson_datetime(exam_date, exam_time) <= now:
        raise ValidationError(
            "Exam date must be in the future",
            details={"exam_date": exam_date.isoformat()},
        )

    form = await run_in_transaction(
        session,
        _create_exam_form_tx,
        actor,
        group_id,
        title,
        exam_type,
        exam_date,
        exam_time,
        max_requests,
        now,
    )

    log_business_event(
        "exam_form_created",
        "exam_form",
        form.id,
        {"group_id": group_id, "exam_type": exam_type.value, "max_requests": max_requests},
        actor_id=actor.user_id,
    )
    return form


async def _close_exam_form_tx(
    session: AsyncSession, actor: Actor, form_id: int, now: datetime
) -> ExamForm:
    form = await get_exam_form(session, form_id)
    authorize(actor, "close_exam_form", resource_owner_id=form.teacher_id, resource="exam_form")

    if not form.is_open:
        return form

    await session.execute(
        update(ExamForm)
        .where(and_(ExamForm.id == form_id, ExamForm.is_open.is_(True)))
        .values(is_open=False, closed_at=now)
        .execution_options(synchronize_session=False)
    )
    return await get_exam_form(session, form_id)


async def close_exam_form(
    session: AsyncSession,
    actor: Actor,
    form_id: int,
    now: Optional[datetime] = None,
) -> ExamForm:
    """Stop accepting requests. Closing a closed form returns it unchanged"""
    form = await run_in_transaction(
        session, _close_exam_form_tx, actor, form_id, now or clock.now()
    )
    log_business_event("exam_form_closed", "exam_form", form.id, actor_id=actor.user_id)
    return form


@db_operation
async def list_exam_forms(
    session: AsyncSession,
    actor: Actor,
    group_id: int,
    open_only: bool = False,
) -> List[ExamForm]:
    authorize(actor, "list_exam_forms", resource="exam_form")

    if actor.is_student and not await is_group_member(session, group_id, actor.user_id):
        raise ForbiddenError("list_exam_forms", "group", "student is not a member")

    conditions = [ExamForm.group_id == group_id]
    if open_only:
        conditions.append(ExamForm.is_open.is_(True))

    result = await session.execute(
        select(ExamForm)
        .where(and_(*conditions))
        .order_by(ExamForm.exam_date, ExamForm.exam_time, ExamForm.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())
