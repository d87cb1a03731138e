"""Student side of the exam request workflow: submission and role-scoped listing"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import clock
from app.core.database import db_operation, is_unique_violation, run_in_transaction
from app.core.exceptions import (
    DuplicateActiveRequestError,
    ForbiddenError,
    FormClosedError,
    NotFoundError,
    ValidationError,
)
from app.core.logging_utils import log_business_event
from app.core.permissions import Actor, authorize
from app.staff.crud.exam_forms import get_exam_form, parse_exam_type, reserve_form_place
from app.staff.crud.groups import get_admin_ids, is_group_member
from app.staff.models.exam_forms import ExamForm
from app.staff.services import notification_service
from app.students.crud.progress import summarize
from app.students.models.exam_requests import (
    ACTIVE_EXAM_REQUEST_STATUSES,
    ACTIVE_REQUEST_INDEX,
    ExamRequest,
    ExamRequestStatus,
)

logger = logging.getLogger(__name__)


@db_operation
async def get_exam_request(session: AsyncSession, request_id: int) -> ExamRequest:
    result = await session.execute(
        select(ExamRequest)
        .where(ExamRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    request = result.scalar_one_or_none()
    if not request:
        raise NotFoundError("ExamRequest", str(request_id))
    return request


async def _has_active_request(
    session: AsyncSession, student_id: int, exam_type: str
) -> bool:
    result = await session.execute(
        select(ExamRequest.id).where(
            and_(
                ExamRequest.student_id == student_id,
                ExamRequest.exam_type == exam_type,
                ExamRequest.status.in_([s.value for s in ACTIVE_EXAM_REQUEST_STATUSES]),
            )
        )
    )
    return result.first() is not None


async def _submit_request_tx(
    session: AsyncSession,
    actor: Actor,
    form_id: int,
    notes: Optional[str],
    now: datetime,
) -> ExamRequest:
    form = await get_exam_form(session, form_id)

    if not await is_group_member(session, form.group_id, actor.user_id):
        raise ForbiddenError("submit_exam_request", "exam_form", "student is not a member of the group")
    if not form.is_open:
        raise FormClosedError(form.id)
    if await _has_active_request(session, actor.user_id, form.exam_type):
        raise DuplicateActiveRequestError(actor.user_id, form.exam_type)

    # После неудачного flush атрибуты формы недоступны
    exam_type = form.exam_type
    await reserve_form_place(session, form_id)

    request = ExamRequest(
        student_id=actor.user_id,
        form_id=form_id,
        group_id=form.group_id,
        teacher_id=form.teacher_id,
        exam_type=exam_type,
        status=ExamRequestStatus.pending.value,
        student_notes=notes,
        requested_at=now,
    )
    session.add(request)
    try:
        await session.flush()
    except IntegrityError as e:
        # Частичный уникальный индекс (student_id, exam_type) для активных заявок
        if is_unique_violation(e, ExamRequest.__table__, ACTIVE_REQUEST_INDEX):
            raise DuplicateActiveRequestError(actor.user_id, exam_type)
        raise

    # Админ видит готовность студента при рассмотрении
    progress = await summarize(session, actor.user_id)
    payload = {
        "request_id": request.id,
        "form_id": form.id,
        "group_id": form.group_id,
        "student_id": actor.user_id,
        "exam_type": form.exam_type,
        "exam_date": form.exam_date,
        "exam_time": form.exam_time,
        "ready_for_exam": progress.ready_for_exam,
        "total_hours": progress.total_hours,
        "average_rating": progress.average_rating,
    }
    await notification_service.emit_to_many(
        session,
        notification_service.EXAM_REQUEST_SUBMITTED,
        await get_admin_ids(session),
        payload,
        now,
    )
    await notification_service.record_activity(
        session,
        form.group_id,
        actor.user_id,
        notification_service.ACTIVITY_EXAM_REQUESTED,
        {"request_id": request.id, "form_id": form.id, "exam_date": form.exam_date},
        now,
    )
    return request


async def submit_request(
    session: AsyncSession,
    actor: Actor,
    form_id: int,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ExamRequest:
    """
    Request a place on an open exam form.

    Fails with FormClosed, DuplicateActiveRequest (a pending or approved
    request of the same exam type exists) or FormFull. Concurrent
    submissions for the last place: exactly one succeeds.
    """
    authorize(actor, "submit_exam_request", resource="exam_request")

    request = await run_in_transaction(
        session, _submit_request_tx, actor, form_id, notes, now or clock.now()
    )

    log_business_event(
        "exam_request_submitted",
        "exam_request",
        request.id,
        {"form_id": form_id, "exam_type": request.exam_type},
        actor_id=actor.user_id,
    )
    return request


@db_operation
async def list_exam_requests(
    session: AsyncSession,
    actor: Actor,
    status: Optional[str] = None,
    exam_type: Optional[str] = None,
    student_id: Optional[int] = None,
    group_id: Optional[int] = None,
) -> List[ExamRequest]:
    """
    Exam requests visible to the actor: admins see all, teachers see the
    requests on their own forms, students see their own.
    """
    authorize(actor, "list_exam_requests", resource="exam_request")

    conditions = []
    if actor.is_student:
        conditions.append(ExamRequest.student_id == actor.user_id)
    elif actor.is_teacher:
        own_forms = select(ExamForm.id).where(ExamForm.teacher_id == actor.user_id)
        conditions.append(ExamRequest.form_id.in_(own_forms))

    if status:
        try:
            conditions.append(ExamRequest.status == ExamRequestStatus(status).value)
        except ValueError:
            raise ValidationError(
                f"Unknown exam request status '{status}'",
                details={"allowed": [s.value for s in ExamRequestStatus]},
            )
    if exam_type:
        conditions.append(ExamRequest.exam_type == parse_exam_type(exam_type).value)
    if student_id:
        conditions.append(ExamRequest.student_id == student_id)
    if group_id:
        conditions.append(ExamRequest.group_id == group_id)

    result = await session.execute(
        select(ExamRequest)
        .where(*conditions)
        .order_by(ExamRequest.requested_at.desc(), ExamRequest.id.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())
