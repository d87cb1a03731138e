"""
Staff side of the exam request workflow: admin review and result setting.

Transitions follow EXAM_REQUEST_TRANSITIONS and are applied as
compare-and-swap UPDATEs on the expected source status; a request that is not
in that status fails with InvalidTransition and nothing changes.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import clock
from app.core.database import run_in_transaction
from app.core.exceptions import InvalidTransitionError, ValidationError
from app.core.logging_utils import log_business_event
from app.core.permissions import Actor, authorize
from app.core.validations import require_text
from app.staff.services import notification_service
from app.students.crud.exam_requests import get_exam_request
from app.students.models.exam_requests import (
    ExamRequest,
    ExamRequestStatus,
    ExamResult,
    ReviewAction,
)

logger = logging.getLogger(__name__)


def _parse(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(
            f"Invalid {field} '{value}'",
            details={"field": field, "allowed": [item.value for item in enum_cls]},
        )


async def _transition(
    session: AsyncSession,
    request: ExamRequest,
    source: ExamRequestStatus,
    target: ExamRequestStatus,
    values: dict,
) -> ExamRequest:
    if not request.can_transition_to(target):
        raise InvalidTransitionError("ExamRequest", request.status, target.value)

    result = await session.execute(
        update(ExamRequest)
        .where(and_(ExamRequest.id == request.id, ExamRequest.status == source.value))
        .values(status=target.value, **values)
        .execution_options(synchronize_session=False)
    )
    current = await get_exam_request(session, request.id)
    if result.rowcount != 1:
        raise InvalidTransitionError("ExamRequest", current.status, target.value)
    return current


def _event_payload(request: ExamRequest) -> dict:
    return {
        "request_id": request.id,
        "form_id": request.form_id,
        "group_id": request.group_id,
        "student_id": request.student_id,
        "exam_type": request.exam_type,
        "status": request.status,
    }


# === Review ===
async def _review_tx(
    session: AsyncSession,
    actor: Actor,
    request_id: int,
    action: ReviewAction,
    admin_notes: Optional[str],
    rejection_reason: Optional[str],
    now: datetime,
) -> ExamRequest:
    request = await get_exam_request(session, request_id)

    target = (
        ExamRequestStatus.approved
        if action == ReviewAction.approve
        else ExamRequestStatus.rejected
    )
    request = await _transition(
        session,
        request,
        ExamRequestStatus.pending,
        target,
        {
            "reviewed_by": actor.user_id,
            "reviewed_at": now,
            "admin_notes": admin_notes,
            "rejection_reason": rejection_reason,
        },
    )

    event_type = (
        notification_service.EXAM_REQUEST_APPROVED
        if target == ExamRequestStatus.approved
        else notification_service.EXAM_REQUEST_REJECTED
    )
    payload = _event_payload(request)
    payload.update({"admin_notes": admin_notes, "rejection_reason": rejection_reason})
    await notification_service.emit_event(
        session, event_type, request.student_id, payload, now
    )
    return request


async def review(
    session: AsyncSession,
    actor: Actor,
    request_id: int,
    action,
    admin_notes: Optional[str] = None,
    rejection_reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ExamRequest:
    """Approve or reject a pending request. Rejecting requires a reason"""
    authorize(actor, "review_exam_request", resource="exam_request")

    action = _parse(ReviewAction, action, "action")
    if action == ReviewAction.reject:
        rejection_reason = require_text(rejection_reason, "rejection_reason")
    else:
        rejection_reason = None

    request = await run_in_transaction(
        session,
        _review_tx,
        actor,
        request_id,
        action,
        admin_notes,
        rejection_reason,
        now or clock.now(),
    )

    log_business_event(
        f"exam_request_{request.status}",
        "exam_request",
        request.id,
        {"student_id": request.student_id, "action": action.value},
        actor_id=actor.user_id,
    )
    return request


# === Result ===
async def _set_result_tx(
    session: AsyncSession,
    actor: Actor,
    request_id: int,
    result: ExamResult,
    result_notes: Optional[str],
    now: datetime,
) -> ExamRequest:
    request = await get_exam_request(session, request_id)
    # Результат ставит преподаватель, опубликовавший форму, или админ
    authorize(
        actor, "set_exam_result", resource_owner_id=request.teacher_id, resource="exam_request"
    )

    request = await _transition(
        session,
        request,
        ExamRequestStatus.approved,
        ExamRequestStatus(result.value),
        {
            "result": result.value,
            "result_notes": result_notes,
            "result_set_by": actor.user_id,
            "result_set_at": now,
        },
    )

    passed = result == ExamResult.passed
    payload = _event_payload(request)
    payload["result_notes"] = result_notes
    await notification_service.emit_event(
        session,
        notification_service.EXAM_PASSED if passed else notification_service.EXAM_FAILED,
        request.student_id,
        payload,
        now,
    )
    await notification_service.record_activity(
        session,
        request.group_id,
        actor.user_id,
        (
            notification_service.ACTIVITY_EXAM_PASSED
            if passed
            else notification_service.ACTIVITY_EXAM_FAILED
        ),
        {
            "request_id": request.id,
            "student_id": request.student_id,
            "exam_type": request.exam_type,
        },
        now,
    )
    return request


async def set_result(
    session: AsyncSession,
    actor: Actor,
    request_id: int,
    result,
    result_notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ExamRequest:
    """Record the exam outcome of an approved request; passed and failed are terminal"""
    result = _parse(ExamResult, result, "result")

    request = await run_in_transaction(
        session, _set_result_tx, actor, request_id, result, result_notes, now or clock.now()
    )

    log_business_event(
        f"exam_{result.value}",
        "exam_request",
        request.id,
        {"student_id": request.student_id, "exam_type": request.exam_type},
        actor_id=actor.user_id,
    )
    return request
