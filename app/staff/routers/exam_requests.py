"""Staff Exam Request Router - admin review and exam results"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.dependencies import get_current_actor
from app.core.limits import limiter
from app.core.permissions import Actor
from app.core.results import CommandResult
from app.staff.crud.exam_requests import review, set_result
from app.staff.models.exam_forms import ExamType
from app.students.crud.exam_requests import list_exam_requests
from app.students.models.exam_requests import ExamRequestStatus
from app.students.schemas.exam_requests import (
    ExamRequestRead,
    ExamRequestResult,
    ExamRequestReview,
)

router = APIRouter(prefix="/staff/exam-requests", tags=["Staff Exam Requests"])


@router.get("", response_model=CommandResult[List[ExamRequestRead]])
@limiter.limit("60/minute")
async def list_exam_requests_route(
    request: Request,
    request_status: Optional[ExamRequestStatus] = Query(None, alias="status"),
    exam_type: Optional[ExamType] = Query(None),
    student_id: Optional[int] = Query(None, gt=0),
    group_id: Optional[int] = Query(None, gt=0),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """
    Admins see every request; teachers see requests on their own forms.
    """
    requests = await list_exam_requests(
        db,
        actor,
        status=request_status.value if request_status else None,
        exam_type=exam_type.value if exam_type else None,
        student_id=student_id,
        group_id=group_id,
    )
    return CommandResult.ok([ExamRequestRead.model_validate(r) for r in requests])


@router.post("/{request_id}/review", response_model=CommandResult[ExamRequestRead])
@limiter.limit("30/minute")
async def review_exam_request_route(
    request: Request,
    request_id: int,
    review_data: ExamRequestReview,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    exam_request = await review(
        db,
        actor,
        request_id,
        review_data.action,
        admin_notes=review_data.admin_notes,
        rejection_reason=review_data.rejection_reason,
    )
    return CommandResult.ok(ExamRequestRead.model_validate(exam_request))


@router.post("/{request_id}/result", response_model=CommandResult[ExamRequestRead])
@limiter.limit("30/minute")
async def set_exam_result_route(
    request: Request,
    request_id: int,
    result_data: ExamRequestResult,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    exam_request = await set_result(
        db, actor, request_id, result_data.result, result_notes=result_data.result_notes
    )
    return CommandResult.ok(ExamRequestRead.model_validate(exam_request))
