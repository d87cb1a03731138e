"""Student Exam Request Router - exam forms and requests for a place"""
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from app.core.database import get_session
from app.core.dependencies import get_current_actor
from app.core.limits import limiter
from app.core.permissions import Actor
from app.core.results import CommandResult
from app.staff.crud.exam_forms import list_exam_forms
from app.staff.schemas.exam_forms import ExamFormRead
from app.students.crud.exam_requests import list_exam_requests, submit_request
from app.students.models.exam_requests import ExamRequestStatus
from app.students.schemas.exam_requests import ExamRequestCreate, ExamRequestRead

router = APIRouter(prefix="/students/exams", tags=["Student Exams"])


@router.get("/forms/{group_id}", response_model=CommandResult[List[ExamFormRead]])
@limiter.limit("60/minute")
async def get_group_exam_forms(
    request: Request,
    group_id: int,
    open_only: bool = Query(True, description="Only forms accepting requests"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    forms = await list_exam_forms(db, actor, group_id, open_only=open_only)
    return CommandResult.ok([ExamFormRead.model_validate(f) for f in forms])


@router.post(
    "/requests",
    response_model=CommandResult[ExamRequestRead],
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("10/minute")
async def submit_exam_request(
    request: Request,
    request_data: ExamRequestCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """
    Request a place on an open exam form.

    Only one pending or approved request per exam type is allowed.
    """
    exam_request = await submit_request(db, actor, request_data.form_id, request_data.notes)
    return CommandResult.ok(ExamRequestRead.model_validate(exam_request))


@router.get("/requests", response_model=CommandResult[List[ExamRequestRead]])
@limiter.limit("60/minute")
async def get_my_exam_requests(
    request: Request,
    request_status: Optional[ExamRequestStatus] = Query(None, alias="status"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    requests = await list_exam_requests(
        db,
        actor,
        status=request_status.value if request_status else None,
        student_id=actor.user_id,
    )
    return CommandResult.ok([ExamRequestRead.model_validate(r) for r in requests])
