"""Staff Exam Form Router"""
from typing import List
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.dependencies import get_current_actor
from app.core.limits import limiter
from app.core.permissions import Actor
from app.core.results import CommandResult
from app.staff.crud.exam_forms import close_exam_form, create_exam_form, list_exam_forms
from app.staff.schemas.exam_forms import ExamFormCreate, ExamFormRead

router = APIRouter(prefix="/staff/exam-forms", tags=["Staff Exam Forms"])


@router.post(
    "",
    response_model=CommandResult[ExamFormRead],
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("20/minute")
async def create_exam_form_route(
    request: Request,
    form_data: ExamFormCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """Open an exam form for a group; active members are notified"""
    form = await create_exam_form(
        db,
        actor,
        group_id=form_data.group_id,
        title=form_data.title,
        exam_type=form_data.exam_type,
        exam_date=form_data.exam_date,
        exam_time=form_data.exam_time,
        max_requests=form_data.max_requests,
    )
    return CommandResult.ok(ExamFormRead.model_validate(form))


@router.post("/{form_id}/close", response_model=CommandResult[ExamFormRead])
@limiter.limit("20/minute")
async def close_exam_form_route(
    request: Request,
    form_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    form = await close_exam_form(db, actor, form_id)
    return CommandResult.ok(ExamFormRead.model_validate(form))


@router.get("/group/{group_id}", response_model=CommandResult[List[ExamFormRead]])
@limiter.limit("60/minute")
async def list_group_exam_forms_route(
    request: Request,
    group_id: int,
    open_only: bool = Query(False, description="Only forms accepting requests"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    forms = await list_exam_forms(db, actor, group_id, open_only=open_only)
    return CommandResult.ok([ExamFormRead.model_validate(f) for f in forms])
