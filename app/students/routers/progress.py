"""Student Progress Router"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.dependencies import get_current_actor
from app.core.limits import limiter
from app.core.permissions import Actor
from app.core.results import CommandResult
from app.students.crud.progress import get_student_progress
from app.students.schemas.progress import StudentProgress

router = APIRouter(prefix="/students/progress", tags=["Student Progress"])


@router.get("/me", response_model=CommandResult[StudentProgress])
@limiter.limit("60/minute")
async def get_my_progress(
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """Training summary over completed lessons"""
    progress = await get_student_progress(db, actor, actor.user_id)
    return CommandResult.ok(progress)


@router.get("/{student_id}", response_model=CommandResult[StudentProgress])
@limiter.limit("60/minute")
async def get_progress(
    request: Request,
    student_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    progress = await get_student_progress(db, actor, student_id)
    return CommandResult.ok(progress)
