"""Student Schedule Router - Endpoints for browsing open lesson slots"""
from datetime import date
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from app.core.database import get_session
from app.core.dependencies import get_current_actor
from app.core.limits import limiter
from app.core.permissions import Actor, authorize
from app.core.results import CommandResult
from app.staff.crud.slots import list_available
from app.staff.models.slots import LessonType
from app.staff.schemas.slots import SlotRead
from app.students.crud.bookings import list_available_for_group

router = APIRouter(prefix="/students/schedule", tags=["Student Schedule"])


@router.get("/available", response_model=CommandResult[List[SlotRead]])
@limiter.limit("60/minute")
async def get_available_slots(
    request: Request,
    date_from: Optional[date] = Query(None, description="Filter from date"),
    date_to: Optional[date] = Query(None, description="Filter to date"),
    lesson_type: Optional[LessonType] = Query(None, description="Filter by lesson type"),
    teacher_id: Optional[int] = Query(None, gt=0, description="Filter by teacher"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """
    Get bookable slots.

    Only slots with a free seat that have not started yet are returned,
    ordered by date and start time.
    """
    authorize(actor, "list_available_slots", resource="slot")

    slots = await list_available(
        db,
        date_from=date_from,
        date_to=date_to,
        lesson_type=lesson_type.value if lesson_type else None,
        teacher_id=teacher_id,
    )
    return CommandResult.ok([SlotRead.model_validate(slot) for slot in slots])


@router.get("/groups/{group_id}", response_model=CommandResult[List[SlotRead]])
@limiter.limit("60/minute")
async def get_group_available_slots(
    request: Request,
    group_id: int,
    date_from: Optional[date] = Query(None, description="Filter from date"),
    date_to: Optional[date] = Query(None, description="Filter to date"),
    lesson_type: Optional[LessonType] = Query(None, description="Filter by lesson type"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """Bookable slots of the teachers assigned to a group"""
    slots = await list_available_for_group(
        db,
        actor,
        group_id,
        lesson_type=lesson_type.value if lesson_type else None,
        date_from=date_from,
        date_to=date_to,
    )
    return CommandResult.ok([SlotRead.model_validate(slot) for slot in slots])
