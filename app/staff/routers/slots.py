"""Staff Slot Router - publishing and maintaining lesson slots"""
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.dependencies import get_current_actor
from app.core.limits import limiter
from app.core.permissions import Actor
from app.core.results import CommandResult
from app.staff.crud.slots import (
    delete_slot,
    list_teacher_slots,
    publish_slot,
    update_slot,
)
from app.staff.schemas.slots import SlotCreate, SlotRead, SlotUpdate

router = APIRouter(prefix="/staff/slots", tags=["Staff Slots"])


@router.post(
    "",
    response_model=CommandResult[SlotRead],
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("30/minute")
async def publish_slot_route(
    request: Request,
    slot_data: SlotCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """
    Publish a lesson slot.

    Teachers publish for themselves; admins must pass `teacher_id`.
    """
    slot = await publish_slot(
        db,
        actor,
        lesson_type=slot_data.lesson_type,
        slot_date=slot_data.date,
        start_time=slot_data.start_time,
        end_time=slot_data.end_time,
        max_capacity=slot_data.max_capacity,
        teacher_id=slot_data.teacher_id,
        location=slot_data.location,
        notes=slot_data.notes,
    )
    return CommandResult.ok(SlotRead.model_validate(slot))


@router.patch("/{slot_id}", response_model=CommandResult[SlotRead])
@limiter.limit("30/minute")
async def update_slot_route(
    request: Request,
    slot_id: int,
    slot_data: SlotUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    slot = await update_slot(db, actor, slot_id, **slot_data.model_dump(exclude_unset=True))
    return CommandResult.ok(SlotRead.model_validate(slot))


@router.delete("/{slot_id}", response_model=CommandResult[None])
@limiter.limit("30/minute")
async def delete_slot_route(
    request: Request,
    slot_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """Delete a slot that has no active bookings"""
    await delete_slot(db, actor, slot_id)
    return CommandResult.ok()


@router.get("/teacher/{teacher_id}", response_model=CommandResult[List[SlotRead]])
@limiter.limit("60/minute")
async def list_teacher_slots_route(
    request: Request,
    teacher_id: int,
    date_from: Optional[date] = Query(None, description="Filter from date"),
    date_to: Optional[date] = Query(None, description="Filter to date"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    slots = await list_teacher_slots(db, actor, teacher_id, date_from, date_to)
    return CommandResult.ok([SlotRead.model_validate(slot) for slot in slots])
