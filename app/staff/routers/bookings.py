"""Staff Booking Router - lesson completion and teacher views of bookings"""
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.dependencies import get_current_actor
from app.core.limits import limiter
from app.core.permissions import Actor
from app.core.results import CommandResult
from app.students.crud.bookings import (
    add_teacher_notes,
    cancel_booking,
    complete_booking,
    list_for_teacher,
    list_ready_for_completion,
)
from app.students.models.bookings import BookingStatus
from app.students.schemas.bookings import (
    BookingCancel,
    BookingComplete,
    BookingRead,
    TeacherNotesUpdate,
)

router = APIRouter(prefix="/staff/bookings", tags=["Staff Bookings"])


@router.post("/{booking_id}/complete", response_model=CommandResult[BookingRead])
@limiter.limit("30/minute")
async def complete_booking_route(
    request: Request,
    booking_id: int,
    completion: BookingComplete,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """
    Mark a lesson as completed and record the student's performance.

    A second call for the same booking fails with `AlreadyCompleted`.
    """
    booking = await complete_booking(
        db,
        actor,
        booking_id,
        hours_completed=completion.hours_completed,
        performance_rating=completion.performance_rating,
        skills_improved=completion.skills_improved,
        areas_to_improve=completion.areas_to_improve,
        ready_for_next_level=completion.ready_for_next_level,
    )
    return CommandResult.ok(BookingRead.model_validate(booking))


@router.post("/{booking_id}/cancel", response_model=CommandResult[BookingRead])
@limiter.limit("30/minute")
async def cancel_booking_route(
    request: Request,
    booking_id: int,
    cancel_data: BookingCancel,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    booking = await cancel_booking(db, actor, booking_id, cancel_data.reason)
    return CommandResult.ok(BookingRead.model_validate(booking))


@router.put("/{booking_id}/notes", response_model=CommandResult[BookingRead])
@limiter.limit("30/minute")
async def add_teacher_notes_route(
    request: Request,
    booking_id: int,
    notes_data: TeacherNotesUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    booking = await add_teacher_notes(db, actor, booking_id, notes_data.notes)
    return CommandResult.ok(BookingRead.model_validate(booking))


@router.get("/teacher/{teacher_id}", response_model=CommandResult[List[BookingRead]])
@limiter.limit("60/minute")
async def list_teacher_bookings_route(
    request: Request,
    teacher_id: int,
    date_from: Optional[date] = Query(None, description="Filter from date"),
    date_to: Optional[date] = Query(None, description="Filter to date"),
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    bookings = await list_for_teacher(
        db,
        actor,
        teacher_id,
        date_from=date_from,
        date_to=date_to,
        status=booking_status.value if booking_status else None,
    )
    return CommandResult.ok([BookingRead.model_validate(b) for b in bookings])


@router.get(
    "/teacher/{teacher_id}/ready-for-completion",
    response_model=CommandResult[List[BookingRead]],
)
@limiter.limit("60/minute")
async def list_ready_for_completion_route(
    request: Request,
    teacher_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """Confirmed bookings whose lesson has already ended"""
    bookings = await list_ready_for_completion(db, actor, teacher_id)
    return CommandResult.ok([BookingRead.model_validate(b) for b in bookings])
