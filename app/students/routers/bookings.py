"""Student Booking Router - booking and cancelling lesson seats"""
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from app.core.database import get_session
from app.core.dependencies import get_current_actor
from app.core.limits import limiter
from app.core.permissions import Actor
from app.core.results import CommandResult
from app.students.crud.bookings import cancel_booking, create_booking, list_for_student
from app.students.models.bookings import BookingStatus
from app.students.schemas.bookings import BookingCancel, BookingCreate, BookingRead

router = APIRouter(prefix="/students/bookings", tags=["Student Bookings"])


@router.post(
    "",
    response_model=CommandResult[BookingRead],
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("10/minute")
async def book_slot(
    request: Request,
    booking_data: BookingCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """
    Book a seat in a slot.

    Fails with `TooLate` inside the lead time, `AlreadyBooked` for a repeat
    booking and `SlotFull` when no seat is left.
    """
    booking = await create_booking(db, actor, booking_data.schedule_id, booking_data.notes)
    return CommandResult.ok(BookingRead.model_validate(booking))


@router.post("/{booking_id}/cancel", response_model=CommandResult[BookingRead])
@limiter.limit("10/minute")
async def cancel_my_booking(
    request: Request,
    booking_id: int,
    cancel_data: BookingCancel,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    booking = await cancel_booking(db, actor, booking_id, cancel_data.reason)
    return CommandResult.ok(BookingRead.model_validate(booking))


@router.get("/my", response_model=CommandResult[List[BookingRead]])
@limiter.limit("60/minute")
async def get_my_bookings(
    request: Request,
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """Own bookings, most recent lesson first"""
    bookings = await list_for_student(
        db, actor, actor.user_id, booking_status.value if booking_status else None
    )
    return CommandResult.ok([BookingRead.model_validate(b) for b in bookings])


@router.get("/student/{student_id}", response_model=CommandResult[List[BookingRead]])
@limiter.limit("60/minute")
async def get_student_bookings(
    request: Request,
    student_id: int,
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    bookings = await list_for_student(
        db, actor, student_id, booking_status.value if booking_status else None
    )
    return CommandResult.ok([BookingRead.model_validate(b) for b in bookings])
