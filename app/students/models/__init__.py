from app.core.database import Base
from .bookings import Booking, BookingStatus
from .exam_requests import (
    ExamRequest,
    ExamRequestStatus,
    ExamResult,
    ReviewAction,
    EXAM_REQUEST_TRANSITIONS,
    ACTIVE_EXAM_REQUEST_STATUSES,
)

__all__ = [
    "Base",
    "Booking",
    "BookingStatus",
    "ExamRequest",
    "ExamRequestStatus",
    "ExamResult",
    "ReviewAction",
    "EXAM_REQUEST_TRANSITIONS",
    "ACTIVE_EXAM_REQUEST_STATUSES",
]
