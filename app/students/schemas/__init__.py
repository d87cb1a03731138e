"""Student Schemas Package"""
from .bookings import (
    BookingCreate,
    BookingCancel,
    BookingComplete,
    TeacherNotesUpdate,
    BookingRead,
)
from .progress import StudentProgress
from .exam_requests import (
    ExamRequestCreate,
    ExamRequestReview,
    ExamRequestResult,
    ExamRequestRead,
)

__all__ = [
    # Bookings
    "BookingCreate",
    "BookingCancel",
    "BookingComplete",
    "TeacherNotesUpdate",
    "BookingRead",
    # Progress
    "StudentProgress",
    # Exam requests
    "ExamRequestCreate",
    "ExamRequestReview",
    "ExamRequestResult",
    "ExamRequestRead",
]
