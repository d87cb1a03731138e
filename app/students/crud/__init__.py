"""Student CRUD Package"""
from .progress import (
    summarize,
    get_student_progress,
    progress_cache,
)

from .bookings import (
    get_booking,
    create_booking,
    cancel_booking,
    complete_booking,
    add_teacher_notes,
    list_for_student,
    list_for_teacher,
    list_ready_for_completion,
    list_available_for_group,
)

from .exam_requests import (
    get_exam_request,
    submit_request,
    list_exam_requests,
)

__all__ = [
    # Progress
    "summarize",
    "get_student_progress",
    "progress_cache",
    # Bookings
    "get_booking",
    "create_booking",
    "cancel_booking",
    "complete_booking",
    "add_teacher_notes",
    "list_for_student",
    "list_for_teacher",
    "list_ready_for_completion",
    "list_available_for_group",
    # Exam requests
    "get_exam_request",
    "submit_request",
    "list_exam_requests",
]
