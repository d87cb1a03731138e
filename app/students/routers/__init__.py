"""Student Routers Package"""
from .schedule import router as schedule_router
from .bookings import router as bookings_router
from .progress import router as progress_router
from .exam_requests import router as exam_requests_router

__all__ = [
    "schedule_router",
    "bookings_router",
    "progress_router",
    "exam_requests_router",
]
