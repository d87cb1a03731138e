"""
Progress Aggregator - a student's training summary derived from completed bookings.

`summarize` is a pure function of the student's completed bookings. The
read-through `progress_cache` only stores its result and is invalidated by the
Booking Ledger after every completion or cancellation commits.
"""
import logging
import time
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import EXAM_MIN_HOURS, EXAM_MIN_RATING, PROGRESS_CACHE_TTL_SECONDS
from app.core.database import db_operation
from app.core.permissions import Actor, authorize
from app.students.models.bookings import Booking, BookingStatus
from app.students.schemas.progress import StudentProgress

logger = logging.getLogger(__name__)

TOP_SKILLS_LIMIT = 5


def _top_skills(bookings: List[Booking]) -> List[str]:
    # dict сохраняет порядок первого появления, sorted стабилен
    counts: Dict[str, int] = {}
    for booking in bookings:
        for skill in booking.skills_improved or []:
            counts[skill] = counts.get(skill, 0) + 1
    ranked = sorted(counts, key=lambda skill: -counts[skill])
    return ranked[:TOP_SKILLS_LIMIT]


def build_progress(
    student_id: int,
    bookings: List[Booking],
    min_hours: float = EXAM_MIN_HOURS,
    min_rating: float = EXAM_MIN_RATING,
) -> StudentProgress:
    """
    Summary over completed bookings given in (date, start_time, id) order.
    """
    if not bookings:
        return StudentProgress(student_id=student_id)

    total_hours = sum(booking.hours_completed or 0 for booking in bookings)
    ratings = [
        booking.performance_rating
        for booking in bookings
        if booking.performance_rating is not None
    ]
    mean_rating = sum(ratings) / len(ratings) if ratings else 0

    bookings_by_type: Dict[str, int] = {}
    for booking in bookings:
        bookings_by_type[booking.lesson_type] = (
            bookings_by_type.get(booking.lesson_type, 0) + 1
        )

    latest = bookings[-1]
    ready_for_exam = (
        total_hours >= min_hours
        and mean_rating >= min_rating
        and bool(latest.ready_for_next_level)
    )

    return StudentProgress(
        student_id=student_id,
        total_lessons=len(bookings),
        total_hours=total_hours,
        average_rating=round(mean_rating, 2),
        top_skills=_top_skills(bookings),
        bookings_by_type=bookings_by_type,
        last_lesson=max(booking.date for booking in bookings),
        ready_for_exam=ready_for_exam,
    )


@db_operation
async def summarize(session: AsyncSession, student_id: int) -> StudentProgress:
    result = await session.execute(
        select(Booking)
        .where(
            and_(
                Booking.student_id == student_id,
                Booking.status == BookingStatus.completed.value,
            )
        )
        .order_by(Booking.date, Booking.start_time, Booking.id)
        .execution_options(populate_existing=True)
    )
    return build_progress(student_id, list(result.scalars().all()))


class ProgressCache:
    """
    In-process cache of StudentProgress keyed by student id.

    Each invalidation bumps the student's generation; a summary computed
    before an invalidation is not stored.
    """

    def __init__(self, ttl_seconds: float = PROGRESS_CACHE_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[int, Tuple[float, StudentProgress]] = {}
        self._generations: Dict[int, int] = {}

    def generation(self, student_id: int) -> int:
        return self._generations.get(student_id, 0)

    def get(self, student_id: int) -> Optional[StudentProgress]:
        entry = self._entries.get(student_id)
        if entry is None:
            return None
        expires_at, progress = entry
        if expires_at <= time.monotonic():
            self._entries.pop(student_id, None)
            return None
        return progress

    def set(self, student_id: int, progress: StudentProgress, generation: int) -> None:
        if generation != self.generation(student_id):
            return
        self._entries[student_id] = (time.monotonic() + self.ttl_seconds, progress)

    def invalidate(self, student_id: int) -> None:
        self._generations[student_id] = self.generation(student_id) + 1
        self._entries.pop(student_id, None)
        logger.debug(f"Progress cache invalidated for student {student_id}")

    def clear(self) -> None:
        self._entries.clear()
        self._generations.clear()


progress_cache = ProgressCache()


async def get_student_progress(
    session: AsyncSession, actor: Actor, student_id: int
) -> StudentProgress:
    """Cached summary; a student reads only their own"""
    authorize(actor, "view_progress", resource_owner_id=student_id, resource="progress")

    cached = progress_cache.get(student_id)
    if cached is not None:
        return cached

    generation = progress_cache.generation(student_id)
    progress = await summarize(session, student_id)
    progress_cache.set(student_id, progress, generation)
    return progress
