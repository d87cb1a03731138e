"""Tests for the progress aggregator and its cache."""

from datetime import date, datetime, time
from types import SimpleNamespace

import pytest

from app.core.exceptions import ForbiddenError
from app.students.crud.bookings import cancel_booking, complete_booking, create_booking
from app.students.crud.progress import (
    ProgressCache,
    build_progress,
    get_student_progress,
    progress_cache,
    summarize,
)
from app.students.schemas.progress import StudentProgress


def _lesson(day, hours, rating, skills=(), lesson_type="practical", ready=False, booking_id=1):
    return SimpleNamespace(
        id=booking_id,
        date=day,
        start_time=time(10, 0),
        hours_completed=hours,
        performance_rating=rating,
        skills_improved=list(skills),
        lesson_type=lesson_type,
        ready_for_next_level=ready,
    )


@pytest.mark.unit
class TestBuildProgress:
    def test_no_lessons(self) -> None:
        progress = build_progress(4, [])

        assert progress.total_lessons == 0
        assert progress.total_hours == 0
        assert progress.average_rating == 0
        assert progress.top_skills == []
        assert progress.last_lesson is None
        assert progress.ready_for_exam is False

    def test_totals_and_average(self) -> None:
        progress = build_progress(
            4,
            [
                _lesson(date(2030, 1, 15), 2, 4, lesson_type="theoretical"),
                _lesson(date(2030, 1, 16), 3, 5),
            ],
        )

        assert progress.total_lessons == 2
        assert progress.total_hours == 5
        assert progress.average_rating == 4.5
        assert progress.bookings_by_type == {"theoretical": 1, "practical": 1}
        assert progress.last_lesson == date(2030, 1, 16)

    def test_average_is_rounded(self) -> None:
        progress = build_progress(
            4,
            [_lesson(date(2030, 1, d), 1, r) for d, r in ((15, 4), (16, 4), (17, 5))],
        )

        assert progress.average_rating == 4.33

    def test_top_skills_ties_keep_first_seen_order(self) -> None:
        progress = build_progress(
            4,
            [
                _lesson(date(2030, 1, 15), 1, 4, skills=["signals", "parking"]),
                _lesson(date(2030, 1, 16), 1, 4, skills=["mirrors", "parking"]),
                _lesson(date(2030, 1, 17), 1, 4, skills=["lanes", "hills", "night"]),
            ],
        )

        assert progress.top_skills == ["parking", "signals", "mirrors", "lanes", "hills"]

    def test_ready_for_exam_needs_all_conditions(self) -> None:
        lessons = [
            _lesson(date(2030, 1, 15), 10, 4),
            _lesson(date(2030, 1, 16), 10, 4, ready=True),
        ]
        assert build_progress(4, lessons, min_hours=20, min_rating=3.5).ready_for_exam

        # Часов не хватает
        assert not build_progress(4, lessons, min_hours=21, min_rating=3.5).ready_for_exam
        # Средняя оценка ниже порога
        assert not build_progress(4, lessons, min_hours=20, min_rating=4.5).ready_for_exam

    def test_ready_for_exam_follows_latest_lesson(self) -> None:
        lessons = [
            _lesson(date(2030, 1, 15), 10, 5, ready=True),
            _lesson(date(2030, 1, 16), 10, 5, ready=False),
        ]

        assert not build_progress(4, lessons, min_hours=20, min_rating=3.5).ready_for_exam

    def test_ready_for_exam_uses_unrounded_average(self) -> None:
        lessons = [
            _lesson(date(2030, 1, 15), 10, 3),
            _lesson(date(2030, 1, 16), 10, 3),
            _lesson(date(2030, 1, 17), 10, 2, ready=True),
        ]
        progress = build_progress(4, lessons, min_hours=20, min_rating=2.668)

        assert progress.average_rating == 2.67
        assert progress.ready_for_exam is False


@pytest.mark.unit
class TestProgressCache:
    def test_stale_summary_is_not_stored(self) -> None:
        cache = ProgressCache(ttl_seconds=60)
        generation = cache.generation(4)

        cache.invalidate(4)
        cache.set(4, StudentProgress(student_id=4), generation)

        assert cache.get(4) is None

    def test_expired_entry(self) -> None:
        cache = ProgressCache(ttl_seconds=0)
        cache.set(4, StudentProgress(student_id=4), cache.generation(4))

        assert cache.get(4) is None


@pytest.mark.integration
class TestStudentProgress:
    AFTER = datetime(2030, 1, 16, 18, 0)

    async def test_summary_over_completed_lessons(self, session, make_slot, world, now) -> None:
        theory = await make_slot()
        drive = await make_slot(
            lesson_type="practical", max_capacity=1, slot_date=date(2030, 1, 16),
            start_time=time(9, 0), end_time=time(12, 0),
        )
        skipped = await make_slot(slot_date=date(2030, 1, 16), start_time=time(14, 0), end_time=time(15, 0))

        b1 = await create_booking(session, world.student, theory.id, now=now)
        b2 = await create_booking(session, world.student, drive.id, now=now)
        b3 = await create_booking(session, world.student, skipped.id, now=now)
        await complete_booking(session, world.teacher, b1.id, 2, 4, skills_improved=["rules"], now=self.AFTER)
        await complete_booking(session, world.teacher, b2.id, 3, 5, skills_improved=["parking", "rules"], now=self.AFTER)
        await cancel_booking(session, world.student, b3.id, now=now)

        progress = await summarize(session, world.student.user_id)

        assert progress.total_lessons == 2
        assert progress.total_hours == 5
        assert progress.average_rating == 4.5
        assert progress.top_skills == ["rules", "parking"]
        assert progress.bookings_by_type == {"theoretical": 1, "practical": 1}
        assert progress.last_lesson == date(2030, 1, 16)

    async def test_cache_is_invalidated_by_completion(self, session, make_slot, world, now) -> None:
        slot = await make_slot()
        booking = await create_booking(session, world.student, slot.id, now=now)

        before = await get_student_progress(session, world.student, world.student.user_id)
        assert before.total_lessons == 0
        assert progress_cache.get(world.student.user_id) is not None

        await complete_booking(session, world.teacher, booking.id, 2, 4, now=self.AFTER)
        assert progress_cache.get(world.student.user_id) is None

        after = await get_student_progress(session, world.student, world.student.user_id)
        assert after.total_lessons == 1
        assert after.total_hours == 2

    async def test_access(self, session, world) -> None:
        with pytest.raises(ForbiddenError):
            await get_student_progress(session, world.classmate, world.student.user_id)

        progress = await get_student_progress(session, world.teacher, world.student.user_id)
        assert progress.student_id == world.student.user_id
        progress = await get_student_progress(session, world.admin, world.student.user_id)
        assert progress.student_id == world.student.user_id
