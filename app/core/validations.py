from datetime import date, datetime, time, timedelta
from typing import Iterable, List

from app.core.exceptions import ValidationError


def lesson_datetime(lesson_date: date, lesson_time: time) -> datetime:
    """Дата и время занятия как naive datetime (локальное время школы)"""
    return datetime.combine(lesson_date, lesson_time)


def validate_time_window(start_time: time, end_time: time) -> None:
    """
    Проверяет, что окно занятия корректно: начало строго раньше конца.
    """
    if start_time >= end_time:
        raise ValidationError(
            "Start time must be before end time",
            details={"start_time": start_time.strftime("%H:%M"), "end_time": end_time.strftime("%H:%M")},
        )


def ensure_not_in_past(lesson_date: date, start_time: time, now: datetime) -> None:
    """Нельзя публиковать слот, который уже начался"""
    if lesson_datetime(lesson_date, start_time) <= now:
        raise ValidationError(
            "Cannot publish a slot in the past",
            details={"date": lesson_date.isoformat(), "start_time": start_time.strftime("%H:%M")},
        )


def lead_time_satisfied(
    lesson_date: date, start_time: time, now: datetime, hours: float
) -> bool:
    return lesson_datetime(lesson_date, start_time) - now >= timedelta(hours=hours)


def clean_skills(skills: Iterable[str]) -> List[str]:
    """
    Очищает список навыков: убирает пробелы и пустые значения,
    сохраняет порядок и убирает повторы внутри одного занятия.
    """
    result = []
    for skill in skills or []:
        skill = (skill or "").strip()
        if skill and skill not in result:
            result.append(skill)
    return result


def require_text(value: str, field: str) -> str:
    """Обязательный непустой текст"""
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{field} is required", details={"field": field})
    return value
