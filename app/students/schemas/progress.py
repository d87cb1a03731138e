from datetime import date
from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class StudentProgress(BaseModel):
    """Производная сводка по завершенным занятиям студента"""

    student_id: int
    total_lessons: int = 0
    total_hours: float = 0
    average_rating: float = 0
    top_skills: List[str] = Field(default_factory=list)
    bookings_by_type: Dict[str, int] = Field(default_factory=dict)
    last_lesson: Optional[date] = None
    ready_for_exam: bool = False
