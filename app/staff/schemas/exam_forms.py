from datetime import date, time, datetime
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_serializer

from app.staff.models.exam_forms import ExamType


class ExamFormCreate(BaseModel):
    """Схема для публикации экзаменационной формы"""

    group_id: int = Field(..., gt=0)
    title: str = Field(..., min_length=1, max_length=200)
    exam_type: ExamType
    exam_date: date
    exam_time: time = Field(..., description="Local time, HH:MM")
    max_requests: int = Field(..., ge=1, le=50)

    model_config = ConfigDict(str_strip_whitespace=True)


class ExamFormRead(BaseModel):
    id: int
    group_id: int
    teacher_id: int
    title: str
    exam_type: ExamType
    exam_date: date
    exam_time: time
    is_open: bool
    max_requests: int
    current_requests: int
    created_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("exam_time")
    def serialize_time(self, value: time) -> str:
        return value.strftime("%H:%M")
