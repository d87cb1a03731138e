import datetime as dt
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_serializer

from app.staff.models.slots import LessonType


class SlotBase(BaseModel):
    lesson_type: LessonType = Field(..., description="theoretical, practical or exam_prep")
    date: dt.date
    start_time: dt.time = Field(..., description="Local start time, HH:MM")
    end_time: dt.time = Field(..., description="Local end time, HH:MM")
    max_capacity: int = Field(1, ge=1, le=100, description="Practical lessons are always 1")
    location: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=1000)

    model_config = ConfigDict(from_attributes=True, str_strip_whitespace=True)


class SlotCreate(SlotBase):
    """Схема для публикации слота"""

    # Админ публикует от имени преподавателя; преподаватель может не указывать
    teacher_id: Optional[int] = Field(None, gt=0)


class SlotUpdate(BaseModel):
    """Схема для изменения слота. Существующие записи сохраняют свой снимок"""

    date: Optional[dt.date] = None
    start_time: Optional[dt.time] = None
    end_time: Optional[dt.time] = None
    max_capacity: Optional[int] = Field(None, ge=1, le=100)
    location: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=1000)

    model_config = ConfigDict(str_strip_whitespace=True)


class SlotRead(SlotBase):
    id: int
    teacher_id: int
    current_bookings: int
    remaining_capacity: int
    created_at: Optional[dt.datetime] = None

    @field_serializer("start_time", "end_time")
    def serialize_time(self, value: dt.time) -> str:
        return value.strftime("%H:%M")
