import datetime as dt
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_serializer

from app.staff.models.slots import LessonType
from app.students.models.bookings import BookingStatus


class BookingCreate(BaseModel):
    schedule_id: int = Field(..., gt=0)
    notes: Optional[str] = Field(None, max_length=500)

    model_config = ConfigDict(str_strip_whitespace=True)


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)

    model_config = ConfigDict(str_strip_whitespace=True)


class BookingComplete(BaseModel):
    """Результаты проведенного занятия"""

    hours_completed: float = Field(..., gt=0, le=12)
    performance_rating: int = Field(..., ge=1, le=5)
    skills_improved: List[str] = Field(default_factory=list, max_length=20)
    areas_to_improve: Optional[str] = Field(None, max_length=1000)
    ready_for_next_level: bool = False

    model_config = ConfigDict(str_strip_whitespace=True)


class TeacherNotesUpdate(BaseModel):
    notes: str = Field(..., min_length=1, max_length=2000)

    model_config = ConfigDict(str_strip_whitespace=True)


class BookingRead(BaseModel):
    id: int
    student_id: int
    schedule_id: int
    teacher_id: int
    lesson_type: LessonType
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    location: Optional[str] = None
    status: BookingStatus
    notes: Optional[str] = None
    booked_at: dt.datetime

    cancelled_at: Optional[dt.datetime] = None
    cancelled_by: Optional[int] = None
    cancellation_reason: Optional[str] = None

    completed_at: Optional[dt.datetime] = None
    completed_by: Optional[int] = None
    hours_completed: Optional[float] = None
    performance_rating: Optional[int] = None
    skills_improved: List[str] = Field(default_factory=list)
    areas_to_improve: Optional[str] = None
    ready_for_next_level: Optional[bool] = None

    teacher_notes: Optional[str] = None
    teacher_notes_updated_at: Optional[dt.datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("start_time", "end_time")
    def serialize_time(self, value: dt.time) -> str:
        return value.strftime("%H:%M")
