from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict

from app.staff.models.exam_forms import ExamType
from app.students.models.exam_requests import (
    ExamRequestStatus,
    ExamResult,
    ReviewAction,
)


class ExamRequestCreate(BaseModel):
    form_id: int = Field(..., gt=0)
    notes: Optional[str] = Field(None, max_length=1000)

    model_config = ConfigDict(str_strip_whitespace=True)


class ExamRequestReview(BaseModel):
    action: ReviewAction
    admin_notes: Optional[str] = Field(None, max_length=1000)
    # Обязательна для reject, проверяется в crud
    rejection_reason: Optional[str] = Field(None, max_length=1000)

    model_config = ConfigDict(str_strip_whitespace=True)


class ExamRequestResult(BaseModel):
    result: ExamResult
    result_notes: Optional[str] = Field(None, max_length=1000)

    model_config = ConfigDict(str_strip_whitespace=True)


class ExamRequestRead(BaseModel):
    id: int
    student_id: int
    group_id: int
    teacher_id: int
    form_id: int
    exam_type: ExamType
    status: ExamRequestStatus
    student_notes: Optional[str] = None
    requested_at: datetime

    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    rejection_reason: Optional[str] = None

    result: Optional[ExamResult] = None
    result_notes: Optional[str] = None
    result_set_by: Optional[int] = None
    result_set_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
