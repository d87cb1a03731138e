from enum import Enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    Time,
    Text,
    ForeignKey,
    DateTime,
    Index,
    CheckConstraint,
)
from sqlalchemy.sql import func
from app.core.database import Base


class LessonType(str, Enum):
    theoretical = "theoretical"
    practical = "practical"
    exam_prep = "exam_prep"


class Slot(Base):
    """
    Опубликованное преподавателем окно для записи.

    current_bookings меняется только условным UPDATE из
    app.staff.crud.slots.reserve_capacity / release_capacity.
    """

    __tablename__ = "slots"

    id = Column(Integer, primary_key=True)
    teacher_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    lesson_type = Column(String(20), nullable=False, index=True)

    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    max_capacity = Column(Integer, default=1, nullable=False)
    current_bookings = Column(Integer, default=0, nullable=False)

    location = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "current_bookings >= 0 AND current_bookings <= max_capacity",
            name="ck_slots_capacity_bounds",
        ),
        CheckConstraint("start_time < end_time", name="ck_slots_time_window"),
        # Поиск свободных слотов по датам
        Index("ix_slots_date_start", "date", "start_time"),
        # Расписание преподавателя
        Index("ix_slots_teacher_date", "teacher_id", "date"),
    )

    @property
    def remaining_capacity(self) -> int:
        return self.max_capacity - self.current_bookings

    @property
    def is_full(self) -> bool:
        return self.current_bookings >= self.max_capacity

    def __repr__(self):
        return f"<Slot(id={self.id}, teacher_id={self.teacher_id}, date={self.date}, time={self.start_time}, {self.current_bookings}/{self.max_capacity})>"
