"""Booking Model - a student's reservation against a slot, with its completion record"""
from enum import Enum
from sqlalchemy import (
    Column,
    Integer,
    DateTime,
    Date,
    Time,
    Float,
    ForeignKey,
    String,
    Boolean,
    Text,
    JSON,
    Index,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base


class BookingStatus(str, Enum):
    confirmed = "confirmed"
    cancelled = "cancelled"
    completed = "completed"


_ACTIVE_BOOKING = text("status <> 'cancelled'")
ACTIVE_BOOKING_INDEX = "uq_bookings_student_schedule_active"


class Booking(Base):
    """Student reservation; owns a snapshot of the slot's scheduling facts"""

    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)

    student_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    schedule_id = Column(
        Integer, ForeignKey("slots.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    # Snapshot of the slot at booking time; later slot edits never touch these
    teacher_id = Column(Integer, nullable=False, index=True)
    lesson_type = Column(String(20), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    location = Column(String(255), nullable=True)

    status = Column(
        String(20), default=BookingStatus.confirmed.value, nullable=False, index=True
    )
    notes = Column(Text, nullable=True)
    booked_at = Column(DateTime, nullable=False)

    # Cancellation
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(Integer, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Completion
    completed_at = Column(DateTime, nullable=True)
    completed_by = Column(Integer, nullable=True)
    hours_completed = Column(Float, nullable=True)
    performance_rating = Column(Integer, nullable=True)
    skills_improved = Column(JSON, nullable=False, default=list)
    areas_to_improve = Column(Text, nullable=True)
    ready_for_next_level = Column(Boolean, nullable=True)

    teacher_notes = Column(Text, nullable=True)
    teacher_notes_updated_at = Column(DateTime, nullable=True)

    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    slot = relationship("Slot", lazy="raise")

    __table_args__ = (
        # One non-cancelled booking per student and slot
        Index(
            ACTIVE_BOOKING_INDEX,
            "student_id",
            "schedule_id",
            unique=True,
            postgresql_where=_ACTIVE_BOOKING,
            sqlite_where=_ACTIVE_BOOKING,
        ),
        Index("ix_bookings_student_status", "student_id", "status"),
        Index("ix_bookings_teacher_date", "teacher_id", "date"),
    )

    def __repr__(self):
        return f"<Booking(id={self.id}, student_id={self.student_id}, schedule_id={self.schedule_id}, status={self.status})>"
