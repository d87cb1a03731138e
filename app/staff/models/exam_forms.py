"""Exam Form Model - group-scoped, capacity-bounded exam sitting published by a teacher"""
from enum import Enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    Time,
    Boolean,
    ForeignKey,
    DateTime,
    Index,
    CheckConstraint,
)
from sqlalchemy.sql import func
from app.core.database import Base


class ExamType(str, Enum):
    theory = "theory"
    practical = "practical"
    road_test = "road-test"


class ExamForm(Base):
    __tablename__ = "exam_forms"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(
        Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True
    )
    teacher_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    title = Column(String(200), nullable=False)
    exam_type = Column(String(20), nullable=False)
    exam_date = Column(Date, nullable=False)
    exam_time = Column(Time, nullable=False)

    is_open = Column(Boolean, default=True, nullable=False)
    max_requests = Column(Integer, nullable=False)
    current_requests = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    closed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "current_requests >= 0 AND current_requests <= max_requests",
            name="ck_exam_forms_capacity_bounds",
        ),
        Index("ix_exam_forms_group_open", "group_id", "is_open"),
    )

    def __repr__(self):
        return f"<ExamForm(id={self.id}, group_id={self.group_id}, type={self.exam_type}, {self.current_requests}/{self.max_requests}, open={self.is_open})>"
