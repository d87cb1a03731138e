"""Exam Request Model - student request against an exam form, reviewed by an admin"""
from enum import Enum
from sqlalchemy import (
    Column,
    Integer,
    DateTime,
    ForeignKey,
    String,
    Text,
    Index,
    text,
)
from sqlalchemy.orm import relationship
from app.core.database import Base


class ExamRequestStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    passed = "passed"
    failed = "failed"


class ReviewAction(str, Enum):
    approve = "approve"
    reject = "reject"


class ExamResult(str, Enum):
    passed = "passed"
    failed = "failed"


EXAM_REQUEST_TRANSITIONS = {
    ExamRequestStatus.pending: {ExamRequestStatus.approved, ExamRequestStatus.rejected},
    ExamRequestStatus.approved: {ExamRequestStatus.passed, ExamRequestStatus.failed},
    ExamRequestStatus.rejected: set(),
    ExamRequestStatus.passed: set(),
    ExamRequestStatus.failed: set(),
}

# Active requests block a second request of the same exam type
ACTIVE_EXAM_REQUEST_STATUSES = (ExamRequestStatus.pending, ExamRequestStatus.approved)

_ACTIVE_REQUEST = text("status IN ('pending', 'approved')")
ACTIVE_REQUEST_INDEX = "uq_exam_requests_student_type_active"


class ExamRequest(Base):
    __tablename__ = "exam_requests"

    id = Column(Integer, primary_key=True, index=True)

    student_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    form_id = Column(
        Integer, ForeignKey("exam_forms.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    # Copied from the form at submission
    group_id = Column(Integer, nullable=False, index=True)
    teacher_id = Column(Integer, nullable=False, index=True)
    exam_type = Column(String(20), nullable=False)

    status = Column(
        String(20), default=ExamRequestStatus.pending.value, nullable=False, index=True
    )
    student_notes = Column(Text, nullable=True)
    requested_at = Column(DateTime, nullable=False)

    # Review
    reviewed_by = Column(Integer, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    admin_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    # Result
    result = Column(String(20), nullable=True)
    result_notes = Column(Text, nullable=True)
    result_set_by = Column(Integer, nullable=True)
    result_set_at = Column(DateTime, nullable=True)

    form = relationship("ExamForm", lazy="raise")

    __table_args__ = (
        Index(
            ACTIVE_REQUEST_INDEX,
            "student_id",
            "exam_type",
            unique=True,
            postgresql_where=_ACTIVE_REQUEST,
            sqlite_where=_ACTIVE_REQUEST,
        ),
        Index("ix_exam_requests_form_status", "form_id", "status"),
    )

    def can_transition_to(self, target: ExamRequestStatus) -> bool:
        return target in EXAM_REQUEST_TRANSITIONS[ExamRequestStatus(self.status)]

    def __repr__(self):
        return f"<ExamRequest(id={self.id}, student_id={self.student_id}, form_id={self.form_id}, status={self.status})>"
