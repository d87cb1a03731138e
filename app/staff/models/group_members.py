"""Student membership in a group"""
from enum import Enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base


class MembershipStatus(str, Enum):
    active = "active"
    inactive = "inactive"


class LearningPhase(str, Enum):
    """Curriculum ladder: code -> creneau -> conduite -> exam-preparation -> passed"""

    code = "code"
    creneau = "creneau"
    conduite = "conduite"
    exam_preparation = "exam-preparation"
    passed = "passed"


class GroupMember(Base):
    __tablename__ = "group_members"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(
        Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True
    )
    student_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status = Column(String(20), default=MembershipStatus.active.value, nullable=False)
    phase = Column(String(30), default=LearningPhase.code.value, nullable=False)

    joined_at = Column(DateTime, server_default=func.now())

    group = relationship("Group", back_populates="members")

    __table_args__ = (
        UniqueConstraint("group_id", "student_id", name="uq_group_member"),
        Index("ix_group_members_student_status", "student_id", "status"),
    )

    def __repr__(self):
        return f"<GroupMember(group_id={self.group_id}, student_id={self.student_id}, status={self.status}, phase={self.phase})>"
