"""Many-to-many relationship between groups and teachers"""
from sqlalchemy import (
    Column,
    Integer,
    ForeignKey,
    DateTime,
    Boolean,
    UniqueConstraint,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base


class GroupTeacher(Base):
    """Teacher assigned to a group; drives group-scoped slot availability"""

    __tablename__ = "group_teachers"

    id = Column(Integer, primary_key=True, autoincrement=True)

    group_id = Column(
        Integer,
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    teacher_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    group = relationship("Group", back_populates="group_teachers")

    __table_args__ = (
        UniqueConstraint("group_id", "teacher_id", name="uq_group_teacher"),
    )

    def __repr__(self):
        return f"<GroupTeacher(group_id={self.group_id}, teacher_id={self.teacher_id})>"
