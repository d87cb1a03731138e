from app.core.database import Base
from .users import User
from .groups import Group
from .group_teachers import GroupTeacher
from .group_members import GroupMember, LearningPhase, MembershipStatus
from .slots import Slot, LessonType
from .exam_forms import ExamForm, ExamType
from .notifications import NotificationEvent, ActivityEntry

__all__ = [
    "Base",
    "User",
    "Group",
    "GroupTeacher",
    "GroupMember",
    "MembershipStatus",
    "LearningPhase",
    "Slot",
    "LessonType",
    "ExamForm",
    "ExamType",
    "NotificationEvent",
    "ActivityEntry",
]
