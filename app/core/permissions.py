"""
Role-based authorization for engine commands.

Every command calls `authorize(actor, operation, resource_owner_id)` before
touching the store. The rule table below is the single place that says which
roles may run an operation and whether a non-admin actor must own the
resource.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from app.core.exceptions import ForbiddenError


class RoleType(str, Enum):
    admin = "admin"
    teacher = "teacher"
    student = "student"


@dataclass(frozen=True)
class Actor:
    """Verified identity supplied by the surrounding application"""

    user_id: int
    role: RoleType

    @property
    def is_admin(self) -> bool:
        return self.role == RoleType.admin

    @property
    def is_teacher(self) -> bool:
        return self.role == RoleType.teacher

    @property
    def is_student(self) -> bool:
        return self.role == RoleType.student


@dataclass(frozen=True)
class Rule:
    roles: FrozenSet[RoleType]
    # Non-admin actors must be the resource owner
    owner_only: bool = False


_ALL = frozenset(RoleType)
_STAFF = frozenset({RoleType.admin, RoleType.teacher})
_ADMIN = frozenset({RoleType.admin})
_STUDENT = frozenset({RoleType.student})

RULES: Dict[str, Rule] = {
    # Slot directory
    "publish_slot": Rule(_STAFF, owner_only=True),
    "update_slot": Rule(_STAFF, owner_only=True),
    "delete_slot": Rule(_STAFF, owner_only=True),
    "list_available_slots": Rule(_ALL),
    "list_teacher_slots": Rule(_STAFF, owner_only=True),
    # Booking ledger
    "create_booking": Rule(_STUDENT),
    "cancel_booking": Rule(_ALL, owner_only=True),
    "complete_booking": Rule(_STAFF, owner_only=True),
    "add_teacher_notes": Rule(_STAFF, owner_only=True),
    "list_student_bookings": Rule(_ALL, owner_only=True),
    "list_teacher_bookings": Rule(_STAFF, owner_only=True),
    "list_available_for_group": Rule(_ALL),
    # Progress
    "view_progress": Rule(_ALL, owner_only=True),
    # Exam workflow
    "create_exam_form": Rule(_STAFF, owner_only=True),
    "close_exam_form": Rule(_STAFF, owner_only=True),
    "list_exam_forms": Rule(_ALL),
    "submit_exam_request": Rule(_STUDENT),
    "review_exam_request": Rule(_ADMIN),
    "set_exam_result": Rule(_STAFF, owner_only=True),
    "list_exam_requests": Rule(_ALL),
}

# Teachers may look at any student's bookings and progress
_STAFF_READS_ANY_STUDENT = {"list_student_bookings", "view_progress"}


def authorize(
    actor: Actor,
    operation: str,
    resource_owner_id: Optional[int] = None,
    resource: str = "resource",
) -> None:
    """
    Проверка прав: роль допускается правилом операции, а для owner_only
    операций не-админ должен владеть ресурсом. Для сотрудников, читающих
    данные студента, владение не требуется.
    """
    rule = RULES.get(operation)
    if rule is None:
        raise ForbiddenError(operation, resource, "unknown operation")

    if actor.role not in rule.roles:
        raise ForbiddenError(
            operation, resource, f"role '{actor.role.value}' is not allowed"
        )

    if not rule.owner_only or actor.is_admin or resource_owner_id is None:
        return

    if actor.is_teacher and operation in _STAFF_READS_ANY_STUDENT:
        return

    if actor.user_id != resource_owner_id:
        raise ForbiddenError(operation, resource, "actor does not own this resource")
