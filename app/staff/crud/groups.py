"""Group directory lookups. Membership is maintained by the surrounding application."""
from typing import List
from sqlalchemy import and_
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import db_operation
from app.core.exceptions import NotFoundError, ValidationError
from app.core.permissions import RoleType
from app.staff.models.groups import Group
from app.staff.models.group_teachers import GroupTeacher
from app.staff.models.group_members import GroupMember, MembershipStatus
from app.staff.models.users import User


@db_operation
async def get_group_by_id(session: AsyncSession, group_id: int) -> Group:
    if group_id <= 0:
        raise ValidationError("Group ID must be positive")

    result = await session.execute(select(Group).where(Group.id == group_id))
    group = result.scalar_one_or_none()

    if not group:
        raise NotFoundError("Group", str(group_id))

    return group


@db_operation
async def get_group_teacher_ids(session: AsyncSession, group_id: int) -> List[int]:
    """Teachers currently assigned to the group"""
    result = await session.execute(
        select(GroupTeacher.teacher_id)
        .where(
            and_(GroupTeacher.group_id == group_id, GroupTeacher.is_active.is_(True))
        )
        .order_by(GroupTeacher.teacher_id)
    )
    return list(result.scalars().all())


@db_operation
async def is_group_teacher(
    session: AsyncSession, group_id: int, teacher_id: int
) -> bool:
    return teacher_id in await get_group_teacher_ids(session, group_id)


@db_operation
async def get_student_phases(session: AsyncSession, student_id: int) -> List[str]:
    """Learning phase of each active membership of the student"""
    result = await session.execute(
        select(GroupMember.phase)
        .where(
            and_(
                GroupMember.student_id == student_id,
                GroupMember.status == MembershipStatus.active.value,
            )
        )
        .order_by(GroupMember.group_id)
    )
    return list(result.scalars().all())


@db_operation
async def is_group_member(
    session: AsyncSession, group_id: int, student_id: int
) -> bool:
    result = await session.execute(
        select(GroupMember.id).where(
            and_(
                GroupMember.group_id == group_id,
                GroupMember.student_id == student_id,
                GroupMember.status == MembershipStatus.active.value,
            )
        )
    )
    return result.first() is not None


@db_operation
async def get_active_member_ids(session: AsyncSession, group_id: int) -> List[int]:
    result = await session.execute(
        select(GroupMember.student_id)
        .where(
            and_(
                GroupMember.group_id == group_id,
                GroupMember.status == MembershipStatus.active.value,
            )
        )
        .order_by(GroupMember.student_id)
    )
    return list(result.scalars().all())


@db_operation
async def get_admin_ids(session: AsyncSession) -> List[int]:
    result = await session.execute(
        select(User.id)
        .where(and_(User.role == RoleType.admin.value, User.is_active.is_(True)))
        .order_by(User.id)
    )
    return list(result.scalars().all())


@db_operation
async def get_teacher(session: AsyncSession, teacher_id: int) -> User:
    """Пользователь с ролью teacher, иначе ошибка"""
    result = await session.execute(select(User).where(User.id == teacher_id))
    user = result.scalar_one_or_none()

    if not user:
        raise NotFoundError("Teacher", str(teacher_id))
    if user.role != RoleType.teacher.value:
        raise ValidationError(
            "teacher_id must reference a teacher",
            details={"teacher_id": teacher_id, "role": user.role},
        )
    return user
