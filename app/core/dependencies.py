from fastapi import Header

from app.core.exceptions import AuthenticationError
from app.core.permissions import Actor, RoleType


async def get_current_actor(
    x_user_id: str = Header(None, description="Verified user id from the auth layer"),
    x_user_role: str = Header(None, description="admin, teacher or student"),
) -> Actor:
    """
    Dependency: проверенная идентичность от внешнего слоя аутентификации.

    Движок не проверяет подписи и токены, он доверяет заголовкам,
    выставленным upstream gateway.
    """
    if not x_user_id or not x_user_role:
        raise AuthenticationError("X-User-Id and X-User-Role headers are required")

    try:
        user_id = int(x_user_id)
    except ValueError:
        raise AuthenticationError(
            "X-User-Id must be an integer", details={"x_user_id": x_user_id}
        )

    try:
        role = RoleType(x_user_role.strip().lower())
    except ValueError:
        raise AuthenticationError(
            f"Unknown role '{x_user_role}'",
            details={"allowed": [r.value for r in RoleType]},
        )

    return Actor(user_id=user_id, role=role)
