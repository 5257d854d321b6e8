from collections.abc import Callable

from fastapi import Depends, HTTPException, status

from tenant_billing.core.auth import AuthUser, get_current_user


SUPER_ADMIN_ROLES = frozenset({"admin", "system.admin", "superadmin"})


def is_super_admin(user: AuthUser) -> bool:
    return bool({role.lower() for role in user.roles} & SUPER_ADMIN_ROLES)


def require_permissions(*permissions: str) -> Callable[[AuthUser], AuthUser]:
    """Role-string check; super admins hold every permission."""

    async def checker(user: AuthUser = Depends(get_current_user)) -> AuthUser:
        if is_super_admin(user):
            return user
        missing_permissions = [permission for permission in permissions if permission not in user.roles]
        if missing_permissions:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permissions: {', '.join(missing_permissions)}",
            )
        return user

    return checker
