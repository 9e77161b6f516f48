from collections.abc import Awaitable, Callable

from fastapi import Depends, HTTPException, Request, status

from app.context import get_correlation_id
from app.core.auth import AuthUser, get_current_user
from app.platform.security.context import AuthContext
from app.platform.security.permissions import UserRole
from app.platform.security.policies import get_policy_backend


async def get_auth_context(request: Request, user: AuthUser = Depends(get_current_user)) -> AuthContext:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    roles = [str(role) for role in user.roles]
    return AuthContext(
        user_id=user.sub,
        correlation_id=correlation_id,
        is_super_admin=UserRole.SUPER_ADMIN in {role.lower() for role in roles},
        roles=roles,
        permissions=roles,
    )


def require_permissions(*permissions: str) -> Callable[[AuthContext], Awaitable[AuthContext]]:
    async def checker(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        backend = get_policy_backend()
        missing_permissions = [permission for permission in permissions if not backend.is_allowed(permission, ctx)]
        if missing_permissions:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permissions: {', '.join(missing_permissions)}",
            )
        return ctx

    return checker
