from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from careerpath.core.database import get_db
from careerpath.core.security import decode_token
from careerpath.models.user import User

STAFF_ROLES = ("counselor", "admin")

ROLE_PERMISSIONS = {
    "student": ["profile:create", "profile:read:own", "recommendation:read:own"],
    "parent": ["profile:create", "profile:read:own", "recommendation:read:own"],
    "counselor": [
        "profile:create",
        "profile:read:any",
        "recommendation:read:any",
        "analytics:read",
        "notification:read",
    ],
    "admin": [
        "profile:create",
        "profile:read:any",
        "recommendation:read:any",
        "analytics:read",
        "analytics:cleanup",
        "notification:read",
        "notification:test",
        "catalog:reload",
        "user:manage",
    ],
}

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


async def _user_from_token(token: str, db: AsyncSession) -> User:
    payload = decode_token(token)
    if payload is None or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    try:
        parsed_id = UUID(user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    result = await db.execute(select(User).where(User.id == parsed_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )

    return user


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    return await _user_from_token(token, db)


async def get_optional_user(
    token: str | None = Depends(optional_oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Anonymous requests are allowed; a token, when sent, must be valid."""
    if not token:
        return None
    return await _user_from_token(token, db)


def require_role(*allowed_roles: str):
    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{current_user.role}' not allowed. "
                f"Required roles: {', '.join(allowed_roles)}",
            )
        return current_user

    return dependency


def has_permission(user: User, permission: str) -> bool:
    return permission in ROLE_PERMISSIONS.get(user.role, [])
