from typing import Optional
from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import uuid

from app.db.dependencies import get_db
from app.core.exceptions import Forbidden, Unauthorized, ValidationError
from app.core.roles import Role
from app.core.security import ACCESS_TOKEN_TYPE, decode_token
from app.models.user.user_model import User


# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Get the current authenticated user from JWT token

    Validates:
    - Token presence
    - Token validity and type
    - User existence
    - User active status
    """
    if not credentials:
        raise Unauthorized("Not authenticated")

    payload = decode_token(credentials.credentials)
    if not payload:
        raise Unauthorized("Invalid authentication credentials")

    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise Unauthorized("Invalid token type")

    user_id_str: Optional[str] = payload.get("sub")
    if not user_id_str:
        raise Unauthorized("Invalid token payload")

    try:
        user_id = uuid.UUID(user_id_str)
    except ValueError:
        raise Unauthorized("Invalid user ID format")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise Unauthorized("User not found")

    if not user.is_active:
        raise Forbidden("User account is inactive")

    return user


def require_role(*allowed_roles: Role):
    """
    Dependency factory for role-based access control

    Usage:
        current_user: User = Depends(require_role(*STOCK_MANAGERS))
    """
    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role_enum not in allowed_roles:
            raise Forbidden(
                f"Access denied. Required roles: {', '.join(r.value for r in allowed_roles)}"
            )
        return current_user

    return role_checker


def get_idempotency_key(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key")
) -> Optional[str]:
    """Read the optional Idempotency-Key header used to dedupe retried creations"""
    if idempotency_key is None:
        return None
    key = idempotency_key.strip()
    if not key:
        return None
    if len(key) > 255:
        raise ValidationError("Idempotency-Key must be at most 255 characters")
    return key

