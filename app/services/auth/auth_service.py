from typing import Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import logging
import uuid

from app.core.exceptions import Forbidden, Unauthorized, ValidationError
from app.core.security import create_access_token, password_needs_rehash
from app.db.session import atomic
from app.models.user.user_model import User
from app.schemas.user_schema import UserCreate, LoginRequest


logger = logging.getLogger(__name__)


class AuthService:
    """Password login and JWT issuance"""

    @staticmethod
    async def create_user(db: AsyncSession, user_data: UserCreate) -> User:
        """
        Create a new user with password hashing

        Args:
            db: Async database session
            user_data: User creation data

        Returns:
            Created user object

        Raises:
            ValidationError: If the email is already registered
        """
        result = await db.execute(
            select(User).where(User.email == user_data.email.lower())
        )
        if result.scalar_one_or_none():
            raise ValidationError("Email already registered")

        user = User(
            id=uuid.uuid4(),
            name=user_data.name,
            email=user_data.email.lower(),
            role=user_data.role,
            is_active=True,
        )
        user.set_password(user_data.password)

        async with atomic(db):
            db.add(user)

        logger.info(f"Created user {user.email} with role {user.role}")
        return user

    @staticmethod
    async def authenticate_user(
        db: AsyncSession,
        login_data: LoginRequest
    ) -> Tuple[User, str]:
        """
        Check credentials and issue an access token

        Returns:
            Tuple of (user, access_token)

        Raises:
            Unauthorized: Unknown email or wrong password
            Forbidden: Account disabled
        """
        result = await db.execute(
            select(User).where(User.email == login_data.email.lower())
        )
        user = result.scalar_one_or_none()

        # One message for unknown email and wrong password
        if not user or not user.verify_password(login_data.password):
            logger.warning(f"Failed login attempt for {login_data.email}")
            raise Unauthorized("Incorrect email or password")

        if not user.is_active:
            raise Forbidden("User account is inactive")

        async with atomic(db):
            user.mark_login()
            if password_needs_rehash(user.password_hash):
                user.set_password(login_data.password)

        access_token = create_access_token(user.id, user.role)

        logger.info(f"User {user.email} logged in")
        return user, access_token
