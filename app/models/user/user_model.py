from app.db.base import Base
from sqlalchemy import (
    String, Boolean, DateTime, Index, CheckConstraint
)
from app.models.db_types import UUID
from sqlalchemy.orm import Mapped, mapped_column, validates
from typing import Optional
from datetime import datetime, timezone
import re
import uuid

from app.core.roles import Role
from app.core.security import hash_password, verify_password
from app.models.core.mixins import TimestampMixin


ROLE_VALUES = ", ".join(f"'{role.value}'" for role in Role)


class User(Base, TimestampMixin):
    """
    Staff accounts. The role decides which ledger a user sells from
    and whether they may manage stock.
    """
    __tablename__ = 'users'

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        primary_key=True,
        default=uuid.uuid4
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True
    )

    # Argon2 hashed password
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        comment="superadmin, admin, store_officer, ipp, dispensary, other"
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False
    )

    last_login: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True)
    )

    __table_args__ = (
        CheckConstraint(f"role IN ({ROLE_VALUES})", name='check_user_role'),
        Index('idx_user_role_active', 'role', 'is_active'),
    )

    @validates('email')
    def validate_email(self, key, email):
        """Validate email format"""
        pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(pattern, email):
            raise ValueError("Invalid email format")
        return email.lower()

    @validates('role')
    def validate_role(self, key, role):
        return Role(role).value

    @property
    def role_enum(self) -> Role:
        return Role(self.role)

    def set_password(self, password: str):
        """Hash and set password using Argon2"""
        if len(password) < 8:
            raise ValueError("Password must be at least 8 characters")
        self.password_hash = hash_password(password)

    def verify_password(self, password: str) -> bool:
        """Verify password against hash"""
        return verify_password(password, self.password_hash)

    def mark_login(self):
        self.last_login = datetime.now(timezone.utc)
