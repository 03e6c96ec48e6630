from app.schemas.base_schemas import BaseSchema, CamelSchema
from pydantic import EmailStr, Field, field_validator, ConfigDict
from typing import Optional
from datetime import datetime
import uuid

from app.core.roles import Role


class UserCreate(BaseSchema):
    """Used by the bootstrap script; there is no user CRUD over HTTP"""
    name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    role: Role = Role.SUPERADMIN
    password: str = Field(
        ...,
        min_length=8,
        max_length=100,
        description="Password must be at least 8 characters"
    )

    @field_validator('password')
    @classmethod
    def validate_password_strength(cls, v: str) -> str:
        """Enforce basic password complexity"""
        checks = [
            (any(c.isupper() for c in v), "Password must contain at least one uppercase letter"),
            (any(c.islower() for c in v), "Password must contain at least one lowercase letter"),
            (any(c.isdigit() for c in v), "Password must contain at least one digit"),
        ]

        for check, error in checks:
            if not check:
                raise ValueError(error)

        return v


class UserResponse(CamelSchema):
    id: uuid.UUID
    name: str
    email: EmailStr
    role: str
    is_active: bool
    last_login: Optional[datetime] = None


class LoginRequest(BaseSchema):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=100)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "store@holyrosary.org",
                "password": "SecureP@ss123"
            }
        }
    )


class TokenResponse(BaseSchema):
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Seconds until the token expires")
    user: UserResponse
