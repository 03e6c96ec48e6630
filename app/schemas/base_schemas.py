from decimal import Decimal
from typing_extensions import Annotated
from pydantic import (
    BaseModel, Field, ConfigDict, condecimal
)
from pydantic.alias_generators import to_camel
from typing import Any, Optional, TypeAlias
from datetime import datetime


Money: TypeAlias = Annotated[
    Decimal,
    condecimal(max_digits=12, decimal_places=2, ge=0)
]

class BaseSchema(BaseModel):
    """Base schema with common configuration"""
    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        validate_assignment=True,
        str_strip_whitespace=True,
        json_schema_extra={
            "examples": []
        }
    )


class CamelSchema(BaseSchema):
    """
    Schema exchanged with the front end.
    Serialized with camelCase keys; snake_case input is accepted too.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class TimestampSchema(BaseSchema):
    """Mixin for timestamp fields"""
    created_at: datetime
    updated_at: datetime


# ============================================
# Error Response Schemas
# ============================================

class ErrorResponse(BaseSchema):
    """
    Standard error response.
    Domain errors add their own fields, e.g. available and requested.
    """
    error: str = Field(..., description="Error type/code")
    detail: Any = Field(..., description="Human-readable error message")
    request_id: Optional[str] = Field(
        None,
        description="Request ID for tracking"
    )

    model_config = ConfigDict(extra="allow")
