from app.schemas.base_schemas import CamelSchema, TimestampSchema
from pydantic import Field
from typing import Optional, List
from datetime import datetime
import uuid

from app.core.roles import DelegationTarget


class DelegationCreate(CamelSchema):
    medicine_id: uuid.UUID
    quantity: int = Field(..., gt=0, description="Units to take out of central stock")
    delegated_to: DelegationTarget
    generic_name: Optional[str] = Field(None, max_length=255)
    remarks: Optional[str] = Field(None, max_length=2000)
    delegation_date: Optional[datetime] = None


class DelegationResponse(CamelSchema, TimestampSchema):
    id: uuid.UUID
    medicine_id: uuid.UUID
    medicine_name: Optional[str] = None
    delegated_by: Optional[uuid.UUID] = None
    delegated_to: str
    quantity: int
    original_quantity: int
    generic_name: Optional[str] = None
    remarks: Optional[str] = None
    delegation_date: datetime
    sold_quantity: int = Field(default=0, ge=0, description="Units sold and not returned")
    remaining_quantity: int = Field(default=0, ge=0, description="Units the recipient can still sell")


# ============================================
# Legacy restore
# ============================================

class RestoreItem(CamelSchema):
    medicine_id: uuid.UUID
    quantity: int = Field(..., gt=0)


class RestoreRequest(CamelSchema):
    medicines: List[RestoreItem] = Field(..., min_length=1)
    reason: Optional[str] = Field(None, max_length=2000)


class RestoreResult(CamelSchema):
    medicine_id: uuid.UUID
    quantity: int
    return_ids: List[uuid.UUID]


class RestoreResponse(CamelSchema):
    restored: List[RestoreResult]
    total_restored: int


# ============================================
# Notifications
# ============================================

class DelegationNotificationResponse(CamelSchema):
    id: uuid.UUID
    medicine_id: uuid.UUID
    delegated_to: str
    quantity: int
    message: str
    is_read: bool
    created_at: datetime


class NotificationInbox(CamelSchema):
    notifications: List[DelegationNotificationResponse]
    unread_count: int


class MarkReadRequest(CamelSchema):
    notification_id: uuid.UUID


class MarkReadResponse(CamelSchema):
    updated: int
