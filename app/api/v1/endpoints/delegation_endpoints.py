"""
Delegation Routes
API endpoints for allocating stock to IPP, dispensary and other recipients
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import uuid

from app.core.deps import get_current_user, get_idempotency_key, require_role
from app.core.roles import STOCK_MANAGERS, DelegationTarget
from app.db.dependencies import get_db
from app.models.user.user_model import User
from app.schemas.delegation_schemas import (
    DelegationCreate, DelegationResponse,
    RestoreRequest, RestoreResponse,
    NotificationInbox, MarkReadRequest, MarkReadResponse
)
from app.services.inventory.delegation_service import DelegationService
from app.services.sales.return_service import ReturnService
from app.utils.pagination import PaginatedResponse, PaginationParams


router = APIRouter(prefix="/delegations", tags=["Delegations"])


@router.post("", response_model=DelegationResponse, status_code=status.HTTP_201_CREATED)
async def create_delegation(
    delegation_data: DelegationCreate,
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    current_user: User = Depends(require_role(*STOCK_MANAGERS)),
    db: AsyncSession = Depends(get_db)
):
    """
    Delegate central stock to a recipient

    **Roles**: superadmin, admin, store_officer

    **Process**:
    1. Locks the medicine row
    2. Checks central stock covers the quantity
    3. Records the delegation and decrements central stock
    4. Notifies IPP / dispensary

    **Headers**: optional `Idempotency-Key` makes retries safe

    **Errors**: 404 unknown medicine, 400 insufficient stock
    """
    return await DelegationService.create_delegation(
        db, delegation_data, current_user, idempotency_key
    )


@router.get("", response_model=PaginatedResponse[DelegationResponse])
async def list_delegations(
    pagination: PaginationParams = Depends(),
    delegated_to: Optional[DelegationTarget] = Query(None, alias="delegatedTo"),
    medicine_id: Optional[uuid.UUID] = Query(None, alias="medicineId"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    List delegations with sold and remaining quantities

    **remainingQuantity** = originalQuantity minus units sold and not returned
    """
    return await DelegationService.list_delegations(
        db, pagination, delegated_to, medicine_id
    )


@router.post("/restore", response_model=RestoreResponse)
async def restore_delegations(
    restore_data: RestoreRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Give units back to the delegations they were sold from

    Returns the caller's own outstanding sales of each medicine, newest
    first. Fails with 400 when fewer units are outstanding than requested.
    """
    return await ReturnService.restore_outstanding(db, restore_data, current_user)


@router.get("/notifications/all", response_model=NotificationInbox)
async def get_delegation_notifications(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Unread delegation notifications for the caller's role

    Only IPP and dispensary receive notifications; other roles get an
    empty inbox.
    """
    return await DelegationService.get_notifications(db, current_user.role_enum)


@router.post("/notifications/mark-read", response_model=MarkReadResponse)
async def mark_notification_read(
    mark_data: MarkReadRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Mark one of the caller's role notifications as read"""
    updated = await DelegationService.mark_notification_read(
        db, mark_data.notification_id, current_user.role_enum
    )
    return MarkReadResponse(updated=updated)


@router.post("/notifications/mark-all-read", response_model=MarkReadResponse)
async def mark_all_notifications_read(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Mark every unread notification of the caller's role as read"""
    updated = await DelegationService.mark_all_notifications_read(db, current_user.role_enum)
    return MarkReadResponse(updated=updated)


@router.get("/{delegation_id}", response_model=DelegationResponse)
async def get_delegation(
    delegation_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get one delegation with its remaining quantity"""
    return await DelegationService.get_delegation(db, delegation_id)
