"""
Returns API Routes
FastAPI endpoints for sales returns
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from datetime import date
import uuid

from app.core.deps import get_current_user, get_idempotency_key
from app.db.dependencies import get_db
from app.models.user.user_model import User
from app.schemas.return_schemas import ReturnCreate, ReturnResponse
from app.services.sales.return_service import ReturnService
from app.utils.pagination import PaginatedResponse, PaginationParams

router = APIRouter(prefix="/returns", tags=["Returns"])


@router.post("", response_model=ReturnResponse, status_code=status.HTTP_201_CREATED)
async def create_return(
    return_data: ReturnCreate,
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Return units of a sale line

    **Process:**
    - Units go back to the delegations the sale drew from, or to central
      stock for sales made from central stock
    - Sale status becomes partial_return or returned
    - Refunds default to the pro-rata share of the line total

    **Errors**: 404 unknown sale, 400 wrong medicine or returning more than outstanding
    """
    return await ReturnService.create_return(db, return_data, current_user, idempotency_key)


@router.get("", response_model=PaginatedResponse[ReturnResponse])
async def list_returns(
    pagination: PaginationParams = Depends(),
    sale_id: Optional[uuid.UUID] = Query(None, alias="saleId"),
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List returns with their items, newest first"""
    return await ReturnService.list_returns(db, pagination, sale_id, date_from, date_to)


@router.get("/{return_id}", response_model=ReturnResponse)
async def get_return(
    return_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get one return with its items"""
    return await ReturnService.get_return(db, return_id)


@router.delete("/{return_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_return(
    return_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Reverse and delete a return

    The returned units are taken back out of the ledger they were put into
    and the sale's status is recomputed.
    """
    await ReturnService.delete_return(db, return_id)
