"""
Sales API Routes
FastAPI endpoints for recording sales and sales reporting
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from datetime import date
import uuid

from app.core.deps import get_current_user, get_idempotency_key
from app.core.roles import Role
from app.db.dependencies import get_db
from app.models.sales.sales_model import SaleStatus
from app.models.user.user_model import User
from app.schemas.sales_schemas import (
    SaleAllocationResponse, SaleCreate, SaleCreateResponse, SaleDetailResponse,
    SaleListResponse
)
from app.services.sales.sales_service import SalesService
from app.utils.pagination import PaginationParams

router = APIRouter(prefix="/sales", tags=["Sales"])


# ============================================
# Sale Processing
# ============================================

@router.post(
    "",
    response_model=SaleCreateResponse,
    status_code=status.HTTP_201_CREATED
)
async def record_sale(
    sale_data: SaleCreate,
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Record a checkout

    **Stock source:**
    - IPP and dispensary sell from their delegations, oldest first
    - Every other role sells from central stock

    **Discount:**
    - negative `discount`: flat amount off the bill
    - zero or positive: percentage of the subtotal
    - omitted: the unit's default (e.g. NHIS 10%, Staff 3000 off)

    **Request Body:**
    ```json
    {
      "patientName": "Ama Mensah",
      "unit": "NHIS",
      "medicines": [
        {"medicineId": "uuid", "quantity": 2, "sellingPrice": "12.50"}
      ]
    }
    ```

    **Headers**: optional `Idempotency-Key` makes retries safe

    **Errors**: 404 unknown medicine, 400 insufficient stock (nothing is written)
    """
    return await SalesService.record_sale(db, sale_data, current_user, idempotency_key)


# ============================================
# Sale Queries
# ============================================

@router.get("", response_model=SaleListResponse)
async def list_sales(
    pagination: PaginationParams = Depends(),
    date_from: Optional[date] = Query(None, alias="dateFrom", description="First day, inclusive"),
    date_to: Optional[date] = Query(None, alias="dateTo", description="Last day, inclusive"),
    sale_status: Optional[SaleStatus] = Query(None, alias="status"),
    sold_by_role: Optional[Role] = Query(None, alias="soldByRole"),
    medicine_id: Optional[uuid.UUID] = Query(None, alias="medicineId"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    List sale lines with totals

    **Totals** cover every line matching the filters, not just this page:
    - revenue: sum of line totals, fully returned lines excluded
    - itemsSold: units sold
    - txCount: number of sale lines
    """
    return await SalesService.list_sales(
        db,
        pagination,
        date_from=date_from,
        date_to=date_to,
        status=sale_status,
        sold_by_role=sold_by_role.value if sold_by_role else None,
        medicine_id=medicine_id
    )


@router.get("/{sale_id}", response_model=SaleDetailResponse)
async def get_sale(
    sale_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get one sale line

    Delegated sales also list the delegations they drew from, oldest first.
    Central sales have no allocations.
    """
    sale = await SalesService.get_sale(db, sale_id)
    detail = SaleDetailResponse.model_validate(sale)
    detail.allocations = [
        SaleAllocationResponse.model_validate(allocation)
        for allocation in await SalesService.get_allocations(db, sale_id)
    ]
    return detail
