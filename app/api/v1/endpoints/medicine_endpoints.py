"""
Medicine Routes
API endpoints for the medicine catalog and central stock
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import uuid

from app.core.deps import get_current_user, require_role
from app.core.roles import STOCK_MANAGERS
from app.db.dependencies import get_db
from app.models.user.user_model import User
from app.schemas.medicine_schemas import (
    MedicineCreate, MedicineUpdate, MedicineResponse, MedicineAlerts
)
from app.services.inventory.medicine_service import MedicineService
from app.utils.pagination import PaginatedResponse, PaginationParams


router = APIRouter(prefix="/medicines", tags=["Medicines"])


@router.post("", response_model=MedicineResponse, status_code=status.HTTP_201_CREATED)
async def create_medicine(
    medicine_data: MedicineCreate,
    current_user: User = Depends(require_role(*STOCK_MANAGERS)),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a new medicine

    **Roles**: superadmin, admin, store_officer

    **Validations**:
    - Barcode uniqueness
    - Expiry date not before manufacturing date

    **Returns**: Created medicine with computed stock value
    """
    return await MedicineService.create_medicine(db, medicine_data, current_user)


@router.get("", response_model=PaginatedResponse[MedicineResponse])
async def list_medicines(
    pagination: PaginationParams = Depends(),
    search: Optional[str] = Query(None, description="Search term"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    List medicines alphabetically

    **Filters**:
    - search: Partial match on name, generic name or barcode
    """
    return await MedicineService.list_medicines(db, pagination, search)


@router.get("/search", response_model=PaginatedResponse[MedicineResponse])
async def search_medicines(
    q: str = Query(..., min_length=1, description="Name, generic name or barcode"),
    pagination: PaginationParams = Depends(),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Search medicines

    **Use Case**: Point-of-sale lookup by name or scanned barcode
    """
    return await MedicineService.list_medicines(db, pagination, q)


@router.get("/notifications/all", response_model=MedicineAlerts)
async def get_medicine_alerts(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Medicines that need attention

    **Categories** (each medicine appears once, highest first):
    - expired: expiry date in the past
    - outOfStock: no central stock
    - lowStock: stock below the medicine's threshold
    """
    return await MedicineService.get_alerts(db)


@router.get("/{medicine_id}", response_model=MedicineResponse)
async def get_medicine(
    medicine_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get a medicine by ID"""
    return await MedicineService.get_medicine(db, medicine_id)


@router.put("/{medicine_id}", response_model=MedicineResponse)
async def update_medicine(
    medicine_id: uuid.UUID,
    update_data: MedicineUpdate,
    current_user: User = Depends(require_role(*STOCK_MANAGERS)),
    db: AsyncSession = Depends(get_db)
):
    """
    Update a medicine

    **Roles**: superadmin, admin, store_officer

    **Note**: Stock value (quantity x buy price) is recomputed
    """
    return await MedicineService.update_medicine(db, medicine_id, update_data)


@router.delete("/{medicine_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_medicine(
    medicine_id: uuid.UUID,
    current_user: User = Depends(require_role(*STOCK_MANAGERS)),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete a medicine

    **Roles**: superadmin, admin, store_officer

    **Refused** with 409 when the medicine has delegations or sales
    """
    await MedicineService.delete_medicine(db, medicine_id)
