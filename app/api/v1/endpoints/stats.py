from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.deps import get_current_user
from app.db.dependencies import get_db
from app.models.user.user_model import User
from app.schemas.syst_schemas import DashboardStats
from app.services.reports.dashboard_service import DashboardService


router = APIRouter(prefix="/dashboard")


@router.get("/stats", response_model=DashboardStats)
async def get_dashboard_stats(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Dashboard figures for the caller's role

    **IPP / dispensary**:
    - Units still available across their delegations
    - Their own sales today, this month and over the last 7 days

    **Other roles**:
    - Medicine counts (total, in stock, low stock, out of stock, expired)
    - All sales today, this month and over the last 7 days

    Fully returned sales are excluded.
    """
    return await DashboardService.get_stats(db, current_user.role_enum)
