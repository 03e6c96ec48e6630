from app.schemas.base_schemas import CamelSchema
from pydantic import Field
from typing import Optional, List
from datetime import date
from decimal import Decimal


# ============================================
# Dashboard Schemas
# ============================================

class DailySales(CamelSchema):
    day: date
    amount: Decimal = Decimal("0")
    count: int = 0


class DashboardStats(CamelSchema):
    """
    Figures for the landing page.
    Delegated roles see their own sales and delegated stock; everyone
    else sees the whole pharmacy.
    """
    role: str
    today_sales: Decimal = Decimal("0")
    today_transactions: int = 0
    month_sales: Decimal = Decimal("0")
    month_transactions: int = 0
    weekly_sales: List[DailySales] = Field(default_factory=list)

    # Delegated roles
    units_in_stock: Optional[int] = None
    active_delegations: Optional[int] = None

    # Store-wide roles
    total_medicines: Optional[int] = None
    in_stock: Optional[int] = None
    low_stock: Optional[int] = None
    out_of_stock: Optional[int] = None
    expired: Optional[int] = None
