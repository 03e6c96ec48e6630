"""
Dashboard Service
Sales and stock figures for the landing page
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Dict

from app.core.roles import Role
from app.models.inventory.medicine_model import Medicine
from app.models.sales.sales_model import Sale, SaleStatus
from app.schemas.syst_schemas import DailySales, DashboardStats
from app.services.inventory.delegation_service import DelegationService
from app.services.sales.discounts import to_money


class DashboardService:
    """Aggregates shown on the dashboard, scoped by the caller's role"""

    @staticmethod
    async def _sales_between(db: AsyncSession, role: Role, start: datetime, end: datetime):
        filters = [
            Sale.sale_date >= start,
            Sale.sale_date < end,
            Sale.status != SaleStatus.RETURNED.value,
        ]
        if role.is_delegated:
            filters.append(Sale.sold_by_role == role.value)

        result = await db.execute(
            select(Sale.sale_date, Sale.total_price).where(*filters)
        )
        return result.all()

    @staticmethod
    async def get_stats(db: AsyncSession, role: Role) -> DashboardStats:
        """
        Dashboard figures

        Delegated roles: their own sales plus units left in their delegations.
        Other roles: all sales plus medicine stock counts.
        Fully returned sales never count.
        """
        now = datetime.now(timezone.utc)
        today = now.date()
        day_start = datetime.combine(today, time.min, tzinfo=timezone.utc)
        month_start = datetime.combine(today.replace(day=1), time.min, tzinfo=timezone.utc)
        week_start = day_start - timedelta(days=6)
        tomorrow = day_start + timedelta(days=1)

        rows = await DashboardService._sales_between(
            db, role, min(month_start, week_start), tomorrow
        )

        daily: Dict[date, DailySales] = {
            (week_start + timedelta(days=i)).date(): DailySales(day=(week_start + timedelta(days=i)).date())
            for i in range(7)
        }
        stats = DashboardStats(role=role.value)

        for sale_date, total_price in rows:
            if sale_date.tzinfo is not None:
                sale_date = sale_date.astimezone(timezone.utc)
            sale_day = sale_date.date()
            amount = Decimal(str(total_price))
            if sale_day >= month_start.date():
                stats.month_sales += amount
                stats.month_transactions += 1
            if sale_day == today:
                stats.today_sales += amount
                stats.today_transactions += 1
            if sale_day in daily:
                daily[sale_day].amount += amount
                daily[sale_day].count += 1

        stats.today_sales = to_money(stats.today_sales)
        stats.month_sales = to_money(stats.month_sales)
        stats.weekly_sales = [daily[day] for day in sorted(daily)]

        if role.is_delegated:
            units, active = await DelegationService.units_in_stock(db, role)
            stats.units_in_stock = units
            stats.active_delegations = active
            return stats

        expired = Medicine.expiry_date < today
        result = await db.execute(
            select(
                func.count(Medicine.id),
                func.count(Medicine.id).filter(Medicine.quantity > 0),
                func.count(Medicine.id).filter(
                    and_(Medicine.quantity > 0, Medicine.quantity < Medicine.low_stock_threshold)
                ),
                func.count(Medicine.id).filter(Medicine.quantity == 0),
                func.count(Medicine.id).filter(expired),
            )
        )
        total, in_stock, low_stock, out_of_stock, expired_count = result.one()

        stats.total_medicines = total
        stats.in_stock = in_stock
        stats.low_stock = low_stock
        stats.out_of_stock = out_of_stock
        stats.expired = expired_count
        return stats
