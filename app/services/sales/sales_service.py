"""
Sales Service
Recording checkouts against central stock or delegated stock
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, case
from sqlalchemy.exc import IntegrityError
from typing import Dict, List, Optional, Tuple
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
import logging
import uuid

from app.core.exceptions import InsufficientStock, NotFound
from app.db.session import atomic
from app.models.core.mixins import utcnow
from app.models.inventory.delegation_model import Delegation
from app.models.inventory.medicine_model import Medicine
from app.models.sales.sales_model import Sale, SaleAllocation, SaleStatus
from app.models.user.user_model import User
from app.schemas.sales_schemas import (
    SaleCreate, SaleCreateResponse, SaleListResponse,
    SaleResponse, SalesTotals
)
from app.services.inventory.delegation_service import DelegationService
from app.services.sales.discounts import calculate_discount, split_proportionally, to_money
from app.services.system.idempotency_service import IdempotencyService
from app.utils.pagination import PaginationParams, Paginator


logger = logging.getLogger(__name__)


def day_bounds(
    date_from: Optional[date],
    date_to: Optional[date]
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Inclusive calendar-day filters as half-open UTC datetime bounds"""
    start = datetime.combine(date_from, time.min, tzinfo=timezone.utc) if date_from else None
    end = (
        datetime.combine(date_to + timedelta(days=1), time.min, tzinfo=timezone.utc)
        if date_to else None
    )
    return start, end


class SalesService:
    """Service for sales processing"""

    @staticmethod
    async def record_sale(
        db: AsyncSession,
        sale_data: SaleCreate,
        current_user: User,
        idempotency_key: Optional[str] = None
    ) -> SaleCreateResponse:
        """
        Record a checkout with one sale row per line

        Delegated roles (IPP, dispensary) sell out of their delegations,
        drawn oldest first. Every other role sells out of central stock.
        All lines are validated before anything is written; one failing line
        aborts the whole checkout.

        Args:
            db: Database session
            sale_data: Checkout data
            current_user: Seller
            idempotency_key: Optional client key to dedupe retries

        Returns:
            SaleCreateResponse with the created lines and totals

        Raises:
            NotFound: A medicine does not exist
            InsufficientStock: Not enough stock for a line
        """
        user_id = current_user.id
        role = current_user.role_enum

        if idempotency_key:
            replay = await IdempotencyService.lookup(
                db, IdempotencyService.SALE, idempotency_key, user_id
            )
            if replay:
                logger.info(f"Replaying sale for idempotency key {idempotency_key}")
                return await SalesService._load_checkout(db, replay)

        # Lines repeating a medicine are checked against their combined quantity
        requested: Dict[uuid.UUID, int] = {}
        for line in sale_data.medicines:
            requested[line.medicine_id] = requested.get(line.medicine_id, 0) + line.quantity

        try:
            async with atomic(db):
                # 1. Lock medicines in a stable order
                medicines: Dict[uuid.UUID, Medicine] = {}
                for medicine_id in sorted(requested, key=str):
                    result = await db.execute(
                        select(Medicine)
                        .where(Medicine.id == medicine_id)
                        .with_for_update()
                    )
                    medicine = result.scalar_one_or_none()
                    if not medicine:
                        raise NotFound(f"Medicine {medicine_id} not found")
                    medicines[medicine_id] = medicine

                # 2. Check availability in the seller's ledger
                pools: Dict[uuid.UUID, List[List]] = {}
                for medicine_id, quantity in requested.items():
                    medicine = medicines[medicine_id]

                    if role.is_delegated:
                        pool = await DelegationService.open_delegations(
                            db, role, medicine_id, lock=True
                        )
                        pools[medicine_id] = [[d, remaining] for d, remaining in pool]
                        available = sum(remaining for _, remaining in pool)
                    else:
                        available = medicine.quantity

                    if available < quantity:
                        logger.warning(
                            f"Sale of {quantity} {medicine.name} by {role.value} rejected, "
                            f"only {available} available"
                        )
                        raise InsufficientStock(available, quantity, medicine.name)

                # 3. Price the checkout
                subtotals = [
                    to_money(line.selling_price * line.quantity)
                    for line in sale_data.medicines
                ]
                subtotal = sum(subtotals, Decimal("0"))
                discount_amount, total_amount = calculate_discount(
                    subtotal, sale_data.discount, sale_data.unit
                )
                line_discounts = split_proportionally(discount_amount, subtotals)

                receipt_number = await SalesService._generate_receipt_number(db)
                sale_date = utcnow()

                # 4. Insert one sale row per line
                sales: List[Sale] = []
                for line, line_subtotal, line_discount in zip(
                    sale_data.medicines, subtotals, line_discounts
                ):
                    medicine = medicines[line.medicine_id]
                    sale = Sale(
                        id=uuid.uuid4(),
                        receipt_number=receipt_number,
                        patient_name=sale_data.patient_name,
                        folder_no=sale_data.folder_no,
                        age=sale_data.age,
                        sex=sale_data.sex,
                        phone_number=sale_data.phone_number,
                        invoice_no=sale_data.invoice_no,
                        unit=sale_data.unit,
                        medicine_id=medicine.id,
                        medicine_name=medicine.name,
                        quantity=line.quantity,
                        selling_price=line.selling_price,
                        subtotal=line_subtotal,
                        discount=line_discount,
                        total_price=line_subtotal - line_discount,
                        status=SaleStatus.COMPLETED.value,
                        returned_quantity=0,
                        sold_by=user_id,
                        sold_by_role=role.value,
                        sale_date=sale_date,
                    )
                    db.add(sale)
                    sales.append(sale)

                    # 5. Central ledger
                    if not role.is_delegated:
                        medicine.quantity -= line.quantity

                await db.flush()

                # 6. Delegated ledger, drawn oldest delegation first
                if role.is_delegated:
                    for sale in sales:
                        SalesService._allocate(db, sale, pools[sale.medicine_id])

                if idempotency_key:
                    IdempotencyService.remember(
                        db, IdempotencyService.SALE, idempotency_key,
                        user_id, [sale.id for sale in sales]
                    )

        except IntegrityError:
            if idempotency_key:
                replay = await IdempotencyService.lookup(
                    db, IdempotencyService.SALE, idempotency_key, user_id
                )
                if replay:
                    return await SalesService._load_checkout(db, replay)
            raise

        logger.info(
            f"Recorded sale {receipt_number}: {len(sales)} line(s) by {role.value}, "
            f"total {total_amount}"
        )

        return SaleCreateResponse(
            receipt_number=receipt_number,
            sales=[SaleResponse.model_validate(sale) for sale in sales],
            subtotal=subtotal,
            discount_amount=discount_amount,
            total_amount=total_amount,
        )

    @staticmethod
    def _allocate(db: AsyncSession, sale: Sale, pool: List[List]) -> None:
        """Record which delegations a delegated sale line drew from"""
        needed = sale.quantity
        for entry in pool:
            delegation, remaining = entry
            if needed == 0:
                break
            take = min(remaining, needed)
            if take <= 0:
                continue
            db.add(SaleAllocation(
                id=uuid.uuid4(),
                sale_id=sale.id,
                delegation_id=delegation.id,
                quantity=take,
                returned_quantity=0,
            ))
            entry[1] = remaining - take
            needed -= take

        if needed:
            # Availability was checked under lock; reaching here means the pool is stale
            raise InsufficientStock(sale.quantity - needed, sale.quantity, sale.medicine_name)

    @staticmethod
    async def _load_checkout(db: AsyncSession, sale_ids: List[uuid.UUID]) -> SaleCreateResponse:
        result = await db.execute(select(Sale).where(Sale.id.in_(sale_ids)))
        by_id = {sale.id: sale for sale in result.scalars().all()}
        sales = [by_id[sale_id] for sale_id in sale_ids if sale_id in by_id]
        if not sales:
            raise NotFound("Sale not found")

        subtotal = sum((s.subtotal for s in sales), Decimal("0"))
        discount_amount = sum((s.discount for s in sales), Decimal("0"))

        return SaleCreateResponse(
            receipt_number=sales[0].receipt_number,
            sales=[SaleResponse.model_validate(sale) for sale in sales],
            subtotal=subtotal,
            discount_amount=discount_amount,
            total_amount=subtotal - discount_amount,
        )

    @staticmethod
    async def get_sale(db: AsyncSession, sale_id: uuid.UUID) -> Sale:
        result = await db.execute(select(Sale).where(Sale.id == sale_id))
        sale = result.scalar_one_or_none()
        if not sale:
            raise NotFound(f"Sale {sale_id} not found")
        return sale

    @staticmethod
    async def get_allocations(db: AsyncSession, sale_id: uuid.UUID) -> List[SaleAllocation]:
        result = await db.execute(
            select(SaleAllocation)
            .join(Delegation, Delegation.id == SaleAllocation.delegation_id)
            .where(SaleAllocation.sale_id == sale_id)
            .order_by(Delegation.delegation_date.asc(), Delegation.created_at.asc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_sales(
        db: AsyncSession,
        params: PaginationParams,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        status: Optional[SaleStatus] = None,
        sold_by_role: Optional[str] = None,
        medicine_id: Optional[uuid.UUID] = None
    ) -> SaleListResponse:
        """
        Paginated sale lines plus totals over the whole filtered set

        Revenue leaves out lines that were fully returned.
        """
        filters = []
        start, end = day_bounds(date_from, date_to)
        if start:
            filters.append(Sale.sale_date >= start)
        if end:
            filters.append(Sale.sale_date < end)
        if status:
            filters.append(Sale.status == SaleStatus(status).value)
        if sold_by_role:
            filters.append(Sale.sold_by_role == sold_by_role)
        if medicine_id:
            filters.append(Sale.medicine_id == medicine_id)

        query = (
            select(Sale)
            .where(*filters)
            .order_by(Sale.sale_date.desc(), Sale.receipt_number.desc())
        )
        page = await Paginator(db).paginate(query, params, SaleResponse)

        result = await db.execute(
            select(
                func.coalesce(
                    func.sum(
                        case(
                            (Sale.status != SaleStatus.RETURNED.value, Sale.total_price),
                            else_=0
                        )
                    ),
                    0
                ),
                func.coalesce(func.sum(Sale.quantity), 0),
                func.count(Sale.id)
            ).where(*filters)
        )
        revenue, items_sold, tx_count = result.one()

        return SaleListResponse(
            **dict(page),
            totals=SalesTotals(
                revenue=to_money(Decimal(str(revenue))),
                items_sold=int(items_sold),
                tx_count=int(tx_count)
            )
        )

    @staticmethod
    async def _generate_receipt_number(db: AsyncSession) -> str:
        """Generate receipt number, shared by all lines of a checkout"""
        prefix = f"RCP-{utcnow().strftime('%Y%m%d')}"

        result = await db.execute(
            select(func.count(func.distinct(Sale.receipt_number)))
            .where(Sale.receipt_number.like(f"{prefix}%"))
        )
        count = result.scalar() or 0

        return f"{prefix}-{str(count + 1).zfill(4)}"
