"""
Return Service
Processing, listing and reversing sales returns
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from typing import Dict, List, Optional, Sequence, Tuple
from datetime import date
from decimal import Decimal
import logging
import uuid

from app.core.exceptions import (
    InsufficientStock, NotFound, OverReturn, ValidationError
)
from app.db.session import atomic
from app.models.inventory.delegation_model import Delegation
from app.models.inventory.medicine_model import Medicine
from app.models.sales.returns_model import SalesReturn, SalesReturnItem
from app.models.sales.sales_model import Sale, SaleAllocation, SaleStatus
from app.models.user.user_model import User
from app.schemas.delegation_schemas import RestoreRequest, RestoreResponse, RestoreResult
from app.schemas.return_schemas import ReturnCreate, ReturnResponse
from app.services.inventory.delegation_service import DelegationService
from app.services.sales.discounts import split_proportionally, to_money
from app.services.sales.sales_service import day_bounds
from app.services.system.idempotency_service import IdempotencyService
from app.utils.pagination import PaginatedResponse, PaginationParams, Paginator


logger = logging.getLogger(__name__)

# (medicine_id, quantity_returned, refund_amount or None for pro-rata)
ReturnLine = Tuple[uuid.UUID, int, Optional[Decimal]]


class ReturnService:
    """Service for the return ledger"""

    @staticmethod
    async def _lock_sale(db: AsyncSession, sale_id: uuid.UUID) -> Sale:
        result = await db.execute(
            select(Sale).where(Sale.id == sale_id).with_for_update()
        )
        sale = result.scalar_one_or_none()
        if not sale:
            raise NotFound(f"Sale {sale_id} not found")
        return sale

    @staticmethod
    async def _lock_medicine(db: AsyncSession, medicine_id: uuid.UUID) -> Medicine:
        result = await db.execute(
            select(Medicine).where(Medicine.id == medicine_id).with_for_update()
        )
        medicine = result.scalar_one_or_none()
        if not medicine:
            raise NotFound(f"Medicine {medicine_id} not found")
        return medicine

    @staticmethod
    async def _refunded_so_far(db: AsyncSession, sale_id: uuid.UUID) -> Decimal:
        result = await db.execute(
            select(func.coalesce(func.sum(SalesReturnItem.refund_amount), 0))
            .join(SalesReturn, SalesReturn.id == SalesReturnItem.return_id)
            .where(SalesReturn.sale_id == sale_id)
        )
        return to_money(Decimal(str(result.scalar() or 0)))

    @staticmethod
    async def _process_return(
        db: AsyncSession,
        sale_id: uuid.UUID,
        patient_name: str,
        lines: Sequence[ReturnLine],
        return_reason: Optional[str],
        user_id: uuid.UUID
    ) -> SalesReturn:
        """
        Apply a return inside the caller's transaction

        Units go back to exactly one ledger: the delegations the sale drew
        from (most recently drawn first) or central stock.

        Raises:
            NotFound: Sale does not exist
            ValidationError: An item names a different medicine than the sale
            OverReturn: More units than are still outstanding on the sale
        """
        # 1. Lock the sale and validate items
        sale = await ReturnService._lock_sale(db, sale_id)

        for medicine_id, _, _ in lines:
            if medicine_id != sale.medicine_id:
                raise ValidationError(
                    f"Medicine {medicine_id} does not belong to sale {sale.id}"
                )

        requested = sum(quantity for _, quantity, _ in lines)
        outstanding = sale.outstanding_quantity
        if requested > outstanding:
            logger.warning(
                f"Return of {requested} on sale {sale.id} rejected, "
                f"only {outstanding} outstanding"
            )
            raise OverReturn(outstanding, requested)

        # 2. Work out refunds; the final units refund whatever is left
        refundable = sale.total_price - await ReturnService._refunded_so_far(db, sale.id)
        units_left = outstanding
        refunds: List[Decimal] = []
        for _, quantity, refund_amount in lines:
            if refund_amount is None:
                if quantity == units_left:
                    refund = refundable
                else:
                    refund = min(
                        to_money(sale.total_price * quantity / sale.quantity),
                        refundable
                    )
            else:
                refund = to_money(refund_amount)
                if refund > refundable:
                    raise ValidationError(
                        f"Refund {refund} exceeds refundable amount {refundable}"
                    )
            refundable -= refund
            units_left -= quantity
            refunds.append(max(refund, Decimal("0.00")))

        # 3. Restore units to the ledger they came from
        allocations = await ReturnService._lock_allocations(db, sale.id)
        allocations.reverse()

        sales_return = SalesReturn(
            id=uuid.uuid4(),
            sale_id=sale.id,
            patient_name=patient_name,
            return_reason=return_reason,
            returned_by=user_id,
            total_original=sale.total_price,
        )

        medicine = None
        for (medicine_id, quantity, _), refund in zip(lines, refunds):
            if allocations:
                pieces = []
                needed = quantity
                for allocation in allocations:
                    if needed == 0:
                        break
                    take = min(allocation.outstanding_quantity, needed)
                    if take <= 0:
                        continue
                    allocation.returned_quantity += take
                    pieces.append((allocation, take))
                    needed -= take

                piece_refunds = split_proportionally(
                    refund, [Decimal(take) for _, take in pieces]
                )
                for (allocation, take), piece_refund in zip(pieces, piece_refunds):
                    sales_return.items.append(SalesReturnItem(
                        id=uuid.uuid4(),
                        medicine_id=medicine_id,
                        medicine_name=sale.medicine_name,
                        allocation_id=allocation.id,
                        quantity_returned=take,
                        refund_amount=piece_refund,
                    ))
            else:
                if medicine is None:
                    medicine = await ReturnService._lock_medicine(db, sale.medicine_id)
                medicine.quantity += quantity
                sales_return.items.append(SalesReturnItem(
                    id=uuid.uuid4(),
                    medicine_id=medicine_id,
                    medicine_name=sale.medicine_name,
                    allocation_id=None,
                    quantity_returned=quantity,
                    refund_amount=refund,
                ))

        # 4. Update the sale
        sale.apply_returned(requested)

        sales_return.total_returned = sum(refunds, Decimal("0.00"))
        sales_return.is_full_return = sale.status == SaleStatus.RETURNED.value

        db.add(sales_return)
        await db.flush()

        return sales_return

    @staticmethod
    async def _lock_allocations(db: AsyncSession, sale_id: uuid.UUID) -> List[SaleAllocation]:
        """Allocations of a sale in the order they were drawn"""
        result = await db.execute(
            select(SaleAllocation)
            .join(Delegation, Delegation.id == SaleAllocation.delegation_id)
            .where(SaleAllocation.sale_id == sale_id)
            .order_by(Delegation.delegation_date.asc(), Delegation.created_at.asc())
            .with_for_update(of=SaleAllocation)
        )
        return list(result.scalars().all())

    @staticmethod
    async def create_return(
        db: AsyncSession,
        return_data: ReturnCreate,
        current_user: User,
        idempotency_key: Optional[str] = None
    ) -> SalesReturn:
        """
        Record a return against one sale line

        totalReturned, totalOriginal and isFullReturn sent by the client are
        ignored and recomputed here.

        Raises:
            NotFound: Sale does not exist
            ValidationError: Item medicine does not match the sale
            OverReturn: Returning more than is outstanding
        """
        user_id = current_user.id

        if idempotency_key:
            replay = await IdempotencyService.lookup(
                db, IdempotencyService.RETURN, idempotency_key, user_id
            )
            if replay:
                logger.info(f"Replaying return for idempotency key {idempotency_key}")
                return await ReturnService.get_return(db, replay[0])

        lines = [
            (item.medicine_id, item.quantity_returned, item.refund_amount)
            for item in return_data.medicines
        ]

        try:
            async with atomic(db):
                sales_return = await ReturnService._process_return(
                    db,
                    sale_id=return_data.sale_id,
                    patient_name=return_data.patient_name,
                    lines=lines,
                    return_reason=return_data.return_reason,
                    user_id=user_id
                )

                if idempotency_key:
                    IdempotencyService.remember(
                        db, IdempotencyService.RETURN, idempotency_key,
                        user_id, [sales_return.id]
                    )

        except IntegrityError:
            if idempotency_key:
                replay = await IdempotencyService.lookup(
                    db, IdempotencyService.RETURN, idempotency_key, user_id
                )
                if replay:
                    return await ReturnService.get_return(db, replay[0])
            raise

        logger.info(
            f"Recorded return {sales_return.id} on sale {sales_return.sale_id}: "
            f"{sum(i.quantity_returned for i in sales_return.items)} unit(s), "
            f"refund {sales_return.total_returned}"
        )
        return sales_return

    @staticmethod
    async def get_return(db: AsyncSession, return_id: uuid.UUID) -> SalesReturn:
        result = await db.execute(select(SalesReturn).where(SalesReturn.id == return_id))
        sales_return = result.scalar_one_or_none()
        if not sales_return:
            raise NotFound(f"Return {return_id} not found")
        return sales_return

    @staticmethod
    async def list_returns(
        db: AsyncSession,
        params: PaginationParams,
        sale_id: Optional[uuid.UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None
    ) -> PaginatedResponse:
        """Returns with their items, newest first"""
        query = select(SalesReturn)

        if sale_id:
            query = query.where(SalesReturn.sale_id == sale_id)

        start, end = day_bounds(date_from, date_to)
        if start:
            query = query.where(SalesReturn.return_date >= start)
        if end:
            query = query.where(SalesReturn.return_date < end)

        query = query.order_by(SalesReturn.return_date.desc())

        return await Paginator(db).paginate(query, params, ReturnResponse)

    @staticmethod
    async def delete_return(db: AsyncSession, return_id: uuid.UUID) -> None:
        """
        Undo a return exactly

        Every item's units are taken back out of the ledger they were
        restored into, the sale's returned quantity drops accordingly and the
        return rows are removed.

        Raises:
            NotFound: Return does not exist
            InsufficientStock: The restored units were already used again
        """
        async with atomic(db):
            result = await db.execute(
                select(SalesReturn).where(SalesReturn.id == return_id).with_for_update()
            )
            sales_return = result.scalar_one_or_none()
            if not sales_return:
                raise NotFound(f"Return {return_id} not found")

            sale = await ReturnService._lock_sale(db, sales_return.sale_id)

            total_quantity = 0
            for item in sales_return.items:
                if item.allocation_id:
                    await ReturnService._reverse_into_delegation(db, item)
                else:
                    medicine = await ReturnService._lock_medicine(db, item.medicine_id)
                    if medicine.quantity < item.quantity_returned:
                        raise InsufficientStock(
                            medicine.quantity, item.quantity_returned, medicine.name
                        )
                    medicine.quantity -= item.quantity_returned
                total_quantity += item.quantity_returned

            if total_quantity > sale.returned_quantity:
                raise ValidationError(
                    f"Return {return_id} is inconsistent with sale {sale.id}"
                )

            sale.apply_returned(-total_quantity)
            await db.delete(sales_return)

        logger.info(
            f"Deleted return {return_id}, {total_quantity} unit(s) back on sale {sale.id}"
        )

    @staticmethod
    async def _reverse_into_delegation(db: AsyncSession, item: SalesReturnItem) -> None:
        result = await db.execute(
            select(SaleAllocation)
            .where(SaleAllocation.id == item.allocation_id)
            .with_for_update()
        )
        allocation = result.scalar_one()

        result = await db.execute(
            select(Delegation)
            .where(Delegation.id == allocation.delegation_id)
            .with_for_update()
        )
        delegation = result.scalar_one()

        # The restored units may have been sold again since
        remaining = await DelegationService.remaining_quantity(db, delegation)
        if remaining < item.quantity_returned:
            raise InsufficientStock(remaining, item.quantity_returned, item.medicine_name)

        if allocation.returned_quantity < item.quantity_returned:
            raise ValidationError(
                f"Allocation {allocation.id} has only {allocation.returned_quantity} returned unit(s)"
            )

        allocation.returned_quantity -= item.quantity_returned
        # Keep the next remaining check in this transaction accurate
        await db.flush()

    @staticmethod
    async def restore_outstanding(
        db: AsyncSession,
        restore_data: RestoreRequest,
        current_user: User
    ) -> RestoreResponse:
        """
        Return the caller's own sales of each medicine, newest first

        Raises:
            OverReturn: The caller has fewer outstanding units than requested
        """
        user_id = current_user.id

        requested: Dict[uuid.UUID, int] = {}
        for item in restore_data.medicines:
            requested[item.medicine_id] = requested.get(item.medicine_id, 0) + item.quantity

        restored: List[RestoreResult] = []
        async with atomic(db):
            for medicine_id, quantity in requested.items():
                result = await db.execute(
                    select(Sale)
                    .where(
                        Sale.sold_by == user_id,
                        Sale.medicine_id == medicine_id,
                        Sale.status != SaleStatus.RETURNED.value
                    )
                    .order_by(Sale.sale_date.desc(), Sale.created_at.desc())
                    .with_for_update()
                )
                sales = list(result.scalars().all())

                outstanding = sum(sale.outstanding_quantity for sale in sales)
                if outstanding < quantity:
                    logger.warning(
                        f"Restore of {quantity} for medicine {medicine_id} rejected, "
                        f"only {outstanding} outstanding"
                    )
                    raise OverReturn(outstanding, quantity)

                needed = quantity
                return_ids: List[uuid.UUID] = []
                for sale in sales:
                    if needed == 0:
                        break
                    take = min(sale.outstanding_quantity, needed)
                    if take <= 0:
                        continue
                    sales_return = await ReturnService._process_return(
                        db,
                        sale_id=sale.id,
                        patient_name=sale.patient_name,
                        lines=[(medicine_id, take, None)],
                        return_reason=restore_data.reason or "Restored to delegation",
                        user_id=user_id
                    )
                    return_ids.append(sales_return.id)
                    needed -= take

                restored.append(RestoreResult(
                    medicine_id=medicine_id,
                    quantity=quantity,
                    return_ids=return_ids
                ))

        total = sum(r.quantity for r in restored)
        logger.info(f"Restored {total} unit(s) across {len(restored)} medicine(s)")
        return RestoreResponse(restored=restored, total_restored=total)
