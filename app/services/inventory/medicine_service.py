"""
Medicine Service
Business logic for the medicine catalog and central stock
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from typing import Optional
import logging
import uuid

from app.core.config import get_settings
from app.core.exceptions import Conflict, NotFound, ValidationError
from app.db.session import atomic
from app.models.inventory.delegation_model import Delegation
from app.models.inventory.medicine_model import Medicine
from app.models.core.mixins import utcnow
from app.models.sales.sales_model import Sale
from app.models.user.user_model import User
from app.schemas.medicine_schemas import (
    MedicineCreate, MedicineUpdate, MedicineResponse, MedicineAlerts
)
from app.utils.pagination import PaginatedResponse, PaginationParams, Paginator


logger = logging.getLogger(__name__)
settings = get_settings()


class MedicineService:
    """Service for medicine management"""

    @staticmethod
    async def _check_barcode(
        db: AsyncSession,
        barcode: Optional[str],
        exclude_id: Optional[uuid.UUID] = None
    ) -> None:
        if not barcode:
            return
        query = select(Medicine.id).where(Medicine.barcode == barcode)
        if exclude_id:
            query = query.where(Medicine.id != exclude_id)
        result = await db.execute(query)
        if result.first():
            raise ValidationError(f"Medicine with barcode '{barcode}' already exists")

    @staticmethod
    async def create_medicine(
        db: AsyncSession,
        medicine_data: MedicineCreate,
        current_user: User
    ) -> Medicine:
        """
        Create a medicine with its opening stock

        Args:
            db: Database session
            medicine_data: Medicine creation data
            current_user: User creating the medicine

        Returns:
            Created Medicine object

        Raises:
            ValidationError: Barcode already used
        """
        await MedicineService._check_barcode(db, medicine_data.barcode)

        medicine_dict = medicine_data.model_dump()
        if medicine_dict.get("low_stock_threshold") is None:
            medicine_dict["low_stock_threshold"] = settings.DEFAULT_LOW_STOCK_THRESHOLD

        medicine = Medicine(
            id=uuid.uuid4(),
            **medicine_dict,
            created_by=current_user.id
        )
        medicine.recompute_total_price()

        async with atomic(db):
            db.add(medicine)

        logger.info(f"Created medicine {medicine.name} with {medicine.quantity} unit(s)")
        return medicine

    @staticmethod
    async def get_medicine(db: AsyncSession, medicine_id: uuid.UUID) -> Medicine:
        result = await db.execute(select(Medicine).where(Medicine.id == medicine_id))
        medicine = result.scalar_one_or_none()
        if not medicine:
            raise NotFound(f"Medicine {medicine_id} not found")
        return medicine

    @staticmethod
    async def list_medicines(
        db: AsyncSession,
        params: PaginationParams,
        search: Optional[str] = None
    ) -> PaginatedResponse:
        """
        List medicines alphabetically, optionally filtered

        Args:
            db: Database session
            params: Pagination parameters
            search: Matches name, generic name or barcode

        Returns:
            PaginatedResponse of MedicineResponse
        """
        query = select(Medicine)

        if search:
            term = f"%{search.strip()}%"
            query = query.where(
                or_(
                    Medicine.name.ilike(term),
                    Medicine.generic_name.ilike(term),
                    Medicine.barcode.ilike(term)
                )
            )

        query = query.order_by(Medicine.name.asc())

        return await Paginator(db).paginate(query, params, MedicineResponse)

    @staticmethod
    async def update_medicine(
        db: AsyncSession,
        medicine_id: uuid.UUID,
        update_data: MedicineUpdate
    ) -> Medicine:
        """
        Update medicine fields; stock value is recomputed

        Raises:
            NotFound: Medicine does not exist
            ValidationError: Barcode already used or dates out of order
        """
        changes = update_data.model_dump(exclude_unset=True)

        async with atomic(db):
            result = await db.execute(
                select(Medicine).where(Medicine.id == medicine_id).with_for_update()
            )
            medicine = result.scalar_one_or_none()
            if not medicine:
                raise NotFound(f"Medicine {medicine_id} not found")

            if "barcode" in changes:
                await MedicineService._check_barcode(db, changes["barcode"], medicine.id)

            for field, value in changes.items():
                setattr(medicine, field, value)

            if (
                medicine.manufacturing_date and medicine.expiry_date
                and medicine.expiry_date < medicine.manufacturing_date
            ):
                raise ValidationError("Expiry date cannot be before manufacturing date")

            medicine.recompute_total_price()

        logger.info(f"Updated medicine {medicine.name}: {', '.join(changes) or 'no changes'}")
        return medicine

    @staticmethod
    async def delete_medicine(db: AsyncSession, medicine_id: uuid.UUID) -> None:
        """
        Delete a medicine that has never been delegated or sold

        Raises:
            NotFound: Medicine does not exist
            Conflict: Delegations or sales reference it
        """
        async with atomic(db):
            medicine = await MedicineService.get_medicine(db, medicine_id)

            delegations = await db.execute(
                select(func.count(Delegation.id)).where(Delegation.medicine_id == medicine_id)
            )
            sales = await db.execute(
                select(func.count(Sale.id)).where(Sale.medicine_id == medicine_id)
            )
            if (delegations.scalar() or 0) or (sales.scalar() or 0):
                raise Conflict(
                    f"Medicine {medicine.name} has delegation or sales history and cannot be deleted"
                )

            await db.delete(medicine)

        logger.info(f"Deleted medicine {medicine_id}")

    @staticmethod
    async def get_alerts(db: AsyncSession) -> MedicineAlerts:
        """
        Medicines that are expired, out of stock or low on stock

        Each medicine is listed once, by priority:
        expired > out of stock > low stock.
        """
        today = utcnow().date()

        result = await db.execute(
            select(Medicine)
            .where(
                or_(
                    Medicine.expiry_date < today,
                    Medicine.quantity == 0,
                    Medicine.quantity < Medicine.low_stock_threshold
                )
            )
            .order_by(Medicine.name.asc())
        )

        alerts = MedicineAlerts()
        for medicine in result.scalars().all():
            item = MedicineResponse.model_validate(medicine)
            if medicine.is_expired(today):
                alerts.expired.append(item)
            elif medicine.quantity == 0:
                alerts.out_of_stock.append(item)
            else:
                alerts.low_stock.append(item)

        alerts.counts = {
            "expired": len(alerts.expired),
            "outOfStock": len(alerts.out_of_stock),
            "lowStock": len(alerts.low_stock),
        }
        alerts.total = sum(alerts.counts.values())
        return alerts
