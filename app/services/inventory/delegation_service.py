"""
Delegation Service
Allocating central stock to recipient roles and projecting what is left
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, update
from sqlalchemy.exc import IntegrityError
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import uuid

from app.core.config import get_settings
from app.core.exceptions import InsufficientStock, NotFound
from app.core.roles import DelegationTarget, Role
from app.db.session import atomic
from app.models.core.mixins import utcnow
from app.models.inventory.delegation_model import Delegation, DelegationNotification
from app.models.inventory.medicine_model import Medicine
from app.models.sales.sales_model import SaleAllocation
from app.models.user.user_model import User
from app.schemas.delegation_schemas import (
    DelegationCreate, DelegationResponse,
    DelegationNotificationResponse, NotificationInbox
)
from app.services.system.idempotency_service import IdempotencyService
from app.utils.pagination import PaginatedResponse, PaginationParams, Paginator


logger = logging.getLogger(__name__)
settings = get_settings()


def _sold_subquery():
    """Units sold and not returned, per delegation"""
    return (
        select(
            SaleAllocation.delegation_id.label("delegation_id"),
            func.sum(
                SaleAllocation.quantity - SaleAllocation.returned_quantity
            ).label("sold")
        )
        .group_by(SaleAllocation.delegation_id)
        .subquery()
    )


def _build_response(delegation: Delegation, medicine_name: str, sold: int) -> DelegationResponse:
    response = DelegationResponse.model_validate(delegation)
    response.medicine_name = medicine_name
    response.sold_quantity = sold
    response.remaining_quantity = max(0, delegation.original_quantity - sold)
    return response


def _to_response(row) -> DelegationResponse:
    delegation, medicine_name, sold = row
    return _build_response(delegation, medicine_name, int(sold or 0))


class DelegationService:
    """Service for the delegation ledger"""

    @staticmethod
    def _projection_query():
        sold = _sold_subquery()
        return (
            select(Delegation, Medicine.name, func.coalesce(sold.c.sold, 0))
            .join(Medicine, Medicine.id == Delegation.medicine_id)
            .outerjoin(sold, sold.c.delegation_id == Delegation.id)
        )

    @staticmethod
    async def sold_by_delegation(
        db: AsyncSession,
        delegation_ids: Sequence[uuid.UUID]
    ) -> Dict[uuid.UUID, int]:
        """Net sold quantity for each delegation ID given"""
        if not delegation_ids:
            return {}
        result = await db.execute(
            select(
                SaleAllocation.delegation_id,
                func.sum(SaleAllocation.quantity - SaleAllocation.returned_quantity)
            )
            .where(SaleAllocation.delegation_id.in_(list(delegation_ids)))
            .group_by(SaleAllocation.delegation_id)
        )
        return {delegation_id: int(sold or 0) for delegation_id, sold in result.all()}

    @staticmethod
    async def remaining_quantity(db: AsyncSession, delegation: Delegation) -> int:
        sold = await DelegationService.sold_by_delegation(db, [delegation.id])
        return max(0, delegation.original_quantity - sold.get(delegation.id, 0))

    @staticmethod
    async def open_delegations(
        db: AsyncSession,
        role: Role,
        medicine_id: uuid.UUID,
        lock: bool = False
    ) -> List[Tuple[Delegation, int]]:
        """
        Delegations of a medicine to a role that still have stock, oldest first

        Args:
            db: Database session
            role: Delegated role whose balance is read
            medicine_id: Medicine ID
            lock: Lock the delegation rows for the rest of the transaction

        Returns:
            List of (delegation, remaining_quantity) in FIFO order
        """
        query = (
            select(Delegation)
            .where(
                Delegation.delegated_to == role.value,
                Delegation.medicine_id == medicine_id
            )
            .order_by(Delegation.delegation_date.asc(), Delegation.created_at.asc())
        )
        if lock:
            query = query.with_for_update()

        result = await db.execute(query)
        delegations = list(result.scalars().all())

        sold = await DelegationService.sold_by_delegation(db, [d.id for d in delegations])

        pool = []
        for delegation in delegations:
            remaining = max(0, delegation.original_quantity - sold.get(delegation.id, 0))
            if remaining > 0:
                pool.append((delegation, remaining))
        return pool

    @staticmethod
    async def create_delegation(
        db: AsyncSession,
        data: DelegationCreate,
        current_user: User,
        idempotency_key: Optional[str] = None
    ) -> DelegationResponse:
        """
        Move stock from the central store to a recipient role

        Steps, all in one transaction:
        1. Lock the medicine row
        2. Insert the delegation with quantity = original_quantity
        3. Decrement central stock
        4. Notify the recipient when it is a delegated role

        Raises:
            NotFound: Medicine does not exist
            InsufficientStock: Central stock is below the requested amount
        """
        user_id = current_user.id

        if idempotency_key:
            replay = await IdempotencyService.lookup(
                db, IdempotencyService.DELEGATION, idempotency_key, user_id
            )
            if replay:
                logger.info(f"Replaying delegation for idempotency key {idempotency_key}")
                return await DelegationService.get_delegation(db, replay[0])

        target = DelegationTarget(data.delegated_to)

        try:
            async with atomic(db):
                # Step 1: Lock medicine
                result = await db.execute(
                    select(Medicine)
                    .where(Medicine.id == data.medicine_id)
                    .with_for_update()
                )
                medicine = result.scalar_one_or_none()

                if not medicine:
                    raise NotFound(f"Medicine {data.medicine_id} not found")

                if medicine.quantity < data.quantity:
                    logger.warning(
                        f"Delegation of {data.quantity} {medicine.name} rejected, "
                        f"only {medicine.quantity} in stock"
                    )
                    raise InsufficientStock(medicine.quantity, data.quantity, medicine.name)

                # Step 2: Insert delegation
                delegation = Delegation(
                    id=uuid.uuid4(),
                    medicine_id=medicine.id,
                    delegated_by=user_id,
                    delegated_to=target.value,
                    quantity=data.quantity,
                    original_quantity=data.quantity,
                    generic_name=data.generic_name or medicine.generic_name,
                    remarks=data.remarks,
                    delegation_date=data.delegation_date or utcnow(),
                )
                db.add(delegation)

                # Step 3: Decrement central stock
                medicine.quantity -= data.quantity

                # Step 4: Notify recipient
                if target.is_notified:
                    db.add(DelegationNotification(
                        id=uuid.uuid4(),
                        medicine_id=medicine.id,
                        delegated_to=target.value,
                        quantity=data.quantity,
                        message=(
                            f"{data.quantity} unit(s) of {medicine.name} "
                            f"has been delegated to {target.value.upper()}"
                        ),
                        is_read=False,
                    ))

                if idempotency_key:
                    IdempotencyService.remember(
                        db, IdempotencyService.DELEGATION, idempotency_key,
                        user_id, [delegation.id]
                    )

        except IntegrityError:
            if idempotency_key:
                replay = await IdempotencyService.lookup(
                    db, IdempotencyService.DELEGATION, idempotency_key, user_id
                )
                if replay:
                    return await DelegationService.get_delegation(db, replay[0])
            raise

        logger.info(
            f"Delegated {delegation.original_quantity} of {medicine.name} "
            f"to {target.value}, central stock now {medicine.quantity}"
        )

        return _build_response(delegation, medicine.name, 0)

    @staticmethod
    async def get_delegation(db: AsyncSession, delegation_id: uuid.UUID) -> DelegationResponse:
        result = await db.execute(
            DelegationService._projection_query().where(Delegation.id == delegation_id)
        )
        row = result.one_or_none()
        if not row:
            raise NotFound(f"Delegation {delegation_id} not found")
        return _to_response(row)

    @staticmethod
    async def list_delegations(
        db: AsyncSession,
        params: PaginationParams,
        delegated_to: Optional[DelegationTarget] = None,
        medicine_id: Optional[uuid.UUID] = None
    ) -> PaginatedResponse:
        """
        Every delegation with its derived sold and remaining quantities

        Args:
            db: Database session
            params: Pagination parameters
            delegated_to: Optional recipient filter
            medicine_id: Optional medicine filter

        Returns:
            PaginatedResponse of DelegationResponse, newest first
        """
        query = DelegationService._projection_query()

        if delegated_to:
            query = query.where(Delegation.delegated_to == DelegationTarget(delegated_to).value)
        if medicine_id:
            query = query.where(Delegation.medicine_id == medicine_id)

        query = query.order_by(Delegation.delegation_date.desc(), Delegation.created_at.desc())

        return await Paginator(db).paginate_rows(query, params, _to_response)

    @staticmethod
    async def units_in_stock(db: AsyncSession, role: Role) -> Tuple[int, int]:
        """
        Delegated stock a role can still sell

        Returns:
            Tuple of (total remaining units, delegations with stock left)
        """
        result = await db.execute(
            DelegationService._projection_query().where(
                Delegation.delegated_to == role.value
            )
        )
        remaining = [_to_response(row).remaining_quantity for row in result.all()]
        return sum(remaining), sum(1 for r in remaining if r > 0)

    # ==================== NOTIFICATIONS ====================

    @staticmethod
    async def get_notifications(db: AsyncSession, role: Role) -> NotificationInbox:
        """Unread notifications for a delegated role, newest first"""
        if not role.is_delegated:
            return NotificationInbox(notifications=[], unread_count=0)

        unread = (
            DelegationNotification.delegated_to == role.value,
            DelegationNotification.is_read.is_(False),
        )

        result = await db.execute(
            select(DelegationNotification)
            .where(*unread)
            .order_by(DelegationNotification.created_at.desc())
            .limit(settings.DELEGATION_NOTIFICATION_LIMIT)
        )
        notifications = result.scalars().all()

        count = await db.execute(
            select(func.count(DelegationNotification.id)).where(*unread)
        )

        return NotificationInbox(
            notifications=[
                DelegationNotificationResponse.model_validate(n) for n in notifications
            ],
            unread_count=count.scalar() or 0
        )

    @staticmethod
    async def mark_notification_read(
        db: AsyncSession,
        notification_id: uuid.UUID,
        role: Role
    ) -> int:
        result = await db.execute(
            select(DelegationNotification).where(
                DelegationNotification.id == notification_id,
                DelegationNotification.delegated_to == role.value
            )
        )
        notification = result.scalar_one_or_none()
        if not notification:
            raise NotFound(f"Notification {notification_id} not found")

        async with atomic(db):
            notification.is_read = True
        return 1

    @staticmethod
    async def mark_all_notifications_read(db: AsyncSession, role: Role) -> int:
        if not role.is_delegated:
            return 0

        async with atomic(db):
            result = await db.execute(
                update(DelegationNotification)
                .where(
                    DelegationNotification.delegated_to == role.value,
                    DelegationNotification.is_read.is_(False)
                )
                .values(is_read=True, updated_at=utcnow())
            )

        logger.info(f"Marked {result.rowcount} notification(s) read for {role.value}")
        return result.rowcount
