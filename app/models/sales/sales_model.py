from app.db.base import Base
from sqlalchemy import (
    String, Integer, DateTime, Numeric,
    ForeignKey, Index, CheckConstraint
)
from app.models.db_types import UUID
from sqlalchemy.orm import Mapped, mapped_column
from typing import Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum
import uuid

from app.models.core.mixins import TimestampMixin, utcnow


class SaleStatus(str, Enum):
    COMPLETED = "completed"
    PARTIAL_RETURN = "partial_return"
    RETURNED = "returned"

    @classmethod
    def for_quantities(cls, quantity: int, returned_quantity: int) -> "SaleStatus":
        """Status is fully determined by how much of the line came back"""
        if returned_quantity <= 0:
            return cls.COMPLETED
        if returned_quantity >= quantity:
            return cls.RETURNED
        return cls.PARTIAL_RETURN


class Sale(Base, TimestampMixin):
    """
    One sold line item. Lines of the same checkout share a receipt number.

    PRICING:
    - subtotal = quantity x selling_price
    - discount is this line's share of the checkout discount, in currency
    - total_price = subtotal - discount
    """
    __tablename__ = 'sales'

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        primary_key=True,
        default=uuid.uuid4
    )

    receipt_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment="Human-readable receipt like RCP-20260112-0001, shared by all lines"
    )

    # ==================== PATIENT DETAILS ====================

    patient_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    folder_no: Mapped[Optional[str]] = mapped_column(String(100))
    age: Mapped[Optional[int]] = mapped_column(Integer)
    sex: Mapped[Optional[str]] = mapped_column(String(20))
    phone_number: Mapped[Optional[str]] = mapped_column(String(30))
    invoice_no: Mapped[Optional[str]] = mapped_column(String(100))

    unit: Mapped[Optional[str]] = mapped_column(
        String(100),
        index=True,
        comment="Hospital unit or payer, drives the default discount"
    )

    # ==================== LINE DETAILS ====================

    medicine_id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        ForeignKey('medicines.id', ondelete='RESTRICT'),
        nullable=False,
        index=True
    )

    medicine_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Snapshot for historical records"
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    selling_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    discount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal('0'),
        nullable=False
    )

    total_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        index=True
    )

    # ==================== RETURN TRACKING ====================

    status: Mapped[str] = mapped_column(
        String(20),
        default=SaleStatus.COMPLETED.value,
        nullable=False,
        index=True,
        comment="completed, partial_return, returned"
    )

    returned_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # ==================== AUDIT ====================

    sold_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(),
        ForeignKey('users.id', ondelete='SET NULL'),
        index=True
    )

    sold_by_role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        comment="Role of the seller at sale time"
    )

    sale_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True
    )

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_sale_quantity_positive'),
        CheckConstraint('returned_quantity >= 0', name='check_sale_returned_positive'),
        CheckConstraint('returned_quantity <= quantity', name='check_sale_returned_bounded'),
        CheckConstraint('total_price >= 0', name='check_sale_total_positive'),
        CheckConstraint(
            "status IN ('completed', 'partial_return', 'returned')",
            name='check_sale_status'
        ),
        Index('idx_sale_role_date', 'sold_by_role', 'sale_date'),
        Index('idx_sale_medicine_seller', 'medicine_id', 'sold_by', 'sale_date'),
    )

    @property
    def outstanding_quantity(self) -> int:
        return self.quantity - self.returned_quantity

    def apply_returned(self, delta: int) -> None:
        """Shift returned_quantity by delta and keep status consistent"""
        self.returned_quantity += delta
        self.status = SaleStatus.for_quantities(self.quantity, self.returned_quantity).value


class SaleAllocation(Base, TimestampMixin):
    """
    Units of a sale line drawn from one delegation.
    A delegated sale touching several delegations gets one row per delegation.
    """
    __tablename__ = 'sale_allocations'

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        primary_key=True,
        default=uuid.uuid4
    )

    sale_id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        ForeignKey('sales.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )

    delegation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        ForeignKey('delegations.id', ondelete='RESTRICT'),
        nullable=False,
        index=True
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    returned_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_allocation_quantity_positive'),
        CheckConstraint('returned_quantity >= 0', name='check_allocation_returned_positive'),
        CheckConstraint('returned_quantity <= quantity', name='check_allocation_returned_bounded'),
    )

    @property
    def outstanding_quantity(self) -> int:
        return self.quantity - self.returned_quantity
