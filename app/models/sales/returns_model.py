from app.db.base import Base
from sqlalchemy import (
    String, Integer, Boolean, DateTime, Numeric, Text,
    ForeignKey, Index, CheckConstraint
)
from app.models.db_types import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
import uuid

from app.models.core.mixins import TimestampMixin, utcnow


class SalesReturn(Base, TimestampMixin):
    """
    Goods brought back against one sale line.
    Totals are computed server-side when the return is recorded.
    """
    __tablename__ = 'sales_returns'

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        primary_key=True,
        default=uuid.uuid4
    )

    sale_id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        ForeignKey('sales.id', ondelete='RESTRICT'),
        nullable=False,
        index=True
    )

    patient_name: Mapped[str] = mapped_column(String(255), nullable=False)

    total_returned: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal('0'),
        nullable=False,
        comment="Sum of refunds on this return"
    )

    total_original: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Sale line total at the time of return"
    )

    is_full_return: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    return_reason: Mapped[Optional[str]] = mapped_column(Text)

    returned_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(),
        ForeignKey('users.id', ondelete='SET NULL')
    )

    return_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True
    )

    # Relationships
    items: Mapped[List["SalesReturnItem"]] = relationship(
        back_populates="sales_return",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SalesReturnItem.created_at"
    )

    __table_args__ = (
        CheckConstraint('total_returned >= 0', name='check_return_total_positive'),
    )


class SalesReturnItem(Base, TimestampMixin):
    """
    Returned units of one medicine.
    allocation_id is set when the units went back into a delegation
    rather than central stock.
    """
    __tablename__ = 'sales_return_items'

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        primary_key=True,
        default=uuid.uuid4
    )

    return_id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        ForeignKey('sales_returns.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )

    medicine_id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        ForeignKey('medicines.id', ondelete='RESTRICT'),
        nullable=False,
        index=True
    )

    medicine_name: Mapped[str] = mapped_column(String(255), nullable=False)

    allocation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(),
        ForeignKey('sale_allocations.id', ondelete='RESTRICT'),
        index=True
    )

    quantity_returned: Mapped[int] = mapped_column(Integer, nullable=False)

    refund_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal('0'),
        nullable=False
    )

    # Relationships
    sales_return: Mapped["SalesReturn"] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint('quantity_returned > 0', name='check_return_item_quantity_positive'),
        CheckConstraint('refund_amount >= 0', name='check_return_item_refund_positive'),
        Index('idx_return_item_return_allocation', 'return_id', 'allocation_id'),
    )
