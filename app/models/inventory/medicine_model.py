from app.db.base import Base
from app.models.core.mixins import TimestampMixin, utcnow
from sqlalchemy import (
    String, Integer, Numeric, Date,
    ForeignKey, Index, CheckConstraint
)
from app.models.db_types import UUID
from sqlalchemy.orm import Mapped, mapped_column
from typing import Optional
from datetime import date
from decimal import Decimal
import uuid


class Medicine(Base, TimestampMixin):
    """
    Medicine catalog entry and its central stock.
    quantity is what the store holds right now, after delegations
    and direct sales have been taken out.
    """
    __tablename__ = 'medicines'

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        primary_key=True,
        default=uuid.uuid4
    )

    barcode: Mapped[Optional[str]] = mapped_column(
        String(100),
        index=True,
        comment="EAN, UPC, or other barcode"
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    generic_name: Mapped[Optional[str]] = mapped_column(String(255), index=True)

    package_type: Mapped[str] = mapped_column(
        String(50),
        default='Tablet',
        nullable=False,
        comment="Tablet, Capsule, Syrup, Injection, etc."
    )

    quantity: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Central stock on hand"
    )

    buy_price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        default=Decimal('0'),
        nullable=False
    )

    selling_price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        default=Decimal('0'),
        nullable=False
    )

    total_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal('0'),
        nullable=False,
        comment="quantity x buy_price at the last create or edit"
    )

    manufacturing_date: Mapped[Optional[date]] = mapped_column(Date)

    expiry_date: Mapped[Optional[date]] = mapped_column(Date, index=True)

    low_stock_threshold: Mapped[int] = mapped_column(
        Integer,
        default=50,
        nullable=False
    )

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(),
        ForeignKey('users.id', ondelete='SET NULL')
    )

    __table_args__ = (
        CheckConstraint('quantity >= 0', name='check_medicine_quantity_positive'),
        CheckConstraint('buy_price >= 0', name='check_medicine_buy_price_positive'),
        CheckConstraint('selling_price >= 0', name='check_medicine_selling_price_positive'),
        CheckConstraint('low_stock_threshold >= 0', name='check_medicine_threshold_positive'),
        Index('idx_medicine_stock_level', 'quantity', 'low_stock_threshold'),
    )

    def recompute_total_price(self) -> None:
        """Stock value at purchase price"""
        self.total_price = Decimal(self.quantity) * Decimal(self.buy_price or 0)

    def is_expired(self, today: Optional[date] = None) -> bool:
        """Past expiry on the given day, the current UTC day by default"""
        today = today or utcnow().date()
        return self.expiry_date is not None and self.expiry_date < today
