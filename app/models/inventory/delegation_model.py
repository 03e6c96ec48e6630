from app.db.base import Base
from app.models.core.mixins import TimestampMixin, utcnow
from sqlalchemy import (
    String, Integer, Text, Boolean, DateTime,
    ForeignKey, Index, CheckConstraint
)
from app.models.db_types import UUID
from sqlalchemy.orm import Mapped, mapped_column
from typing import Optional
from datetime import datetime
import uuid

from app.core.roles import DelegationTarget


TARGET_VALUES = ", ".join(f"'{target.value}'" for target in DelegationTarget)


class Delegation(Base, TimestampMixin):
    """
    Allocation of central stock to a recipient role.

    quantity and original_quantity are written once at creation and never
    changed. The balance still available to the recipient is derived from
    the sale allocations drawn against the delegation.
    """
    __tablename__ = 'delegations'

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        primary_key=True,
        default=uuid.uuid4
    )

    medicine_id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        ForeignKey('medicines.id', ondelete='RESTRICT'),
        nullable=False,
        index=True
    )

    delegated_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(),
        ForeignKey('users.id', ondelete='SET NULL')
    )

    delegated_to: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        comment="ipp, dispensary, other"
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    original_quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Amount allocated at creation"
    )

    generic_name: Mapped[Optional[str]] = mapped_column(String(255))

    remarks: Mapped[Optional[str]] = mapped_column(Text)

    delegation_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True
    )

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_delegation_quantity_positive'),
        CheckConstraint('original_quantity > 0', name='check_delegation_original_positive'),
        CheckConstraint(f"delegated_to IN ({TARGET_VALUES})", name='check_delegated_to'),
        Index('idx_delegation_target_medicine', 'delegated_to', 'medicine_id', 'delegation_date'),
    )


class DelegationNotification(Base, TimestampMixin):
    """Inbox entry telling a delegated role that stock was allocated to it"""
    __tablename__ = 'delegation_notifications'

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        primary_key=True,
        default=uuid.uuid4
    )

    medicine_id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        ForeignKey('medicines.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )

    delegated_to: Mapped[str] = mapped_column(String(20), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    message: Mapped[str] = mapped_column(Text, nullable=False)

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index('idx_delegation_notification_inbox', 'delegated_to', 'is_read', 'created_at'),
    )
