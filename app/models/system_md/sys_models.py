from app.db.base import Base
from app.models.core.mixins import TimestampMixin
from sqlalchemy import String, ForeignKey, UniqueConstraint
from app.models.db_types import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from typing import List
import uuid


class IdempotencyKey(Base, TimestampMixin):
    """
    Creation requests already served, keyed by the client's Idempotency-Key.
    A retry with the same key replays the stored resources instead of
    writing again.
    """
    __tablename__ = 'idempotency_keys'

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        primary_key=True,
        default=uuid.uuid4
    )

    scope: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="delegation, sale, return"
    )

    key: Mapped[str] = mapped_column(String(255), nullable=False)

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        ForeignKey('users.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )

    resource_ids: Mapped[List[str]] = mapped_column(
        JSONB,
        nullable=False,
        comment="IDs of the rows the original request created"
    )

    __table_args__ = (
        UniqueConstraint('scope', 'key', 'user_id', name='uq_idempotency_scope_key_user'),
    )
