from typing import List, Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import uuid

from app.models.system_md.sys_models import IdempotencyKey


class IdempotencyService:
    """
    Remembers which rows a keyed creation request produced.

    The key row is written in the same transaction as the resources, so a
    concurrent duplicate fails on the unique constraint and can replay the
    winner's result.
    """

    DELEGATION = "delegation"
    SALE = "sale"
    RETURN = "return"

    @staticmethod
    async def lookup(
        db: AsyncSession,
        scope: str,
        key: str,
        user_id: uuid.UUID
    ) -> Optional[List[uuid.UUID]]:
        """Resource IDs created by an earlier request with this key, if any"""
        result = await db.execute(
            select(IdempotencyKey.resource_ids).where(
                IdempotencyKey.scope == scope,
                IdempotencyKey.key == key,
                IdempotencyKey.user_id == user_id
            )
        )
        resource_ids = result.scalar_one_or_none()
        if resource_ids is None:
            return None
        return [uuid.UUID(str(rid)) for rid in resource_ids]

    @staticmethod
    def remember(
        db: AsyncSession,
        scope: str,
        key: str,
        user_id: uuid.UUID,
        resource_ids: Sequence[uuid.UUID]
    ) -> None:
        """Stage the key row; committed with the caller's transaction"""
        db.add(IdempotencyKey(
            id=uuid.uuid4(),
            scope=scope,
            key=key,
            user_id=user_id,
            resource_ids=[str(rid) for rid in resource_ids]
        ))
