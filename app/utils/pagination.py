"""
Pagination Utility
Reusable pagination helper for SQLAlchemy queries
"""
from typing import TypeVar, Generic, List, Optional, Any, Callable
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import Select, func, select
from pydantic import BaseModel, Field, computed_field
from math import ceil


T = TypeVar('T')


class PaginationParams(BaseModel):
    """Request parameters for pagination"""
    page: int = Field(default=1, ge=1, le=10000, description="Page number")
    page_size: int = Field(default=50, ge=1, le=500, description="Items per page")

    @computed_field
    @property
    def skip(self) -> int:
        """Calculate offset for database query"""
        return (self.page - 1) * self.page_size

    @computed_field
    @property
    def limit(self) -> int:
        """Get limit for database query"""
        return self.page_size


class PaginatedResponse(BaseModel, Generic[T]):
    """Generic paginated response"""
    items: List[T] = Field(..., description="List of items for current page")
    total: int = Field(..., ge=0, description="Total number of items")
    page: int = Field(..., ge=1, description="Current page number")
    page_size: int = Field(..., ge=1, description="Items per page")
    total_pages: int = Field(..., ge=0, description="Total number of pages")
    has_next: bool = Field(..., description="Whether there's a next page")
    has_prev: bool = Field(..., description="Whether there's a previous page")

    model_config = {"from_attributes": True}


class Paginator:
    """
    Reusable paginator for SQLAlchemy queries

    Example usage:
        query = select(Medicine).order_by(Medicine.name)
        result = await Paginator(db).paginate(
            query=query,
            params=pagination,
            schema=MedicineResponse
        )
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _count(self, query: Select) -> int:
        count_query = select(func.count()).select_from(
            query.order_by(None).subquery()
        )
        result = await self.db.execute(count_query)
        return result.scalar() or 0

    @staticmethod
    def _build(items: List[Any], total: int, params: PaginationParams) -> PaginatedResponse:
        total_pages = ceil(total / params.page_size) if total > 0 else 0
        return PaginatedResponse(
            items=items,
            total=total,
            page=params.page,
            page_size=params.page_size,
            total_pages=total_pages,
            has_next=params.page < total_pages,
            has_prev=params.page > 1
        )

    async def paginate(
        self,
        query: Select,
        params: PaginationParams,
        schema: Optional[type] = None
    ) -> PaginatedResponse:
        """
        Paginate a query selecting one ORM entity

        Args:
            query: SQLAlchemy Select statement
            params: Pagination parameters (page, page_size)
            schema: Optional Pydantic schema to convert items to

        Returns:
            PaginatedResponse with items and pagination metadata
        """
        total = await self._count(query)

        result = await self.db.execute(query.offset(params.skip).limit(params.limit))
        items = list(result.scalars().all())

        if schema:
            items = [schema.model_validate(item) for item in items]

        return self._build(items, total, params)

    async def paginate_rows(
        self,
        query: Select,
        params: PaginationParams,
        mapper: Callable[[Any], Any]
    ) -> PaginatedResponse:
        """
        Paginate a multi-column query (joins, aggregates)

        Args:
            query: SQLAlchemy Select statement returning rows
            params: Pagination parameters
            mapper: Turns one result row into a response item

        Returns:
            PaginatedResponse with mapped items and metadata
        """
        total = await self._count(query)

        result = await self.db.execute(query.offset(params.skip).limit(params.limit))
        items = [mapper(row) for row in result.all()]

        return self._build(items, total, params)
