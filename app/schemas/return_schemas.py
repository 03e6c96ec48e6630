from app.schemas.base_schemas import CamelSchema, Money, TimestampSchema
from pydantic import Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
import uuid


class ReturnItemCreate(CamelSchema):
    medicine_id: uuid.UUID
    quantity_returned: int = Field(..., gt=0)
    refund_amount: Optional[Money] = Field(
        None,
        description="Defaults to the pro-rata share of the line total"
    )


class ReturnCreate(CamelSchema):
    sale_id: uuid.UUID
    patient_name: str = Field(..., min_length=1, max_length=255)
    medicines: List[ReturnItemCreate] = Field(..., min_length=1)
    return_reason: Optional[str] = Field(None, max_length=2000)

    # Accepted for compatibility; recomputed on the server
    total_returned: Optional[Decimal] = None
    total_original: Optional[Decimal] = None
    is_full_return: Optional[bool] = None


class ReturnItemResponse(CamelSchema):
    id: uuid.UUID
    medicine_id: uuid.UUID
    medicine_name: str
    allocation_id: Optional[uuid.UUID] = None
    quantity_returned: int
    refund_amount: Decimal


class ReturnResponse(CamelSchema, TimestampSchema):
    id: uuid.UUID
    sale_id: uuid.UUID
    patient_name: str
    total_returned: Decimal
    total_original: Decimal
    is_full_return: bool
    return_reason: Optional[str] = None
    returned_by: Optional[uuid.UUID] = None
    return_date: datetime
    items: List[ReturnItemResponse]
