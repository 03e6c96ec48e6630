from app.schemas.base_schemas import CamelSchema, Money, TimestampSchema
from app.utils.pagination import PaginatedResponse
from pydantic import Field, field_validator, computed_field, ConfigDict
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
import uuid


class SaleLineCreate(CamelSchema):
    medicine_id: uuid.UUID
    quantity: int = Field(..., gt=0)
    selling_price: Money


class SaleCreate(CamelSchema):
    patient_name: str = Field(..., min_length=1, max_length=255)
    unit: Optional[str] = Field(None, max_length=100)
    medicines: List[SaleLineCreate] = Field(..., min_length=1)
    discount: Optional[Decimal] = Field(
        None,
        description="Negative: flat amount off. Zero or positive: percentage. "
                    "Omitted: the unit's default discount."
    )
    folder_no: Optional[str] = Field(None, max_length=100)
    age: Optional[int] = Field(None, ge=0, le=150)
    sex: Optional[str] = Field(None, max_length=20)
    phone_number: Optional[str] = Field(None, max_length=30)
    invoice_no: Optional[str] = Field(None, max_length=100)

    @field_validator('discount')
    @classmethod
    def validate_discount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is not None and v > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        return v

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "patientName": "Ama Mensah",
                "unit": "NHIS",
                "folderNo": "F-1021",
                "medicines": [
                    {
                        "medicineId": "123e4567-e89b-12d3-a456-426614174000",
                        "quantity": 2,
                        "sellingPrice": "12.50"
                    }
                ]
            }
        }
    )


class SaleResponse(CamelSchema, TimestampSchema):
    id: uuid.UUID
    receipt_number: str
    patient_name: str
    folder_no: Optional[str] = None
    age: Optional[int] = None
    sex: Optional[str] = None
    phone_number: Optional[str] = None
    invoice_no: Optional[str] = None
    unit: Optional[str] = None
    medicine_id: uuid.UUID
    medicine_name: str
    quantity: int
    selling_price: Decimal
    subtotal: Decimal
    discount: Decimal
    total_price: Decimal
    status: str
    returned_quantity: int
    sold_by: Optional[uuid.UUID] = None
    sold_by_role: str
    sale_date: datetime

    @computed_field
    @property
    def outstanding_quantity(self) -> int:
        return self.quantity - self.returned_quantity


class SaleAllocationResponse(CamelSchema):
    """Units of a delegated sale line drawn from one delegation"""
    delegation_id: uuid.UUID
    quantity: int
    returned_quantity: int


class SaleDetailResponse(SaleResponse):
    allocations: List[SaleAllocationResponse] = Field(default_factory=list)


class SaleCreateResponse(CamelSchema):
    receipt_number: str
    sales: List[SaleResponse]
    subtotal: Decimal
    discount_amount: Decimal
    total_amount: Decimal


class SalesTotals(CamelSchema):
    revenue: Decimal = Decimal("0")
    items_sold: int = 0
    tx_count: int = 0


class SaleListResponse(PaginatedResponse[SaleResponse]):
    totals: SalesTotals
