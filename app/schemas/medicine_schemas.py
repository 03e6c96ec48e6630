from app.schemas.base_schemas import CamelSchema, Money, TimestampSchema
from pydantic import Field, model_validator, computed_field
from typing import Optional, List, Dict
from datetime import date, datetime, timezone
from decimal import Decimal
import uuid


class MedicineBase(CamelSchema):
    name: str = Field(..., min_length=1, max_length=255, description="Brand or trade name")
    generic_name: Optional[str] = Field(None, max_length=255)
    barcode: Optional[str] = Field(
        None,
        max_length=100,
        description="EAN, UPC, or other barcode"
    )
    package_type: str = Field(
        default="Tablet",
        max_length=50,
        description="Tablet, Capsule, Syrup, Injection, etc."
    )
    buy_price: Money = Field(default=Decimal("0"), description="Purchase price per unit")
    selling_price: Money = Field(default=Decimal("0"), description="Selling price per unit")
    manufacturing_date: Optional[date] = None
    expiry_date: Optional[date] = None
    low_stock_threshold: int = Field(default=50, ge=0, description="Low stock alert threshold")

    @model_validator(mode='after')
    def validate_dates(self) -> 'MedicineBase':
        """Expiry cannot precede manufacture"""
        if self.manufacturing_date and self.expiry_date:
            if self.expiry_date < self.manufacturing_date:
                raise ValueError("Expiry date cannot be before manufacturing date")
        return self


class MedicineCreate(MedicineBase):
    quantity: int = Field(default=0, ge=0, description="Opening central stock")
    low_stock_threshold: Optional[int] = Field(
        default=None,
        ge=0,
        description="Low stock alert threshold, configured default when omitted"
    )


class MedicineUpdate(CamelSchema):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    generic_name: Optional[str] = Field(None, max_length=255)
    barcode: Optional[str] = Field(None, max_length=100)
    package_type: Optional[str] = Field(None, max_length=50)
    quantity: Optional[int] = Field(None, ge=0)
    buy_price: Optional[Money] = None
    selling_price: Optional[Money] = None
    manufacturing_date: Optional[date] = None
    expiry_date: Optional[date] = None
    low_stock_threshold: Optional[int] = Field(None, ge=0)


class MedicineResponse(MedicineBase, TimestampSchema):
    id: uuid.UUID
    quantity: int
    total_price: Decimal
    created_by: Optional[uuid.UUID] = None

    @computed_field
    @property
    def stock_status(self) -> str:
        """expired, out_of_stock, low_stock or in_stock"""
        if self.expiry_date and self.expiry_date < datetime.now(timezone.utc).date():
            return "expired"
        if self.quantity == 0:
            return "out_of_stock"
        if self.quantity < self.low_stock_threshold:
            return "low_stock"
        return "in_stock"


class MedicineAlerts(CamelSchema):
    """Medicines needing attention, each listed under exactly one category"""
    expired: List[MedicineResponse] = Field(default_factory=list)
    out_of_stock: List[MedicineResponse] = Field(default_factory=list)
    low_stock: List[MedicineResponse] = Field(default_factory=list)
    counts: Dict[str, int] = Field(default_factory=dict)
    total: int = 0
