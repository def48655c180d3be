from pydantic import BaseModel, Field, field_validator
from typing import Optional, Literal, Union
from uuid import UUID
from datetime import date, datetime
from decimal import Decimal

from app.modules.products.models import MovementType

StockDirection = Literal["add", "subtract"]
DateInput = Union[datetime, date, str]


class StockChange(BaseModel):
    """Cambio de stock de un producto; la dirección la da la operación, no el signo."""
    product_id: UUID
    quantity: Decimal = Field(..., gt=0, description="Cantidad, siempre positiva")
    product_name: Optional[str] = None


class MovementMetadata(BaseModel):
    """Si se indica, se registra un movimiento por producto afectado"""
    type: MovementType
    reference: Optional[str] = Field(None, max_length=100)
    date: Optional[DateInput] = None
    notes: Optional[str] = None


class AddStockRequest(BaseModel):
    quantity: Decimal = Field(..., gt=0, description="Cantidad a ingresar")
    date: Optional[DateInput] = Field(None, description="YYYY-MM-DD se ancla al mediodía local")
    notes: Optional[str] = Field(None, max_length=255)


class InventoryMovementOut(BaseModel):
    id: UUID
    product_id: Optional[UUID]
    product_name: str
    type: str
    quantity: Decimal
    reference: Optional[str]
    notes: Optional[str]
    date: datetime
    created_at: datetime

    class Config:
        from_attributes = True

    @field_validator("type", mode="before")
    @classmethod
    def movement_type_value(cls, v):
        return v.value if isinstance(v, MovementType) else v


class StockVerificationStep(BaseModel):
    step: str
    expected: Decimal
    actual: Decimal
    ok: bool
