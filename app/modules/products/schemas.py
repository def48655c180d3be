from pydantic import BaseModel, Field
from uuid import UUID
from typing import Optional
from datetime import datetime
from decimal import Decimal

from app.modules.products.models import ProductType, ProductStatus


class ProductCreate(BaseModel):
    """Schema para crear producto. SKU y categoría se generan si no se indican."""
    name: str = Field(..., min_length=1, max_length=150)
    type: ProductType = ProductType.RAW_MATERIAL
    sku: Optional[str] = Field(None, max_length=50)
    category: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0, description="Precio de venta")
    cost: Decimal = Field(..., ge=0, description="Costo unitario")
    stock: Decimal = Field(Decimal("0"), ge=0, description="Stock inicial, se registra como ENTRADA")
    min_stock: Decimal = Field(Decimal("0"), ge=0)
    unit: str = Field("Unidad", max_length=20)


class ProductUpdate(BaseModel):
    """Campos descriptivos; el stock solo cambia por movimientos de inventario."""
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    type: Optional[ProductType] = None
    category: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    cost: Optional[Decimal] = Field(None, ge=0)
    min_stock: Optional[Decimal] = Field(None, ge=0)
    unit: Optional[str] = Field(None, max_length=20)
    status: Optional[ProductStatus] = None


class ProductOut(BaseModel):
    id: UUID
    name: str
    sku: str
    type: ProductType
    category: str
    description: Optional[str] = None
    price: Decimal
    cost: Decimal
    stock: Decimal
    min_stock: Decimal
    unit: str
    status: ProductStatus
    is_low_stock: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        use_enum_values = True
