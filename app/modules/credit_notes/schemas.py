from pydantic import BaseModel, Field
from typing import Optional, List, Union
from uuid import UUID
from datetime import date, datetime
from decimal import Decimal

DateInput = Union[datetime, date, str]


class CreditNoteItemCreate(BaseModel):
    """Ítem a acreditar: por línea de factura o por producto (si aparece en una sola línea)"""
    line_id: Optional[UUID] = None
    product_id: Optional[UUID] = None
    quantity: Decimal
    price: Optional[Decimal] = Field(None, description="Por defecto el precio de la línea original")
    discount: Optional[Decimal] = Field(None, ge=0, le=100, description="Por defecto el % de la línea original")


class CreditNoteCreate(BaseModel):
    original_invoice_id: UUID
    items: List[CreditNoteItemCreate] = Field(default_factory=list)
    reason: str = ""
    discount: Optional[Decimal] = Field(None, ge=0, le=100, description="% general, por defecto el de la factura")
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100, description="% ITBIS, por defecto el de la factura")
    notes: Optional[str] = None
    date: Optional[DateInput] = None


class CreditNoteItemOut(BaseModel):
    id: UUID
    position: int
    invoice_line_id: UUID
    product_id: Optional[UUID]
    product_name: str
    quantity: Decimal
    price: Decimal
    discount: Decimal
    subtotal: Decimal
    total: Decimal

    class Config:
        from_attributes = True


class CreditNoteOut(BaseModel):
    id: UUID
    number: str
    ncf: str
    ncf_type: str
    original_invoice_id: UUID
    original_invoice_number: str
    original_invoice_ncf: Optional[str]
    client_id: Optional[UUID]
    client_name: str
    client_rnc: Optional[str]
    date: datetime
    reason: str
    subtotal: Decimal
    discount: Decimal
    discount_amount: Decimal
    tax_rate: Decimal
    tax: Decimal
    total: Decimal
    notes: Optional[str] = None
    items: List[CreditNoteItemOut]
    created_at: datetime

    class Config:
        from_attributes = True
