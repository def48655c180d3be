from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Union
from uuid import UUID
from datetime import date, datetime
from decimal import Decimal

from app.modules.invoices.models import InvoiceStatus, PaymentMethod

DateInput = Union[datetime, date, str]


# Las reglas de negocio (cantidades y precios > 0, al menos un ítem) se
# validan en el servicio para devolver mensajes en español.
class InvoiceItemCreate(BaseModel):
    product_id: UUID
    product_name: Optional[str] = Field(None, max_length=150)
    description: Optional[str] = None
    quantity: Decimal
    price: Decimal = Field(..., description="Precio unitario sin impuestos")
    discount: Decimal = Field(Decimal("0"), ge=0, le=100, description="% de descuento de la línea")


class InvoiceCreate(BaseModel):
    client_id: Optional[UUID] = None
    client_name: Optional[str] = Field(None, max_length=200)
    client_rnc: Optional[str] = Field(None, max_length=20)
    client_address: Optional[str] = Field(None, max_length=255)
    ncf_type: str = Field("S/C", description="B01, B02, B14, B15... o S/C (sin comprobante)")
    date: Optional[DateInput] = None
    due_date: Optional[DateInput] = None
    items: List[InvoiceItemCreate] = Field(default_factory=list)
    discount: Decimal = Field(Decimal("0"), ge=0, le=100, description="% de descuento general")
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100, description="% ITBIS sobre el subtotal con descuento")
    notes: Optional[str] = None
    sold_by: Optional[str] = Field(None, max_length=150)
    seller_email: Optional[str] = Field(None, max_length=150)
    payment_terms: Optional[str] = Field(None, max_length=50)

    @field_validator("ncf_type")
    @classmethod
    def normalize_ncf_type(cls, v):
        return (v or "S/C").strip().upper()


class InvoiceLineOut(BaseModel):
    id: UUID
    position: int
    product_id: Optional[UUID]
    product_name: str
    description: Optional[str] = None
    quantity: Decimal
    price: Decimal
    discount: Decimal
    subtotal: Decimal
    total: Decimal

    class Config:
        from_attributes = True


class InvoiceOut(BaseModel):
    id: UUID
    number: str
    ncf: Optional[str]
    ncf_type: str
    client_id: Optional[UUID]
    client_name: str
    client_rnc: Optional[str]
    client_address: Optional[str]
    sold_by: Optional[str] = None
    seller_email: Optional[str] = None
    payment_terms: Optional[str] = None
    date: datetime
    due_date: datetime
    status: InvoiceStatus
    subtotal: Decimal
    discount: Decimal
    discount_amount: Decimal
    tax_rate: Decimal
    tax: Decimal
    total: Decimal
    paid_amount: Decimal
    balance_due: Decimal
    notes: Optional[str] = None
    line_items: List[InvoiceLineOut] = Field(default_factory=list)
    payment_ids: List[UUID] = Field(default_factory=list)
    credit_note_ids: List[UUID] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        use_enum_values = True


class PaymentCreate(BaseModel):
    invoice_id: UUID
    amount: Decimal
    method: PaymentMethod = PaymentMethod.CASH
    payment_date: Optional[DateInput] = None
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    created_by: str = Field("Sistema", max_length=150)


class PaymentUpdate(BaseModel):
    amount: Optional[Decimal] = None
    method: Optional[PaymentMethod] = None
    payment_date: Optional[DateInput] = None
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class PaymentOut(BaseModel):
    id: UUID
    invoice_id: UUID
    invoice_number: str
    amount: Decimal
    method: PaymentMethod
    payment_date: datetime
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_by: str
    created_at: datetime

    class Config:
        from_attributes = True
        use_enum_values = True
