from pydantic import BaseModel, Field
from typing import Optional, List, Union
from uuid import UUID
from datetime import date, datetime
from decimal import Decimal

from app.modules.expenses.models import ExpenseStatus, RecurrenceFrequency
from app.modules.invoices.models import PaymentMethod

DateInput = Union[datetime, date, str]


# ===== GASTOS =====

class ExpenseCreate(BaseModel):
    description: str = Field(..., max_length=255)
    category: str = Field(..., max_length=100)
    amount: Decimal
    date: Optional[DateInput] = None
    supplier: Optional[str] = Field(None, max_length=200)
    invoice_number: Optional[str] = Field(None, max_length=50, description="Factura del proveedor")
    payment_method: PaymentMethod = PaymentMethod.CASH
    reference: Optional[str] = Field(None, max_length=100)
    status: ExpenseStatus = Field(ExpenseStatus.PENDING, description="Pagada registra el abono por el total")
    paid_amount: Decimal = Field(Decimal("0"), ge=0, description="Abono inicial")
    notes: Optional[str] = None


class ExpenseUpdate(BaseModel):
    """Campos descriptivos y monto; lo pagado solo cambia con abonos"""
    description: Optional[str] = Field(None, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    amount: Optional[Decimal] = None
    date: Optional[DateInput] = None
    supplier: Optional[str] = Field(None, max_length=200)
    invoice_number: Optional[str] = Field(None, max_length=50)
    payment_method: Optional[PaymentMethod] = None
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class ExpensePaymentCreate(BaseModel):
    amount: Decimal
    method: PaymentMethod = PaymentMethod.CASH
    date: Optional[DateInput] = None
    notes: Optional[str] = None


class ExpensePaymentOut(BaseModel):
    id: UUID
    expense_id: UUID
    amount: Decimal
    method: PaymentMethod
    date: datetime
    notes: Optional[str] = None

    class Config:
        from_attributes = True
        use_enum_values = True


class ExpenseOut(BaseModel):
    id: UUID
    description: str
    category: str
    amount: Decimal
    date: datetime
    supplier: Optional[str] = None
    invoice_number: Optional[str] = None
    payment_method: PaymentMethod
    reference: Optional[str] = None
    status: ExpenseStatus
    paid_amount: Decimal
    last_payment_date: Optional[datetime] = None
    notes: Optional[str] = None
    recurring_expense_id: Optional[UUID] = None
    payments: List[ExpensePaymentOut] = []
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        use_enum_values = True


# ===== GASTOS RECURRENTES =====

class RecurringExpenseCreate(BaseModel):
    description: str = Field(..., max_length=255)
    category: str = Field(..., max_length=100)
    amount: Decimal
    supplier: Optional[str] = Field(None, max_length=200)
    frequency: RecurrenceFrequency
    day_of_month: Optional[int] = Field(None, ge=1, le=31, description="Solo para frecuencia Mensual")
    next_run: DateInput = Field(..., description="Primera generación; YYYY-MM-DD se ancla al mediodía local")
    active: bool = True


class RecurringExpenseOut(BaseModel):
    id: UUID
    description: str
    category: str
    amount: Decimal
    supplier: Optional[str] = None
    frequency: RecurrenceFrequency
    day_of_month: Optional[int] = None
    next_run: datetime
    active: bool
    last_generated: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        use_enum_values = True
