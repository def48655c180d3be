from app.database.database import Base
from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship
from app.common.mixins import BaseMixin, enum_values
from app.modules.invoices.models import PaymentMethod
import enum


class ExpenseStatus(enum.Enum):
    PENDING = "Pendiente"
    PARTIAL = "Parcial"
    PAID = "Pagada"


class RecurrenceFrequency(enum.Enum):
    WEEKLY = "Semanal"
    BIWEEKLY = "Quincenal"
    MONTHLY = "Mensual"
    YEARLY = "Anual"


class Expense(Base, BaseMixin):
    __tablename__ = "expenses"

    description = Column(String(255), nullable=False)
    category = Column(String(100), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    date = Column(DateTime(timezone=True), nullable=False, index=True)

    # Proveedor y su factura
    supplier = Column(String(200), nullable=True)
    invoice_number = Column(String(50), nullable=True)

    payment_method = Column(Enum(PaymentMethod, values_callable=enum_values, name="expense_payment_method"),
                            nullable=False, default=PaymentMethod.CASH)
    reference = Column(String(100), nullable=True)
    status = Column(Enum(ExpenseStatus, values_callable=enum_values, name="expense_status"),
                    nullable=False, default=ExpenseStatus.PENDING, index=True)
    # Suma de expense_payments
    paid_amount = Column(Numeric(15, 2), nullable=False, default=0)
    last_payment_date = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    # Gasto generado por una plantilla recurrente
    recurring_expense_id = Column(Uuid, ForeignKey("recurring_expenses.id", ondelete="SET NULL"), nullable=True)

    payments = relationship("ExpensePayment", back_populates="expense", cascade="all, delete-orphan",
                            order_by="ExpensePayment.date")


class ExpensePayment(Base, BaseMixin):
    """Abono a un gasto"""
    __tablename__ = "expense_payments"

    expense_id = Column(Uuid, ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    method = Column(Enum(PaymentMethod, values_callable=enum_values, name="expense_payment_method"),
                    nullable=False, default=PaymentMethod.CASH)
    date = Column(DateTime(timezone=True), nullable=False, index=True)
    notes = Column(Text, nullable=True)

    expense = relationship("Expense", back_populates="payments")


class RecurringExpense(Base, BaseMixin):
    """Plantilla que genera un gasto Pendiente cada ciclo"""
    __tablename__ = "recurring_expenses"

    description = Column(String(255), nullable=False)
    category = Column(String(100), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    supplier = Column(String(200), nullable=True)

    frequency = Column(Enum(RecurrenceFrequency, values_callable=enum_values, name="recurrence_frequency"),
                       nullable=False)
    day_of_month = Column(Integer, nullable=True)  # Solo para Mensual
    next_run = Column(DateTime(timezone=True), nullable=False, index=True)
    active = Column(Boolean, nullable=False, default=True)
    last_generated = Column(DateTime(timezone=True), nullable=True)
