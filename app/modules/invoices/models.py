from app.database.database import Base
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, Enum, Text, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from app.common.mixins import BaseMixin, TimestampMixin, enum_values
import enum


class InvoiceStatus(enum.Enum):
    PENDING = "Pendiente"
    PARTIAL = "Parcial"                          # Pago parcial
    PAID = "Pagada"
    OVERDUE = "Vencida"
    VOID = "Anulada"                             # Nota de crédito por el total
    PARTIAL_CREDIT = "Nota de Crédito Parcial"


# Estados con saldo por cobrar
OUTSTANDING_STATUSES = (
    InvoiceStatus.PENDING,
    InvoiceStatus.PARTIAL,
    InvoiceStatus.OVERDUE,
    InvoiceStatus.PARTIAL_CREDIT,
)


class PaymentMethod(enum.Enum):
    CASH = "Efectivo"
    TRANSFER = "Transferencia"
    CHECK = "Cheque"
    CARD = "Tarjeta"


class Invoice(Base, BaseMixin):
    __tablename__ = "invoices"

    # Numeración
    number = Column(String(50), nullable=False, unique=True)  # FAC-2024-001
    ncf = Column(String(20), nullable=True, unique=True)       # Sin NCF cuando el tipo es S/C
    ncf_type = Column(String(3), nullable=False, default="S/C")

    # Snapshot del cliente al momento de emitir; no sigue cambios del cliente
    client_id = Column(Uuid, ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True)
    client_name = Column(String(200), nullable=False)
    client_rnc = Column(String(20), nullable=True)
    client_address = Column(String(255), nullable=True)

    sold_by = Column(String(150), nullable=True)
    seller_email = Column(String(150), nullable=True)
    payment_terms = Column(String(50), nullable=True)  # 'Contado', '15 Días', etc.

    # Dates
    date = Column(DateTime(timezone=True), nullable=False, index=True)
    due_date = Column(DateTime(timezone=True), nullable=False)

    status = Column(Enum(InvoiceStatus, values_callable=enum_values, name="invoice_status"),
                    nullable=False, default=InvoiceStatus.PENDING, index=True)

    # Totals (calculated)
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)         # Después del descuento general
    discount = Column(Numeric(5, 2), nullable=False, default=0)          # % descuento general
    discount_amount = Column(Numeric(15, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)          # % ITBIS
    tax = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False, default=0)
    # Pagos + notas de crédito aplicadas
    paid_amount = Column(Numeric(15, 2), nullable=False, default=0)

    notes = Column(Text, nullable=True)

    # Relationships
    line_items = relationship("InvoiceLineItem", back_populates="invoice", cascade="all, delete-orphan",
                              order_by="InvoiceLineItem.position")
    payments = relationship("Payment", back_populates="invoice", cascade="all, delete-orphan",
                            order_by="Payment.payment_date")

    @property
    def payment_ids(self):
        return [payment.id for payment in self.payments]

    @property
    def balance_due(self):
        """Calcular saldo pendiente"""
        return self.total - self.paid_amount


class InvoiceLineItem(Base, TimestampMixin):
    __tablename__ = "invoice_line_items"

    id = Column(Uuid, primary_key=True, default=uuid4)
    invoice_id = Column(Uuid, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=1)
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)

    # Snapshot data (para preservar información si el producto cambia)
    product_name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)

    # Line calculations
    quantity = Column(Numeric(12, 3), nullable=False)
    price = Column(Numeric(15, 2), nullable=False)
    discount = Column(Numeric(5, 2), nullable=False, default=0)  # % descuento de línea
    subtotal = Column(Numeric(15, 2), nullable=False)            # quantity * price
    total = Column(Numeric(15, 2), nullable=False)               # subtotal - descuento

    # Relationships
    invoice = relationship("Invoice", back_populates="line_items")


class Payment(Base, BaseMixin):
    __tablename__ = "payments"

    invoice_id = Column(Uuid, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice_number = Column(String(50), nullable=False)  # Snapshot

    amount = Column(Numeric(15, 2), nullable=False)
    method = Column(Enum(PaymentMethod, values_callable=enum_values, name="payment_method"), nullable=False)
    reference = Column(String(100), nullable=True)  # Número de referencia, cheque, etc.
    payment_date = Column(DateTime(timezone=True), nullable=False, index=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(150), nullable=False, default="Sistema")

    # Relationships
    invoice = relationship("Invoice", back_populates="payments")
