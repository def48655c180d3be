from app.database.database import Base
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, Text, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from app.common.mixins import BaseMixin


class CreditNote(Base, BaseMixin):
    """
    Nota de crédito (comprobante B04). Inmutable una vez creada.

    Guarda número, NCF y cliente de la factura original como snapshot; sigue
    existiendo aunque la factura se elimine.
    """
    __tablename__ = "credit_notes"

    number = Column(String(50), nullable=False, unique=True)  # NC-2024-001
    ncf = Column(String(20), nullable=False, unique=True)
    ncf_type = Column(String(3), nullable=False, default="B04")

    original_invoice_id = Column(Uuid, nullable=False, index=True)
    original_invoice_number = Column(String(50), nullable=False)
    original_invoice_ncf = Column(String(20), nullable=True)

    client_id = Column(Uuid, ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True)
    client_name = Column(String(200), nullable=False)
    client_rnc = Column(String(20), nullable=True)

    date = Column(DateTime(timezone=True), nullable=False, index=True)
    reason = Column(Text, nullable=False)

    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    discount = Column(Numeric(5, 2), nullable=False, default=0)       # %
    discount_amount = Column(Numeric(15, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)       # %
    tax = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False, default=0)

    notes = Column(Text, nullable=True)

    items = relationship("CreditNoteItem", back_populates="credit_note", cascade="all, delete-orphan",
                         order_by="CreditNoteItem.position")


class CreditNoteItem(Base):
    __tablename__ = "credit_note_items"

    id = Column(Uuid, primary_key=True, default=uuid4)
    credit_note_id = Column(Uuid, ForeignKey("credit_notes.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=1)
    # Línea de la factura original que se acredita (sin FK: la factura puede borrarse)
    invoice_line_id = Column(Uuid, nullable=False, index=True)
    product_id = Column(Uuid, nullable=True)

    product_name = Column(String(150), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    price = Column(Numeric(15, 2), nullable=False)
    discount = Column(Numeric(5, 2), nullable=False, default=0)
    subtotal = Column(Numeric(15, 2), nullable=False)
    total = Column(Numeric(15, 2), nullable=False)

    credit_note = relationship("CreditNote", back_populates="items")
