from app.database.database import Base
from sqlalchemy import Column, Integer, String, DateTime, Uuid, CheckConstraint
from uuid import uuid4
from app.common.dates import utcnow


class NCFSequence(Base):
    """Contador de comprobantes fiscales por tipo (B01, B02, B04...)"""
    __tablename__ = "ncf_sequences"

    id = Column(Uuid, primary_key=True, default=uuid4)
    type = Column(String(3), nullable=False, unique=True)
    # Último valor emitido; el siguiente NCF es current_value + 1
    current_value = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("current_value >= 0", name="ck_ncf_sequence_non_negative"),
    )


class DocumentSequence(Base):
    """Secuencia de numeración interna por prefijo (FAC-2024-, NC-2024-)"""
    __tablename__ = "document_sequences"

    id = Column(Uuid, primary_key=True, default=uuid4)
    prefix = Column(String(20), nullable=False, unique=True)
    current_number = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
