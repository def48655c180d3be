import logging
from typing import Dict, List, Optional

from sqlalchemy import func, insert, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.common.dates import local_today, utcnow
from app.common.errors import FiscalSequenceError, ValidationError
from app.modules.ncf.models import DocumentSequence, NCFSequence

logger = logging.getLogger(__name__)

NO_RECEIPT = "S/C"  # Sin comprobante: la factura no lleva NCF
NCF_DIGITS = 8


def format_ncf(ncf_type: str, value: int) -> str:
    """B01 + 1 -> B0100000001"""
    return f"{ncf_type}{value:0{NCF_DIGITS}d}"


def parse_ncf_value(ncf: Optional[str], ncf_type: str) -> Optional[int]:
    if not ncf or not ncf.startswith(ncf_type):
        return None
    digits = ncf[len(ncf_type):]
    return int(digits) if digits.isdigit() else None


def insert_if_missing(db: Session, model, key: str, values: dict) -> None:
    """
    Crea la fila del contador si no existe.

    Dos primeras emisiones concurrentes del mismo tipo o prefijo intentan
    crearla a la vez: la segunda no falla, se queda con la fila de la primera.
    """
    table = model.__table__
    dialect = db.get_bind().dialect.name
    if dialect == "sqlite":
        db.execute(sqlite_insert(table).values(**values).on_conflict_do_nothing(index_elements=[key]))
    elif dialect == "postgresql":
        db.execute(postgresql_insert(table).values(**values).on_conflict_do_nothing(index_elements=[key]))
    else:
        try:
            with db.begin_nested():
                db.execute(insert(table).values(**values))
        except IntegrityError:
            logger.info(f"Contador {values[key]} creado por otra sesión")


class NCFSequenceAllocator:
    """
    Emisión de números de comprobante fiscal.

    El contador solo se modifica con allocate / set_sequence / resync y
    siempre dentro de la sesión de la unidad de trabajo que emite el
    documento: si la factura no se guarda, el incremento se revierte con ella.
    """

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def validate_type(ncf_type: str) -> str:
        normalized = (ncf_type or "").strip().upper()
        if normalized not in settings.ncf_types_list:
            raise ValidationError(f"Tipo de NCF inválido: {ncf_type}")
        return normalized

    def ensure_sequence(self, ncf_type: str) -> NCFSequence:
        sequence = self.db.execute(select(NCFSequence).where(NCFSequence.type == ncf_type)).scalar_one_or_none()
        if sequence is None:
            insert_if_missing(self.db, NCFSequence, "type", {"type": ncf_type, "current_value": 0})
            sequence = self.db.execute(select(NCFSequence).where(NCFSequence.type == ncf_type)).scalar_one()
        return sequence

    def allocate(self, ncf_type: str) -> int:
        """Incrementa el contador de forma atómica y devuelve el nuevo valor."""
        ncf_type = self.validate_type(ncf_type)
        sequence = self.ensure_sequence(ncf_type)

        table = NCFSequence.__table__
        stmt = (
            update(table)
            .where(table.c.type == ncf_type)
            .values(current_value=table.c.current_value + 1, updated_at=utcnow())
        )
        if self.db.get_bind().dialect.update_returning:
            value = self.db.execute(stmt.returning(table.c.current_value)).scalar_one()
        else:
            self.db.execute(stmt)
            value = self.db.execute(select(table.c.current_value).where(table.c.type == ncf_type)).scalar_one()
        self.db.expire(sequence)

        logger.info(f"NCF asignado: {format_ncf(ncf_type, value)}")
        return value

    def next_ncf(self, ncf_type: str) -> str:
        ncf_type = self.validate_type(ncf_type)
        return format_ncf(ncf_type, self.allocate(ncf_type))

    def max_issued(self, ncf_type: str) -> int:
        """Mayor número de NCF de ese tipo presente en facturas y notas de crédito."""
        from app.modules.invoices.models import Invoice
        from app.modules.credit_notes.models import CreditNote

        highest = 0
        for model in (Invoice, CreditNote):
            candidates = self.db.execute(
                select(model.ncf).where(
                    model.ncf.like(f"{ncf_type}%"),
                    func.length(model.ncf) == len(ncf_type) + NCF_DIGITS,
                ).order_by(model.ncf.desc()).limit(1)
            ).scalars().all()
            for ncf in candidates:
                value = parse_ncf_value(ncf, ncf_type)
                if value is not None and value > highest:
                    highest = value
        return highest

    def set_sequence(self, ncf_type: str, value: int) -> NCFSequence:
        """Ajuste manual; rechaza valores que volverían a emitir NCF ya usados."""
        ncf_type = self.validate_type(ncf_type)
        if value is None or int(value) < 0:
            raise ValidationError("El valor de la secuencia debe ser un entero mayor o igual a cero")
        value = int(value)

        highest = self.max_issued(ncf_type)
        if value < highest:
            raise FiscalSequenceError(
                f"No se puede establecer la secuencia {ncf_type} en {value}: "
                f"ya existe el NCF {format_ncf(ncf_type, highest)}"
            )

        sequence = self.ensure_sequence(ncf_type)
        previous = sequence.current_value
        sequence.current_value = value
        self.db.flush()
        logger.info(f"Secuencia {ncf_type} actualizada manualmente: {previous} -> {value}")
        return sequence

    def resync(self, ncf_type: str) -> int:
        """Recalcula el contador como el mayor NCF realmente emitido."""
        ncf_type = self.validate_type(ncf_type)
        highest = self.max_issued(ncf_type)
        sequence = self.ensure_sequence(ncf_type)
        if sequence.current_value != highest:
            logger.warning(f"Secuencia {ncf_type} resincronizada: {sequence.current_value} -> {highest}")
        sequence.current_value = highest
        self.db.flush()
        return highest

    def list_sequences(self) -> List[NCFSequence]:
        for ncf_type in settings.ncf_types_list:
            self.ensure_sequence(ncf_type)
        return list(self.db.execute(select(NCFSequence).order_by(NCFSequence.type)).scalars().all())

    def sync_all(self) -> Dict[str, int]:
        return {ncf_type: self.resync(ncf_type) for ncf_type in settings.ncf_types_list}


class DocumentNumberAllocator:
    """Numeración interna legible: FAC-2024-001, NC-2024-001..."""

    def __init__(self, db: Session):
        self.db = db

    def next_number(self, prefix: str, year: Optional[int] = None, model=None) -> str:
        year = year or local_today().year
        key = f"{prefix}-{year}-"
        sequence = self.db.execute(select(DocumentSequence).where(DocumentSequence.prefix == key)).scalar_one_or_none()
        if sequence is None:
            insert_if_missing(
                self.db, DocumentSequence, "prefix",
                {"prefix": key, "current_number": self._highest_existing(key, model)},
            )
            sequence = self.db.execute(select(DocumentSequence).where(DocumentSequence.prefix == key)).scalar_one()

        table = DocumentSequence.__table__
        stmt = (
            update(table)
            .where(table.c.prefix == key)
            .values(current_number=table.c.current_number + 1, updated_at=utcnow())
        )
        if self.db.get_bind().dialect.update_returning:
            number = self.db.execute(stmt.returning(table.c.current_number)).scalar_one()
        else:
            self.db.execute(stmt)
            number = self.db.execute(select(table.c.current_number).where(table.c.prefix == key)).scalar_one()
        self.db.expire(sequence)
        return f"{key}{number:03d}"

    def _highest_existing(self, key: str, model) -> int:
        # Primera vez para el prefijo: continuar después de los números ya guardados
        if model is None:
            return 0
        highest = 0
        numbers = self.db.execute(select(model.number).where(model.number.like(f"{key}%"))).scalars().all()
        for number in numbers:
            tail = number[len(key):]
            if tail.isdigit():
                highest = max(highest, int(tail))
        return highest
