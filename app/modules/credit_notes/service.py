import logging
from collections import OrderedDict
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.core.config import settings
from app.common.dates import local_today, month_range, parse_movement_date
from app.common.errors import (
    ConsistencyError, CreditLimitExceededError, FiscalSequenceError, NotFoundError, ValidationError,
    format_quantity,
)
from app.common.validators import to_decimal
from app.modules.credit_notes.models import CreditNote, CreditNoteItem
from app.modules.credit_notes.schemas import CreditNoteCreate, CreditNoteItemCreate
from app.modules.inventory.schemas import MovementMetadata, StockChange
from app.modules.invoices.models import Invoice, InvoiceStatus
from app.modules.invoices.service import DUPLICATE_NCF_MESSAGE, InvoiceService, compute_line, compute_totals
from app.modules.ncf.service import DocumentNumberAllocator, NCFSequenceAllocator
from app.modules.products.models import MovementType, Product

logger = logging.getLogger(__name__)


def credited_quantities(db: Session, invoice_id: UUID) -> Dict[UUID, Decimal]:
    """Cantidad ya acreditada por línea de la factura, sumando todas sus notas de crédito."""
    rows = db.execute(
        select(CreditNoteItem.invoice_line_id, func.sum(CreditNoteItem.quantity))
        .join(CreditNote, CreditNote.id == CreditNoteItem.credit_note_id)
        .where(CreditNote.original_invoice_id == invoice_id)
        .group_by(CreditNoteItem.invoice_line_id)
    ).all()
    return {line_id: to_decimal(quantity) for line_id, quantity in rows}


class CreditNoteService:
    """
    Emisión de notas de crédito (B04).

    Una nota de crédito revierte total o parcialmente una factura: devuelve
    mercancía al stock y reduce lo adeudado. No se edita ni se elimina; una
    corrección requiere otra nota.
    """

    def __init__(self, db: Session):
        self.db = db
        self.invoices = InvoiceService(db)

    def create_credit_note(self, data: CreditNoteCreate) -> CreditNote:
        reason = (data.reason or "").strip()
        if not reason:
            raise ValidationError("El motivo de la nota de crédito es requerido")
        if not data.items:
            raise ValidationError("La nota de crédito debe tener al menos un producto")

        invoice = self.invoices.get_invoice(data.original_invoice_id)
        if invoice.status == InvoiceStatus.VOID:
            raise ConsistencyError(f"La factura {invoice.number} ya está anulada")

        requested = self._resolve_items(invoice, data.items)
        credited = credited_quantities(self.db, invoice.id)
        for line, item, quantity in requested.values():
            creditable = to_decimal(line.quantity) - credited.get(line.id, Decimal("0"))
            if quantity > creditable:
                raise CreditLimitExceededError(
                    f"No se puede acreditar {format_quantity(quantity)} de {line.product_name}: "
                    f"disponible para acreditar {format_quantity(creditable)}"
                )

        ncf = NCFSequenceAllocator(self.db).next_ncf(settings.CREDIT_NOTE_NCF_TYPE)
        number = DocumentNumberAllocator(self.db).next_number(settings.CREDIT_NOTE_NUMBER_PREFIX, model=CreditNote)
        note_date = parse_movement_date(data.date)

        items = []
        for position, (line, item, quantity) in enumerate(requested.values(), start=1):
            price = to_decimal(item.price) if item.price is not None else to_decimal(line.price)
            discount = to_decimal(item.discount) if item.discount is not None else to_decimal(line.discount)
            if price <= 0:
                raise ValidationError(f"El precio de {line.product_name} debe ser mayor que cero")
            if price > to_decimal(line.price):
                raise ValidationError(f"El precio acreditado de {line.product_name} no puede superar el facturado")
            items.append(CreditNoteItem(
                position=position,
                invoice_line_id=line.id,
                product_id=line.product_id,
                product_name=line.product_name,
                quantity=quantity,
                price=price,
                discount=discount,
                **compute_line(quantity, price, discount),
            ))

        discount = data.discount if data.discount is not None else invoice.discount
        tax_rate = data.tax_rate if data.tax_rate is not None else invoice.tax_rate
        totals = compute_totals([i.total for i in items], discount, tax_rate)

        credit_note = CreditNote(
            number=number,
            ncf=ncf,
            ncf_type=settings.CREDIT_NOTE_NCF_TYPE,
            original_invoice_id=invoice.id,
            original_invoice_number=invoice.number,
            original_invoice_ncf=invoice.ncf,
            client_id=invoice.client_id,
            client_name=invoice.client_name,
            client_rnc=invoice.client_rnc,
            date=note_date,
            reason=reason,
            notes=data.notes,
            items=items,
            **totals,
        )
        self.db.add(credit_note)
        try:
            self.db.flush()
        except IntegrityError as e:
            if "ncf" in str(e.orig).lower():
                raise FiscalSequenceError(DUPLICATE_NCF_MESSAGE, ncf_type=settings.CREDIT_NOTE_NCF_TYPE) from e
            raise

        self.invoices.inventory.bulk_update_stock(
            self._restock_items(invoice, items),
            "add",
            MovementMetadata(
                type=MovementType.IN,
                reference=number,
                date=note_date,
                notes=f"Nota de crédito {number} (factura {invoice.number})",
            ),
        )

        self.invoices.recalculate(invoice)
        logger.info(
            f"Nota de crédito {number} ({ncf}) emitida sobre {invoice.number} por {credit_note.total}; "
            f"estado factura: {invoice.status.value}"
        )
        return credit_note

    def get_credit_note(self, credit_note_id: UUID) -> CreditNote:
        credit_note = self.db.execute(
            select(CreditNote).options(selectinload(CreditNote.items)).where(CreditNote.id == credit_note_id)
        ).scalar_one_or_none()
        if not credit_note:
            raise NotFoundError("Nota de crédito", credit_note_id)
        return credit_note

    def get_credit_notes_by_invoice(self, invoice_id: UUID) -> List[CreditNote]:
        return list(self.db.execute(
            select(CreditNote).options(selectinload(CreditNote.items))
            .where(CreditNote.original_invoice_id == invoice_id)
            .order_by(CreditNote.date.desc())
        ).scalars().all())

    def get_all_credit_notes(self, month: Optional[int] = None, year: Optional[int] = None) -> List[CreditNote]:
        query = select(CreditNote).options(selectinload(CreditNote.items))
        if month is not None or year is not None:
            today = local_today()
            start, end = month_range(month or today.month, year or today.year)
            query = query.where(CreditNote.date >= start, CreditNote.date < end)
        return list(self.db.execute(query.order_by(CreditNote.date.desc(), CreditNote.number.desc())).scalars().all())

    def _resolve_items(self, invoice: Invoice, items: List[CreditNoteItemCreate]):
        """Asocia cada ítem a una línea de la factura y suma duplicados por línea."""
        lines_by_id = {line.id: line for line in invoice.line_items}
        resolved: "OrderedDict[UUID, tuple]" = OrderedDict()
        for item in items:
            quantity = to_decimal(item.quantity)
            if quantity <= 0:
                raise ValidationError("La cantidad a acreditar debe ser mayor que cero")

            if item.line_id is not None:
                line = lines_by_id.get(item.line_id)
                if line is None:
                    raise NotFoundError("Línea de factura", item.line_id)
            elif item.product_id is not None:
                matches = [line for line in invoice.line_items if line.product_id == item.product_id]
                if not matches:
                    raise NotFoundError(f"Producto en la factura {invoice.number}", item.product_id)
                if len(matches) > 1:
                    raise ValidationError(
                        f"El producto aparece en varias líneas de {invoice.number}; indique la línea a acreditar"
                    )
                line = matches[0]
            else:
                raise ValidationError("Cada ítem debe indicar la línea o el producto a acreditar")

            if line.id in resolved:
                _, first_item, previous = resolved[line.id]
                resolved[line.id] = (line, first_item, previous + quantity)
            else:
                resolved[line.id] = (line, item, quantity)
        return resolved

    def _restock_items(self, invoice: Invoice, items: List[CreditNoteItem]) -> List[StockChange]:
        product_ids = [i.product_id for i in items if i.product_id is not None]
        existing = set()
        if product_ids:
            existing = set(self.db.execute(select(Product.id).where(Product.id.in_(product_ids))).scalars().all())
        restock = []
        for item in items:
            if item.product_id not in existing:
                logger.warning(
                    f"Nota de crédito sobre {invoice.number}: el producto {item.product_name} ya no existe, "
                    f"no se devuelve stock"
                )
                continue
            restock.append(StockChange(product_id=item.product_id, quantity=item.quantity,
                                       product_name=item.product_name))
        return restock
