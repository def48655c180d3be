import logging
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.core.config import settings
from app.common.dates import as_local, local_today, local_tz, month_range, parse_movement_date
from app.common.errors import ConsistencyError, FiscalSequenceError, NotFoundError, ValidationError, format_quantity
from app.common.validators import round_money, to_decimal
from app.modules.clients.models import Client
from app.modules.inventory.schemas import MovementMetadata, StockChange
from app.modules.inventory.service import InventoryService
from app.modules.invoices.models import (
    Invoice, InvoiceLineItem, InvoiceStatus, OUTSTANDING_STATUSES, Payment
)
from app.modules.invoices.schemas import InvoiceCreate, PaymentCreate, PaymentUpdate
from app.modules.ncf.service import DocumentNumberAllocator, NCFSequenceAllocator, NO_RECEIPT
from app.modules.products.models import MovementType, Product

logger = logging.getLogger(__name__)

DUPLICATE_NCF_MESSAGE = "Error de secuencia NCF (duplicado), intente de nuevo."
HUNDRED = Decimal("100")


def tolerance() -> Decimal:
    return Decimal(str(settings.AMOUNT_TOLERANCE))


def compute_line(quantity, price, discount) -> Dict[str, Decimal]:
    """subtotal = cantidad * precio; total = subtotal menos el % de descuento de la línea."""
    subtotal = round_money(to_decimal(quantity) * to_decimal(price))
    total = round_money(subtotal * (HUNDRED - to_decimal(discount)) / HUNDRED)
    return {"subtotal": subtotal, "total": total}


def compute_totals(line_totals: List[Decimal], discount, tax_rate) -> Dict[str, Decimal]:
    """
    Totales del documento.

    El descuento general (%) se aplica a la suma de las líneas y el ITBIS (%)
    al subtotal ya descontado: total = subtotal + tax.
    """
    items_total = round_money(sum((to_decimal(t) for t in line_totals), Decimal("0")))
    discount_amount = round_money(items_total * to_decimal(discount) / HUNDRED)
    subtotal = items_total - discount_amount
    tax = round_money(subtotal * to_decimal(tax_rate) / HUNDRED)
    return {
        "subtotal": subtotal,
        "discount": to_decimal(discount),
        "discount_amount": discount_amount,
        "tax_rate": to_decimal(tax_rate),
        "tax": tax,
        "total": subtotal + tax,
    }


def derive_status(total, payments, credits, due_date: Optional[datetime] = None,
                  today: Optional[date] = None) -> InvoiceStatus:
    """
    Estado de la factura a partir de lo cobrado y lo acreditado.

    - pagos cubren el total                  -> Pagada
    - pagos + notas de crédito cubren el total -> Anulada
    - hay notas de crédito                   -> Nota de Crédito Parcial
    - hay pagos                              -> Parcial
    - nada: Pendiente, o Vencida si pasó la fecha de vencimiento
    """
    total = to_decimal(total)
    payments = to_decimal(payments)
    credits = to_decimal(credits)
    tol = tolerance()

    if payments >= total - tol:
        return InvoiceStatus.PAID
    if payments + credits >= total - tol:
        return InvoiceStatus.VOID
    if credits > 0:
        return InvoiceStatus.PARTIAL_CREDIT
    if payments > 0:
        return InvoiceStatus.PARTIAL
    today = today or local_today()
    if due_date is not None and as_local(due_date).date() < today:
        return InvoiceStatus.OVERDUE
    return InvoiceStatus.PENDING


class InvoiceService:
    """
    Ciclo de vida de facturas: creación, eliminación y recálculo de estado.

    Cada método corre dentro de la sesión de una unidad de trabajo; no hace
    commit. La validación de stock, la asignación de NCF, la escritura de la
    factura y el movimiento de stock van en la misma unidad.
    """

    def __init__(self, db: Session):
        self.db = db
        self.inventory = InventoryService(db)

    def create_invoice(self, data: InvoiceCreate) -> Invoice:
        self._validate_items(data)
        client_id, client_name, client_rnc, client_address = self._client_snapshot(data)

        ncf_type = data.ncf_type
        if ncf_type != NO_RECEIPT:
            ncf_type = NCFSequenceAllocator.validate_type(ncf_type)
            if ncf_type == settings.CREDIT_NOTE_NCF_TYPE:
                raise ValidationError(f"El tipo {ncf_type} es exclusivo de notas de crédito")

        stock_items = [
            StockChange(product_id=item.product_id, quantity=item.quantity, product_name=item.product_name)
            for item in data.items
        ]
        products = self.inventory.validate_stock_availability(stock_items)

        ncf = None
        if ncf_type != NO_RECEIPT:
            ncf = NCFSequenceAllocator(self.db).next_ncf(ncf_type)
        number = DocumentNumberAllocator(self.db).next_number(settings.INVOICE_NUMBER_PREFIX, model=Invoice)

        invoice_date = parse_movement_date(data.date)
        due_date = parse_movement_date(data.due_date) if data.due_date else invoice_date
        tax_rate = data.tax_rate if data.tax_rate is not None else Decimal(str(settings.DEFAULT_TAX_RATE))

        line_items = []
        for position, item in enumerate(data.items, start=1):
            product = products[item.product_id]
            line_items.append(InvoiceLineItem(
                position=position,
                product_id=item.product_id,
                product_name=item.product_name or product.name,
                description=item.description or product.description,
                quantity=item.quantity,
                price=item.price,
                discount=item.discount,
                **compute_line(item.quantity, item.price, item.discount),
            ))
        totals = compute_totals([line.total for line in line_items], data.discount, tax_rate)

        invoice = Invoice(
            number=number,
            ncf=ncf,
            ncf_type=ncf_type,
            client_id=client_id,
            client_name=client_name,
            client_rnc=client_rnc,
            client_address=client_address,
            sold_by=data.sold_by,
            seller_email=data.seller_email,
            payment_terms=data.payment_terms,
            date=invoice_date,
            due_date=due_date,
            status=InvoiceStatus.PENDING,
            paid_amount=Decimal("0"),
            notes=data.notes,
            line_items=line_items,
            **totals,
        )
        self.db.add(invoice)
        try:
            self.db.flush()
        except IntegrityError as e:
            if ncf and "ncf" in str(e.orig).lower():
                raise FiscalSequenceError(DUPLICATE_NCF_MESSAGE, ncf_type=ncf_type) from e
            raise

        self.inventory.bulk_update_stock(
            [
                StockChange(product_id=s.product_id, quantity=s.quantity,
                            product_name=s.product_name or products[s.product_id].name)
                for s in stock_items
            ],
            "subtract",
            MovementMetadata(type=MovementType.OUT, reference=number, date=invoice_date, notes=f"Factura {number}"),
        )

        logger.info(f"Factura creada: {number} ({ncf or 'sin NCF'}) por {invoice.total}")
        return invoice

    def delete_invoice(self, invoice_id: UUID) -> str:
        """
        Elimina la factura devolviendo al stock solo lo que no se acreditó.

        Las notas de crédito ya devolvieron su parte; aquí se devuelve
        cantidad - acreditado por línea, así crear + acreditar + eliminar deja
        el stock exactamente como estaba. Se borran también sus pagos; las
        notas de crédito se conservan (documento fiscal con snapshot).
        """
        from app.modules.credit_notes.service import credited_quantities

        invoice = self.get_invoice(invoice_id)
        credited = credited_quantities(self.db, invoice.id)

        remaining_items = []
        for line in invoice.line_items:
            credited_qty = credited.get(line.id, Decimal("0"))
            remaining = to_decimal(line.quantity) - credited_qty
            if remaining < 0:
                raise ConsistencyError(
                    f"Inconsistencia en {invoice.number}: se acreditó {format_quantity(credited_qty)} "
                    f"de {line.product_name} pero la factura despachó {format_quantity(line.quantity)}"
                )
            if remaining > 0:
                remaining_items.append((line, remaining))

        existing = set()
        product_ids = [line.product_id for line, _ in remaining_items if line.product_id is not None]
        if product_ids:
            existing = set(self.db.execute(select(Product.id).where(Product.id.in_(product_ids))).scalars().all())

        restock = []
        for line, remaining in remaining_items:
            if line.product_id not in existing:
                logger.warning(
                    f"Factura {invoice.number}: el producto {line.product_name} ya no existe, no se devuelve stock"
                )
                continue
            restock.append(StockChange(product_id=line.product_id, quantity=remaining, product_name=line.product_name))

        number = invoice.number
        self.inventory.bulk_update_stock(
            restock,
            "add",
            MovementMetadata(type=MovementType.IN, reference=number, notes=f"Eliminación de factura {number}"),
        )

        self.db.delete(invoice)
        self.db.flush()
        logger.info(f"Factura eliminada: {number}")
        return number

    def get_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = self.db.execute(
            select(Invoice)
            .options(selectinload(Invoice.line_items), selectinload(Invoice.payments))
            .where(Invoice.id == invoice_id)
        ).scalar_one_or_none()
        if not invoice:
            raise NotFoundError("Factura", invoice_id)
        return invoice

    def list_invoices(self, month: Optional[int] = None, year: Optional[int] = None) -> List[Invoice]:
        """Facturas del mes indicado más todas las que tienen saldo pendiente."""
        query = select(Invoice).options(selectinload(Invoice.line_items), selectinload(Invoice.payments))
        if month is not None or year is not None:
            today = local_today()
            start, end = month_range(month or today.month, year or today.year)
            query = query.where(or_(
                (Invoice.date >= start) & (Invoice.date < end),
                Invoice.status.in_(OUTSTANDING_STATUSES),
            ))
        return list(self.db.execute(query.order_by(Invoice.date.desc(), Invoice.number.desc())).scalars().all())

    def credit_note_ids(self, invoice_id: UUID) -> List[UUID]:
        from app.modules.credit_notes.models import CreditNote

        return list(self.db.execute(
            select(CreditNote.id).where(CreditNote.original_invoice_id == invoice_id).order_by(CreditNote.date)
        ).scalars().all())

    def recalculate(self, invoice: Invoice, today: Optional[date] = None) -> Invoice:
        """paid_amount = pagos + notas de crédito; estado según derive_status."""
        from app.modules.credit_notes.models import CreditNote

        self.db.flush()
        payments = to_decimal(self.db.execute(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.invoice_id == invoice.id)
        ).scalar())
        credits = to_decimal(self.db.execute(
            select(func.coalesce(func.sum(CreditNote.total), 0)).where(CreditNote.original_invoice_id == invoice.id)
        ).scalar())

        invoice.paid_amount = round_money(payments + credits)
        invoice.status = derive_status(invoice.total, payments, credits, invoice.due_date, today)
        self.db.flush()
        return invoice

    def fix_invoice_balances(self, today: Optional[date] = None) -> int:
        """Recalcula saldo y estado de todas las facturas; devuelve cuántas cambiaron."""
        fixed = 0
        for invoice in self.db.execute(select(Invoice)).scalars().all():
            before = (to_decimal(invoice.paid_amount), invoice.status)
            self.recalculate(invoice, today)
            if (to_decimal(invoice.paid_amount), invoice.status) != before:
                fixed += 1
                logger.info(f"Saldo corregido en {invoice.number}: {before[1].value} -> {invoice.status.value}")
        return fixed

    def mark_overdue_invoices(self, today: Optional[date] = None) -> int:
        """Pendiente -> Vencida para facturas con vencimiento anterior a hoy (hora local)."""
        today = today or local_today()
        start_of_today = datetime.combine(today, time(0, 0), tzinfo=local_tz()).astimezone(timezone.utc)
        overdue = self.db.execute(
            select(Invoice).where(Invoice.status == InvoiceStatus.PENDING, Invoice.due_date < start_of_today)
        ).scalars().all()
        for invoice in overdue:
            invoice.status = InvoiceStatus.OVERDUE
        self.db.flush()
        if overdue:
            logger.info(f"{len(overdue)} factura(s) marcadas como vencidas")
        return len(overdue)

    def _validate_items(self, data: InvoiceCreate):
        if not data.items:
            raise ValidationError("La factura debe tener al menos un producto")
        for item in data.items:
            label = item.product_name or str(item.product_id)
            if item.quantity is None or to_decimal(item.quantity) <= 0:
                raise ValidationError(f"La cantidad de {label} debe ser mayor que cero")
            if item.price is None or to_decimal(item.price) <= 0:
                raise ValidationError(f"El precio de {label} debe ser mayor que cero")

    def _client_snapshot(self, data: InvoiceCreate):
        client = self.db.get(Client, data.client_id) if data.client_id else None
        if client is not None:
            return client.id, client.name, client.rnc, client.address
        name = (data.client_name or "").strip()
        if not name:
            raise ValidationError("El nombre del cliente es requerido")
        return None, name, data.client_rnc, data.client_address


class PaymentService:
    """Pagos de facturas. Cada cambio recalcula saldo y estado de la factura."""

    def __init__(self, db: Session):
        self.db = db
        self.invoices = InvoiceService(db)

    def create_payment(self, data: PaymentCreate) -> Payment:
        amount = to_decimal(data.amount)
        invoice = self.invoices.get_invoice(data.invoice_id)
        self._check_amount(invoice, amount, available=to_decimal(invoice.total) - to_decimal(invoice.paid_amount))

        payment = Payment(
            invoice=invoice,
            invoice_number=invoice.number,
            amount=round_money(amount),
            method=data.method,
            payment_date=parse_movement_date(data.payment_date),
            reference=data.reference,
            notes=data.notes,
            created_by=data.created_by,
        )
        self.db.add(payment)
        self.db.flush()
        self.invoices.recalculate(invoice)
        logger.info(f"Pago de {payment.amount} registrado en {invoice.number}")
        return payment

    def update_payment(self, payment_id: UUID, data: PaymentUpdate) -> Payment:
        payment = self.get_payment(payment_id)
        invoice = self.invoices.get_invoice(payment.invoice_id)
        changes = data.model_dump(exclude_unset=True)

        if changes.get("amount") is not None:
            amount = to_decimal(changes["amount"])
            available = to_decimal(invoice.total) - to_decimal(invoice.paid_amount) + to_decimal(payment.amount)
            self._check_amount(invoice, amount, available)
            payment.amount = round_money(amount)
        if changes.get("method") is not None:
            payment.method = changes["method"]
        if changes.get("payment_date") is not None:
            payment.payment_date = parse_movement_date(changes["payment_date"])
        if "reference" in changes:
            payment.reference = changes["reference"]
        if "notes" in changes:
            payment.notes = changes["notes"]

        self.db.flush()
        self.invoices.recalculate(invoice)
        return payment

    def delete_payment(self, payment_id: UUID) -> Invoice:
        payment = self.get_payment(payment_id)
        invoice = self.invoices.get_invoice(payment.invoice_id)
        invoice.payments.remove(payment)
        self.db.flush()
        self.invoices.recalculate(invoice)
        logger.info(f"Pago eliminado de {invoice.number}")
        return invoice

    def get_payment(self, payment_id: UUID) -> Payment:
        payment = self.db.get(Payment, payment_id)
        if not payment:
            raise NotFoundError("Pago", payment_id)
        return payment

    def get_payments_by_invoice(self, invoice_id: UUID) -> List[Payment]:
        return list(self.db.execute(
            select(Payment).where(Payment.invoice_id == invoice_id).order_by(Payment.payment_date.desc())
        ).scalars().all())

    def get_all_payments(self, month: Optional[int] = None, year: Optional[int] = None) -> List[Payment]:
        query = select(Payment)
        if month is not None or year is not None:
            today = local_today()
            start, end = month_range(month or today.month, year or today.year)
            query = query.where(Payment.payment_date >= start, Payment.payment_date < end)
        return list(self.db.execute(query.order_by(Payment.payment_date.desc())).scalars().all())

    def _check_amount(self, invoice: Invoice, amount: Decimal, available: Decimal):
        if invoice.status == InvoiceStatus.VOID:
            raise ConsistencyError(f"No se pueden registrar pagos en la factura anulada {invoice.number}")
        if amount <= 0:
            raise ValidationError("El monto del pago debe ser mayor que cero")
        if amount > available + tolerance():
            raise ValidationError(
                f"El monto {round_money(amount)} excede el saldo pendiente de {invoice.number} ({round_money(available)})"
            )
