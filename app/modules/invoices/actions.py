"""
Acciones de facturación y pagos.

Cada acción devuelve ``{"success": True, ...}`` o
``{"success": False, "message": ...}``; ninguna excepción cruza esta capa.
"""
import logging
from datetime import date
from typing import Any, Dict, Optional
from uuid import UUID

from app.common.errors import FiscalSequenceError
from app.common.results import ok, parse_input, run_action
from app.database.transaction import UnitOfWork
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceOut, PaymentCreate, PaymentOut, PaymentUpdate
)
from app.modules.invoices.service import InvoiceService, PaymentService
from app.modules.ncf.service import NCFSequenceAllocator

logger = logging.getLogger(__name__)


def invoice_to_dict(db, invoice) -> Dict[str, Any]:
    data = InvoiceOut.model_validate(invoice).model_dump()
    data["credit_note_ids"] = InvoiceService(db).credit_note_ids(invoice.id)
    return data


def payment_to_dict(payment) -> Dict[str, Any]:
    return PaymentOut.model_validate(payment).model_dump()


def resync_after_duplicate(uow: UnitOfWork, error: FiscalSequenceError):
    """Un NCF duplicado indica contador desfasado: se resincroniza en otra unidad de trabajo."""
    if not error.ncf_type:
        return
    logger.warning(f"NCF duplicado para {error.ncf_type}, resincronizando secuencia")
    uow.run(lambda db: NCFSequenceAllocator(db).resync(error.ncf_type), "resincronizar secuencia NCF")


def create_invoice(data, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    """createInvoice(input) -> {success, invoice?, message?}"""
    uow = uow or UnitOfWork()

    def work(db, payload):
        invoice = InvoiceService(db).create_invoice(payload)
        return ok(invoice=invoice_to_dict(db, invoice))

    def action():
        payload = parse_input(InvoiceCreate, data)
        try:
            return uow.run(lambda db: work(db, payload), "crear factura")
        except FiscalSequenceError as e:
            resync_after_duplicate(uow, e)
            raise

    return run_action("createInvoice", action)


def delete_invoice(invoice_id: UUID, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    """deleteInvoice(id) -> {success, message?}"""
    def work(db):
        number = InvoiceService(db).delete_invoice(invoice_id)
        return ok(message=f"Factura {number} eliminada")

    return run_action("deleteInvoice", lambda: (uow or UnitOfWork()).run(work, "eliminar factura"))


def get_invoices(month: Optional[int] = None, year: Optional[int] = None,
                 uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        with (uow or UnitOfWork()).session() as db:
            invoices = InvoiceService(db).list_invoices(month, year)
            return ok(invoices=[invoice_to_dict(db, i) for i in invoices])
    return run_action("getInvoices", action)


def get_invoice_by_id(invoice_id: UUID, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        with (uow or UnitOfWork()).session() as db:
            return ok(invoice=invoice_to_dict(db, InvoiceService(db).get_invoice(invoice_id)))
    return run_action("getInvoiceById", action)


def fix_invoice_balances(uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def work(db):
        count = InvoiceService(db).fix_invoice_balances()
        return ok(count=count, message=f"{count} factura(s) corregidas")
    return run_action("fixInvoiceBalances", lambda: (uow or UnitOfWork()).run(work, "corregir saldos"))


def mark_overdue_invoices(today: Optional[date] = None, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def work(db):
        return ok(count=InvoiceService(db).mark_overdue_invoices(today))
    return run_action("markOverdueInvoices", lambda: (uow or UnitOfWork()).run(work, "marcar vencidas"))


def create_payment(data, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        payload = parse_input(PaymentCreate, data)
        return (uow or UnitOfWork()).run(
            lambda db: ok(payment=payment_to_dict(PaymentService(db).create_payment(payload))),
            "registrar pago",
        )
    return run_action("createPayment", action)


def update_payment(payment_id: UUID, data, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        payload = parse_input(PaymentUpdate, data)
        return (uow or UnitOfWork()).run(
            lambda db: ok(payment=payment_to_dict(PaymentService(db).update_payment(payment_id, payload))),
            "actualizar pago",
        )
    return run_action("updatePayment", action)


def delete_payment(payment_id: UUID, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def work(db):
        invoice = PaymentService(db).delete_payment(payment_id)
        return ok(message=f"Pago eliminado de {invoice.number}", invoice_status=invoice.status.value)
    return run_action("deletePayment", lambda: (uow or UnitOfWork()).run(work, "eliminar pago"))


def get_payments_by_invoice(invoice_id: UUID, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        with (uow or UnitOfWork()).session() as db:
            payments = PaymentService(db).get_payments_by_invoice(invoice_id)
            return ok(payments=[payment_to_dict(p) for p in payments])
    return run_action("getPaymentsByInvoice", action)


def get_all_payments(month: Optional[int] = None, year: Optional[int] = None,
                     uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        with (uow or UnitOfWork()).session() as db:
            payments = PaymentService(db).get_all_payments(month, year)
            return ok(payments=[payment_to_dict(p) for p in payments])
    return run_action("getAllPayments", action)
