from fastapi import APIRouter, status, Query
from typing import Optional
from uuid import UUID
from datetime import date

from app.common.results import unwrap
from app.dependencies.dbDependecies import uow_dependency
from app.modules.invoices import actions
from app.modules.invoices.schemas import InvoiceCreate, PaymentCreate, PaymentUpdate

# Router principal del módulo de facturas
router = APIRouter(prefix="/invoices", tags=["Invoices"])

payments_router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_invoice(invoice_data: InvoiceCreate, uow: uow_dependency):
    """
    Crear una nueva factura de venta

    Valida stock, asigna NCF (si el tipo no es S/C) y descuenta inventario
    registrando un movimiento SALIDA por producto.
    """
    return unwrap(actions.create_invoice(invoice_data, uow))


@router.get("/")
def list_invoices(
    uow: uow_dependency,
    month: Optional[int] = Query(None, ge=1, le=12, description="Mes (1-12)"),
    year: Optional[int] = Query(None, ge=2000, le=2100),
):
    """Facturas del mes más todas las que tienen saldo pendiente"""
    return unwrap(actions.get_invoices(month, year, uow))


@router.post("/maintenance/fix-balances")
def fix_balances(uow: uow_dependency):
    """Recalcular monto pagado y estado de todas las facturas"""
    return unwrap(actions.fix_invoice_balances(uow))


@router.post("/maintenance/mark-overdue")
def mark_overdue(uow: uow_dependency, today: Optional[date] = Query(None)):
    return unwrap(actions.mark_overdue_invoices(today, uow))


@router.get("/{invoice_id}")
def get_invoice(invoice_id: UUID, uow: uow_dependency):
    return unwrap(actions.get_invoice_by_id(invoice_id, uow))


@router.delete("/{invoice_id}")
def delete_invoice(invoice_id: UUID, uow: uow_dependency):
    """
    Eliminar factura

    Devuelve al inventario la cantidad no acreditada por notas de crédito.
    """
    return unwrap(actions.delete_invoice(invoice_id, uow))


@router.get("/{invoice_id}/payments")
def get_invoice_payments(invoice_id: UUID, uow: uow_dependency):
    return unwrap(actions.get_payments_by_invoice(invoice_id, uow))


@payments_router.post("/", status_code=status.HTTP_201_CREATED)
def create_payment(payment_data: PaymentCreate, uow: uow_dependency):
    """Registrar pago; no puede superar el saldo pendiente"""
    return unwrap(actions.create_payment(payment_data, uow))


@payments_router.get("/")
def list_payments(
    uow: uow_dependency,
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000, le=2100),
):
    return unwrap(actions.get_all_payments(month, year, uow))


@payments_router.patch("/{payment_id}")
def update_payment(payment_id: UUID, payment_data: PaymentUpdate, uow: uow_dependency):
    return unwrap(actions.update_payment(payment_id, payment_data, uow))


@payments_router.delete("/{payment_id}")
def delete_payment(payment_id: UUID, uow: uow_dependency):
    return unwrap(actions.delete_payment(payment_id, uow))
