from fastapi import APIRouter, HTTPException, status, Query
from typing import Optional
from uuid import UUID

from app.common.results import unwrap
from app.dependencies.dbDependecies import uow_dependency
from app.modules.inventory import actions
from app.modules.inventory.schemas import AddStockRequest
from app.modules.inventory.verification import run_stock_verification

inventory_router = APIRouter(prefix="/inventory", tags=["Inventory"])


@inventory_router.post("/products/{product_id}/stock")
def add_product_stock(product_id: UUID, data: AddStockRequest, uow: uow_dependency):
    """
    Entrada manual de mercancía.

    Suma la cantidad al stock y registra un movimiento ENTRADA; una fecha
    YYYY-MM-DD se registra al mediodía hora local.
    """
    return unwrap(actions.add_product_stock(product_id, data.quantity, data.date, data.notes, uow))


@inventory_router.get("/movements")
def list_movements(
    uow: uow_dependency,
    month: Optional[int] = Query(None, ge=1, le=12, description="Mes (1-12)"),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    product_id: Optional[UUID] = Query(None, description="Filtrar por producto"),
):
    """Historial de movimientos, más recientes primero"""
    return actions.get_inventory_movements(month, year, product_id, uow)


@inventory_router.get("/verify")
def verify_stock_flow(uow: uow_dependency):
    """Ciclo factura -> nota de crédito -> eliminación sobre un producto temporal"""
    result = run_stock_verification(uow)
    if not result["success"]:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=result)
    return result
