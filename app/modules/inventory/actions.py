"""
Acciones de inventario expuestas a la UI / API.
"""
from typing import Any, Dict, Optional
from uuid import UUID

from app.common.results import ok, run_action
from app.database.transaction import UnitOfWork
from app.modules.inventory.schemas import InventoryMovementOut
from app.modules.inventory.service import InventoryService


def movement_to_dict(movement) -> Dict[str, Any]:
    return InventoryMovementOut.model_validate(movement).model_dump()


def add_product_stock(product_id: UUID, quantity, movement_date=None, notes: Optional[str] = None,
                      uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    """addProductStock(productId, quantity, date, notes?) -> {success, message?}"""
    def work(db):
        product = InventoryService(db).add_product_stock(product_id, quantity, movement_date, notes)
        return ok(
            message=f"Se agregaron {quantity} {product.unit} a {product.name}",
            stock=product.stock,
        )

    return run_action("addProductStock", lambda: (uow or UnitOfWork()).run(work, "agregar stock"))


def get_inventory_movements(month: Optional[int] = None, year: Optional[int] = None,
                            product_id: Optional[UUID] = None, uow: Optional[UnitOfWork] = None):
    """Lista de movimientos (más recientes primero); lista vacía si falla la consulta."""
    def action():
        with (uow or UnitOfWork()).session() as db:
            movements = InventoryService(db).get_inventory_movements(month, year, product_id)
            return ok(movements=[movement_to_dict(m) for m in movements])

    result = run_action("getInventoryMovements", action)
    return result["movements"] if result["success"] else []
