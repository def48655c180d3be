"""
Verificación de extremo a extremo del libro de stock.

Crea un producto temporal con stock 100 y recorre el ciclo completo:
factura por 10 (100 -> 90), nota de crédito por 5 (90 -> 95) y eliminación
de la factura (95 -> 100). El producto temporal se elimina al final; la nota
de crédito queda como documento fiscal.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import uuid4

from app.common.errors import ConsistencyError
from app.database.transaction import UnitOfWork
from app.modules.credit_notes import actions as credit_note_actions
from app.modules.inventory.schemas import StockVerificationStep
from app.modules.invoices import actions as invoice_actions
from app.modules.products import actions as product_actions
from app.modules.products.models import ProductType

logger = logging.getLogger(__name__)

INITIAL_STOCK = Decimal("100")
INVOICED = Decimal("10")
CREDITED = Decimal("5")


def run_stock_verification(uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    uow = uow or UnitOfWork()
    logs: List[str] = ["Iniciando verificación de stock..."]
    steps: List[StockVerificationStep] = []
    product_id = None

    def expect(result: Dict[str, Any], what: str) -> Dict[str, Any]:
        if not result.get("success"):
            raise ConsistencyError(f"Fallo al {what}: {result.get('message')}")
        return result

    def check(step: str, expected: Decimal):
        product = expect(product_actions.get_product(product_id, uow), "leer el producto")["product"]
        actual = Decimal(str(product["stock"]))
        steps.append(StockVerificationStep(step=step, expected=expected, actual=actual, ok=actual == expected))
        if actual != expected:
            raise ConsistencyError(f"Error de stock en '{step}': esperaba {expected}, obtuve {actual}")
        logs.append(f"{step}: stock {actual}")

    try:
        product = expect(product_actions.create_product({
            "name": "Producto de verificación",
            "sku": f"TEST-{uuid4().hex[:8].upper()}",
            "type": ProductType.CHORIZO,
            "category": "Verificación",
            "price": Decimal("100"),
            "cost": Decimal("50"),
            "stock": INITIAL_STOCK,
        }, uow), "crear el producto")["product"]
        product_id = product["id"]
        logs.append(f"Producto creado: {product['name']} ({product['sku']})")
        check("Producto creado", INITIAL_STOCK)

        invoice = expect(invoice_actions.create_invoice({
            "client_name": "Cliente de verificación",
            "ncf_type": "S/C",
            "items": [{"product_id": product_id, "quantity": INVOICED, "price": Decimal("100")}],
            "payment_terms": "Contado",
        }, uow), "crear la factura")["invoice"]
        logs.append(f"Factura creada: {invoice['number']}")
        check("Factura creada", INITIAL_STOCK - INVOICED)

        credit_note = expect(credit_note_actions.create_credit_note({
            "original_invoice_id": invoice["id"],
            "reason": "Devolución de verificación",
            "items": [{"product_id": product_id, "quantity": CREDITED}],
            "tax_rate": Decimal("0"),
        }, uow), "crear la nota de crédito")["credit_note"]
        logs.append(f"Nota de crédito creada: {credit_note['number']}")
        check("Nota de crédito emitida", INITIAL_STOCK - INVOICED + CREDITED)

        expect(invoice_actions.delete_invoice(invoice["id"], uow), "eliminar la factura")
        logs.append("Factura eliminada")
        check("Factura eliminada", INITIAL_STOCK)

        success = True
    except ConsistencyError as e:
        logger.error(f"Verificación de stock fallida: {e.message}")
        logs.append(f"ERROR CRITICO: {e.message}")
        success = False
    finally:
        if product_id is not None:
            product_actions.delete_product(product_id, uow)

    return {"success": success, "logs": logs, "steps": [s.model_dump(mode="json") for s in steps]}
