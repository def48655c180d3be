"""
Tests para el módulo de Inventario

Cubre el libro de stock:
- Actualización en lote con demanda agregada por producto
- Stock nunca negativo (con y sin transacciones)
- Entradas manuales con fecha anclada al mediodía local
- Historial de movimientos y verificación de extremo a extremo
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from app.common.dates import as_local
from app.common.errors import InsufficientStockError, NotFoundError
from app.modules.inventory import actions
from app.modules.inventory.schemas import MovementMetadata, StockChange
from app.modules.inventory.service import InventoryService, aggregate_demand
from app.modules.inventory.verification import run_stock_verification
from app.modules.products.models import MovementType


def change(product, quantity):
    return StockChange(product_id=product["id"], quantity=Decimal(str(quantity)), product_name=product["name"])


class TestAggregateDemand:

    def test_sums_repeated_products(self):
        pid = uuid4()
        demand = aggregate_demand([
            StockChange(product_id=pid, quantity=Decimal("3")),
            StockChange(product_id=pid, quantity=Decimal("4")),
        ])
        assert demand[pid][0] == Decimal("7")


class TestBulkUpdateStock:
    """Tests de la escritura atómica en lote"""

    def test_subtract_with_movements(self, uow, make_product, stock):
        a = make_product(name="Chorizo A", stock=Decimal("50"))
        b = make_product(name="Chorizo B", stock=Decimal("20"))

        def work(db):
            return InventoryService(db).bulk_update_stock(
                [change(a, 5), change(b, 2), change(a, 5)],
                "subtract",
                MovementMetadata(type=MovementType.OUT, reference="PRUEBA-1"),
            )

        movements = uow.run(work)

        assert stock(uow, a["id"]) == Decimal("40")
        assert stock(uow, b["id"]) == Decimal("18")
        # un movimiento por producto, con la cantidad agregada
        assert sorted(m.quantity for m in movements) == [Decimal("2"), Decimal("10")]

    def test_negative_stock_rolls_back_everything(self, uow, make_product, stock):
        a = make_product(name="Chorizo A", stock=Decimal("10"))
        b = make_product(name="Chorizo B", stock=Decimal("1"))

        with pytest.raises(InsufficientStockError) as exc:
            uow.run(lambda db: InventoryService(db).bulk_update_stock([change(a, 5), change(b, 3)], "subtract"))

        assert exc.value.available == Decimal("1")
        assert exc.value.requested == Decimal("3")
        assert stock(uow, a["id"]) == Decimal("10")
        assert stock(uow, b["id"]) == Decimal("1")

    def test_missing_product_is_not_found(self, uow, make_product, stock):
        a = make_product(stock=Decimal("10"))
        ghost = StockChange(product_id=uuid4(), quantity=Decimal("1"), product_name="Fantasma")

        with pytest.raises(NotFoundError) as exc:
            uow.run(lambda db: InventoryService(db).bulk_update_stock([change(a, 1), ghost], "add"))

        assert "Fantasma" in exc.value.message
        assert stock(uow, a["id"]) == Decimal("10")

    def test_sequential_mode_compensates(self, sequential_uow, make_product, stock, caplog):
        a = make_product(name="Chorizo A", stock=Decimal("10"))
        b = make_product(name="Chorizo B", stock=Decimal("1"))

        with caplog.at_level(logging.WARNING):
            with pytest.raises(InsufficientStockError):
                sequential_uow.run(
                    lambda db: InventoryService(db).bulk_update_stock([change(a, 5), change(b, 3)], "subtract"),
                    "descontar stock",
                )

        assert stock(sequential_uow, a["id"]) == Decimal("10")
        assert stock(sequential_uow, b["id"]) == Decimal("1")
        assert any("sin transacción" in r.getMessage() for r in caplog.records)

    def test_validate_availability_uses_aggregated_demand(self, uow, make_product):
        a = make_product(stock=Decimal("6"))

        with pytest.raises(InsufficientStockError) as exc:
            uow.run(lambda db: InventoryService(db).validate_stock_availability([change(a, 4), change(a, 4)]))
        assert "Disponible: 6, Solicitado: 8" in exc.value.message


class TestConcurrentStockUpdates:
    """Ventas simultáneas del mismo producto desde varios hilos"""

    def test_concurrent_decrements_are_not_lost(self, uow, make_product, stock):
        product = make_product(stock=Decimal("100"))

        def sell(_):
            uow.run(lambda db: InventoryService(db).bulk_update_stock([change(product, 1)], "subtract"))

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(sell, range(30)))

        assert stock(uow, product["id"]) == Decimal("70")

    def test_concurrent_decrements_never_oversell(self, uow, make_product, stock):
        product = make_product(stock=Decimal("10"))

        def sell(_):
            try:
                uow.run(lambda db: InventoryService(db).bulk_update_stock([change(product, 1)], "subtract"))
                return True
            except InsufficientStockError:
                return False

        with ThreadPoolExecutor(max_workers=8) as pool:
            sold = list(pool.map(sell, range(20)))

        assert sold.count(True) == 10
        assert stock(uow, product["id"]) == Decimal("0")


class TestAddProductStock:
    """Tests para entradas manuales"""

    def test_add_stock_with_bare_date(self, uow, make_product, stock):
        product = make_product(stock=Decimal("5"))

        result = actions.add_product_stock(product["id"], 20, "2024-01-15", "Compra a proveedor", uow=uow)

        assert result["success"], result.get("message")
        assert stock(uow, product["id"]) == Decimal("25")

        movements = actions.get_inventory_movements(month=1, year=2024, product_id=product["id"], uow=uow)
        assert len(movements) == 1
        movement = movements[0]
        assert movement["type"] == "ENTRADA"
        assert movement["quantity"] == Decimal("20")
        # mediodía en Santo Domingo (UTC-4) = 16:00 UTC
        assert movement["date"].replace(tzinfo=None) == datetime(2024, 1, 15, 16, 0)

    def test_add_stock_with_date_object(self, uow, make_product, stock):
        product = make_product(stock=Decimal("5"))

        result = actions.add_product_stock(product["id"], 20, date(2024, 1, 15), uow=uow)

        assert result["success"], result.get("message")
        movement = actions.get_inventory_movements(month=1, year=2024, product_id=product["id"], uow=uow)[0]
        local = as_local(movement["date"])
        assert (local.date(), local.hour) == (date(2024, 1, 15), 12)

    def test_non_positive_quantity_rejected(self, uow, make_product, stock):
        product = make_product(stock=Decimal("5"))
        result = actions.add_product_stock(product["id"], 0, uow=uow)
        assert not result["success"]
        assert result["error"] == "validation"
        assert stock(uow, product["id"]) == Decimal("5")

    def test_unknown_product(self, uow):
        result = actions.add_product_stock(uuid4(), 3, uow=uow)
        assert not result["success"]
        assert result["error"] == "not_found"

    def test_movements_failure_returns_empty_list(self, uow):
        assert actions.get_inventory_movements(month=13, year=2024, uow=uow) == []


class TestStockVerification:

    def test_end_to_end_flow(self, uow):
        result = run_stock_verification(uow)

        assert result["success"], result["logs"]
        assert [s["expected"] for s in result["steps"]] == ["100", "90", "95", "100"]
        assert all(s["ok"] for s in result["steps"])

    def test_verify_endpoint(self, api):
        response = api.get("/inventory/verify")
        assert response.status_code == 200
        assert response.json()["success"]

    def test_add_stock_endpoint(self, api, make_product):
        product = make_product(stock=Decimal("5"))
        response = api.post(f"/inventory/products/{product['id']}/stock", json={"quantity": "2.5"})
        assert response.status_code == 200
        assert Decimal(response.json()["stock"]) == Decimal("7.5")
