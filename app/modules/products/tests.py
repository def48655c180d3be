"""
Tests para el módulo de Productos

- Alta con SKU automático por tipo
- Stock inicial registrado como movimiento ENTRADA
- Actualización de campos descriptivos (nunca el stock)
"""

from decimal import Decimal
from uuid import uuid4

from app.modules.inventory import actions as inventory_actions
from app.modules.products import actions
from app.modules.products.models import ProductType


class TestProductCreation:
    """Tests para creación de productos"""

    def test_sku_generated_by_type(self, make_product):
        first = make_product(name="Chorizo Criollo")
        second = make_product(name="Chorizo Picante")
        raw = make_product(name="Tripa Natural", type=ProductType.RAW_MATERIAL)

        assert first["sku"] == "CHO-001"
        assert second["sku"] == "CHO-002"
        assert raw["sku"] == "MP-001"
        assert raw["category"] == "Materia Prima"

    def test_initial_stock_creates_entry_movement(self, uow, make_product):
        product = make_product(stock=Decimal("40"))

        movements = inventory_actions.get_inventory_movements(product_id=product["id"], uow=uow)
        assert Decimal(str(product["stock"])) == Decimal("40")
        assert len(movements) == 1
        assert movements[0]["type"] == "ENTRADA"
        assert movements[0]["reference"] == "Stock inicial"

    def test_zero_stock_creates_no_movement(self, uow, make_product):
        product = make_product(stock=Decimal("0"))
        assert inventory_actions.get_inventory_movements(product_id=product["id"], uow=uow) == []

    def test_duplicate_sku_rejected(self, uow, make_product):
        make_product(sku="ESP-01")
        result = actions.create_product(
            {"name": "Otro", "sku": "ESP-01", "price": 10, "cost": 5}, uow
        )
        assert not result["success"]
        assert "SKU" in result["message"]

    def test_negative_price_is_validation_error(self, uow):
        result = actions.create_product({"name": "Malo", "price": -1, "cost": 0}, uow)
        assert not result["success"]
        assert result["error"] == "validation"


class TestProductUpdate:
    """Tests para actualización de productos"""

    def test_update_ignores_stock(self, uow, make_product, stock):
        product = make_product(stock=Decimal("10"))
        result = actions.update_product(product["id"], {"name": "Chorizo Ahumado", "stock": 999}, uow)

        assert result["success"]
        assert result["product"]["name"] == "Chorizo Ahumado"
        assert stock(uow, product["id"]) == Decimal("10")

    def test_type_change_moves_category(self, uow, make_product):
        product = make_product()
        result = actions.update_product(product["id"], {"type": "Materia Prima"}, uow)
        assert result["product"]["category"] == "Materia Prima"

    def test_update_missing_product(self, uow):
        result = actions.update_product(uuid4(), {"name": "X"}, uow)
        assert not result["success"]
        assert result["error"] == "not_found"


class TestProductRouter:
    """Tests de endpoints"""

    def test_create_and_get(self, api):
        response = api.post("/products/", json={"name": "Longaniza", "price": "150", "cost": "80", "stock": "12"})
        assert response.status_code == 201
        product = response.json()["product"]

        response = api.get(f"/products/{product['id']}")
        assert response.status_code == 200
        assert response.json()["product"]["sku"] == "MP-001"

    def test_delete_then_not_found(self, api, make_product):
        product = make_product()
        assert api.delete(f"/products/{product['id']}").status_code == 200
        assert api.get(f"/products/{product['id']}").status_code == 404
