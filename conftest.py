"""
Fixtures compartidas.

Cada test usa su propia base SQLite en ``tmp_path``; la aplicación nunca
toca la base configurada en DATABASE_URL.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.database.database import build_engine, init_db
from app.database.transaction import UnitOfWork, get_unit_of_work
from app.modules.clients import actions as client_actions
from app.modules.products import actions as product_actions
from app.modules.products.models import ProductType


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def uow(engine):
    """Unidad de trabajo transaccional"""
    return UnitOfWork(engine, mode="auto")


@pytest.fixture
def sequential_uow(engine):
    """Misma base, sin transacciones (camino de degradación)"""
    return UnitOfWork(engine, mode="disabled")


@pytest.fixture
def db(uow):
    with uow.session() as session:
        yield session


@pytest.fixture
def api(uow):
    from app.main import app

    app.dependency_overrides[get_unit_of_work] = lambda: uow
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_product(uow):
    def factory(name="Chorizo Parrillero", stock=Decimal("100"), price=Decimal("100"), **extra):
        data = {
            "name": name,
            "type": ProductType.CHORIZO,
            "price": price,
            "cost": Decimal("50"),
            "stock": stock,
            **extra,
        }
        result = product_actions.create_product(data, uow)
        assert result["success"], result.get("message")
        return result["product"]
    return factory


@pytest.fixture
def make_client(uow):
    def factory(name="Colmado La Esquina", rnc="131-24567-8", **extra):
        result = client_actions.create_client({"name": name, "rnc": rnc, **extra}, uow)
        assert result["success"], result.get("message")
        return result["client"]
    return factory


def stock_of(uow, product_id) -> Decimal:
    result = product_actions.get_product(product_id, uow)
    assert result["success"], result.get("message")
    return Decimal(str(result["product"]["stock"]))


@pytest.fixture
def stock():
    return stock_of
