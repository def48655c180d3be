from fastapi import APIRouter, status, Query
from uuid import UUID
from typing import Optional

from app.common.results import unwrap
from app.dependencies.dbDependecies import uow_dependency
from app.modules.products import actions
from app.modules.products.models import ProductType
from app.modules.products.schemas import ProductCreate, ProductUpdate

product_router = APIRouter(prefix="/products", tags=["Products"])


@product_router.post("/", status_code=status.HTTP_201_CREATED)
def create_product(data: ProductCreate, uow: uow_dependency):
    """Crear producto. El stock inicial queda registrado como movimiento ENTRADA."""
    return unwrap(actions.create_product(data, uow))


@product_router.get("/")
def list_products(
    uow: uow_dependency,
    search: Optional[str] = Query(None, description="Buscar por nombre o SKU"),
    type: Optional[ProductType] = Query(None, description="Chorizo o Materia Prima"),
):
    return unwrap(actions.get_products(search=search, product_type=type, uow=uow))


@product_router.get("/{product_id}")
def get_product(product_id: UUID, uow: uow_dependency):
    return unwrap(actions.get_product(product_id, uow))


@product_router.patch("/{product_id}")
def update_product(product_id: UUID, data: ProductUpdate, uow: uow_dependency):
    """Actualizar datos descriptivos (el stock no se modifica aquí)."""
    return unwrap(actions.update_product(product_id, data, uow))


@product_router.delete("/{product_id}")
def delete_product(product_id: UUID, uow: uow_dependency):
    return unwrap(actions.delete_product(product_id, uow))
