"""
Acciones de productos: resultados ``{success, product? | message}``.
"""
from typing import Any, Dict, Optional
from uuid import UUID

from app.common.results import ok, parse_input, run_action
from app.database.transaction import UnitOfWork
from app.modules.products import service
from app.modules.products.models import ProductType
from app.modules.products.schemas import ProductCreate, ProductOut, ProductUpdate


def product_to_dict(product) -> Dict[str, Any]:
    return ProductOut.model_validate(product).model_dump()


def create_product(data, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        payload = parse_input(ProductCreate, data)
        return (uow or UnitOfWork()).run(
            lambda db: ok(product=product_to_dict(service.create_product(db, payload))),
            "crear producto",
        )
    return run_action("createProduct", action)


def update_product(product_id: UUID, data, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        payload = parse_input(ProductUpdate, data)
        return (uow or UnitOfWork()).run(
            lambda db: ok(product=product_to_dict(service.update_product(db, product_id, payload))),
            "actualizar producto",
        )
    return run_action("updateProduct", action)


def delete_product(product_id: UUID, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        return (uow or UnitOfWork()).run(
            lambda db: ok(**service.delete_product(db, product_id)),
            "eliminar producto",
        )
    return run_action("deleteProduct", action)


def get_products(search: Optional[str] = None, product_type: Optional[ProductType] = None,
                 uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        with (uow or UnitOfWork()).session() as db:
            products = service.get_all_products(db, search=search, product_type=product_type)
            return ok(products=[product_to_dict(p) for p in products])
    return run_action("getProducts", action)


def get_product(product_id: UUID, uow: Optional[UnitOfWork] = None) -> Dict[str, Any]:
    def action():
        with (uow or UnitOfWork()).session() as db:
            return ok(product=product_to_dict(service.get_product_by_id(db, product_id)))
    return run_action("getProduct", action)
