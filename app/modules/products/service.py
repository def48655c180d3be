import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.common.errors import ConsistencyError, NotFoundError, ValidationError
from app.modules.products.models import MovementType, Product, ProductType
from app.modules.products.schemas import ProductCreate, ProductUpdate
from app.modules.inventory.schemas import MovementMetadata, StockChange
from app.modules.inventory.service import InventoryService

logger = logging.getLogger(__name__)

SKU_PREFIXES = {
    ProductType.CHORIZO: "CHO",
    ProductType.RAW_MATERIAL: "MP",
}

INITIAL_STOCK_REFERENCE = "Stock inicial"


def generate_sku(db: Session, product_type: ProductType) -> str:
    """Siguiente SKU para el tipo: CHO-001, CHO-002... / MP-001..."""
    prefix = SKU_PREFIXES.get(product_type, "MP")
    skus = db.execute(select(Product.sku).where(Product.sku.like(f"{prefix}-%"))).scalars().all()
    sequence = 0
    for sku in skus:
        parts = sku.split("-")
        if len(parts) == 2 and parts[1].isdigit():
            sequence = max(sequence, int(parts[1]))
    return f"{prefix}-{sequence + 1:03d}"


def create_product(db: Session, data: ProductCreate) -> Product:
    """Crea un producto; el stock inicial entra por el servicio de inventario."""
    sku = (data.sku or "").strip() or generate_sku(db, data.type)
    if db.execute(select(Product.id).where(Product.sku == sku)).first():
        raise ConsistencyError("Error: El código/SKU ya existe. Intente nuevamente.")

    product = Product(
        name=data.name.strip(),
        sku=sku,
        type=data.type,
        category=data.category or data.type.value,
        description=data.description,
        price=data.price,
        cost=data.cost,
        stock=0,
        min_stock=data.min_stock,
        unit=data.unit,
    )
    db.add(product)
    try:
        db.flush()
    except IntegrityError as e:
        raise ConsistencyError("Error: El código/SKU ya existe. Intente nuevamente.") from e

    if data.stock > 0:
        InventoryService(db).bulk_update_stock(
            [StockChange(product_id=product.id, quantity=data.stock, product_name=product.name)],
            "add",
            MovementMetadata(type=MovementType.IN, reference=INITIAL_STOCK_REFERENCE, notes=f"Alta de producto {sku}"),
        )
        db.refresh(product)

    logger.info(f"Producto creado: {product.name} ({product.sku})")
    return product


def get_product_by_id(db: Session, product_id: UUID) -> Product:
    product = db.get(Product, product_id)
    if not product:
        raise NotFoundError("Producto", product_id)
    return product


def get_all_products(db: Session, search: Optional[str] = None, product_type: Optional[ProductType] = None) -> List[Product]:
    query = select(Product)
    if search:
        pattern = f"%{search}%"
        query = query.where(Product.name.ilike(pattern) | Product.sku.ilike(pattern))
    if product_type:
        query = query.where(Product.type == product_type)
    return list(db.execute(query.order_by(Product.name)).scalars().all())


def update_product(db: Session, product_id: UUID, data: ProductUpdate) -> Product:
    """Actualiza campos descriptivos. ``stock`` no es actualizable aquí."""
    product = get_product_by_id(db, product_id)
    changes = data.model_dump(exclude_unset=True)
    if "name" in changes and not (changes["name"] or "").strip():
        raise ValidationError("El nombre del producto es requerido")

    for key, value in changes.items():
        if value is None and key != "description":
            continue
        setattr(product, key, value)
    # Al cambiar el tipo sin categoría explícita, la categoría sigue al tipo
    if "type" in changes and "category" not in changes and changes["type"] is not None:
        product.category = changes["type"].value

    db.flush()
    return product


def delete_product(db: Session, product_id: UUID):
    """Elimina un producto. Los movimientos y facturas conservan su snapshot."""
    product = get_product_by_id(db, product_id)
    db.delete(product)
    db.flush()
    logger.info(f"Producto eliminado: {product.name} ({product.sku})")
    return {"message": "Producto eliminado exitosamente"}
