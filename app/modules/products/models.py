from app.database.database import Base
from sqlalchemy import Column, String, DateTime, ForeignKey, Numeric, Enum, Text, Uuid, CheckConstraint
from sqlalchemy.orm import relationship
from uuid import uuid4
from app.common.dates import utcnow
from app.common.mixins import TimestampMixin, enum_values
import enum


class ProductType(enum.Enum):
    CHORIZO = "Chorizo"              # Producto terminado
    RAW_MATERIAL = "Materia Prima"


class ProductStatus(enum.Enum):
    ACTIVE = "Activo"
    INACTIVE = "Inactivo"


class MovementType(enum.Enum):
    IN = "ENTRADA"
    OUT = "SALIDA"
    ADJUSTMENT = "AJUSTE"


class Product(Base, TimestampMixin):
    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(150), nullable=False, index=True)
    sku = Column(String(50), nullable=False, unique=True)
    type = Column(Enum(ProductType, values_callable=enum_values, name="product_type"),
                  nullable=False, default=ProductType.RAW_MATERIAL)
    category = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(15, 2), nullable=False, default=0)  # Precio de venta
    cost = Column(Numeric(15, 2), nullable=False, default=0)   # Costo unitario
    # Solo se modifica con operaciones atómicas del servicio de inventario
    stock = Column(Numeric(12, 3), nullable=False, default=0)
    min_stock = Column(Numeric(12, 3), nullable=False, default=0)
    unit = Column(String(20), nullable=False, default="Unidad")
    status = Column(Enum(ProductStatus, values_callable=enum_values, name="product_status"),
                    nullable=False, default=ProductStatus.ACTIVE)

    movements = relationship("InventoryMovement", back_populates="product", passive_deletes=True)

    @property
    def is_low_stock(self) -> bool:
        return self.stock is not None and self.stock <= self.min_stock


class InventoryMovement(Base):
    """Registro inmutable de un cambio de stock (auditoría)"""
    __tablename__ = "inventory_movements"

    id = Column(Uuid, primary_key=True, default=uuid4)
    # Sin FK obligatoria: el historial sobrevive al borrado del producto
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    product_name = Column(String(150), nullable=False)  # Snapshot

    type = Column(Enum(MovementType, values_callable=enum_values, name="movement_type"), nullable=False, index=True)
    quantity = Column(Numeric(12, 3), nullable=False)  # Siempre positiva, el tipo indica la dirección
    reference = Column(String(100), nullable=True)  # Número de factura, nota de crédito, etc.
    notes = Column(Text, nullable=True)

    date = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    product = relationship("Product", back_populates="movements")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_movement_quantity_positive"),
    )
