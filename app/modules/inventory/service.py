import logging
from collections import OrderedDict
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import Numeric, case, literal, select, update
from sqlalchemy.orm import Session

from app.common.dates import local_today, month_range, parse_movement_date, utcnow
from app.common.errors import InsufficientStockError, NotFoundError, ValidationError
from app.common.validators import to_decimal
from app.database.transaction import in_autocommit
from app.modules.products.models import InventoryMovement, MovementType, Product
from app.modules.inventory.schemas import MovementMetadata, StockChange

logger = logging.getLogger(__name__)

QUANTITY = Numeric(12, 3)
MANUAL_ENTRY_REFERENCE = "Entrada manual"


def aggregate_demand(items: Iterable[StockChange]) -> "OrderedDict[UUID, Tuple[Decimal, Optional[str]]]":
    """Suma cantidades por producto (una factura puede repetir el mismo producto)."""
    demand: "OrderedDict[UUID, Tuple[Decimal, Optional[str]]]" = OrderedDict()
    for item in items:
        quantity = to_decimal(item.quantity)
        if quantity <= 0:
            raise ValidationError(f"La cantidad debe ser mayor que cero ({item.product_name or item.product_id})")
        current, name = demand.get(item.product_id, (Decimal("0"), None))
        demand[item.product_id] = (current + quantity, item.product_name or name)
    return demand


class InventoryService:
    """Servicio de inventario: único punto que modifica Product.stock."""

    def __init__(self, db: Session):
        self.db = db

    def validate_stock_availability(self, items: Iterable[StockChange]) -> Dict[UUID, Product]:
        """
        Verifica que la demanda agregada por producto no supere el stock.

        Lee todos los productos referenciados en una sola consulta y falla en
        la primera violación con nombre, disponible y solicitado.
        """
        demand = aggregate_demand(items)
        if not demand:
            return {}

        products = self.db.execute(
            select(Product).where(Product.id.in_(list(demand.keys())))
        ).scalars().all()
        by_id = {p.id: p for p in products}

        for product_id, (requested, name) in demand.items():
            product = by_id.get(product_id)
            if product is None:
                raise NotFoundError("Producto", product_id, name=name or "Producto desconocido")
            if to_decimal(product.stock) < requested:
                raise InsufficientStockError(product.name, to_decimal(product.stock), requested)

        return by_id

    def bulk_update_stock(
        self,
        items: Iterable[StockChange],
        direction: str,
        movement: Optional[MovementMetadata] = None,
    ) -> List[InventoryMovement]:
        """
        Aplica incrementos / decrementos atómicos de stock en una sola sentencia.

        UPDATE products SET stock = stock + CASE id WHEN ... END WHERE id IN (...)

        No valida suficiencia (eso lo hace validate_stock_availability antes),
        pero nunca deja stock negativo: si tras la escritura algún producto
        quedó por debajo de cero, la operación falla y se aborta la unidad de
        trabajo. Si se pasa ``movement`` se crea un movimiento por producto.
        """
        if direction not in ("add", "subtract"):
            raise ValidationError(f"Dirección de stock inválida: {direction}")

        demand = aggregate_demand(items)
        if not demand:
            return []

        sign = Decimal("1") if direction == "add" else Decimal("-1")
        deltas = {product_id: quantity * sign for product_id, (quantity, _) in demand.items()}
        product_ids = list(deltas.keys())

        table = Product.__table__
        increment = case(
            *[(table.c.id == product_id, literal(delta, QUANTITY)) for product_id, delta in deltas.items()],
            else_=literal(Decimal("0"), QUANTITY),
        )
        result = self.db.execute(
            update(table)
            .where(table.c.id.in_(product_ids))
            .values(stock=table.c.stock + increment, updated_at=utcnow())
        )
        self._expire_stock(product_ids)

        rows = self.db.execute(
            select(table.c.id, table.c.name, table.c.stock).where(table.c.id.in_(product_ids))
        ).all()
        current = {row.id: (row.name, to_decimal(row.stock)) for row in rows}

        if result.rowcount != len(product_ids) or len(current) != len(product_ids):
            missing = next(pid for pid in product_ids if pid not in current)
            self._compensate(deltas, applied=current.keys())
            raise NotFoundError("Producto", missing, name=demand[missing][1] or "Producto desconocido")

        if direction == "subtract":
            for product_id, (name, stock) in current.items():
                if stock < 0:
                    requested = demand[product_id][0]
                    self._compensate(deltas, applied=current.keys())
                    raise InsufficientStockError(name, stock + requested, requested)

        logger.info(
            f"Stock actualizado ({direction}) para {len(product_ids)} producto(s)"
            + (f", referencia {movement.reference}" if movement and movement.reference else "")
        )

        if movement is None:
            return []

        effective_date = parse_movement_date(movement.date)
        created = []
        for product_id, (quantity, name) in demand.items():
            entry = InventoryMovement(
                product_id=product_id,
                product_name=name or current[product_id][0],
                type=movement.type,
                quantity=quantity,
                reference=movement.reference,
                notes=movement.notes,
                date=effective_date,
                created_at=utcnow(),
            )
            self.db.add(entry)
            created.append(entry)
        self.db.flush()
        return created

    def add_product_stock(
        self,
        product_id: UUID,
        quantity: Decimal,
        movement_date=None,
        notes: Optional[str] = None,
    ) -> Product:
        """Entrada manual de mercancía: suma stock y registra un movimiento ENTRADA."""
        try:
            quantity = to_decimal(quantity)
        except InvalidOperation:
            raise ValidationError(f"Cantidad inválida: {quantity}")
        if quantity <= 0:
            raise ValidationError("La cantidad debe ser mayor que cero")

        product = self.db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Producto", product_id)

        self.bulk_update_stock(
            [StockChange(product_id=product.id, quantity=quantity, product_name=product.name)],
            "add",
            MovementMetadata(
                type=MovementType.IN,
                reference=MANUAL_ENTRY_REFERENCE,
                date=movement_date,
                notes=notes,
            ),
        )
        self.db.refresh(product)
        return product

    def get_inventory_movements(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
        product_id: Optional[UUID] = None,
    ) -> List[InventoryMovement]:
        """Movimientos más recientes primero; filtra por mes local si se indica."""
        query = select(InventoryMovement)
        if month is not None or year is not None:
            today = local_today()
            start, end = month_range(month or today.month, year or today.year)
            query = query.where(InventoryMovement.date >= start, InventoryMovement.date < end)
        if product_id is not None:
            query = query.where(InventoryMovement.product_id == product_id)
        query = query.order_by(InventoryMovement.date.desc(), InventoryMovement.created_at.desc())
        return list(self.db.execute(query).scalars().all())

    def _expire_stock(self, product_ids: List[UUID]):
        # la sentencia Core no sincroniza los objetos ya cargados en la sesión
        wanted = set(product_ids)
        for obj in list(self.db.identity_map.values()):
            if isinstance(obj, Product) and obj.id in wanted:
                self.db.expire(obj, ["stock", "updated_at"])

    def _compensate(self, deltas: Dict[UUID, Decimal], applied):
        """Sin transacción no hay rollback: revierte a mano los incrementos aplicados."""
        if not in_autocommit(self.db):
            return
        applied = set(applied)
        reverse = {pid: -delta for pid, delta in deltas.items() if pid in applied}
        if not reverse:
            return
        table = Product.__table__
        self.db.execute(
            update(table)
            .where(table.c.id.in_(list(reverse.keys())))
            .values(stock=table.c.stock + case(
                *[(table.c.id == pid, literal(delta, QUANTITY)) for pid, delta in reverse.items()],
                else_=literal(Decimal("0"), QUANTITY),
            ))
        )
        self._expire_stock(list(reverse.keys()))
        logger.warning(f"Compensación de stock aplicada a {len(reverse)} producto(s) tras un fallo sin transacción")
