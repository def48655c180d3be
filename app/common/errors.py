"""
Jerarquía de errores de negocio.

Los servicios lanzan estas excepciones; la capa de acciones las convierte en
resultados ``{"success": False, "message": ...}`` y los routers en códigos HTTP.

- ValidationError: datos inválidos, se rechaza antes de cualquier escritura
- ConsistencyError: stock, referencias o secuencias inconsistentes
- InfrastructureError: almacenamiento inaccesible, sin transacciones, timeouts
"""
from decimal import Decimal
from typing import Optional


class BusinessError(Exception):
    """Error con mensaje legible para el usuario."""

    kind = "error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BusinessError):
    kind = "validation"


class ConsistencyError(BusinessError):
    kind = "conflict"


class NotFoundError(ConsistencyError):
    kind = "not_found"

    def __init__(self, entity: str, identifier: Optional[object] = None, name: Optional[str] = None):
        message = f"{entity} no encontrado"
        if name:
            message += f": {name}"
        if identifier is not None:
            message += f" (ID: {identifier})"
        super().__init__(message)
        self.entity = entity
        self.identifier = identifier


class InsufficientStockError(ConsistencyError):

    def __init__(self, product_name: str, available: Decimal, requested: Decimal):
        super().__init__(
            f"Stock insuficiente para {product_name}. "
            f"Disponible: {format_quantity(available)}, Solicitado: {format_quantity(requested)}"
        )
        self.product_name = product_name
        self.available = available
        self.requested = requested


class FiscalSequenceError(ConsistencyError):
    """Colisión o duplicado en la secuencia de NCF."""

    def __init__(self, message: str, ncf_type: Optional[str] = None):
        super().__init__(message)
        self.ncf_type = ncf_type


class CreditLimitExceededError(ConsistencyError):
    """Se intenta acreditar más de lo que la factura despachó."""


class InfrastructureError(BusinessError):
    kind = "unavailable"


class TransactionsUnsupportedError(InfrastructureError):

    def __init__(self, message: str = "El almacenamiento no soporta transacciones multi-documento"):
        super().__init__(message)


class StorageTimeoutError(InfrastructureError):
    retryable = True

    def __init__(self, message: str = "La base de datos no respondió a tiempo, intente de nuevo."):
        super().__init__(message)


def format_quantity(value) -> str:
    if isinstance(value, Decimal):
        normalized = value.normalize()
        if normalized == normalized.to_integral():
            return str(normalized.quantize(Decimal(1)))
        return str(normalized)
    return str(value)
