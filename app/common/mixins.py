"""
Mixins comunes para los modelos
"""
from sqlalchemy import Column, DateTime, Uuid
from uuid import uuid4

from app.common.dates import utcnow


class TimestampMixin:
    """Mixin para modelos con control de fechas de creación / actualización"""

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class BaseMixin(TimestampMixin):
    """Identificador UUID + timestamps, para la mayoría de entidades de negocio"""

    id = Column(Uuid, primary_key=True, default=uuid4, index=True)


def enum_values(enum_cls):
    """Para Enum(..., values_callable=enum_values): guarda el valor, no el nombre."""
    return [member.value for member in enum_cls]
