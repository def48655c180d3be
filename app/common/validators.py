"""
Validadores específicos para República Dominicana
"""
import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional


def clean_document(value: str) -> str:
    """Quita guiones, puntos y espacios de un RNC / cédula."""
    return re.sub(r'[\.\s\-]', '', value or '')


def validate_rnc(rnc: str) -> bool:
    """
    Valida RNC dominicano.
    - 9 dígitos
    - Solo números
    """
    cleaned = clean_document(rnc)
    return cleaned.isdigit() and len(cleaned) == 9


def validate_cedula(cedula: str) -> bool:
    """
    Valida cédula dominicana.
    - 11 dígitos (XXX-XXXXXXX-X)
    - Solo números
    """
    cleaned = clean_document(cedula)
    return cleaned.isdigit() and len(cleaned) == 11


def validate_tax_id(value: Optional[str]) -> bool:
    """RNC o cédula; vacío se acepta (consumidor final)."""
    if not value:
        return True
    return validate_rnc(value) or validate_cedula(value)


def round_money(value) -> Decimal:
    """Redondeo a 2 decimales, mitad hacia arriba."""
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))
