"""
Utilidades de fechas.

Las fechas se guardan en UTC (naive en SQLite). Una fecha de calendario sin
hora (``YYYY-MM-DD``) se ancla al mediodía local para que al convertir a UTC
no cambie de día.
"""
import calendar
import re
from datetime import date, datetime, time, timezone
from typing import Optional, Tuple, Union
from zoneinfo import ZoneInfo

from app.core.config import settings
from app.common.errors import ValidationError

_BARE_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

LOCAL_NOON = time(12, 0)


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=local_tz())
    return value.astimezone(timezone.utc)


def as_local(value: Optional[datetime]) -> Optional[datetime]:
    """Valor leído de la BD (UTC, posiblemente naive) en hora local."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(local_tz())


def parse_movement_date(value: Union[str, date, datetime, None]) -> datetime:
    """
    Fecha efectiva de un movimiento o documento, en UTC.

    - None: ahora
    - date o ``YYYY-MM-DD``: mediodía local de ese día
    - datetime o ISO con hora: se respeta la hora (naive = hora local)
    """
    if value is None or value == "":
        return utcnow()
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, LOCAL_NOON, tzinfo=local_tz()).astimezone(timezone.utc)
    text = str(value).strip()
    if _BARE_DATE.match(text):
        try:
            day = date.fromisoformat(text)
        except ValueError:
            raise ValidationError(f"Fecha inválida: {value}")
        return datetime.combine(day, LOCAL_NOON, tzinfo=local_tz()).astimezone(timezone.utc)
    try:
        return to_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        raise ValidationError(f"Fecha inválida: {value}")


def month_range(month: int, year: int) -> Tuple[datetime, datetime]:
    """Inicio (incluido) y fin (excluido) del mes local, en UTC."""
    if not 1 <= month <= 12:
        raise ValidationError("El mes debe estar entre 1 y 12")
    tz = local_tz()
    start = datetime(year, month, 1, tzinfo=tz)
    end = datetime(year + 1, 1, 1, tzinfo=tz) if month == 12 else datetime(year, month + 1, 1, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def local_today() -> date:
    return utcnow().astimezone(local_tz()).date()


def add_months(value: datetime, months: int) -> datetime:
    """Suma meses; si el día no existe en el mes destino se usa el último (31 ene + 1 = 28/29 feb)."""
    index = value.month - 1 + months
    year, month = value.year + index // 12, index % 12 + 1
    return value.replace(year=year, month=month, day=min(value.day, calendar.monthrange(year, month)[1]))


def with_day_of_month(value: datetime, day: int) -> datetime:
    return value.replace(day=min(day, calendar.monthrange(value.year, value.month)[1]))
