"""
Utilidades numéricas y de fechas compartidas por los servicios de análisis.
Evita duplicación de redondeos y formatos entre agregadores y exportadores.
"""
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
import math

from django.utils import timezone


def round_half_up(value: float, decimals: int = 0) -> float:
    """
    Redondeo "escolar" (0.5 sube), el mismo que usan los tableros de campo.

    ``round()`` de Python redondea al par (banker's rounding), lo que haría
    que un 62.5% apareciera como 62% en un reporte y 63% en otro.
    """
    try:
        quantum = Decimal(1).scaleb(-decimals)
        return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))
    except (InvalidOperation, ValueError):
        return value


def percent(part: float, whole: float) -> int:
    """Integer percentage of ``part`` over ``whole``; 0 when ``whole`` is 0."""
    if not whole:
        return 0
    return int(round_half_up(part / whole * 100))


def format_number(value) -> str:
    """
    Format a number the way reports print it: integers without decimals,
    everything else trimmed to two decimals.

    >>> format_number(5.0), format_number(4.25), format_number(3)
    ('5', '4.25', '3')
    """
    if value is None:
        return 'N/A'
    number = float(value)
    if math.isfinite(number) and number == int(number):
        return str(int(number))
    return f"{number:.2f}".rstrip('0').rstrip('.')


def to_number(value):
    """
    Coerce an answer to a finite float, or None when it is not numeric.

    Booleans count as 1/0; lists, dicts and blank strings are not numbers.
    """
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            number = float(stripped)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def is_answered(value) -> bool:
    """Missing, None and empty-string answers do not count as answered."""
    return value is not None and value != ''


def local_day(moment) -> date:
    """Calendar day of a timestamp in the project's TIME_ZONE."""
    if isinstance(moment, datetime):
        if timezone.is_aware(moment):
            moment = timezone.localtime(moment)
        return moment.date()
    return moment


def local_datetime(moment: datetime) -> datetime:
    if timezone.is_aware(moment):
        return timezone.localtime(moment)
    return moment


def is_valid_coordinate(lat, lng) -> bool:
    """Finite latitude within ±90 and longitude within ±180."""
    lat, lng = to_number(lat), to_number(lng)
    if lat is None or lng is None:
        return False
    return abs(lat) <= 90 and abs(lng) <= 180
