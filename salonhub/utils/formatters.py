"""
Formatting and parsing helpers shared by services and blueprints.
Dates are handled as naive UTC throughout the application.
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import date, datetime, timezone
from typing import Any, Optional, Union

CENTS = Decimal('0.01')


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse an ISO-8601 string into a naive UTC datetime.

    Aware values are converted to UTC; naive values are taken as UTC.

    Examples:
        parse_datetime('2026-03-02T10:00:00') -> datetime(2026, 3, 2, 10, 0)
        parse_datetime('2026-03-02T10:00:00+05:30') -> datetime(2026, 3, 2, 4, 30)
        parse_datetime(None) -> None
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_date(value: Union[str, date, None]) -> Optional[date]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        return None


def to_decimal(value: Any, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """Convert numbers and numeric strings to Decimal, or return default."""
    if value is None or value == '':
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def money(value: Any) -> Decimal:
    """Round to 2 decimals (half up)."""
    return (to_decimal(value, Decimal('0'))).quantize(CENTS, rounding=ROUND_HALF_UP)


def slugify(text: str) -> str:
    """
    URL-safe identifier from a display name.

    Examples:
        slugify('Glow & Go Spa') -> 'glow-go-spa'
        slugify('  Studio 21 ') -> 'studio-21'
    """
    slug = re.sub(r'[^a-z0-9]+', '-', (text or '').lower())
    return slug.strip('-')


def serialize_value(value: Any) -> Any:
    """JSON-friendly representation for dates and decimals."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value
