import re
import uuid
from calendar import monthrange
from datetime import date, datetime
from typing import Any, Iterable, Optional

from .exceptions import ValidationError

INFLOW = "INFLOW"
OUTFLOW = "OUTFLOW"

_INT_STRING_RE = re.compile(r"^-?\d+$")
_YMD_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def first_present(body: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first key present in ``body`` (camelCase or snake_case aliases)."""
    for key in keys:
        if key in body and body[key] is not None:
            return body[key]
    return default


def clean_id_list(raw: Any) -> list[str]:
    """
    Trim, drop blanks and de-duplicate an id list while keeping input order.
    Non-list input is treated as empty.
    """
    if not isinstance(raw, (list, tuple)):
        return []
    seen: dict[str, None] = {}
    for value in raw:
        text = str(value if value is not None else "").strip()
        if text:
            seen.setdefault(text, None)
    return list(seen)


def parse_uuid(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except (TypeError, ValueError, AttributeError):
        return None


def parse_uuid_list(values: Iterable[str]) -> Optional[list[uuid.UUID]]:
    """Parse every id or return None when any of them is not a UUID."""
    parsed = []
    for value in values:
        as_uuid = parse_uuid(value)
        if as_uuid is None:
            return None
        parsed.append(as_uuid)
    return parsed


def parse_cents(value: Any, *, field: str = "matchedAmountCents") -> int:
    """
    Accept integer cents as an int or a decimal-integer string.

    Floats, fractional strings, booleans and zero are rejected.
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {field}")
    if isinstance(value, int):
        cents = value
    elif isinstance(value, str) and _INT_STRING_RE.match(value.strip()):
        cents = int(value.strip())
    else:
        raise ValidationError(f"Invalid {field}")
    if cents == 0:
        raise ValidationError(f"{field} cannot be 0")
    return cents


def cents_str(value: Optional[int]) -> Optional[str]:
    """Money crosses the wire as decimal-string integer cents."""
    if value is None:
        return None
    return str(int(value))


def direction_for(amount_cents: int) -> str:
    return OUTFLOW if amount_cents < 0 else INFLOW


def normalize_direction(value: Any) -> Optional[str]:
    text = str(value if value is not None else "").strip().upper()
    if text in (INFLOW, OUTFLOW):
        return text
    return None


def parse_ymd(value: Any) -> Optional[date]:
    """
    Normalize a date-ish input to a ``date``.

    Accepts ``date``/``datetime`` objects, ``YYYY-MM-DD`` strings and ISO
    timestamps (first ten characters). Anything else yields None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) > 10 and text[10] == "T":
        text = text[:10]
    if not _YMD_RE.match(text):
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def ymd(value: Optional[date]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def is_valid_month(value: Any) -> bool:
    return isinstance(value, str) and bool(_MONTH_RE.match(value))


def month_of(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def month_end(month: str) -> date:
    year, mon = int(month[:4]), int(month[5:7])
    return date(year, mon, monthrange(year, mon)[1])


def next_month(month: str) -> str:
    year, mon = int(month[:4]), int(month[5:7])
    if mon == 12:
        return f"{year + 1:04d}-01"
    return f"{year:04d}-{mon + 1:02d}"


def months_between(start: str, end: str) -> list[str]:
    """Inclusive list of ``YYYY-MM`` keys from ``start`` through ``end``."""
    months = []
    current = start
    while current <= end:
        months.append(current)
        current = next_month(current)
    return months
