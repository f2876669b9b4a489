"""Shared parsing helpers for blueprints and services.

parse_date:        returns None on bad input
parse_date_input:  raises ValueError on bad input (blueprints turn it into 400)
parse_id_list:     "1,2,3" or [1, 2, 3] → [1, 2, 3]
parse_number:      numeric JSON value or numeric string → float | None
"""
import math
from datetime import date, datetime


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value, field="date"):
    """Same as parse_date() but raises ValueError instead of returning None.

    Empty input still returns None; callers decide whether it is required.
    """
    if value in (None, ""):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError(f"Invalid {field}: {value!r} (expected YYYY-MM-DD)")
    return parsed


def parse_id_list(value):
    """Parse a comma-separated string or list into a list of ints.

    Raises ValueError on non-integer members.
    """
    if value in (None, ""):
        return []
    if isinstance(value, (list, tuple, set)):
        parts = list(value)
    else:
        parts = [p for p in str(value).split(",") if p.strip()]
    return [int(str(p).strip()) for p in parts]


def parse_number(value):
    """Coerce a JSON number or numeric string to float; None/"" → None.

    Raises ValueError for anything else, NaN and infinities included.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"Not a finite number: {value!r}")
    return number
