# attendance_core/schemas/lenient.py
from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Optional

from attendance_core.services.time_utils import resolve_timestamp

_TRUE = {"true", "yes", "y", "1", "on"}
_FALSE = {"false", "no", "n", "0", "off", ""}


def lenient_text(value: Any) -> Optional[str]:
    """Strings pass through, numbers are stringified, anything else is dropped."""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def lenient_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def lenient_flag(value: Any) -> Optional[bool]:
    """Booleans and their common spellings; None when unrecognized."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
    return None


def lenient_instant(value: Any) -> Optional[datetime]:
    """Datetimes and timestamp strings; unparseable values become None."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return resolve_timestamp(value)
    return None


def lenient_time_value(value: Any) -> Any:
    """Join/leave values: datetimes and strings are resolved later; numbers kept as text."""
    if isinstance(value, (datetime, str)):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def lenient_day(value: Any) -> Any:
    if isinstance(value, (date, datetime, str)):
        return value
    return None
