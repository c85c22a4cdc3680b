# attendance_core/services/time_utils.py
from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, Tuple

logger = logging.getLogger(__name__)

ClockTriple = Tuple[int, int, int]

_DAY_FIRST_RE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_midnight(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        value = to_utc(value).date()
    return datetime.combine(value, time(0, 0), tzinfo=timezone.utc)


def round_half_up(value: float, digits: int = 0) -> float:
    """
    Round half away from zero for positives (2.5 -> 3, 22.5 -> 23).

    Python's round() uses banker's rounding, which would shift policy
    thresholds at exact .5 boundaries.
    """
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def parse_clock_triple(text: Any) -> Optional[ClockTriple]:
    """
    Parse "H:MM:SS", "H:MM" or "H" into (hours, minutes, seconds).

    Missing trailing fields default to 0. No range validation is applied, so
    "25:00:00" parses as (25, 0, 0). Returns None for empty or non-numeric
    input.
    """
    if text is None:
        return None
    text = str(text).strip()
    if not text:
        return None

    parts = text.split(":")
    if len(parts) > 3:
        return None

    values = []
    for part in parts:
        part = part.strip()
        if not part.isdigit():
            return None
        values.append(int(part))

    while len(values) < 3:
        values.append(0)
    return values[0], values[1], values[2]


def _parse_iso(text: str) -> Optional[datetime]:
    candidate = text.strip()
    # Only full timestamps; a bare clock string must fall through to the triple parser.
    if "T" not in candidate and " " not in candidate:
        return None
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        return to_utc(datetime.fromisoformat(candidate))
    except ValueError:
        return None


def resolve_timestamp(
    value: Any,
    base_date: date | datetime | None = None,
    *,
    now: datetime | None = None,
) -> Optional[datetime]:
    """
    Resolve a timestamp-like value into a UTC instant.

    Rules
    -----
    1) datetime            => normalized to UTC
    2) ISO-8601 timestamp  => parsed, normalized to UTC
    3) ISO-8601 date       => UTC midnight of that day
    4) clock triple        => added to UTC midnight of `base_date`
                              (or of `now`, or of the current instant);
                              out-of-range fields roll over
    5) anything else       => None (including values too large to represent)
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_utc(value)

    text = str(value).strip()
    if not text:
        return None

    parsed = _parse_iso(text)
    if parsed is not None:
        return parsed

    if "-" in text:
        try:
            return utc_midnight(date.fromisoformat(text))
        except ValueError:
            return None

    triple = parse_clock_triple(text)
    if triple is None:
        return None

    base = base_date if base_date is not None else (now or utcnow())
    hours, minutes, seconds = triple
    try:
        return utc_midnight(base) + timedelta(hours=hours, minutes=minutes, seconds=seconds)
    except (OverflowError, ValueError):
        # e.g. an epoch-millis number read as an hour count
        return None


def format_clock(value: Any) -> Optional[str]:
    if not isinstance(value, datetime):
        return None
    return to_utc(value).strftime("%H:%M:%S")


def parse_calendar_day(value: Any, *, today: datetime | None = None) -> datetime:
    """
    Normalize a session-date value to UTC midnight.

    Accepts date/datetime objects, day-first "dd/mm/yyyy" or "dd-mm-yyyy"
    strings (two-digit years are read as 20xx) and ISO dates or timestamps.
    Anything else falls back to midnight of `today` with a warning.
    """
    if isinstance(value, (date, datetime)):
        return utc_midnight(value)

    text = str(value).strip() if value is not None else ""
    if text:
        match = _DAY_FIRST_RE.match(text)
        if match:
            day, month, year = (int(g) for g in match.groups())
            if year < 100:
                year += 2000
            try:
                return utc_midnight(date(year, month, day))
            except ValueError:
                pass
        else:
            iso = _parse_iso(text)
            if iso is not None:
                return utc_midnight(iso)
            try:
                return utc_midnight(date.fromisoformat(text))
            except ValueError:
                pass

    fallback = utc_midnight(today or utcnow())
    logger.warning("Unparseable session date %r; using %s", value, fallback.date().isoformat())
    return fallback


def format_duration(seconds: Any) -> str:
    try:
        total = float(seconds)
    except (TypeError, ValueError):
        total = 0.0
    if not math.isfinite(total) or total < 0:
        total = 0.0

    total_seconds = int(total)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
