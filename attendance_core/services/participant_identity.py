# attendance_core/services/participant_identity.py
from __future__ import annotations

import hashlib
import re
from datetime import date, datetime
from typing import Optional

from attendance_core.schemas.participant import ParticipantEvent
from attendance_core.services.time_utils import to_utc

_SUFFIX_PATTERNS = [
    re.compile(r"\s*\(Host\)$", re.IGNORECASE),
    re.compile(r"\s*\(You\)$", re.IGNORECASE),
    re.compile(r"\s*\(Presenting\)$", re.IGNORECASE),
    re.compile(r"\s*\(Guest\)$", re.IGNORECASE),
    re.compile(r"\s*\(External\)$", re.IGNORECASE),
    re.compile(r"\s*- Host$", re.IGNORECASE),
    re.compile(r"\s*- You$", re.IGNORECASE),
]
_TRAILING_PARENTHETICAL = re.compile(r"\s*\([^)]*\)\s*$")

UNKNOWN_CODE = "unknown"


def normalize_name(name: Optional[str]) -> str:
    """
    Strip the suffixes the meeting UI appends to display names.

    "Jane Doe (Host)" and "Jane Doe - You" both normalize to "Jane Doe".
    """
    if not name or not isinstance(name, str):
        return ""

    cleaned = name.strip()
    for pattern in _SUFFIX_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    cleaned = _TRAILING_PARENTHETICAL.sub("", cleaned)
    return cleaned.strip()


def name_key(name: Optional[str]) -> str:
    return normalize_name(name).lower()


def strong_identifier(event: ParticipantEvent) -> Optional[str]:
    """First non-empty platform identifier, in priority order."""
    for value in (event.avatar_url, event.participant_id, event.student_id):
        if value and str(value).strip():
            return str(value).strip()
    return None


def _day_string(day: date | datetime) -> str:
    if isinstance(day, datetime):
        day = to_utc(day).date()
    return day.isoformat()


def _digest(source: str) -> str:
    return hashlib.sha256(source.encode("utf-8")).hexdigest()[:16]


def participant_token(
    event: ParticipantEvent,
    meet_code: Optional[str],
    session_day: date | datetime,
) -> Optional[str]:
    """
    Stable token for a participant within one session.

    The identifier is the avatar URL, participant id or student id, in that
    order, else "<normalized lower-cased name>-<meet code>". Entries with no
    identifier and no name get no token.
    """
    code = meet_code or UNKNOWN_CODE
    identifier = strong_identifier(event)
    if identifier is None:
        key = name_key(event.label)
        if not key:
            return None
        identifier = f"{key}-{code}"

    return _digest(f"{identifier}|{code}|{_day_string(session_day)}")


def session_token(
    meet_code: Optional[str],
    session_day: date | datetime,
    instructor_id: Optional[str] = None,
) -> str:
    return _digest(f"{meet_code or UNKNOWN_CODE}|{_day_string(session_day)}|{instructor_id or 'any'}")
