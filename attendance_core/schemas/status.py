# attendance_core/schemas/status.py
from __future__ import annotations

from enum import Enum


class AttendanceStatus(str, Enum):
    """
    Closed set of attendance statuses produced by the derivation pipeline.

    UNKNOWN is reserved for text that cannot be mapped onto one of the other
    members; it is never produced by inference, only by parsing.
    """

    PRESENT = "present"
    LATE = "late"
    ABSENT = "absent"
    PENDING = "pending"
    LEFT = "left"
    JOINED = "joined"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: object) -> AttendanceStatus | None:
        """
        Parse free-form status text.

        Returns None for missing or blank input, UNKNOWN for text that does not
        match any status.
        """
        if value is None:
            return None
        if isinstance(value, AttendanceStatus):
            return value

        text = str(value).strip().lower()
        if not text:
            return None

        text = _STATUS_ALIASES.get(text, text)
        try:
            return cls(text)
        except ValueError:
            return cls.UNKNOWN


_STATUS_ALIASES = {
    "left meeting": "left",
    "just joined": "joined",
}


STATUS_LABELS = {
    AttendanceStatus.PRESENT: "Present",
    AttendanceStatus.LATE: "Late",
    AttendanceStatus.ABSENT: "Absent",
    AttendanceStatus.PENDING: "Pending",
    AttendanceStatus.LEFT: "Left Meeting",
    AttendanceStatus.JOINED: "Just Joined",
}

UNKNOWN_LABEL = "Unknown"
