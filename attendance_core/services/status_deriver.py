# attendance_core/services/status_deriver.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from attendance_core.schemas.participant import ParticipantEvent
from attendance_core.schemas.status import STATUS_LABELS, UNKNOWN_LABEL, AttendanceStatus

SHORT_ATTENDANCE_SECONDS = 60


def derive_raw_status(
    event: ParticipantEvent,
    *,
    meeting_ended: bool = False,
    host_leave_time: Optional[datetime] = None,
) -> AttendanceStatus:
    """
    Derive the raw status of a single participant entry.

    Rules (first match wins)
    ------------------------
    1) Explicit rawStatus/status text                  => parsed status
    2) Synchronized AND meeting ended AND host left    => PRESENT
    3) Leave time present:
       a) meeting ongoing, not in meeting, not marked
          absent                                       => PENDING
       b) meeting ended, not synchronized              => ABSENT
       c) otherwise                                    => LEFT
    4) Attended duration under 60 seconds              => JOINED
    5) Not live and not synchronized                   => LEFT
    6) Otherwise                                       => PRESENT
    """
    explicit = AttendanceStatus.parse(event.explicit_status)

    # Rule 1
    if explicit is not None:
        return explicit

    synchronized = bool(event.timeout_synchronized)

    # Rule 2
    if synchronized and meeting_ended and host_leave_time is not None:
        return AttendanceStatus.PRESENT

    # Rule 3
    if event.has_leave_time:
        if not meeting_ended and event.is_currently_in_meeting is False:
            return AttendanceStatus.PENDING
        if meeting_ended and not synchronized:
            return AttendanceStatus.ABSENT
        return AttendanceStatus.LEFT

    # Rule 4
    seconds = event.attended_seconds
    if seconds is not None and seconds < SHORT_ATTENDANCE_SECONDS:
        return AttendanceStatus.JOINED

    # Rule 5
    if event.is_live is False and not synchronized:
        return AttendanceStatus.LEFT

    # Rule 6: no signal at all still reads as present
    return AttendanceStatus.PRESENT


def format_status_label(status: Any) -> str:
    """
    Human-readable label for a status; "Unknown" for anything unmapped.
    """
    parsed = AttendanceStatus.parse(status)
    if parsed is None:
        return UNKNOWN_LABEL
    return STATUS_LABELS.get(parsed, UNKNOWN_LABEL)
