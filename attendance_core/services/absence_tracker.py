# attendance_core/services/absence_tracker.py
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional

from attendance_core.schemas.history import (
    AttendanceTally,
    ConsecutiveAbsenceReport,
    SessionAttendance,
    WeekAbsence,
)
from attendance_core.schemas.policy import PolicyConstants
from attendance_core.schemas.status import AttendanceStatus
from attendance_core.services.time_utils import to_utc


def _session_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return to_utc(value).date()
    return value


def week_start(day: date) -> date:
    """Monday of the ISO week containing `day`."""
    return day - timedelta(days=day.weekday())


def counts_as_absent(session: SessionAttendance) -> bool:
    """
    Rules
    -----
    1) No record for the session     => absent
    2) Excused                       => not absent
    3) Pending (not yet finalized)   => not absent
    4) Status ABSENT                 => absent
    5) Anything else (late included) => not absent
    """
    if session.status is None:
        return True
    if session.is_excused:
        return False
    if session.status == AttendanceStatus.PENDING:
        return False
    return session.status == AttendanceStatus.ABSENT


def consecutive_weeks_absent(
    sessions: Iterable[SessionAttendance],
    *,
    constants: PolicyConstants | None = None,
    threshold: Optional[int] = None,
) -> ConsecutiveAbsenceReport:
    """
    Longest run of consecutive weeks with at least one unexcused absence.

    Only weeks that contain scheduled sessions are considered, in
    chronological order; a week without sessions neither extends nor breaks
    a run. `threshold` defaults to the regime's consecutive-weeks threshold.
    """
    if threshold is None:
        threshold = (constants or PolicyConstants()).df_consecutive_weeks_threshold

    weeks: Dict[date, List[SessionAttendance]] = {}
    for session in sorted(sessions, key=lambda s: _session_date(s.session_date)):
        weeks.setdefault(week_start(_session_date(session.session_date)), []).append(session)

    breakdown: List[WeekAbsence] = []
    longest = 0
    current = 0
    for start in sorted(weeks):
        absent = any(counts_as_absent(s) for s in weeks[start])
        breakdown.append(WeekAbsence(week_start=start, sessions=len(weeks[start]), absent=absent))
        if absent:
            current += 1
            longest = max(longest, current)
        else:
            current = 0

    return ConsecutiveAbsenceReport(
        consecutive_weeks=longest,
        threshold=threshold,
        is_eligible=longest >= threshold,
        weeks=breakdown,
    )


def tally_attendance(records: Iterable[SessionAttendance]) -> AttendanceTally:
    """
    Count unexcused direct absences and tardiness from stored records.
    Sessions with no record are not counted here.
    """
    tally = AttendanceTally()
    for record in records:
        if record.status is None:
            continue
        tally.total_records += 1
        if record.status == AttendanceStatus.PENDING:
            tally.pending += 1
            continue
        if record.is_excused:
            tally.excused += 1
            continue
        if record.status == AttendanceStatus.ABSENT:
            tally.direct_absences += 1
        if record.is_tardy:
            tally.tardiness_count += 1
    return tally
