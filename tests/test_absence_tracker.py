# tests/test_absence_tracker.py
from datetime import date, timedelta

from attendance_core.schemas.history import SessionAttendance
from attendance_core.schemas.policy import PolicyConstants
from attendance_core.schemas.status import AttendanceStatus
from attendance_core.services.absence_tracker import (
    consecutive_weeks_absent,
    counts_as_absent,
    tally_attendance,
    week_start,
)

MONDAY = date(2024, 1, 1)


def _session(week: int, day: int = 0, status=AttendanceStatus.PRESENT, **flags) -> SessionAttendance:
    return SessionAttendance(
        sessionDate=MONDAY + timedelta(weeks=week, days=day),
        status=status,
        **flags,
    )


def test_week_start_is_monday():
    assert week_start(date(2024, 1, 3)) == MONDAY
    assert week_start(date(2024, 1, 7)) == MONDAY
    assert week_start(date(2024, 1, 8)) == date(2024, 1, 8)


def test_counts_as_absent_rules():
    assert counts_as_absent(_session(0, status=None)) is True
    assert counts_as_absent(_session(0, status=AttendanceStatus.ABSENT)) is True
    assert counts_as_absent(_session(0, status=AttendanceStatus.ABSENT, isExcused=True)) is False
    assert counts_as_absent(_session(0, status=AttendanceStatus.PENDING)) is False
    assert counts_as_absent(_session(0, status=AttendanceStatus.LATE)) is False


def test_three_consecutive_absent_weeks_are_eligible():
    """
    One absence in a week marks the whole week; a missing record counts as
    an absence.
    """
    sessions = [
        _session(0),
        _session(0, 2),
        _session(1),
        _session(1, 2, AttendanceStatus.ABSENT),
        _session(2, 0, None),
        _session(3, 2, AttendanceStatus.ABSENT),
    ]

    report = consecutive_weeks_absent(sessions)

    assert report.consecutive_weeks == 3
    assert report.is_eligible is True
    assert [w.absent for w in report.weeks] == [False, True, True, True]
    assert report.weeks[0].sessions == 2


def test_excused_and_pending_break_the_run():
    sessions = [
        _session(0, status=AttendanceStatus.ABSENT),
        _session(1, status=AttendanceStatus.ABSENT, isExcused=True),
        _session(2, status=AttendanceStatus.ABSENT),
        _session(3, status=AttendanceStatus.PENDING),
        _session(4, status=AttendanceStatus.ABSENT),
    ]

    report = consecutive_weeks_absent(sessions)

    assert report.consecutive_weeks == 1
    assert report.is_eligible is False


def test_unordered_sessions_are_sorted_by_week():
    sessions = [
        _session(2, status=AttendanceStatus.ABSENT),
        _session(0, status=AttendanceStatus.ABSENT),
        _session(1, status=AttendanceStatus.ABSENT),
    ]

    report = consecutive_weeks_absent(sessions, threshold=4)

    assert report.consecutive_weeks == 3
    assert report.threshold == 4
    assert report.is_eligible is False
    assert report.weeks[0].week_start == MONDAY


def test_no_sessions():
    report = consecutive_weeks_absent([])
    assert report.consecutive_weeks == 0
    assert report.weeks == []


def test_tally_counts_unexcused_absences_and_tardiness():
    records = [
        _session(0, status=AttendanceStatus.ABSENT),
        _session(1, status=AttendanceStatus.ABSENT, isExcused=True),
        _session(2, status=AttendanceStatus.LATE, isTardy=True),
        _session(3, status=AttendanceStatus.PRESENT, isTardy=True),
        _session(4, status=AttendanceStatus.PENDING, isTardy=True),
        _session(5, status=None),
    ]

    tally = tally_attendance(records)

    assert tally.direct_absences == 1
    assert tally.tardiness_count == 2
    assert tally.excused == 1
    assert tally.pending == 1
    assert tally.total_records == 5


def test_threshold_follows_policy_constants():
    sessions = [_session(week, status=AttendanceStatus.ABSENT) for week in range(2)]

    assert consecutive_weeks_absent(sessions).is_eligible is False

    report = consecutive_weeks_absent(sessions, constants=PolicyConstants(df_consecutive_weeks_threshold=2))
    assert report.threshold == 2
    assert report.is_eligible is True
