# attendance_core/services/status_rules.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import NamedTuple, Optional, Union

from attendance_core.schemas.batch import ClassWindow
from attendance_core.schemas.status import AttendanceStatus
from attendance_core.services.time_utils import to_utc

DayValue = Union[date, datetime]


@dataclass(frozen=True)
class RuleContext:
    is_tardy: bool = False
    session_is_during_add_drop: bool = False
    instructor_late: bool = False
    first_third_threshold: Optional[datetime] = None
    leave_date: Optional[datetime] = None


class TardinessResult(NamedTuple):
    is_tardy: bool
    tardiness_minutes: float
    threshold_minutes: float


def apply_status_rules(status: AttendanceStatus, rules: RuleContext) -> AttendanceStatus:
    """
    Apply policy overrides on top of the state-machine status.

    Rules
    -----
    1) Instructor late AND student left before the first third of class
       AND status ABSENT                               => PRESENT
    2) Status PRESENT AND tardy AND not in add/drop    => LATE
    3) Otherwise                                       => unchanged
    """
    # Rule 1: students may leave once they've waited out a late instructor
    if (
        rules.instructor_late
        and rules.first_third_threshold is not None
        and rules.leave_date is not None
        and rules.leave_date < rules.first_third_threshold
        and status == AttendanceStatus.ABSENT
    ):
        return AttendanceStatus.PRESENT

    # Rule 2
    if (
        status == AttendanceStatus.PRESENT
        and rules.is_tardy
        and not rules.session_is_during_add_drop
    ):
        return AttendanceStatus.LATE

    return status


def class_duration_minutes(window: ClassWindow) -> float:
    start = to_utc(window.scheduled_start)
    end = to_utc(window.scheduled_end)
    return max(0.0, (end - start).total_seconds() / 60)


def is_instructor_late(
    window: ClassWindow,
    instructor_join_time: Optional[datetime],
    *,
    threshold_percent: float,
) -> bool:
    """
    An instructor is late when they joined after the tardiness threshold
    (threshold_percent of the class) has passed.
    """
    if instructor_join_time is None:
        return False
    duration = class_duration_minutes(window)
    if duration <= 0:
        return False
    late_after = to_utc(window.scheduled_start) + timedelta(minutes=duration * threshold_percent)
    return to_utc(instructor_join_time) > late_after


def first_third_threshold(window: ClassWindow, *, wait_percent: float) -> datetime:
    duration = class_duration_minutes(window)
    return to_utc(window.scheduled_start) + timedelta(minutes=duration * wait_percent)


def calculate_tardiness(
    window: ClassWindow,
    join_time: Optional[datetime],
    *,
    threshold_percent: float,
    instructor_join_time: Optional[datetime] = None,
) -> TardinessResult:
    """
    Compute whether a join is tardy against the class window.

    A join is tardy when it lands more than `threshold_percent` of the class
    duration after the effective start. When the instructor joined after that
    threshold, the instructor's join becomes the effective start and students
    who joined no later than the instructor are never tardy.
    """
    duration = class_duration_minutes(window)
    if join_time is None or duration <= 0:
        return TardinessResult(False, 0.0, 0.0)

    threshold_minutes = duration * threshold_percent
    start = to_utc(window.scheduled_start)
    joined = to_utc(join_time)
    effective_start = start

    if instructor_join_time is not None:
        instructor_joined = to_utc(instructor_join_time)
        if instructor_joined > start + timedelta(minutes=threshold_minutes):
            if joined <= instructor_joined:
                return TardinessResult(False, 0.0, threshold_minutes)
            effective_start = instructor_joined

    minutes_late = (joined - effective_start).total_seconds() / 60
    is_tardy = minutes_late > threshold_minutes
    return TardinessResult(is_tardy, minutes_late if is_tardy else 0.0, threshold_minutes)


def _as_day(value: DayValue) -> date:
    if isinstance(value, datetime):
        return to_utc(value).date()
    return value


def is_during_add_drop_period(
    session_day: Optional[DayValue],
    start: Optional[DayValue],
    end: Optional[DayValue],
) -> bool:
    """Day-granular and inclusive at both ends; False if any bound is missing."""
    if session_day is None or start is None or end is None:
        return False
    day = _as_day(session_day)
    return _as_day(start) <= day <= _as_day(end)
