# attendance_core/services/policy_engine.py
from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from attendance_core.schemas.policy import (
    DFEligibility,
    DFStatus,
    InstructorWaitStatus,
    PolicyConstants,
    PolicyStatus,
    PolicyThresholds,
    ScheduleSummary,
    StudentPolicyStatus,
    TardinessCheck,
    TardinessConversion,
    TardinessState,
)
from attendance_core.schemas.schedule import ScheduleConfig
from attendance_core.services.status_rules import is_during_add_drop_period
from attendance_core.services.time_utils import parse_clock_triple, round_half_up, to_utc

logger = logging.getLogger(__name__)

# date.weekday() numbering: Monday == 0
WEEKDAY_NUMBERS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
    "mon": 0,
    "tue": 1,
    "wed": 2,
    "thu": 3,
    "fri": 4,
    "sat": 5,
    "sun": 6,
}


def _clock_minutes(value: Optional[str]) -> int:
    triple = parse_clock_triple(value)
    if triple is None:
        return 0
    hours, minutes, _ = triple
    return hours * 60 + minutes


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return to_utc(value).date()
    return value


class PolicyEngine:
    """
    Turns a subject's weekly schedule into session counts, contact hours and
    absence/tardiness limits, and evaluates students against those limits.

    Rules
    -----
    1) Sessions      : matching weekdays from start_date through
                       start_date + semester_days (inclusive)
    2) Tardy after   : round(duration x tardiness_threshold_percent) minutes
    3) Max absences  : floor(total_sessions x absence_threshold_percent)
    4) Max tardiness : max absences x tardiness_to_absence_ratio
    5) D/F eligible  : consecutive weeks absent >= threshold, OR effective
                       absences (direct + converted tardiness) reach the max

    Note
    ----
    - Every computation has a fallback instead of raising: missing weekdays
      or start date => default_session_count sessions, missing times =>
      default_class_duration_minutes, end <= start => 0 minutes.
    - All rounding is half-up.
    """

    def __init__(self, constants: PolicyConstants | None = None) -> None:
        self.constants = constants or PolicyConstants()

    # ------------------------------------------------------------------ #
    # Schedule
    # ------------------------------------------------------------------ #

    @staticmethod
    def weekday_numbers(weekdays: Optional[Iterable[str]]) -> List[int]:
        """
        Map weekday names (full or three-letter, any case) to date.weekday()
        numbers. Unknown names are dropped with a warning.
        """
        numbers: List[int] = []
        for name in weekdays or []:
            number = WEEKDAY_NUMBERS.get(str(name).strip().lower())
            if number is None:
                logger.warning("Ignoring unknown weekday name %r", name)
                continue
            numbers.append(number)
        return numbers

    def session_count(self, schedule: ScheduleConfig) -> int:
        if not schedule.weekdays or schedule.start_date is None:
            return self.constants.default_session_count

        wanted = set(self.weekday_numbers(schedule.weekdays))
        start = _as_date(schedule.start_date)
        end = start + timedelta(days=self.constants.semester_days)

        count = 0
        current = start
        while current <= end:
            if current.weekday() in wanted:
                count += 1
            current += timedelta(days=1)
        return count

    def class_duration(self, schedule: ScheduleConfig) -> int:
        if not schedule.start_time or not schedule.end_time:
            return self.constants.default_class_duration_minutes

        start = _clock_minutes(schedule.start_time)
        end = _clock_minutes(schedule.end_time)
        if end <= start:
            return 0
        return end - start

    @staticmethod
    def sessions_per_week(schedule: ScheduleConfig) -> int:
        return len(schedule.weekdays or []) or 1

    def weekly_contact_hours(self, schedule: ScheduleConfig, duration: int | None = None) -> float:
        if duration is None:
            duration = self.class_duration(schedule)
        return self.sessions_per_week(schedule) * duration / 60

    def total_contact_hours(self, weekly_contact_hours: float) -> float:
        return weekly_contact_hours * self.constants.weeks_in_semester

    # ------------------------------------------------------------------ #
    # Thresholds
    # ------------------------------------------------------------------ #

    def tardiness_threshold_minutes(self, duration: float) -> int:
        return int(round_half_up(duration * self.constants.tardiness_threshold_percent))

    def instructor_wait_minutes(self, duration: float) -> int:
        return int(round_half_up(duration * self.constants.instructor_wait_threshold_percent))

    def max_allowed_absences(self, total_sessions: int) -> int:
        # float products can land a hair under the intended integer
        return int(math.floor(total_sessions * self.constants.absence_threshold_percent + 1e-9))

    def max_allowed_tardiness(self, max_allowed_absences: int) -> int:
        return max_allowed_absences * self.constants.tardiness_to_absence_ratio

    def max_missed_contact_hours(self, total_contact_hours: float) -> float:
        return round_half_up(total_contact_hours * self.constants.absence_threshold_percent, 1)

    def compute_thresholds(self, schedule: ScheduleConfig) -> PolicyThresholds:
        duration = self.class_duration(schedule)
        sessions = self.session_count(schedule)
        weekly = self.weekly_contact_hours(schedule, duration)
        total_contact = self.total_contact_hours(weekly)
        max_absences = self.max_allowed_absences(sessions)

        return PolicyThresholds(
            class_duration_minutes=duration,
            tardiness_threshold_minutes=self.tardiness_threshold_minutes(duration),
            instructor_wait_minutes=self.instructor_wait_minutes(duration),
            total_sessions=sessions,
            sessions_per_week=self.sessions_per_week(schedule),
            weekly_contact_hours=round_half_up(weekly, 1),
            total_contact_hours=round_half_up(total_contact, 1),
            total_semester_hours=round_half_up(sessions * duration / 60, 1),
            weeks_in_semester=self.constants.weeks_in_semester,
            max_allowed_absences=max_absences,
            max_allowed_tardiness=self.max_allowed_tardiness(max_absences),
            max_missed_contact_hours=self.max_missed_contact_hours(total_contact),
        )

    def summarize_schedules(self, schedules: Iterable[ScheduleConfig]) -> ScheduleSummary:
        """
        Totals across the active schedules, with limits recomputed over the
        combined session count rather than summed per subject.
        """
        subjects = [self.compute_thresholds(s) for s in schedules if s.is_active]

        total_sessions = sum(s.total_sessions for s in subjects)
        total_contact = sum(s.total_contact_hours for s in subjects)
        total_semester = sum(s.total_semester_hours for s in subjects)
        max_absences = self.max_allowed_absences(total_sessions)

        return ScheduleSummary(
            total_subjects=len(subjects),
            total_sessions=total_sessions,
            total_contact_hours=round_half_up(total_contact, 1),
            total_semester_hours=round_half_up(total_semester, 1),
            weeks_in_semester=self.constants.weeks_in_semester,
            max_allowed_absences=max_absences,
            max_allowed_tardiness=self.max_allowed_tardiness(max_absences),
            max_missed_contact_hours=self.max_missed_contact_hours(total_contact),
            subjects=subjects,
        )

    # ------------------------------------------------------------------ #
    # Tardiness and instructor wait
    # ------------------------------------------------------------------ #

    def convert_tardiness_to_absences(self, tardiness_count: int) -> TardinessConversion:
        count = max(0, tardiness_count or 0)
        ratio = self.constants.tardiness_to_absence_ratio
        return TardinessConversion(
            total_tardiness=count,
            equivalent_absences=count // ratio,
            remaining_tardiness=count % ratio,
        )

    def check_tardiness(
        self,
        class_start: datetime,
        arrival: datetime,
        duration_minutes: float,
    ) -> TardinessCheck:
        """
        Classify an arrival.

        Returns
        -------
        TardinessCheck
            ON_TIME when not late at all, LATE_BUT_PRESENT up to and including
            the threshold, TARDY past it.
        """
        minutes_late = max(0.0, (to_utc(arrival) - to_utc(class_start)).total_seconds() / 60)
        threshold = self.tardiness_threshold_minutes(duration_minutes)

        if minutes_late == 0:
            state = TardinessState.ON_TIME
        elif minutes_late <= threshold:
            state = TardinessState.LATE_BUT_PRESENT
        else:
            state = TardinessState.TARDY

        return TardinessCheck(
            is_tardy=minutes_late > threshold,
            minutes_late=int(round_half_up(minutes_late)),
            threshold_minutes=threshold,
            state=state,
        )

    def check_instructor_wait(
        self,
        class_start: datetime,
        current: datetime,
        duration_minutes: float,
    ) -> InstructorWaitStatus:
        waited = max(0.0, (to_utc(current) - to_utc(class_start)).total_seconds() / 60)
        required = self.instructor_wait_minutes(duration_minutes)
        return InstructorWaitStatus(
            can_leave=waited >= required,
            waited_minutes=int(round_half_up(waited)),
            required_wait_minutes=required,
            remaining_wait_minutes=max(0, int(round_half_up(required - waited))),
        )

    # ------------------------------------------------------------------ #
    # Student evaluation
    # ------------------------------------------------------------------ #

    def check_df_eligibility(
        self,
        thresholds: PolicyThresholds,
        *,
        consecutive_weeks_absent: int = 0,
        direct_absences: int = 0,
        tardiness_count: int = 0,
    ) -> DFEligibility:
        """
        Assess D/F eligibility.

        Rules
        -----
        1) consecutive weeks absent >= weeks threshold            => DF_ELIGIBLE
        2) effective absences > 0 and >= max allowed absences     => DF_ELIGIBLE
        3) effective absences >= at-risk ratio x max absences,
           tardiness >= at-risk ratio x max tardiness, or one
           absent week away from the weeks threshold              => AT_RISK
        4) Otherwise                                              => SAFE
        """
        c = self.constants
        conversion = self.convert_tardiness_to_absences(tardiness_count)
        effective = direct_absences + conversion.equivalent_absences
        max_absences = thresholds.max_allowed_absences
        max_tardiness = thresholds.max_allowed_tardiness
        weeks_threshold = c.df_consecutive_weeks_threshold

        weeks_to_threshold = weeks_threshold - consecutive_weeks_absent
        absences_to_threshold = max_absences - effective

        weeks_exceeded = consecutive_weeks_absent >= weeks_threshold
        absences_met = effective > 0 and effective >= max_absences

        absence_ratio = effective / max_absences if max_absences > 0 else 0.0

        if weeks_exceeded or absences_met:
            status = DFStatus.DF_ELIGIBLE
            risk = 100.0
        elif (
            (max_absences > 0 and effective >= max_absences * c.at_risk_ratio)
            or (max_tardiness > 0 and tardiness_count >= max_tardiness * c.at_risk_ratio)
            or weeks_to_threshold <= 1
        ):
            status = DFStatus.AT_RISK
            weeks_ratio = (weeks_threshold - weeks_to_threshold) / weeks_threshold
            risk = max(weeks_ratio, absence_ratio) * 100
        else:
            status = DFStatus.SAFE
            risk = absence_ratio * 100

        if weeks_exceeded:
            reason = (
                f"{consecutive_weeks_absent} consecutive weeks of unexcused absences "
                f"(threshold: {weeks_threshold})"
            )
        elif absences_met:
            reason = (
                f"{effective} absences reach the {round_half_up(c.absence_threshold_percent * 100):g}% "
                f"threshold (max: {max_absences})"
            )
        else:
            reason = None

        total_sessions = thresholds.total_sessions
        percentage = effective / total_sessions * 100 if total_sessions > 0 else 0.0

        return DFEligibility(
            status=status,
            risk_level=int(min(100, max(0, round_half_up(risk)))),
            is_eligible_for_df=status == DFStatus.DF_ELIGIBLE,
            is_at_risk=status == DFStatus.AT_RISK,
            consecutive_weeks_absent=consecutive_weeks_absent,
            consecutive_weeks_threshold=weeks_threshold,
            consecutive_weeks_exceeded=weeks_exceeded,
            weeks_to_threshold=max(0, weeks_to_threshold),
            effective_absences=effective,
            max_allowed_absences=max_absences,
            absence_threshold_met=absences_met,
            absences_to_threshold=max(0, absences_to_threshold),
            absence_percentage=round_half_up(percentage, 1),
            total_tardiness=conversion.total_tardiness,
            tardiness_converted_to_absences=conversion.equivalent_absences,
            remaining_tardiness=conversion.remaining_tardiness,
            total_sessions=total_sessions,
            total_contact_hours=thresholds.total_contact_hours,
            reason=reason,
        )

    def student_policy_status(
        self,
        thresholds: PolicyThresholds,
        *,
        direct_absences: int = 0,
        tardiness_count: int = 0,
    ) -> StudentPolicyStatus:
        """
        Live standing of a student against the subject's limits.

        Rules
        -----
        1) total absences >= max allowed absences                   => OVER_LIMIT
        2) total absences >= at-risk ratio x max allowed absences   => AT_RISK
        3) tardiness >= at-risk ratio x max allowed tardiness       => AT_RISK
        4) Otherwise                                                => SAFE
        """
        ratio = self.constants.at_risk_ratio
        conversion = self.convert_tardiness_to_absences(tardiness_count)
        total_absences = direct_absences + conversion.equivalent_absences
        max_absences = thresholds.max_allowed_absences
        max_tardiness = thresholds.max_allowed_tardiness

        if total_absences >= max_absences:
            status = PolicyStatus.OVER_LIMIT
        elif total_absences >= max_absences * ratio:
            status = PolicyStatus.AT_RISK
        elif conversion.total_tardiness >= max_tardiness * ratio:
            status = PolicyStatus.AT_RISK
        else:
            status = PolicyStatus.SAFE

        def percentage(count: int, limit: int) -> int:
            return int(round_half_up(count / limit * 100)) if limit > 0 else 0

        return StudentPolicyStatus(
            tardiness_count=conversion.total_tardiness,
            direct_absences=direct_absences,
            tardiness_to_absence=conversion.equivalent_absences,
            remaining_tardiness=conversion.remaining_tardiness,
            absence_count=total_absences,
            max_allowed_tardiness=max_tardiness,
            max_allowed_absences=max_absences,
            policy_status=status,
            is_at_risk=status == PolicyStatus.AT_RISK,
            tardiness_percentage=percentage(conversion.total_tardiness, max_tardiness),
            absence_percentage=percentage(total_absences, max_absences),
            remaining_tardiness_allowance=max(0, max_tardiness - conversion.total_tardiness),
            remaining_absence_allowance=max(0, max_absences - total_absences),
        )

    is_within_add_drop_period = staticmethod(is_during_add_drop_period)
