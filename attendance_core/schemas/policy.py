# attendance_core/schemas/policy.py
from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PolicyConstants(BaseModel):
    """
    Institutional attendance policy regime.

    Immutable and passed explicitly to the PolicyEngine and SessionProcessor,
    so a test or a caller can evaluate an alternate regime without touching
    global state. Defaults are the BOR Resolution No. 31, s. 2018 values.
    """

    model_config = ConfigDict(frozen=True)

    tardiness_threshold_percent: float = Field(
        0.25, gt=0, le=1, description="Fraction of class duration after which an arrival is tardy."
    )
    tardiness_to_absence_ratio: int = Field(
        3, ge=1, description="Tardiness instances that convert to one absence."
    )
    absence_threshold_percent: float = Field(
        0.17, gt=0, le=1, description="Fraction of sessions that may be missed before D/F eligibility."
    )
    df_consecutive_weeks_threshold: int = Field(
        3, ge=1, description="Consecutive absent weeks that trigger D/F eligibility."
    )
    instructor_wait_threshold_percent: float = Field(
        1 / 3, gt=0, le=1, description="Fraction of class students must wait for a late instructor."
    )
    at_risk_ratio: float = Field(
        0.8, gt=0, le=1, description="Fraction of a limit at which a student is flagged at risk."
    )
    semester_days: int = Field(
        120, ge=1, description="Length of the session-count window, in days from the start date."
    )
    weeks_in_semester: int = Field(18, ge=1, description="Weeks used for contact-hour totals.")
    default_session_count: int = Field(
        18, ge=0, description="Session count used when the schedule is incomplete."
    )
    default_class_duration_minutes: int = Field(
        90, ge=0, description="Class duration used when the schedule has no times."
    )


class PolicyThresholds(BaseModel):
    """
    Policy limits derived from one subject's weekly schedule.
    """

    class_duration_minutes: int = Field(..., description="Scheduled class length; 0 when invalid.")
    tardiness_threshold_minutes: int = Field(
        ..., description="Minutes after start past which an arrival is tardy."
    )
    instructor_wait_minutes: int = Field(
        ..., description="Minutes students must wait for a late instructor."
    )
    total_sessions: int = Field(..., description="Sessions in the semester window.")
    sessions_per_week: int = Field(..., description="Scheduled meetings per week (at least 1).")
    weekly_contact_hours: float
    total_contact_hours: float
    total_semester_hours: float = Field(
        ..., description="total_sessions x class duration, in hours."
    )
    weeks_in_semester: int
    max_allowed_absences: int
    max_allowed_tardiness: int
    max_missed_contact_hours: float = Field(
        ..., description="Contact hours that may be missed before D/F eligibility."
    )


class ScheduleSummary(BaseModel):
    """
    Totals across several subjects (e.g. one instructor's active load),
    with thresholds recomputed over the combined session count.
    """

    total_subjects: int
    total_sessions: int
    total_contact_hours: float
    total_semester_hours: float
    weeks_in_semester: int
    max_allowed_absences: int
    max_allowed_tardiness: int
    max_missed_contact_hours: float
    subjects: list[PolicyThresholds] = Field(default_factory=list)


class TardinessConversion(BaseModel):
    """
    Result of converting tardiness instances into equivalent absences.
    """

    total_tardiness: int
    equivalent_absences: int
    remaining_tardiness: int


class TardinessState(str, Enum):
    ON_TIME = "on_time"
    LATE_BUT_PRESENT = "late_but_present"
    TARDY = "tardy"


class TardinessCheck(BaseModel):
    is_tardy: bool
    minutes_late: int
    threshold_minutes: int
    state: TardinessState


class InstructorWaitStatus(BaseModel):
    can_leave: bool
    waited_minutes: int
    required_wait_minutes: int
    remaining_wait_minutes: int


class DFStatus(str, Enum):
    SAFE = "safe"
    AT_RISK = "at_risk"
    DF_ELIGIBLE = "df_eligible"


class DFEligibility(BaseModel):
    """
    D/F eligibility assessment for one student in one subject.
    """

    status: DFStatus
    risk_level: int = Field(..., ge=0, le=100)
    is_eligible_for_df: bool
    is_at_risk: bool

    consecutive_weeks_absent: int
    consecutive_weeks_threshold: int
    consecutive_weeks_exceeded: bool
    weeks_to_threshold: int

    effective_absences: int
    max_allowed_absences: int
    absence_threshold_met: bool
    absences_to_threshold: int
    absence_percentage: float

    total_tardiness: int
    tardiness_converted_to_absences: int
    remaining_tardiness: int

    total_sessions: int
    total_contact_hours: float
    reason: Optional[str] = None


class PolicyStatus(str, Enum):
    SAFE = "safe"
    AT_RISK = "at_risk"
    OVER_LIMIT = "over_limit"


class StudentPolicyStatus(BaseModel):
    """
    Live tardiness/absence standing of one student against subject limits.
    """

    tardiness_count: int
    direct_absences: int
    tardiness_to_absence: int
    remaining_tardiness: int
    absence_count: int = Field(..., description="direct_absences + tardiness_to_absence")
    max_allowed_tardiness: int
    max_allowed_absences: int
    policy_status: PolicyStatus
    is_at_risk: bool
    tardiness_percentage: int
    absence_percentage: int
    remaining_tardiness_allowance: int
    remaining_absence_allowance: int
