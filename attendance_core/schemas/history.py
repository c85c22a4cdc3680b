# attendance_core/schemas/history.py
from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from attendance_core.schemas.status import AttendanceStatus


class SessionAttendance(BaseModel):
    """
    One scheduled session of a subject together with a student's stored
    attendance for it. `status` is None when no record exists for the
    session, which counts as absent for the consecutive-weeks rule.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    session_date: Union[date, datetime] = Field(..., alias="sessionDate")
    status: Optional[AttendanceStatus] = None
    is_excused: bool = Field(False, alias="isExcused")
    is_tardy: bool = Field(False, alias="isTardy")


class WeekAbsence(BaseModel):
    week_start: date
    sessions: int
    absent: bool


class ConsecutiveAbsenceReport(BaseModel):
    consecutive_weeks: int
    threshold: int
    is_eligible: bool
    weeks: list[WeekAbsence] = Field(default_factory=list)


class AttendanceTally(BaseModel):
    """
    Unexcused absences and tardiness counted from stored records.
    """

    direct_absences: int = 0
    tardiness_count: int = 0
    excused: int = 0
    pending: int = 0
    total_records: int = 0
