# attendance_core/schemas/schedule.py
from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ScheduleConfig(BaseModel):
    """
    Weekly class schedule of one subject, as owned by subject configuration.

    Every field is optional: policy computations fall back to defaults for
    whatever is missing instead of rejecting the schedule.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    subject_id: Optional[str] = Field(None, alias="subjectId")
    subject_name: Optional[str] = Field(None, alias="subjectName")
    subject_code: Optional[str] = Field(None, alias="subjectCode")

    weekdays: Optional[list[str]] = Field(
        None,
        description="Meeting days, full ('Monday') or abbreviated ('Mon') names.",
        examples=[["Monday", "Wednesday"]],
    )
    start_time: Optional[str] = Field(None, alias="startTime", examples=["09:00"])
    end_time: Optional[str] = Field(None, alias="endTime", examples=["10:30"])
    start_date: Optional[Union[date, datetime]] = Field(None, alias="startDate")
    end_date: Optional[Union[date, datetime]] = Field(
        None,
        alias="endDate",
        description="Stored for reference only; the session window is fixed from start_date.",
    )
    is_active: bool = Field(True, alias="isActive")
