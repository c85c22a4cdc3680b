# attendance_core/schemas/batch.py
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from attendance_core.schemas.lenient import (
    lenient_day,
    lenient_flag,
    lenient_instant,
    lenient_text,
    lenient_time_value,
)
from attendance_core.schemas.participant import ParticipantEvent, TimeValue
from attendance_core.schemas.status import AttendanceStatus

logger = logging.getLogger(__name__)


class ClassWindow(BaseModel):
    """
    Scheduled window of the class session a batch belongs to, plus the
    subject's add/drop period. Supplied by the caller from subject config.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    scheduled_start: datetime = Field(..., alias="scheduledStart")
    scheduled_end: datetime = Field(..., alias="scheduledEnd")
    instructor_join_time: Optional[datetime] = Field(
        None,
        alias="instructorJoinTime",
        description="Instant the instructor joined; derived from the host record when omitted.",
    )
    add_drop_start: Optional[Union[date, datetime]] = Field(None, alias="addDropStart")
    add_drop_end: Optional[Union[date, datetime]] = Field(None, alias="addDropEnd")


class EventBatch(BaseModel):
    """
    One real-time batch from the capture agent.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    meet_code: Optional[str] = Field(None, alias="meetCode")
    session_id: Optional[str] = Field(None, alias="sessionId")
    session_date: Optional[Union[date, datetime, str]] = Field(
        None,
        alias="sessionDate",
        description="Calendar day of the session (dd/mm/yyyy, dd-mm-yyyy or ISO).",
    )
    meeting_ended: bool = Field(False, alias="meetingEnded")
    timestamp: Optional[datetime] = Field(
        None,
        description="Capture instant of the batch; used as the reference clock.",
    )
    instructor_leave_time: Optional[TimeValue] = Field(None, alias="instructorLeaveTime")
    class_window: Optional[ClassWindow] = Field(None, alias="classWindow")
    participants: list[ParticipantEvent] = Field(default_factory=list)

    @field_validator("meet_code", "session_id", mode="before")
    @classmethod
    def _text_or_none(cls, value: Any) -> Optional[str]:
        return lenient_text(value)

    @field_validator("session_date", mode="before")
    @classmethod
    def _day_or_none(cls, value: Any) -> Any:
        return lenient_day(value)

    @field_validator("meeting_ended", mode="before")
    @classmethod
    def _flag_or_false(cls, value: Any) -> bool:
        return bool(lenient_flag(value))

    @field_validator("timestamp", mode="before")
    @classmethod
    def _instant_or_none(cls, value: Any) -> Optional[datetime]:
        return lenient_instant(value)

    @field_validator("instructor_leave_time", mode="before")
    @classmethod
    def _time_value_or_none(cls, value: Any) -> Any:
        return lenient_time_value(value)

    @field_validator("class_window", mode="before")
    @classmethod
    def _window_or_none(cls, value: Any) -> Optional[ClassWindow]:
        if value is None or isinstance(value, ClassWindow):
            return value
        try:
            return ClassWindow.model_validate(value)
        except ValidationError as exc:
            logger.warning("Ignoring malformed class window: %s", exc.errors(include_url=False))
            return None

    @field_validator("participants", mode="before")
    @classmethod
    def _entries(cls, value: Any) -> list:
        """Non-object entries become empty ones and are counted as missing identity."""
        if not isinstance(value, (list, tuple)):
            return []
        return [entry if isinstance(entry, (dict, ParticipantEvent)) else {} for entry in value]


class ParticipantResult(BaseModel):
    """
    Outbound per-participant verdict after a batch has been processed.
    """

    token: str
    display_name: str
    is_host: bool = False
    raw_status: AttendanceStatus
    final_status: AttendanceStatus
    status_label: str
    is_currently_in_meeting: bool
    is_left: bool
    is_tardy: bool = False
    timeout_synchronized: bool = False
    duration_seconds: Optional[float] = None
    duration_formatted: str = "00:00:00"
    join_time: Optional[datetime] = None
    join_time_formatted: Optional[str] = None
    leave_time: Optional[datetime] = None
    leave_time_formatted: Optional[str] = None
    pending_since: Optional[datetime] = None


class JoinLeaveEvent(BaseModel):
    type: Literal["join", "leave"]
    token: str
    name: str
    timestamp: datetime


class BatchMetadata(BaseModel):
    total_events: int = 0
    unique_participants: int = 0
    duplicates_removed: int = 0
    missing_identity: int = 0
    aged_out: int = 0
    roster_size: int = 0
    finalized: bool = False


class MeetingStats(BaseModel):
    """
    Roster-level counts, mirroring what the instructor dashboard shows.
    """

    total_participants: int = 0
    currently_present: int = 0
    left_count: int = 0
    pending_count: int = 0
    late_count: int = 0
    absent_count: int = 0
    host_count: int = 0
    total_duration_seconds: float = 0.0
    average_duration_seconds: float = 0.0
    average_duration_formatted: str = "00:00:00"


class BatchResult(BaseModel):
    session_key: Optional[str] = None
    participants: list[ParticipantResult] = Field(default_factory=list)
    events: list[JoinLeaveEvent] = Field(default_factory=list)
    metadata: BatchMetadata = Field(default_factory=BatchMetadata)
    stats: MeetingStats = Field(default_factory=MeetingStats)
