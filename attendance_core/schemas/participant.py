# attendance_core/schemas/participant.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from attendance_core.schemas.lenient import (
    lenient_flag,
    lenient_float,
    lenient_instant,
    lenient_text,
    lenient_time_value,
)
from attendance_core.schemas.status import AttendanceStatus

TimeValue = Union[datetime, str]


class ParticipantEvent(BaseModel):
    """
    One participant entry from a capture-agent batch.

    Field aliases follow the capture agent's camelCase payload; snake_case
    names are accepted as well. Every field is optional because the agent
    sends whatever it managed to scrape.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = Field(None, description="Display name as shown in the meeting.")
    display_name: Optional[str] = Field(None, alias="displayName")
    participant_id: Optional[str] = Field(
        None,
        alias="participantId",
        description="Meeting-platform participant identifier, when scraped.",
    )
    student_id: Optional[str] = Field(None, alias="studentId")
    avatar_url: Optional[str] = Field(None, alias="avatarUrl")

    is_host: bool = Field(False, alias="isHost", description="True for the instructor/host.")

    join_time_iso: Optional[TimeValue] = Field(None, alias="joinTimeIso")
    join_time: Optional[TimeValue] = Field(
        None,
        alias="joinTime",
        description="Join clock time (HH:MM:SS) relative to the session date.",
    )
    leave_time_iso: Optional[TimeValue] = Field(None, alias="leaveTimeIso")
    leave_time: Optional[TimeValue] = Field(None, alias="leaveTime")
    time_out: Optional[TimeValue] = Field(None, alias="timeOut")

    is_currently_in_meeting: Optional[bool] = Field(None, alias="isCurrentlyInMeeting")
    is_live: Optional[bool] = Field(None, alias="isLive")
    is_tardy: bool = Field(False, alias="isTardy")

    duration_seconds: Optional[float] = Field(None, alias="durationSeconds")
    attended_duration: Optional[float] = Field(None, alias="attendedDuration")

    status: Optional[str] = Field(None, description="Explicit status override.")
    raw_status: Optional[str] = Field(None, alias="rawStatus")

    timeout_synchronized: bool = Field(
        False,
        alias="timeoutSynchronized",
        description="True if the participant was present at the instant the host left.",
    )
    last_seen: Optional[datetime] = Field(None, alias="lastSeen")

    @field_validator(
        "name", "display_name", "participant_id", "student_id", "avatar_url", "status", "raw_status",
        mode="before",
    )
    @classmethod
    def _text_or_none(cls, value: Any) -> Optional[str]:
        return lenient_text(value)

    @field_validator(
        "join_time_iso", "join_time", "leave_time_iso", "leave_time", "time_out",
        mode="before",
    )
    @classmethod
    def _time_value_or_none(cls, value: Any) -> Any:
        return lenient_time_value(value)

    @field_validator("is_currently_in_meeting", "is_live", mode="before")
    @classmethod
    def _flag_or_none(cls, value: Any) -> Optional[bool]:
        return lenient_flag(value)

    @field_validator("is_host", "is_tardy", "timeout_synchronized", mode="before")
    @classmethod
    def _flag_or_false(cls, value: Any) -> bool:
        return bool(lenient_flag(value))

    @field_validator("duration_seconds", "attended_duration", mode="before")
    @classmethod
    def _seconds_or_none(cls, value: Any) -> Optional[float]:
        return lenient_float(value)

    @field_validator("last_seen", mode="before")
    @classmethod
    def _instant_or_none(cls, value: Any) -> Optional[datetime]:
        return lenient_instant(value)

    @property
    def label(self) -> str:
        return (self.name or self.display_name or "").strip()

    @property
    def join_value(self) -> Optional[TimeValue]:
        return self.join_time_iso or self.join_time

    @property
    def leave_value(self) -> Optional[TimeValue]:
        return self.leave_time_iso or self.leave_time or self.time_out

    @property
    def has_leave_time(self) -> bool:
        return bool(self.leave_value)

    @property
    def attended_seconds(self) -> Optional[float]:
        if self.duration_seconds is not None:
            return self.duration_seconds
        return self.attended_duration

    @property
    def explicit_status(self) -> Optional[str]:
        """rawStatus wins over status; blank strings count as missing."""
        for value in (self.raw_status, self.status):
            if value is not None and str(value).strip():
                return str(value)
        return None

    def populated_field_count(self) -> int:
        """Number of fields carrying information, used to rank duplicates."""
        count = 0
        for value in self.model_dump(exclude_defaults=True).values():
            if value not in (None, ""):
                count += 1
        return count


class ParticipantRecord(BaseModel):
    """
    Merged, per-session view of one logical participant.

    Records are immutable; the merger and the session processor replace them
    with updated copies. `pending_since` is only ever set while the final
    status is PENDING.
    """

    model_config = ConfigDict(frozen=True)

    token: str = Field(..., description="Stable identity token for this participant in the session.")
    display_name: str = Field("Unknown", description="Latest non-empty display name seen.")
    normalized_name: str = Field("", description="Display name with meeting suffixes stripped.")
    participant_id: Optional[str] = None
    is_host: bool = False

    join_time: Optional[datetime] = Field(None, description="Earliest known join instant.")
    leave_time: Optional[datetime] = Field(None, description="Latest known leave instant.")
    last_return_time: Optional[datetime] = Field(
        None,
        description="Instant the participant was last seen rejoining after a leave.",
    )

    status_override: Optional[str] = Field(
        None,
        description="Explicit status text from the capture agent, if any.",
    )
    raw_status: AttendanceStatus = AttendanceStatus.JOINED
    final_status: AttendanceStatus = AttendanceStatus.PRESENT
    pending_since: Optional[datetime] = None

    is_currently_in_meeting: bool = True
    timeout_synchronized: bool = False
    is_tardy: bool = False
    duration_seconds: Optional[float] = None

    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None

    @model_validator(mode="after")
    def _pending_since_only_while_pending(self) -> "ParticipantRecord":
        if self.pending_since is not None and self.final_status != AttendanceStatus.PENDING:
            raise ValueError("pending_since can only be set while final_status is 'pending'")
        return self

    @property
    def has_join_time(self) -> bool:
        return self.join_time is not None

    @property
    def has_leave_time(self) -> bool:
        return self.leave_time is not None

    def as_event(self) -> ParticipantEvent:
        """
        Project the merged record back into event shape so status derivation
        always runs from the merged state rather than a single batch entry.
        A leave that was followed by a return is not projected.
        """
        leave_time = self.leave_time
        if (
            leave_time is not None
            and self.last_return_time is not None
            and self.last_return_time > leave_time
        ):
            leave_time = None

        return ParticipantEvent(
            name=self.display_name,
            participant_id=self.participant_id,
            is_host=self.is_host,
            join_time_iso=self.join_time,
            leave_time_iso=leave_time,
            is_currently_in_meeting=self.is_currently_in_meeting,
            is_live=self.is_currently_in_meeting,
            is_tardy=self.is_tardy,
            duration_seconds=self.duration_seconds,
            status=self.status_override,
            timeout_synchronized=self.timeout_synchronized,
            last_seen=self.last_seen,
        )
