# attendance_core/services/status_machine.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from attendance_core.schemas.status import AttendanceStatus
from attendance_core.services.time_utils import utcnow


@dataclass(frozen=True)
class StatusContext:
    """
    Everything the state machine needs to decide one participant's final
    status. Built fresh for every evaluation from the merged record.
    """

    raw_status: AttendanceStatus
    is_instructor: bool = False
    instructor_leave_time: Optional[datetime] = None
    meeting_ended: bool = False
    was_synchronized: bool = False
    is_currently_in_meeting: bool = False
    last_return_time: Optional[datetime] = None
    last_leave_time: Optional[datetime] = None
    has_join_time: bool = False
    has_leave_time: bool = False
    previous_status: Optional[AttendanceStatus] = None
    previous_pending_since: Optional[datetime] = None
    leave_date: Optional[datetime] = None
    now: Optional[datetime] = None

    @property
    def is_finalized(self) -> bool:
        return self.instructor_leave_time is not None or self.meeting_ended

    @property
    def returned_after_leave(self) -> bool:
        return (
            self.last_return_time is not None
            and self.last_leave_time is not None
            and self.last_return_time > self.last_leave_time
        )


@dataclass(frozen=True)
class StatusDecision:
    final_status: AttendanceStatus
    pending_since: Optional[datetime] = None


def determine_final_status(context: StatusContext) -> StatusDecision:
    """
    Decide the final status of a participant.

    The meeting is FINALIZED once the instructor has left or the meeting has
    ended; until then it is ONGOING. Instructors follow their own branch in
    both states.
    """
    if context.is_instructor:
        return _instructor_decision(context)
    if context.is_finalized:
        return _finalized_decision(context)
    return _ongoing_decision(context)


def _instructor_decision(context: StatusContext) -> StatusDecision:
    if context.raw_status == AttendanceStatus.LATE:
        return StatusDecision(AttendanceStatus.LATE)
    if not context.has_join_time:
        return StatusDecision(AttendanceStatus.ABSENT)
    return StatusDecision(AttendanceStatus.PRESENT)


def _finalized_decision(context: StatusContext) -> StatusDecision:
    """
    Rules
    -----
    1) Synchronized at host leave          => PRESENT
    2) Still in meeting                    => PRESENT
    3) Returned after the last leave       => PRESENT
    4) Never joined                        => ABSENT
    5) Left and never returned             => ABSENT
    6) Otherwise, including a pending
       participant who never came back     => ABSENT
    """
    if context.was_synchronized:
        return StatusDecision(AttendanceStatus.PRESENT)
    if context.is_currently_in_meeting:
        return StatusDecision(AttendanceStatus.PRESENT)
    if context.returned_after_leave:
        return StatusDecision(AttendanceStatus.PRESENT)
    if not context.has_join_time:
        return StatusDecision(AttendanceStatus.ABSENT)
    if context.has_leave_time and context.last_return_time is None:
        return StatusDecision(AttendanceStatus.ABSENT)
    return StatusDecision(AttendanceStatus.ABSENT)


def _ongoing_decision(context: StatusContext) -> StatusDecision:
    """
    Rules
    -----
    1) Never joined                                  => ABSENT
    2) In meeting                                    => LATE if raw LATE else PRESENT
    3) Left, not in meeting, not synchronized        => PENDING (since the leave)
    4) Raw LATE                                      => LATE
    5) Otherwise                                     => PRESENT
    """
    if not context.has_join_time:
        return StatusDecision(AttendanceStatus.ABSENT)

    if context.is_currently_in_meeting:
        if context.raw_status == AttendanceStatus.LATE:
            return StatusDecision(AttendanceStatus.LATE)
        return StatusDecision(AttendanceStatus.PRESENT)

    if context.has_leave_time and not context.was_synchronized:
        pending_since = context.previous_pending_since
        if pending_since is None:
            pending_since = context.leave_date or context.now or utcnow()
        return StatusDecision(AttendanceStatus.PENDING, pending_since)

    if context.raw_status == AttendanceStatus.LATE:
        return StatusDecision(AttendanceStatus.LATE)
    return StatusDecision(AttendanceStatus.PRESENT)
