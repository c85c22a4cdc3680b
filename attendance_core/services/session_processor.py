# attendance_core/services/session_processor.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, Optional

from attendance_core.schemas.batch import (
    BatchMetadata,
    BatchResult,
    ClassWindow,
    EventBatch,
    MeetingStats,
    ParticipantResult,
)
from attendance_core.schemas.participant import ParticipantRecord
from attendance_core.schemas.policy import PolicyConstants
from attendance_core.schemas.status import AttendanceStatus
from attendance_core.services.participant_merger import DEFAULT_MAX_LEFT_AGE, ParticipantMerger
from attendance_core.services.status_deriver import derive_raw_status, format_status_label
from attendance_core.services.status_machine import StatusContext, determine_final_status
from attendance_core.services.status_rules import (
    RuleContext,
    apply_status_rules,
    calculate_tardiness,
    first_third_threshold,
    is_during_add_drop_period,
    is_instructor_late,
)
from attendance_core.services.time_utils import (
    format_clock,
    format_duration,
    parse_calendar_day,
    resolve_timestamp,
    to_utc,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _WindowRules:
    """Per-batch inputs to the policy rules derived from the class window."""

    window: Optional[ClassWindow] = None
    instructor_join_time: Optional[datetime] = None
    instructor_late: bool = False
    first_third: Optional[datetime] = None
    during_add_drop: bool = False


class SessionProcessor:
    """
    Runs each batch of one session through the derivation pipeline:
    merge -> raw status -> final status -> policy rules.

    Finalization (meeting ended, or the instructor left) is sticky: once
    detected, every roster record is re-derived on each batch.
    """

    def __init__(
        self,
        meet_code: Optional[str],
        session_day: date | datetime | str | None,
        *,
        constants: PolicyConstants | None = None,
        preserve_left: bool = True,
        max_left_age: timedelta = DEFAULT_MAX_LEFT_AGE,
        session_key: Optional[str] = None,
    ) -> None:
        self.meet_code = meet_code
        self.session_day = parse_calendar_day(session_day)
        self.constants = constants or PolicyConstants()
        self.session_key = session_key
        self.merger = ParticipantMerger(
            meet_code,
            self.session_day,
            preserve_left=preserve_left,
            max_left_age=max_left_age,
        )
        self.meeting_ended = False
        self.instructor_leave_time: Optional[datetime] = None

    @property
    def is_finalized(self) -> bool:
        return self.meeting_ended or self.instructor_leave_time is not None

    def process_batch(self, batch: EventBatch, *, now: datetime | None = None) -> BatchResult:
        """
        Fold one batch into the session and return the updated verdicts.

        The reference instant is `now`, else the batch timestamp, else the
        current time. All roster records are returned, not only the ones
        present in this batch.
        """
        if now is not None:
            reference = to_utc(now)
        elif batch.timestamp is not None:
            reference = to_utc(batch.timestamp)
        else:
            reference = utcnow()

        merge = self.merger.merge_batch(batch.participants, now=reference, base_date=self.session_day)

        newly_finalized = self._detect_finalization(batch, merge.roster, reference)
        if newly_finalized:
            self._synchronize_present(merge.roster)

        roster = self.merger.roster
        rules = self._window_rules(batch.class_window, roster)

        tokens: Iterable[str] = roster.keys() if self.is_finalized else merge.seen_tokens
        for token in list(tokens):
            record = roster.get(token)
            if record is None:
                continue
            self.merger.replace(self._evaluate(record, rules, reference))

        roster = self.merger.roster
        results = [self._to_result(record) for record in roster.values()]

        return BatchResult(
            session_key=self.session_key,
            participants=results,
            events=merge.events,
            metadata=BatchMetadata(
                total_events=merge.total_events,
                unique_participants=len(merge.seen_tokens),
                duplicates_removed=merge.duplicates_removed,
                missing_identity=merge.missing_identity,
                aged_out=merge.aged_out,
                roster_size=len(roster),
                finalized=self.is_finalized,
            ),
            stats=calculate_meeting_stats(roster.values()),
        )

    # ------------------------------------------------------------------ #
    # Finalization
    # ------------------------------------------------------------------ #

    def _detect_finalization(
        self,
        batch: EventBatch,
        roster: Dict[str, ParticipantRecord],
        reference: datetime,
    ) -> bool:
        was_finalized = self.is_finalized

        if batch.meeting_ended:
            self.meeting_ended = True

        if self.instructor_leave_time is None:
            explicit = resolve_timestamp(batch.instructor_leave_time, self.session_day, now=reference)
            if explicit is not None:
                self.instructor_leave_time = explicit
            else:
                host = _find_host(roster)
                if host is not None and host.leave_time is not None and not host.is_currently_in_meeting:
                    self.instructor_leave_time = host.leave_time

        if self.is_finalized and not was_finalized:
            logger.info(
                "Session finalized (meet=%s, meeting_ended=%s, instructor_leave=%s)",
                self.meet_code,
                self.meeting_ended,
                self.instructor_leave_time,
            )
            return True
        return False

    def _synchronize_present(self, roster: Dict[str, ParticipantRecord]) -> None:
        """Students in the meeting when it was finalized are kept present."""
        for record in roster.values():
            if record.is_host or not record.is_currently_in_meeting or record.timeout_synchronized:
                continue
            self.merger.replace(record.model_copy(update={"timeout_synchronized": True}))

    # ------------------------------------------------------------------ #
    # Evaluation
    # ------------------------------------------------------------------ #

    def _window_rules(
        self,
        window: Optional[ClassWindow],
        roster: Dict[str, ParticipantRecord],
    ) -> _WindowRules:
        if window is None:
            return _WindowRules()

        instructor_join = window.instructor_join_time
        if instructor_join is None:
            host = _find_host(roster)
            instructor_join = host.join_time if host is not None else None

        return _WindowRules(
            window=window,
            instructor_join_time=instructor_join,
            instructor_late=is_instructor_late(
                window,
                instructor_join,
                threshold_percent=self.constants.tardiness_threshold_percent,
            ),
            first_third=first_third_threshold(
                window,
                wait_percent=self.constants.instructor_wait_threshold_percent,
            ),
            during_add_drop=is_during_add_drop_period(
                self.session_day,
                window.add_drop_start,
                window.add_drop_end,
            ),
        )

    def _evaluate(
        self,
        record: ParticipantRecord,
        rules: _WindowRules,
        reference: datetime,
    ) -> ParticipantRecord:
        is_tardy = record.is_tardy
        if rules.window is not None and not record.is_host:
            tardiness = calculate_tardiness(
                rules.window,
                record.join_time,
                threshold_percent=self.constants.tardiness_threshold_percent,
                instructor_join_time=rules.instructor_join_time,
            )
            is_tardy = is_tardy or tardiness.is_tardy

        raw_status = derive_raw_status(
            record.as_event(),
            meeting_ended=self.is_finalized,
            host_leave_time=self.instructor_leave_time,
        )

        decision = determine_final_status(
            StatusContext(
                raw_status=raw_status,
                is_instructor=record.is_host,
                instructor_leave_time=self.instructor_leave_time,
                meeting_ended=self.meeting_ended,
                was_synchronized=record.timeout_synchronized,
                is_currently_in_meeting=record.is_currently_in_meeting,
                last_return_time=record.last_return_time,
                last_leave_time=record.leave_time,
                has_join_time=record.has_join_time,
                has_leave_time=record.has_leave_time,
                previous_status=record.final_status,
                previous_pending_since=record.pending_since,
                leave_date=record.leave_time,
                now=reference,
            )
        )

        final_status = decision.final_status
        if not record.is_host:
            final_status = apply_status_rules(
                final_status,
                RuleContext(
                    is_tardy=is_tardy,
                    session_is_during_add_drop=rules.during_add_drop,
                    instructor_late=rules.instructor_late,
                    first_third_threshold=rules.first_third,
                    leave_date=record.leave_time,
                ),
            )

        pending_since = decision.pending_since if final_status == AttendanceStatus.PENDING else None
        if final_status != record.final_status:
            logger.debug(
                "Participant %s: %s -> %s",
                record.token,
                record.final_status.value,
                final_status.value,
            )

        return ParticipantRecord.model_validate(
            {
                **record.model_dump(),
                "raw_status": raw_status,
                "final_status": final_status,
                "pending_since": pending_since,
                "is_tardy": is_tardy,
            }
        )

    @staticmethod
    def _to_result(record: ParticipantRecord) -> ParticipantResult:
        is_left = not record.is_currently_in_meeting and (
            record.has_leave_time or record.raw_status == AttendanceStatus.LEFT
        )
        return ParticipantResult(
            token=record.token,
            display_name=record.display_name,
            is_host=record.is_host,
            raw_status=record.raw_status,
            final_status=record.final_status,
            status_label=format_status_label(record.final_status),
            is_currently_in_meeting=record.is_currently_in_meeting,
            is_left=is_left,
            is_tardy=record.is_tardy,
            timeout_synchronized=record.timeout_synchronized,
            duration_seconds=record.duration_seconds,
            duration_formatted=format_duration(record.duration_seconds),
            join_time=record.join_time,
            join_time_formatted=format_clock(record.join_time),
            leave_time=record.leave_time,
            leave_time_formatted=format_clock(record.leave_time),
            pending_since=record.pending_since,
        )


def _find_host(roster: Dict[str, ParticipantRecord]) -> Optional[ParticipantRecord]:
    for record in roster.values():
        if record.is_host:
            return record
    return None


def calculate_meeting_stats(records: Iterable[ParticipantRecord]) -> MeetingStats:
    records = list(records)
    if not records:
        return MeetingStats()

    def count(status: AttendanceStatus) -> int:
        return sum(1 for r in records if r.final_status == status)

    total_duration = sum(r.duration_seconds or 0.0 for r in records)
    average = total_duration / len(records)
    return MeetingStats(
        total_participants=len(records),
        currently_present=sum(1 for r in records if r.is_currently_in_meeting),
        left_count=count(AttendanceStatus.LEFT),
        pending_count=count(AttendanceStatus.PENDING),
        late_count=count(AttendanceStatus.LATE),
        absent_count=count(AttendanceStatus.ABSENT),
        host_count=sum(1 for r in records if r.is_host),
        total_duration_seconds=total_duration,
        average_duration_seconds=average,
        average_duration_formatted=format_duration(average),
    )
