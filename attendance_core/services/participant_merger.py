# attendance_core/services/participant_merger.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from attendance_core.schemas.batch import JoinLeaveEvent
from attendance_core.schemas.participant import ParticipantEvent, ParticipantRecord
from attendance_core.schemas.status import AttendanceStatus
from attendance_core.services.participant_identity import (
    name_key,
    normalize_name,
    participant_token,
    strong_identifier,
)
from attendance_core.services.time_utils import resolve_timestamp, to_utc

logger = logging.getLogger(__name__)

DEFAULT_MAX_LEFT_AGE = timedelta(minutes=5)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class MergeResult:
    """
    Outcome of folding one batch into the roster.

    `seen_tokens` lists the tokens present in the batch, in first-seen order.
    `roster` is a snapshot; mutating it does not affect the merger.
    """

    roster: Dict[str, ParticipantRecord]
    seen_tokens: List[str] = field(default_factory=list)
    events: List[JoinLeaveEvent] = field(default_factory=list)
    total_events: int = 0
    duplicates_removed: int = 0
    missing_identity: int = 0
    aged_out: int = 0


def event_in_meeting(event: ParticipantEvent) -> bool:
    """Freshest in-meeting signal carried by an entry."""
    if event.is_currently_in_meeting is not None:
        return event.is_currently_in_meeting
    if event.is_live is not None:
        return event.is_live
    return not event.has_leave_time


def _return_time(
    previous: Optional[datetime],
    *,
    in_meeting: bool,
    leave_time: Optional[datetime],
    join_time: Optional[datetime],
    now: datetime,
) -> Optional[datetime]:
    """
    Instant a participant came back after a recorded leave: their join if it
    is after the leave, else `now`. A return already later than the leave is
    kept as is.
    """
    if not in_meeting or leave_time is None:
        return previous
    if previous is not None and previous > leave_time:
        return previous
    if join_time is not None and join_time > leave_time:
        return join_time
    return now


def _rank_key(
    event: ParticipantEvent,
    base_date: date | datetime,
) -> Tuple[int, datetime]:
    freshness = event.last_seen or resolve_timestamp(event.join_value, base_date)
    if freshness is None:
        freshness = _EPOCH
    return event.populated_field_count(), to_utc(freshness)


def detect_duplicates(
    keyed_events: Iterable[Tuple[str, ParticipantEvent]],
    base_date: date | datetime,
) -> Tuple[Dict[str, ParticipantEvent], int]:
    """
    Collapse entries sharing a token.

    Rules
    -----
    - The entry with the most populated fields wins.
    - Ties go to the later lastSeen (or join time); on a full tie the later
      entry in the batch wins.

    Returns
    -------
    (winners, removed)
        Winners keyed by token in first-seen order, and the number of
        discarded entries.
    """
    winners: Dict[str, ParticipantEvent] = {}
    removed = 0
    for token, event in keyed_events:
        current = winners.get(token)
        if current is None:
            winners[token] = event
            continue
        removed += 1
        if _rank_key(event, base_date) >= _rank_key(current, base_date):
            winners[token] = event
    return winners, removed


def detect_join_leave_events(
    previous: Dict[str, str],
    current: Dict[str, str],
    timestamp: datetime,
) -> List[JoinLeaveEvent]:
    """
    Compare two {token: name} snapshots. New tokens are joins, missing
    tokens are leaves.
    """
    events = [
        JoinLeaveEvent(type="join", token=token, name=name, timestamp=timestamp)
        for token, name in current.items()
        if token not in previous
    ]
    events.extend(
        JoinLeaveEvent(type="leave", token=token, name=name, timestamp=timestamp)
        for token, name in previous.items()
        if token not in current
    )
    return events


class ParticipantMerger:
    """
    Maintains the per-session roster across real-time batches.

    The roster dict is the only mutable state; every record in it is frozen
    and replaced wholesale on change. Not safe for concurrent use: callers
    serialize batches per session (see SessionRegistry).
    """

    def __init__(
        self,
        meet_code: Optional[str],
        session_day: date | datetime,
        *,
        preserve_left: bool = True,
        max_left_age: timedelta = DEFAULT_MAX_LEFT_AGE,
    ) -> None:
        self.meet_code = meet_code
        self.session_day = session_day
        self.preserve_left = preserve_left
        self.max_left_age = max_left_age
        self._roster: Dict[str, ParticipantRecord] = {}
        self._previous_batch: Dict[str, str] = {}

    @property
    def roster(self) -> Dict[str, ParticipantRecord]:
        return dict(self._roster)

    def replace(self, record: ParticipantRecord) -> None:
        """Store an updated copy of a record already in the roster."""
        self._roster[record.token] = record

    def merge_batch(
        self,
        events: Iterable[ParticipantEvent],
        *,
        now: datetime,
        base_date: date | datetime | None = None,
    ) -> MergeResult:
        now = to_utc(now)
        base = base_date if base_date is not None else self.session_day
        events = list(events)

        keyed, missing = self._resolve_tokens(events)
        if missing:
            logger.warning(
                "Skipped %d participant entries with no identity (meet=%s)",
                missing,
                self.meet_code,
            )

        winners, removed = detect_duplicates(keyed, base)
        if removed:
            logger.info("Removed %d duplicate participant entries (meet=%s)", removed, self.meet_code)

        for token, event in winners.items():
            existing = self._roster.get(token)
            if existing is None:
                self._roster[token] = self._new_record(token, event, now=now, base=base)
            else:
                self._roster[token] = self._merge_record(existing, event, now=now, base=base)

        aged_out = self._sweep_missing(set(winners), now=now)

        current = {token: self._roster[token].display_name for token in winners}
        transitions = detect_join_leave_events(self._previous_batch, current, now)
        self._previous_batch = current
        for transition in transitions:
            logger.debug("Participant %s: %s (%s)", transition.type, transition.name, transition.token)

        return MergeResult(
            roster=self.roster,
            seen_tokens=list(winners),
            events=transitions,
            total_events=len(events),
            duplicates_removed=removed,
            missing_identity=missing,
            aged_out=aged_out,
        )

    # ------------------------------------------------------------------ #
    # Identity
    # ------------------------------------------------------------------ #

    def _resolve_tokens(
        self,
        events: List[ParticipantEvent],
    ) -> Tuple[List[Tuple[str, ParticipantEvent]], int]:
        """
        Token per entry. Name-only entries adopt the token of a strong-id
        entry in the same batch, or of a roster record, with the same
        normalized name.
        """
        batch_names: Dict[str, str] = {}
        for event in events:
            if strong_identifier(event) is None:
                continue
            token = participant_token(event, self.meet_code, self.session_day)
            key = name_key(event.label)
            if token and key:
                batch_names.setdefault(key, token)

        roster_names: Dict[str, str] = {}
        for record in self._roster.values():
            key = record.normalized_name.lower()
            if key:
                roster_names.setdefault(key, record.token)

        keyed: List[Tuple[str, ParticipantEvent]] = []
        missing = 0
        for event in events:
            token: Optional[str]
            if strong_identifier(event) is None:
                key = name_key(event.label)
                token = batch_names.get(key) or roster_names.get(key)
                if token is None:
                    token = participant_token(event, self.meet_code, self.session_day)
            else:
                token = participant_token(event, self.meet_code, self.session_day)

            if token is None:
                missing += 1
                continue
            keyed.append((token, event))
        return keyed, missing

    # ------------------------------------------------------------------ #
    # Record construction
    # ------------------------------------------------------------------ #

    def _new_record(
        self,
        token: str,
        event: ParticipantEvent,
        *,
        now: datetime,
        base: date | datetime,
    ) -> ParticipantRecord:
        seen = to_utc(event.last_seen) if event.last_seen else now
        label = event.label
        join_time = resolve_timestamp(event.join_value, base, now=now)
        leave_time = resolve_timestamp(event.leave_value, base, now=now)
        in_meeting = event_in_meeting(event)
        return ParticipantRecord(
            token=token,
            display_name=label or "Unknown",
            normalized_name=normalize_name(label),
            participant_id=strong_identifier(event),
            is_host=event.is_host,
            join_time=join_time,
            leave_time=leave_time,
            last_return_time=_return_time(
                None,
                in_meeting=in_meeting,
                leave_time=leave_time,
                join_time=join_time,
                now=now,
            ),
            status_override=event.explicit_status,
            is_currently_in_meeting=in_meeting,
            timeout_synchronized=event.timeout_synchronized,
            is_tardy=event.is_tardy,
            duration_seconds=event.attended_seconds,
            first_seen=seen,
            last_seen=seen,
        )

    def _merge_record(
        self,
        existing: ParticipantRecord,
        event: ParticipantEvent,
        *,
        now: datetime,
        base: date | datetime,
    ) -> ParticipantRecord:
        """
        Rules
        -----
        - earliest join, latest leave, latest duration
        - in-meeting flag comes from the incoming entry
        - synchronized and tardy flags are sticky
        - a participant back in the meeting after a recorded leave gets a
          return time (their join if it is after the leave, else `now`)
        """
        latest_join = resolve_timestamp(event.join_value, base, now=now)
        join_time = latest_join
        leave_time = resolve_timestamp(event.leave_value, base, now=now)

        if existing.join_time is not None and (join_time is None or existing.join_time < join_time):
            join_time = existing.join_time
        if existing.leave_time is not None and (leave_time is None or existing.leave_time > leave_time):
            leave_time = existing.leave_time

        in_meeting = event_in_meeting(event)
        last_return = _return_time(
            existing.last_return_time,
            in_meeting=in_meeting,
            leave_time=leave_time,
            join_time=latest_join,
            now=now,
        )

        seen = to_utc(event.last_seen) if event.last_seen else now
        if existing.last_seen is not None and existing.last_seen > seen:
            seen = existing.last_seen

        label = event.label
        duration = event.attended_seconds
        return existing.model_copy(
            update={
                "display_name": label or existing.display_name,
                "normalized_name": normalize_name(label) or existing.normalized_name,
                "participant_id": existing.participant_id or strong_identifier(event),
                "is_host": existing.is_host or event.is_host,
                "join_time": join_time,
                "leave_time": leave_time,
                "last_return_time": last_return,
                "status_override": event.explicit_status or existing.status_override,
                "is_currently_in_meeting": in_meeting,
                "timeout_synchronized": existing.timeout_synchronized or event.timeout_synchronized,
                "is_tardy": existing.is_tardy or event.is_tardy,
                "duration_seconds": duration if duration is not None else existing.duration_seconds,
                "last_seen": seen,
            }
        )

    # ------------------------------------------------------------------ #
    # Missing participants
    # ------------------------------------------------------------------ #

    def _sweep_missing(self, seen: set, *, now: datetime) -> int:
        missing = [token for token in self._roster if token not in seen]
        aged_out = 0
        for token in missing:
            record = self._roster[token]
            if not self.preserve_left:
                del self._roster[token]
                continue

            last_seen = record.last_seen or record.first_seen
            if last_seen is None or now - last_seen > self.max_left_age:
                del self._roster[token]
                aged_out += 1
                continue

            self._roster[token] = record.model_copy(
                update={
                    "is_currently_in_meeting": False,
                    "raw_status": AttendanceStatus.LEFT,
                    "final_status": AttendanceStatus.LEFT,
                    "pending_since": None,
                }
            )

        if aged_out:
            logger.info("Aged out %d participants (meet=%s)", aged_out, self.meet_code)
        return aged_out
