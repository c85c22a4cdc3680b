# tests/test_participant_merger.py
from datetime import date, datetime, timedelta, timezone

from attendance_core.schemas.participant import ParticipantEvent
from attendance_core.schemas.status import AttendanceStatus
from attendance_core.services.participant_merger import ParticipantMerger

DAY = date(2024, 3, 4)
NOW = datetime(2024, 3, 4, 9, 10, tzinfo=timezone.utc)


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 3, 4, hour, minute, tzinfo=timezone.utc)


def _merger(**kwargs) -> ParticipantMerger:
    return ParticipantMerger("abc-defg-hij", DAY, **kwargs)


def _events(*payloads) -> list:
    return [ParticipantEvent(**p) for p in payloads]


def test_new_participants_are_inserted():
    merger = _merger()
    result = merger.merge_batch(
        _events(
            {"participantId": "p-1", "name": "Ana", "joinTime": "09:02:00"},
            {"participantId": "p-2", "name": "Ben", "joinTime": "09:05:00"},
        ),
        now=NOW,
    )

    assert len(result.roster) == 2
    assert result.total_events == 2
    records = {r.display_name: r for r in result.roster.values()}
    assert records["Ana"].join_time == _at(9, 2)
    assert records["Ana"].first_seen == NOW
    assert [e.type for e in result.events] == ["join", "join"]


def test_duplicates_collapse_to_most_complete_entry():
    merger = _merger()
    result = merger.merge_batch(
        _events(
            {"participantId": "p-1", "name": "Ana"},
            {"participantId": "p-1", "name": "Ana", "joinTime": "09:02:00", "durationSeconds": 480},
        ),
        now=NOW,
    )

    assert result.duplicates_removed == 1
    assert len(result.roster) == 1
    record = next(iter(result.roster.values()))
    assert record.join_time == _at(9, 2)
    assert record.duration_seconds == 480


def test_entries_without_identity_are_counted_and_skipped():
    merger = _merger()
    result = merger.merge_batch(_events({}, {"name": "   "}, {"name": "Ana"}), now=NOW)

    assert result.missing_identity == 2
    assert len(result.roster) == 1


def test_merging_same_batch_twice_is_idempotent():
    batch = _events(
        {"participantId": "p-1", "name": "Ana", "joinTime": "09:02:00", "isCurrentlyInMeeting": True},
        {
            "participantId": "p-2",
            "name": "Ben",
            "joinTime": "09:03:00",
            "leaveTime": "09:08:00",
            "isCurrentlyInMeeting": False,
        },
        {"name": "Cara", "joinTime": "09:04:00"},
        {
            "participantId": "p-4",
            "name": "Dan",
            "joinTime": "09:00:00",
            "leaveTime": "09:05:00",
            "isCurrentlyInMeeting": True,
        },
    )
    merger = _merger()

    first = merger.merge_batch(batch, now=NOW)
    second = merger.merge_batch(batch, now=NOW)

    assert first.roster == second.roster


def test_first_sighting_after_a_rejoin_records_the_return():
    """
    An entry already back in the meeting after a recorded leave gets a return
    time on first sight, so a later leave is not projected again.
    """
    merger = _merger()
    result = merger.merge_batch(
        _events(
            {
                "participantId": "p-1",
                "name": "Ana",
                "joinTime": "09:00:00",
                "leaveTime": "09:05:00",
                "isCurrentlyInMeeting": True,
            },
        ),
        now=NOW,
    )

    record = next(iter(result.roster.values()))
    assert record.last_return_time == NOW
    assert record.as_event().leave_value is None


def test_oversized_clock_values_do_not_abort_the_batch():
    merger = _merger()
    result = merger.merge_batch(
        _events(
            {"participantId": "p-1", "name": "Ana", "joinTime": "1709542920000"},
            {"participantId": "p-2", "name": "Ben", "joinTime": "09:05:00"},
        ),
        now=NOW,
    )

    records = {r.display_name: r for r in result.roster.values()}
    assert records["Ana"].join_time is None
    assert records["Ben"].join_time == _at(9, 5)


def test_earliest_join_and_latest_leave_are_kept():
    merger = _merger()
    merger.merge_batch(_events({"participantId": "p-1", "name": "Ana", "joinTime": "09:05:00"}), now=NOW)

    result = merger.merge_batch(
        _events(
            {
                "participantId": "p-1",
                "name": "Ana",
                "joinTime": "09:10:00",
                "leaveTime": "09:40:00",
                "isCurrentlyInMeeting": False,
            }
        ),
        now=_at(9, 41),
    )

    record = next(iter(result.roster.values()))
    assert record.join_time == _at(9, 5)
    assert record.leave_time == _at(9, 40)
    assert record.is_currently_in_meeting is False


def test_return_after_leave_is_recorded():
    merger = _merger()
    merger.merge_batch(
        _events(
            {
                "participantId": "p-1",
                "name": "Ana",
                "joinTime": "09:00:00",
                "leaveTime": "09:30:00",
                "isCurrentlyInMeeting": False,
            }
        ),
        now=_at(9, 31),
    )

    result = merger.merge_batch(
        _events({"participantId": "p-1", "name": "Ana", "joinTime": "09:45:00", "isCurrentlyInMeeting": True}),
        now=_at(9, 46),
    )

    record = next(iter(result.roster.values()))
    assert record.leave_time == _at(9, 30)
    assert record.last_return_time == _at(9, 45)
    assert record.is_currently_in_meeting is True
    assert record.as_event().leave_value is None


def test_missing_participants_are_kept_as_left_then_aged_out():
    merger = _merger()
    merger.merge_batch(
        _events({"participantId": "p-1", "name": "Ana"}, {"participantId": "p-2", "name": "Ben"}),
        now=NOW,
    )

    result = merger.merge_batch(_events({"participantId": "p-1", "name": "Ana"}), now=NOW + timedelta(minutes=1))

    ben = next(r for r in result.roster.values() if r.display_name == "Ben")
    assert ben.is_currently_in_meeting is False
    assert ben.final_status == AttendanceStatus.LEFT
    assert ben.pending_since is None
    assert [(e.type, e.name) for e in result.events] == [("leave", "Ben")]

    result = merger.merge_batch(_events({"participantId": "p-1", "name": "Ana"}), now=NOW + timedelta(minutes=7))

    assert result.aged_out == 1
    assert [r.display_name for r in result.roster.values()] == ["Ana"]


def test_missing_participants_are_dropped_without_preserve_left():
    merger = _merger(preserve_left=False)
    merger.merge_batch(
        _events({"participantId": "p-1", "name": "Ana"}, {"participantId": "p-2", "name": "Ben"}),
        now=NOW,
    )

    result = merger.merge_batch(_events({"participantId": "p-1", "name": "Ana"}), now=NOW)

    assert [r.display_name for r in result.roster.values()] == ["Ana"]


def test_name_only_entry_matches_strong_id_in_same_batch():
    merger = _merger()
    result = merger.merge_batch(
        _events(
            {"participantId": "p-1", "name": "Jane Doe", "joinTime": "09:01:00"},
            {"name": "Jane Doe (You)"},
        ),
        now=NOW,
    )

    assert len(result.roster) == 1
    assert result.duplicates_removed == 1


def test_name_only_entry_matches_existing_roster_record():
    merger = _merger()
    first = merger.merge_batch(
        _events({"participantId": "p-1", "name": "Jane Doe", "joinTime": "09:01:00"}),
        now=NOW,
    )

    second = merger.merge_batch(_events({"name": "jane doe (Presenting)"}), now=NOW)

    assert list(second.roster) == list(first.roster)
    assert second.events == []
