# tests/test_session_processor.py
from datetime import datetime, timezone

from attendance_core.schemas.batch import EventBatch
from attendance_core.schemas.status import AttendanceStatus
from attendance_core.services.session_processor import SessionProcessor

MEET_CODE = "abc-defg-hij"


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 3, 4, hour, minute, tzinfo=timezone.utc)


def _processor() -> SessionProcessor:
    return SessionProcessor(MEET_CODE, "04/03/2024")


def _batch(*participants, **fields) -> EventBatch:
    return EventBatch(meetCode=MEET_CODE, sessionDate="04/03/2024", participants=list(participants), **fields)


def _find(result, name):
    return next(p for p in result.participants if p.display_name == name)


CLASS_WINDOW = {
    "scheduledStart": "2024-03-04T09:00:00Z",
    "scheduledEnd": "2024-03-04T10:30:00Z",
}

ANA_IN = {"participantId": "s-1", "name": "Ana", "joinTime": "09:02:00", "isCurrentlyInMeeting": True}
ANA_LEFT = {
    "participantId": "s-1",
    "name": "Ana",
    "joinTime": "09:02:00",
    "leaveTime": "09:35:00",
    "isCurrentlyInMeeting": False,
}


def test_participant_in_meeting_is_present():
    result = _processor().process_batch(_batch(ANA_IN), now=_at(9, 10))

    ana = _find(result, "Ana")
    assert ana.final_status == AttendanceStatus.PRESENT
    assert ana.status_label == "Present"
    assert ana.join_time_formatted == "09:02:00"
    assert result.metadata.finalized is False


def test_leave_during_ongoing_meeting_is_pending_since_leave():
    processor = _processor()
    processor.process_batch(_batch(ANA_IN), now=_at(9, 10))

    result = processor.process_batch(_batch(ANA_LEFT), now=_at(9, 40))

    ana = _find(result, "Ana")
    assert ana.final_status == AttendanceStatus.PENDING
    assert ana.pending_since == _at(9, 35)
    assert ana.is_left is True
    assert result.stats.pending_count == 1


def test_pending_participant_who_returns_is_present():
    processor = _processor()
    processor.process_batch(_batch(ANA_IN), now=_at(9, 10))
    processor.process_batch(_batch(ANA_LEFT), now=_at(9, 40))

    result = processor.process_batch(
        _batch({"participantId": "s-1", "name": "Ana", "joinTime": "09:48:00", "isCurrentlyInMeeting": True}),
        now=_at(9, 50),
    )

    ana = _find(result, "Ana")
    assert ana.final_status == AttendanceStatus.PRESENT
    assert ana.pending_since is None
    assert ana.join_time == _at(9, 2)


def test_pending_participant_is_absent_when_meeting_ends():
    processor = _processor()
    processor.process_batch(_batch(ANA_IN), now=_at(9, 10))
    processor.process_batch(_batch(ANA_LEFT), now=_at(9, 40))

    result = processor.process_batch(_batch(ANA_LEFT, meetingEnded=True), now=_at(10, 31))

    ana = _find(result, "Ana")
    assert ana.final_status == AttendanceStatus.ABSENT
    assert ana.pending_since is None
    assert result.metadata.finalized is True


def test_host_leaving_finalizes_and_synchronizes_students_in_meeting():
    """
    When the host's leave is first seen, students still in the meeting are
    flagged as synchronized and stay present.
    """
    processor = _processor()
    result = processor.process_batch(
        _batch(
            {
                "participantId": "h-1",
                "name": "Prof. Reyes (Host)",
                "isHost": True,
                "joinTime": "08:58:00",
                "leaveTime": "10:30:00",
                "isCurrentlyInMeeting": False,
            },
            {"participantId": "s-2", "name": "Ben", "joinTime": "09:01:00", "isCurrentlyInMeeting": True},
        ),
        now=_at(10, 31),
    )

    assert processor.is_finalized is True
    assert processor.instructor_leave_time == _at(10, 30)

    ben = _find(result, "Ben")
    assert ben.final_status == AttendanceStatus.PRESENT
    assert ben.timeout_synchronized is True

    host = _find(result, "Prof. Reyes (Host)")
    assert host.final_status == AttendanceStatus.PRESENT
    assert result.stats.host_count == 1


def test_finalization_is_sticky():
    processor = _processor()
    processor.process_batch(_batch(ANA_IN, meetingEnded=True), now=_at(10, 31))

    result = processor.process_batch(_batch(ANA_IN), now=_at(10, 32))

    assert result.metadata.finalized is True


def test_tardy_join_becomes_late():
    result = _processor().process_batch(
        _batch(
            {"participantId": "h-1", "name": "Prof", "isHost": True, "joinTime": "08:55:00"},
            {"participantId": "s-3", "name": "Cara", "joinTime": "09:30:00", "isCurrentlyInMeeting": True},
            classWindow=CLASS_WINDOW,
        ),
        now=_at(9, 31),
    )

    cara = _find(result, "Cara")
    assert cara.final_status == AttendanceStatus.LATE
    assert cara.is_tardy is True
    assert result.stats.late_count == 1


def test_tardiness_waived_during_add_drop_period():
    window = dict(CLASS_WINDOW, addDropStart="2024-03-01", addDropEnd="2024-03-08")
    result = _processor().process_batch(
        _batch(
            {"participantId": "s-3", "name": "Cara", "joinTime": "09:30:00", "isCurrentlyInMeeting": True},
            classWindow=window,
        ),
        now=_at(9, 31),
    )

    assert _find(result, "Cara").final_status == AttendanceStatus.PRESENT


def test_late_instructor_excuses_student_who_left_early():
    result = _processor().process_batch(
        _batch(
            {"participantId": "h-1", "name": "Prof", "isHost": True, "joinTime": "09:40:00", "isCurrentlyInMeeting": True},
            {
                "participantId": "s-4",
                "name": "Dan",
                "joinTime": "09:05:00",
                "leaveTime": "09:20:00",
                "isCurrentlyInMeeting": False,
            },
            classWindow=CLASS_WINDOW,
            meetingEnded=True,
        ),
        now=_at(10, 31),
    )

    dan = _find(result, "Dan")
    assert dan.final_status == AttendanceStatus.PRESENT
    assert dan.is_tardy is False


def test_metadata_counts_duplicates_and_missing_identity():
    result = _processor().process_batch(
        _batch(
            {"participantId": "s-1", "name": "Ana"},
            {"participantId": "s-1", "name": "Ana", "joinTime": "09:02:00"},
            {"joinTime": "09:03:00"},
        ),
        now=_at(9, 10),
    )

    assert result.metadata.total_events == 3
    assert result.metadata.duplicates_removed == 1
    assert result.metadata.missing_identity == 1
    assert result.metadata.unique_participants == 1
    assert result.stats.total_participants == 1


def test_one_malformed_participant_does_not_abort_the_batch():
    batch = EventBatch.model_validate(
        {
            "meetCode": MEET_CODE,
            "sessionDate": "04/03/2024",
            "participants": [
                ANA_IN,
                {"participantId": "s-2", "name": "Ben", "lastSeen": "n/a", "durationSeconds": ""},
                {"participantId": "s-3", "name": "Cara", "joinTime": "1709542920000"},
            ],
        }
    )

    result = _processor().process_batch(batch, now=_at(9, 10))

    assert result.metadata.unique_participants == 3
    assert _find(result, "Ana").final_status == AttendanceStatus.PRESENT
    assert _find(result, "Ben").duration_formatted == "00:00:00"
    assert _find(result, "Cara").join_time is None


def test_batch_timestamp_is_used_as_reference_clock():
    processor = _processor()
    ben = {"participantId": "s-2", "name": "Ben", "joinTime": "09:01:00"}
    processor.process_batch(_batch(ANA_IN, ben, timestamp=_at(9, 10)))

    result = processor.process_batch(_batch(ANA_IN, timestamp=_at(9, 12)))

    assert result.metadata.aged_out == 0
    assert _find(result, "Ben").final_status == AttendanceStatus.LEFT
    assert result.events[0].timestamp == _at(9, 12)
