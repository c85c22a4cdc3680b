# tests/test_session_registry.py
import asyncio
from datetime import datetime, timezone

import pytest

from attendance_core.core.config import Settings
from attendance_core.schemas.batch import EventBatch
from attendance_core.services.session_registry import (
    SessionKeyError,
    SessionRegistry,
    session_key_for,
)

NOW = datetime(2024, 3, 4, 9, 10, tzinfo=timezone.utc)


def _registry() -> SessionRegistry:
    return SessionRegistry(settings=Settings())


def _batch(meet_code="abc-defg-hij", session_id=None, participants=()):
    return EventBatch(
        meetCode=meet_code,
        sessionId=session_id,
        sessionDate="04/03/2024",
        participants=list(participants),
    )


def test_session_key_prefers_session_id():
    assert session_key_for(_batch(session_id="sess-42")) == "sess-42"


def test_session_key_falls_back_to_meet_code_and_day():
    assert session_key_for(_batch()) == "meet_abc-defg-hij:2024-03-04"


def test_session_key_requires_some_identity():
    with pytest.raises(SessionKeyError):
        session_key_for(_batch(meet_code=None))


@pytest.mark.asyncio
async def test_registry_keeps_sessions_apart():
    registry = _registry()

    first, second = await asyncio.gather(
        registry.process(_batch(meet_code="aaa", participants=[{"participantId": "p-1", "name": "Ana"}]), now=NOW),
        registry.process(_batch(meet_code="bbb", participants=[{"participantId": "p-2", "name": "Ben"}]), now=NOW),
    )

    assert first.session_key == "meet_aaa:2024-03-04"
    assert second.session_key == "meet_bbb:2024-03-04"
    assert registry.active_sessions() == ["meet_aaa:2024-03-04", "meet_bbb:2024-03-04"]
    assert [p.display_name for p in first.participants] == ["Ana"]


@pytest.mark.asyncio
async def test_registry_serializes_batches_of_one_session():
    """
    Concurrent batches for the same session all land in a single roster.
    """
    registry = _registry()
    batches = [
        _batch(session_id="sess-1", participants=[{"participantId": f"p-{i}", "name": f"Student {i}"}])
        for i in range(5)
    ]

    await asyncio.gather(*(registry.process(b, now=NOW) for b in batches))

    processor = registry.get("sess-1")
    assert processor is not None
    assert len(processor.merger.roster) == 5


@pytest.mark.asyncio
async def test_registry_rejects_batches_without_identity():
    registry = _registry()

    with pytest.raises(SessionKeyError):
        await registry.process(_batch(meet_code=None), now=NOW)

    assert registry.active_sessions() == []


@pytest.mark.asyncio
async def test_discard_forgets_session():
    registry = _registry()
    await registry.process(_batch(session_id="sess-1"), now=NOW)

    assert registry.discard("sess-1") is True
    assert registry.discard("sess-1") is False
    assert registry.get("sess-1") is None


@pytest.mark.asyncio
async def test_discard_finalized_sweeps_only_ended_sessions():
    registry = _registry()
    await registry.process(_batch(session_id="live"), now=NOW)
    ended = _batch(session_id="ended")
    ended.meeting_ended = True
    await registry.process(ended, now=NOW)

    assert registry.discard_finalized() == ["ended"]
    assert registry.active_sessions() == ["live"]
    assert registry.discard_finalized() == []
