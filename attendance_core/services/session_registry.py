# attendance_core/services/session_registry.py
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from attendance_core.core.config import Settings, get_policy_constants, get_settings
from attendance_core.schemas.batch import BatchResult, EventBatch
from attendance_core.schemas.policy import PolicyConstants
from attendance_core.services.session_processor import SessionProcessor
from attendance_core.services.time_utils import parse_calendar_day

logger = logging.getLogger(__name__)


class SessionKeyError(ValueError):
    """
    Raised when a batch carries neither a session id nor a meet code, so it
    cannot be attributed to any session.
    """


def session_key_for(batch: EventBatch, *, today: datetime | None = None) -> str:
    """
    Session key of a batch: the session id when given, else
    "meet_<code>:<YYYY-MM-DD>" from the meet code and session date.
    """
    if batch.session_id:
        return batch.session_id
    if batch.meet_code:
        day = parse_calendar_day(batch.session_date, today=today)
        return f"meet_{batch.meet_code}:{day.date().isoformat()}"
    raise SessionKeyError("batch has neither sessionId nor meetCode")


class SessionRegistry:
    """
    Owns one SessionProcessor per live session.

    Responsibilities
    ----------------
    - Route each batch to its session's processor, creating it on first use.
    - Serialize batches of the same session with a per-session asyncio lock,
      while batches of different sessions proceed independently.

    Notes
    -----
    - State is in-memory for this process only. Sessions are never evicted
      implicitly; callers remove finished sessions with `discard()` or sweep
      finalized ones with `discard_finalized()`.
    - Processing itself is synchronous and does no I/O.
    """

    def __init__(
        self,
        *,
        constants: PolicyConstants | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.constants = constants or get_policy_constants(settings)
        self.preserve_left = settings.PRESERVE_LEFT_PARTICIPANTS
        self.max_left_age = timedelta(seconds=settings.PARTICIPANT_MAX_LEFT_AGE_SECONDS)

        self._processors: Dict[str, SessionProcessor] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def processor_for(self, key: str, batch: EventBatch) -> SessionProcessor:
        processor = self._processors.get(key)
        if processor is None:
            processor = SessionProcessor(
                batch.meet_code,
                batch.session_date,
                constants=self.constants,
                preserve_left=self.preserve_left,
                max_left_age=self.max_left_age,
                session_key=key,
            )
            self._processors[key] = processor
            logger.info("Opened session %s", key)
        return processor

    async def process(self, batch: EventBatch, *, now: datetime | None = None) -> BatchResult:
        """
        Process a batch under its session's lock.

        Raises
        ------
        SessionKeyError
            If the batch cannot be attributed to a session.
        """
        key = session_key_for(batch, today=now)
        async with self._lock_for(key):
            processor = self.processor_for(key, batch)
            return processor.process_batch(batch, now=now)

    def get(self, key: str) -> Optional[SessionProcessor]:
        return self._processors.get(key)

    def discard(self, key: str) -> bool:
        """Forget a session. Returns False if it was not registered."""
        self._locks.pop(key, None)
        removed = self._processors.pop(key, None) is not None
        if removed:
            logger.info("Closed session %s", key)
        return removed

    def active_sessions(self) -> List[str]:
        return sorted(self._processors)

    def discard_finalized(self) -> List[str]:
        """
        Forget every finalized session that is not processing a batch.

        Returns
        -------
        list[str]
            Keys of the discarded sessions, sorted.
        """
        finished = [
            key
            for key, processor in self._processors.items()
            if processor.is_finalized and not self._lock_for(key).locked()
        ]
        for key in finished:
            self.discard(key)
        return sorted(finished)
