import asyncio
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Tuple

from core.exceptions import QuizApiError
from core.logger import logger
from models.attempt import SaveAnswerRequest
from models.session import AttemptSession
from services.quiz_api import QuizApiClient


class SaveOutcome(str, Enum):
    SAVED = "saved"
    FAILED = "failed"
    SUPERSEDED = "superseded"  # a newer write for the same question was queued
    STALE = "stale"  # the attempt is no longer the live one


SessionGetter = Callable[[], Optional[AttemptSession]]
SaveCallback = Callable[[AttemptSession, str], Awaitable[None]]


class AnswerSynchronizer:
    """
    Sends answers of the live attempt to the API.

    Writes for the same question run one at a time, in issue order, and a
    queued write that has been superseded is skipped. Writes for different
    questions are independent.
    """

    def __init__(self, api: QuizApiClient, current_session: SessionGetter,
                 on_saved: Optional[SaveCallback] = None,
                 on_failed: Optional[SaveCallback] = None):
        self.api = api
        self.current_session = current_session
        self.on_saved = on_saved
        self.on_failed = on_failed
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._issued: Dict[Tuple[str, str], int] = {}
        # question_id -> attempt_id of writes that failed and were not retried yet
        self.failed: Dict[str, str] = {}

    def _live(self, attempt_id: str) -> Optional[AttemptSession]:
        session = self.current_session()
        if session is None or session.attempt_id != attempt_id:
            return None
        return session

    def reset(self):
        self._locks.clear()
        self._issued.clear()
        self.failed.clear()

    def has_pending(self) -> bool:
        return any(lock.locked() for lock in self._locks.values())

    async def drain(self):
        """Wait until no write is in flight."""
        while self.has_pending():
            lock = next(lock for lock in self._locks.values() if lock.locked())
            async with lock:
                pass

    async def record_answer(self, session: AttemptSession, question_id: str,
                            answer_code: str, flag: bool = False) -> SaveOutcome:
        if question_id not in session.question_order:
            raise ValueError(f"Question {question_id} is not part of attempt {session.attempt_id}")

        attempt_id = session.attempt_id
        key = (attempt_id, question_id)
        seq = self._issued.get(key, 0) + 1
        self._issued[key] = seq

        # Answer and flag are shown immediately; answered_flags only changes once the API confirms
        session.answer_map[question_id] = answer_code
        session.unsure_flags[question_id] = flag

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            if self._issued.get(key) != seq:
                logger.debug("Skipping superseded answer save", attempt_id=attempt_id,
                             question_id=question_id, seq=seq)
                return SaveOutcome.SUPERSEDED

            live = self._live(attempt_id)
            if live is None:
                return SaveOutcome.STALE

            is_update = live.is_answered(question_id)
            payload = SaveAnswerRequest(
                id_attempt=attempt_id,
                id_question=question_id,
                answer=answer_code,
                flag=flag,
            )

            try:
                await self.api.save_answer(payload, is_update=is_update)
            except QuizApiError as e:
                live = self._live(attempt_id)
                if live is None:
                    return SaveOutcome.STALE
                self.failed[question_id] = attempt_id
                logger.warning("Answer save failed", attempt_id=attempt_id, question_id=question_id,
                               is_update=is_update, status=e.status_code, error=str(e))
                if self.on_failed:
                    await self.on_failed(live, question_id)
                return SaveOutcome.FAILED

            live = self._live(attempt_id)
            if live is None:
                logger.info("Dropping answer save for a closed attempt", attempt_id=attempt_id,
                            question_id=question_id)
                return SaveOutcome.STALE

            live.answered_flags[question_id] = True
            self.failed.pop(question_id, None)
            logger.debug("Answer saved", attempt_id=attempt_id, question_id=question_id,
                         is_update=is_update, seq=seq)

            if self.on_saved:
                await self.on_saved(live, question_id)
            return SaveOutcome.SAVED

    async def retry_failed(self, session: AttemptSession) -> int:
        """
        Replay failed writes of this attempt, plus answers that were never
        confirmed (e.g. after the session was restored from storage).
        Returns how many still fail.
        """
        for question_id, attempt_id in list(self.failed.items()):
            if attempt_id != session.attempt_id:
                self.failed.pop(question_id, None)

        unconfirmed = [
            qid for qid in session.question_order
            if session.answer_map.get(qid) and not session.is_answered(qid)
            and not self._locks.get((session.attempt_id, qid), asyncio.Lock()).locked()
        ]
        to_retry = list(dict.fromkeys(list(self.failed) + unconfirmed))

        for question_id in to_retry:
            answer_code = session.answer_map.get(question_id)
            if not answer_code:
                self.failed.pop(question_id, None)
                continue
            await self.record_answer(session, question_id, answer_code, session.is_unsure(question_id))

        return sum(1 for attempt_id in self.failed.values() if attempt_id == session.attempt_id)
