import time
from datetime import datetime, timedelta
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel

from constants.messages import Messages
from core.config import settings
from core.exceptions import AttemptNotFound, InvalidTransition, QuizApiError
from core.logger import logger
from models.attempt import AttemptDetail, AttemptHistory, AttemptSummary
from models.base import utcnow
from models.notification import Notification, Notifier
from models.quiz import QuestionDetail, QuizDefinition
from models.session import AttemptSession
from services.answer_sync import AnswerSynchronizer, SaveOutcome
from services.quiz_api import QuizApiClient
from services.review import ReviewItem, ReviewSheet, build_review
from services.session_store import SessionStore
from services.timer import Clock, QuizTimer


class AttemptState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    REVIEWING = "reviewing"
    SUBMITTED = "submitted"


class MountResult(str, Enum):
    RESUMED_LOCAL = "resumed_local"
    READY = "ready"
    FAILED = "failed"


class QuizSummary(BaseModel):
    """Everything the summary screen shows before an attempt is running."""
    quiz: Optional[QuizDefinition] = None
    attempts: List[AttemptSummary] = []
    attempts_remaining: int = 0
    pending_attempt: Optional[AttemptSummary] = None
    last_result: Optional[AttemptDetail] = None
    can_start: bool = False


async def _log_notification(notification: Notification):
    logger.info("Quiz notification", level=notification.level, key=notification.key)


class AttemptController:
    """
    State machine of one learner's attempts on one quiz.

    NOT_STARTED -> IN_PROGRESS      start() / resume_pending() / mount() with a stored session
    IN_PROGRESS -> SUBMITTED        submit() / timer expiry
    NOT_STARTED -> REVIEWING        open_review()
    REVIEWING   -> NOT_STARTED      close_review()

    SUBMITTED is shown like NOT_STARTED and allows the same transitions.
    Remote failures never escape: they are logged and turned into
    notifications, and the state is left as it was.
    """

    def __init__(self, api: QuizApiClient, store: SessionStore, user_id: str, content_id: str,
                 notifier: Optional[Notifier] = None, lang: str = None, clock: Clock = utcnow,
                 on_passed: Optional[Callable[[str], Awaitable[None]]] = None,
                 tick_seconds: float = None):
        self.api = api
        self.store = store
        self.user_id = user_id
        self.content_id = content_id
        self.notifier = notifier or _log_notification
        self.lang = lang or settings.DEFAULT_LANGUAGE
        self.clock = clock
        self.on_passed = on_passed
        self.tick_seconds = tick_seconds

        self.state = AttemptState.NOT_STARTED
        self.quiz: Optional[QuizDefinition] = None
        self.history: Optional[AttemptHistory] = None
        self.pending_attempt: Optional[AttemptSummary] = None
        self.session: Optional[AttemptSession] = None
        self.last_result: Optional[AttemptDetail] = None
        self.review: Optional[ReviewSheet] = None
        self.review_index = 0
        self.awaiting_submit_confirmation = False
        self.timer: Optional[QuizTimer] = None

        self._submitting = False
        # time ran out but the attempt is not submitted yet
        self._expiry_pending = False
        self._next_expiry_retry: Optional[datetime] = None
        self._question_cache: Dict[str, Tuple[float, QuestionDetail]] = {}
        self.synchronizer = AnswerSynchronizer(
            api,
            current_session=lambda: self.session,
            on_saved=self._on_answer_saved,
            on_failed=self._on_answer_failed,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _notify(self, level: str, key: str, **fmt):
        text = Messages.get(key, self.lang)
        if fmt:
            text = text.format(**fmt)
        try:
            await self.notifier(Notification(level=level, key=key, text=text))
        except Exception as e:
            logger.warning("Failed to deliver quiz notification", key=key, error=str(e))

    def _require(self, operation: str, *states: AttemptState):
        if self.state not in states:
            raise InvalidTransition(operation, self.state.value)

    def _activate(self, session: AttemptSession):
        self.session = session
        self.state = AttemptState.IN_PROGRESS
        self.pending_attempt = None
        self.review = None
        self.awaiting_submit_confirmation = False
        self._expiry_pending = False
        self._next_expiry_retry = None
        self._restart_timer()

    def _restart_timer(self):
        self._stop_timer()
        self.timer = QuizTimer(
            self.session.start_time,
            self.session.duration_limit_minutes,
            self.on_timer_expired,
            clock=self.clock,
            tick_seconds=self.tick_seconds,
            on_overdue=self._retry_expired_submit,
        )
        self.timer.start()

    def _stop_timer(self):
        if self.timer:
            self.timer.stop()
            self.timer = None

    async def _close_session(self, key: str, level: str = "warning"):
        """Drop the local attempt because the server no longer accepts it."""
        logger.info("Closing local quiz session", content_id=self.content_id,
                    attempt_id=self.session.attempt_id if self.session else None, reason=key)
        await self.store.clear(self.content_id)
        self._stop_timer()
        self.session = None
        self.state = AttemptState.NOT_STARTED
        self.awaiting_submit_confirmation = False
        self._expiry_pending = False
        self.synchronizer.reset()
        await self._notify(level, key)
        await self.refresh_summary()

    def _session_from_detail(self, detail: AttemptDetail) -> AttemptSession:
        answers = {}
        answered = {}
        flags = {}
        for index, question_id in enumerate(detail.question_order):
            code = detail.answer_at(index)
            if code:
                answers[question_id] = code
                answered[question_id] = True
            flag = detail.flag_at(index)
            if flag is not None:
                flags[question_id] = flag

        return AttemptSession(
            attempt_id=detail.id,
            content_id=self.content_id,
            question_order=list(detail.question_order),
            answer_map=answers,
            answered_flags=answered,
            unsure_flags=flags,
            current_index=detail.first_unanswered_index(),
            start_time=detail.quiz_start or self.clock(),
            duration_limit_minutes=self.quiz.duration_limit_minutes if self.quiz else None,
        )

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def attempts_used(self) -> int:
        return len(self.history.attempts) if self.history else 0

    @property
    def attempts_remaining(self) -> int:
        limit = self.quiz.attempt_limit if self.quiz else 0
        return (limit or 0) - self.attempts_used

    @property
    def total_questions(self) -> int:
        if self.state == AttemptState.REVIEWING and self.review:
            return len(self.review.items)
        if self.session:
            return self.session.total_questions
        return self.quiz.total_questions if self.quiz else 0

    @property
    def current_index(self) -> int:
        if self.state == AttemptState.REVIEWING:
            return self.review_index
        return self.session.current_index if self.session else 0

    @property
    def time_left(self) -> Optional[int]:
        if self.state != AttemptState.IN_PROGRESS or not self.timer:
            return None
        return self.timer.remaining()

    def current_review_item(self) -> Optional[ReviewItem]:
        if self.state != AttemptState.REVIEWING or not self.review or not self.review.items:
            return None
        return self.review.items[self.review_index]

    def summary(self) -> QuizSummary:
        can_start = (
            self.state in (AttemptState.NOT_STARTED, AttemptState.SUBMITTED)
            and self.quiz is not None
            and self.attempts_remaining > 0
        )
        return QuizSummary(
            quiz=self.quiz,
            attempts=list(self.history.attempts) if self.history else [],
            attempts_remaining=max(0, self.attempts_remaining),
            pending_attempt=self.pending_attempt,
            last_result=self.last_result,
            can_start=can_start,
        )

    async def current_question(self) -> Optional[QuestionDetail]:
        if self.state != AttemptState.IN_PROGRESS or not self.session:
            return None
        question_id = self.session.current_question_id
        if question_id is None:
            return None

        cached = self._question_cache.get(question_id)
        if cached and time.monotonic() - cached[0] < settings.QUESTION_CACHE_SECONDS:
            return cached[1]

        try:
            question = await self.api.get_question(question_id)
        except QuizApiError as e:
            logger.warning("Failed to load question", question_id=question_id, error=str(e))
            return None

        self._question_cache[question_id] = (time.monotonic(), question)
        return question

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def mount(self) -> MountResult:
        """
        Open the quiz view. A stored session is restored without touching
        the network; otherwise the summary is loaded and a pending attempt,
        if any, is offered for resumption (never resumed automatically).
        """
        if self.state == AttemptState.IN_PROGRESS:
            return MountResult.RESUMED_LOCAL

        session = await self.store.load(self.content_id)
        if session:
            self.synchronizer.reset()
            self._activate(session)
            logger.info("Quiz session restored", content_id=self.content_id, attempt_id=session.attempt_id,
                        index=session.current_index, answered=session.answered_count())
            return MountResult.RESUMED_LOCAL

        if await self.refresh_summary():
            return MountResult.READY
        return MountResult.FAILED

    async def refresh_summary(self) -> bool:
        try:
            quiz = await self.api.get_quiz_detail(self.content_id)
            history = await self.api.get_attempt_history(self.user_id, self.content_id)
        except QuizApiError as e:
            logger.warning("Failed to load quiz summary", content_id=self.content_id, error=str(e))
            await self._notify("warning", "LOAD_FAILED")
            return False

        self.quiz = quiz
        self.history = history
        if self.state != AttemptState.IN_PROGRESS:
            self.pending_attempt = history.pending()
        return True

    async def reconcile(self) -> bool:
        """
        Check a restored session against the server. Returns False when the
        server has closed the attempt and the local session was dropped.
        """
        self._require("reconcile", AttemptState.IN_PROGRESS)
        session = self.session

        try:
            detail = await self.api.get_attempt(session.attempt_id)
        except AttemptNotFound:
            await self._close_session("ATTEMPT_NOT_FOUND")
            return False
        except QuizApiError as e:
            logger.warning("Could not reconcile quiz session", attempt_id=session.attempt_id, error=str(e))
            return True

        if self.session is not session:
            return self.session is not None

        if detail.status.is_closed:
            await self._close_session("ATTEMPT_ALREADY_SUBMITTED", level="info")
            return False

        # Server start time wins over the one recorded locally
        if detail.quiz_start and detail.quiz_start != session.start_time:
            logger.info("Adopting server start time", attempt_id=session.attempt_id,
                        local=session.start_time.isoformat(), server=detail.quiz_start.isoformat())
            session.start_time = detail.quiz_start
            self._restart_timer()

        known = set(session.question_order)
        for index, question_id in enumerate(detail.question_order):
            if question_id not in known:
                continue
            code = detail.answer_at(index)
            if code:
                session.answered_flags[question_id] = True
                session.answer_map.setdefault(question_id, code)
            flag = detail.flag_at(index)
            if flag is not None:
                session.unsure_flags.setdefault(question_id, flag)

        if self.quiz is None:
            try:
                self.quiz = await self.api.get_quiz_detail(self.content_id)
            except QuizApiError as e:
                logger.warning("Failed to load quiz detail", content_id=self.content_id, error=str(e))

        await self.store.save(session)
        return True

    # ------------------------------------------------------------------
    # Starting and resuming
    # ------------------------------------------------------------------

    async def start(self, confirm_discard_pending: bool = False) -> bool:
        self._require("start", AttemptState.NOT_STARTED, AttemptState.SUBMITTED)

        if self.quiz is None or self.history is None:
            if not await self.refresh_summary():
                return False

        if self.attempts_remaining <= 0:
            logger.info("Start refused: no attempts left", content_id=self.content_id,
                        used=self.attempts_used, limit=self.quiz.attempt_limit)
            await self._notify("warning", "ATTEMPTS_EXHAUSTED")
            return False

        if self.pending_attempt and not confirm_discard_pending:
            await self._notify("info", "CONFIRM_NEW_ATTEMPT")
            return False

        try:
            response = await self.api.start_attempt(self.user_id, self.content_id)
        except QuizApiError as e:
            logger.warning("Failed to start quiz attempt", content_id=self.content_id, error=str(e))
            await self._notify("warning", "START_FAILED")
            return False

        # Only one stored session per content id
        await self.store.clear(self.content_id)

        start_time = self.clock()
        session = AttemptSession(
            attempt_id=response.attempt_id,
            content_id=self.content_id,
            question_order=response.question_order,
            current_index=0,
            start_time=start_time,
            duration_limit_minutes=self.quiz.duration_limit_minutes,
        )
        await self.store.save(session)

        self.synchronizer.reset()
        self.last_result = None
        self.history = AttemptHistory(attempts=[
            *self.history.attempts,
            AttemptSummary(id=response.attempt_id, attempt_no=self.attempts_used + 1, quiz_start=start_time),
        ])
        self._activate(session)
        return True

    async def resume_pending(self) -> bool:
        self._require("resume", AttemptState.NOT_STARTED, AttemptState.SUBMITTED)
        pending = self.pending_attempt
        if pending is None:
            return False

        try:
            detail = await self.api.get_attempt(pending.id)
        except QuizApiError as e:
            logger.warning("Failed to resume quiz attempt", attempt_id=pending.id, error=str(e))
            await self._notify("warning", "RESUME_FAILED")
            return False

        if detail.status.is_closed:
            await self.store.clear(self.content_id)
            self.pending_attempt = None
            await self._notify("info", "ATTEMPT_ALREADY_SUBMITTED")
            return False

        session = self._session_from_detail(detail)
        await self.store.save(session)
        self.synchronizer.reset()
        self._activate(session)
        logger.info("Pending quiz attempt resumed", attempt_id=session.attempt_id,
                    index=session.current_index, answered=session.answered_count())
        return True

    # ------------------------------------------------------------------
    # Answering and navigation
    # ------------------------------------------------------------------

    async def _on_answer_saved(self, session: AttemptSession, question_id: str):
        await self.store.save(session)
        await self._notify("success", "ANSWER_SAVED")

    async def _on_answer_failed(self, session: AttemptSession, question_id: str):
        await self.store.save(session)
        await self._notify("warning", "ANSWER_SAVE_FAILED")

    async def answer(self, question_id: str, answer_code: str) -> SaveOutcome:
        self._require("answer", AttemptState.IN_PROGRESS)
        session = self.session
        return await self.synchronizer.record_answer(
            session, question_id, answer_code, session.is_unsure(question_id)
        )

    async def answer_current(self, answer_code: str) -> SaveOutcome:
        self._require("answer", AttemptState.IN_PROGRESS)
        return await self.answer(self.session.current_question_id, answer_code)

    async def toggle_flag(self, question_id: str) -> bool:
        """Flip the unsure mark. Returns the flag now recorded for the question."""
        self._require("flag", AttemptState.IN_PROGRESS)
        session = self.session
        if question_id not in session.question_order:
            raise ValueError(f"Question {question_id} is not part of attempt {session.attempt_id}")

        new_flag = not session.is_unsure(question_id)
        code = session.answer_map.get(question_id)
        if code:
            # Flag and answer travel together so neither overwrites the other
            await self.synchronizer.record_answer(session, question_id, code, new_flag)
        else:
            session.unsure_flags[question_id] = new_flag
            await self.store.save(session)
        return session.is_unsure(question_id)

    async def go_to(self, index: int) -> bool:
        if self.state == AttemptState.REVIEWING:
            if not self.review or index < 0 or index >= len(self.review.items):
                return False
            self.review_index = index
            return True

        self._require("navigate", AttemptState.IN_PROGRESS)
        session = self.session
        if index < 0 or index >= session.total_questions:
            return False
        if index != session.current_index:
            session.current_index = index
            await self.store.save(session)
        return True

    async def next(self) -> bool:
        return await self.go_to(self.current_index + 1)

    async def previous(self) -> bool:
        return await self.go_to(self.current_index - 1)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def request_submit(self):
        self._require("submit", AttemptState.IN_PROGRESS)
        self.awaiting_submit_confirmation = True

    def cancel_submit(self):
        self.awaiting_submit_confirmation = False

    async def confirm_submit(self) -> bool:
        self._require("submit", AttemptState.IN_PROGRESS)
        self.awaiting_submit_confirmation = False
        return await self.submit()

    async def on_timer_expired(self):
        if self.state != AttemptState.IN_PROGRESS:
            return
        self._expiry_pending = True
        self.awaiting_submit_confirmation = False
        if self._submitting:
            logger.info("Quiz time is up while a submit is running", content_id=self.content_id,
                        attempt_id=self.session.attempt_id)
            return
        logger.info("Quiz time is up, submitting", content_id=self.content_id,
                    attempt_id=self.session.attempt_id)
        await self.submit(auto=True)

    async def _retry_expired_submit(self):
        """Called on every timer tick after expiry until the attempt is submitted."""
        if not self._expiry_pending or self.state != AttemptState.IN_PROGRESS or self._submitting:
            return
        if self._next_expiry_retry and self.clock() < self._next_expiry_retry:
            return
        logger.info("Retrying submit of expired attempt", content_id=self.content_id,
                    attempt_id=self.session.attempt_id)
        await self.submit(auto=True)

    async def submit(self, auto: bool = False) -> bool:
        self._require("submit", AttemptState.IN_PROGRESS)
        if self._submitting:
            return False

        self._submitting = True
        try:
            session = self.session
            self.awaiting_submit_confirmation = False

            await self.synchronizer.drain()
            unsaved = await self.synchronizer.retry_failed(session)
            if unsaved:
                await self._notify("warning", "UNSAVED_ANSWERS", count=unsaved)

            try:
                result = await self.api.submit_attempt(session.attempt_id)
            except AttemptNotFound:
                await self._close_session("ATTEMPT_NOT_FOUND")
                return False
            except QuizApiError as e:
                logger.warning("Failed to submit quiz attempt", attempt_id=session.attempt_id,
                               auto=auto, error=str(e))
                await self._notify("warning", "SUBMIT_FAILED")
                if self._expiry_pending:
                    retry_in = timedelta(seconds=settings.EXPIRED_SUBMIT_RETRY_SECONDS)
                    self._next_expiry_retry = self.clock() + retry_in
                return False

            await self.store.clear(self.content_id)
            self._stop_timer()
            self.session = None
            self.state = AttemptState.SUBMITTED
            self.last_result = result
            auto = auto or self._expiry_pending
            self._expiry_pending = False
            self._next_expiry_retry = None
            self.synchronizer.reset()
            self._question_cache.clear()

            await self._notify("success", "QUIZ_AUTO_SUBMITTED" if auto else "QUIZ_SUBMITTED")
            if result.is_passed and self.on_passed:
                await self.on_passed(self.content_id)

            await self.refresh_summary()
            return True
        finally:
            self._submitting = False

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    async def open_review(self, attempt_id: str) -> bool:
        self._require("review", AttemptState.NOT_STARTED, AttemptState.SUBMITTED)
        try:
            record = await self.api.get_attempt_review(self.user_id, self.content_id, attempt_id)
        except QuizApiError as e:
            logger.warning("Failed to load attempt review", attempt_id=attempt_id, error=str(e))
            await self._notify("warning", "REVIEW_FAILED")
            return False

        self.review = build_review(record)
        self.review_index = 0
        self.state = AttemptState.REVIEWING
        return True

    def close_review(self):
        self._require("close review", AttemptState.REVIEWING)
        self.review = None
        self.review_index = 0
        self.state = AttemptState.NOT_STARTED

    def teardown(self):
        self._stop_timer()
