# exam_prep/services/session_service.py
import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from ..core.config import config
from ..core.database import DatabaseManager, get_db_manager
from ..core.exceptions import (
    NotFound, Forbidden, EmptyQuestionSet, StorageError,
    SubmitFailed, InvalidSessionState, AttemptAlreadyFinalized
)
from ..core.utils import TestKind, ValidationUtils, DateTimeUtils
from .scoring import grade_answers, final_stats

logger = logging.getLogger(__name__)

class SessionState(Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    SUBMIT_FAILED = "submit_failed"

# States in which answers, marks and navigation are accepted
OPEN_STATES = (SessionState.IN_PROGRESS, SessionState.SUBMIT_FAILED)

class QuestionStatus(Enum):
    NOT_ANSWERED = "not-answered"
    ANSWERED = "answered"
    MARKED = "marked"
    ANSWERED_MARKED = "answered-marked"

@dataclass
class TestSession:
    attempt_id: str
    user_id: str
    kind: TestKind
    source_id: str
    name: str
    questions: List[Dict[str, Any]]
    total_seconds: int
    remaining_seconds: int
    created_at: float = field(default_factory=time.time)
    current_index: int = 0
    answers: Dict[str, str] = field(default_factory=dict)
    marked_for_review: Set[str] = field(default_factory=set)
    state: SessionState = SessionState.NOT_STARTED
    submit_trigger: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    last_error: Optional[str] = None
    countdown_task: Optional[asyncio.Task] = field(default=None, repr=False)
    last_tick_at: Optional[float] = field(default=None, repr=False)

    # Not a pytest test class
    __test__ = False

    @property
    def is_open(self) -> bool:
        return self.state in OPEN_STATES

    def has_question(self, question_id: str) -> bool:
        return any(q["id"] == question_id for q in self.questions)

    def status_of(self, question_id: str) -> QuestionStatus:
        answered = question_id in self.answers
        marked = question_id in self.marked_for_review

        if answered and marked:
            return QuestionStatus.ANSWERED_MARKED
        if answered:
            return QuestionStatus.ANSWERED
        if marked:
            return QuestionStatus.MARKED
        return QuestionStatus.NOT_ANSWERED

    def palette(self) -> List[Dict[str, Any]]:
        """Status of every question, in order"""
        return [
            {
                "index": i,
                "question_id": q["id"],
                "status": self.status_of(q["id"]).value,
                "is_current": i == self.current_index
            }
            for i, q in enumerate(self.questions)
        ]

    def status_counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in QuestionStatus}
        for q in self.questions:
            counts[self.status_of(q["id"]).value] += 1
        return counts

    def public_view(self) -> Dict[str, Any]:
        """Session state for the client; correct answers are never exposed"""
        current = self.questions[self.current_index]
        return {
            "attempt_id": self.attempt_id,
            "kind": self.kind.value,
            "source_id": self.source_id,
            "name": self.name,
            "state": self.state.value,
            "total_questions": len(self.questions),
            "current_index": self.current_index,
            "remaining_seconds": self.remaining_seconds,
            "total_seconds": self.total_seconds,
            "current_question": {
                "id": current["id"],
                "question_text": current["question_text"],
                "options": {
                    letter: current.get(f"option_{letter}") for letter in config.ANSWER_OPTIONS
                },
                "selected_answer": self.answers.get(current["id"]),
                "is_marked": current["id"] in self.marked_for_review
            },
            "palette": self.palette(),
            "status_counts": self.status_counts(),
            "result": self.result,
            "last_error": self.last_error
        }

class SessionEngine:
    """In-progress test sessions: answer bookkeeping, countdown and the single finalize transition"""

    def __init__(self, db_manager: DatabaseManager = None, tick_interval: float = None):
        self._db_manager = db_manager
        self.tick_interval = tick_interval or config.COUNTDOWN_TICK_SECONDS
        self.sessions: Dict[str, TestSession] = {}

    @property
    def db_manager(self) -> DatabaseManager:
        return self._db_manager or get_db_manager()

    # ==================== Lifecycle ====================

    def start(self, user_id: str, source_id: str, kind: Any = TestKind.TEST) -> TestSession:
        """Load a paper/test with its questions, open an attempt and start the clock"""
        if not user_id:
            raise Forbidden("Sign in to take a test")

        kind = TestKind.parse(kind)
        logger.info(f"🚀 Starting {kind.value} session: {source_id} for user {user_id}")

        source = self.db_manager.get_source(kind, source_id)
        if not source:
            raise NotFound(f"{kind.default_name} not found")

        questions = self.db_manager.get_questions(kind, source_id)
        if not questions:
            logger.warning(f"⚠️ {kind.value} {source_id} has no questions")
            raise EmptyQuestionSet()

        total_seconds = int(source.get("duration_minutes") or 0) * 60
        if total_seconds <= 0:
            raise ValueError(f"{kind.default_name} has no valid duration")

        attempt = self.db_manager.create_attempt(user_id, kind, source_id, len(questions))

        session = TestSession(
            attempt_id=attempt["id"],
            user_id=user_id,
            kind=kind,
            source_id=source_id,
            name=source.get(kind.name_field) or kind.default_name,
            questions=questions,
            total_seconds=total_seconds,
            remaining_seconds=total_seconds
        )
        self.sessions[session.attempt_id] = session

        session.state = SessionState.IN_PROGRESS
        self._start_countdown(session)

        logger.info(f"✅ Session started: {session.attempt_id} with {len(questions)} questions, "
                    f"{total_seconds}s on the clock")
        return session

    def get_session(self, attempt_id: str, user_id: str) -> TestSession:
        session = self.sessions.get(attempt_id)
        if session is None:
            raise NotFound("Test session not found or expired")
        if session.user_id != user_id:
            raise Forbidden("This test session belongs to another user")
        self._sync_clock(session)
        return session

    def _open_session(self, attempt_id: str, user_id: str) -> TestSession:
        """Session that still accepts input; re-enters in_progress after a failed submit"""
        session = self.get_session(attempt_id, user_id)

        if session.state is SessionState.SUBMIT_FAILED:
            session.state = SessionState.IN_PROGRESS
            logger.info(f"🔁 Session {attempt_id} resumed after failed submit")
        elif session.state is not SessionState.IN_PROGRESS:
            raise InvalidSessionState(f"Test session is {session.state.value}")

        return session

    # ==================== Local bookkeeping ====================

    def select_answer(self, attempt_id: str, user_id: str, question_id: str, option: str) -> TestSession:
        if not ValidationUtils.validate_option(option):
            raise ValueError("Answer must be one of a, b, c, d")

        session = self._open_session(attempt_id, user_id)
        if not session.has_question(question_id):
            raise ValueError("Question is not part of this test")

        session.answers[question_id] = option
        return session

    def toggle_mark(self, attempt_id: str, user_id: str, question_id: str) -> bool:
        """Flip the review mark; returns whether the question is now marked"""
        session = self._open_session(attempt_id, user_id)
        if not session.has_question(question_id):
            raise ValueError("Question is not part of this test")

        if question_id in session.marked_for_review:
            session.marked_for_review.discard(question_id)
            return False

        session.marked_for_review.add(question_id)
        return True

    def navigate(self, attempt_id: str, user_id: str, index: int) -> TestSession:
        """Move to a question; out-of-range indexes are clamped"""
        session = self._open_session(attempt_id, user_id)
        last = len(session.questions) - 1
        session.current_index = min(max(int(index), 0), last)
        return session

    # ==================== Countdown ====================

    def _start_countdown(self, session: TestSession):
        if session.countdown_task is not None and not session.countdown_task.done():
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop; countdown for {session.attempt_id} is driven by tick()")
            return

        session.last_tick_at = loop.time()
        session.countdown_task = loop.create_task(self._run_countdown(session))

    async def _run_countdown(self, session: TestSession):
        while session.is_open:
            await asyncio.sleep(self.tick_interval)
            if self.tick(session, seconds=self._elapsed_ticks(session)):
                break

    def _elapsed_ticks(self, session: TestSession) -> int:
        """
        Whole tick intervals of loop time since the clock last advanced.

        Measured against the loop clock rather than counted per wake-up, so
        time spent with the event loop blocked is not lost.
        """
        if session.last_tick_at is None:
            return 0
        try:
            now = asyncio.get_running_loop().time()
        except RuntimeError:
            return 0

        elapsed = max(int((now - session.last_tick_at) / self.tick_interval), 0)
        session.last_tick_at += elapsed * self.tick_interval
        return elapsed

    def _sync_clock(self, session: TestSession):
        if session.is_open:
            session.remaining_seconds = max(session.remaining_seconds - self._elapsed_ticks(session), 0)

    def _cancel_countdown(self, session: TestSession):
        task = session.countdown_task
        session.countdown_task = None
        session.last_tick_at = None
        if task is None or task.done():
            return

        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None

        # The countdown finalizing on expiry must not cancel itself mid-submit
        if task is not current and not task.get_loop().is_closed():
            task.cancel()

    def tick(self, session: TestSession, seconds: int = 1) -> bool:
        """Advance the clock by the given seconds; on reaching zero submit. True if this tick submitted."""
        if not session.is_open:
            return False

        session.remaining_seconds = max(session.remaining_seconds - seconds, 0)

        if session.remaining_seconds > 0:
            return False

        logger.info(f"⏰ Time up for session {session.attempt_id}, submitting")
        try:
            self._finalize(session, trigger="timeout")
        except SubmitFailed as e:
            logger.error(f"❌ Automatic submit failed for {session.attempt_id}: {e}")
        return True

    # ==================== Submission ====================

    def submit(self, attempt_id: str, user_id: str) -> Dict[str, Any]:
        session = self.get_session(attempt_id, user_id)
        return self._finalize(session, trigger="manual")

    def _finalize(self, session: TestSession, trigger: str) -> Dict[str, Any]:
        """The only path to a completed attempt, whether triggered by the user or the clock"""
        if session.state is SessionState.COMPLETED:
            logger.info(f"Session {session.attempt_id} already completed, ignoring {trigger} submit")
            return session.result
        if session.state is SessionState.SUBMITTING:
            raise InvalidSessionState("Submission already in progress")
        if not session.is_open:
            raise InvalidSessionState(f"Test session is {session.state.value}")

        self._sync_clock(session)
        self._cancel_countdown(session)
        session.state = SessionState.SUBMITTING
        session.submit_trigger = trigger

        logger.info(f"🏁 Submitting session {session.attempt_id} ({trigger})")

        report = grade_answers(session.attempt_id, session.questions, session.answers)
        stats = final_stats(report, session.total_seconds, session.remaining_seconds)

        try:
            try:
                attempt = self.db_manager.finalize_attempt(session.attempt_id, report.rows, stats)
            except AttemptAlreadyFinalized:
                attempt = self.db_manager.get_attempt(session.attempt_id)
        except StorageError as e:
            session.state = SessionState.SUBMIT_FAILED
            session.last_error = str(e)
            if session.remaining_seconds > 0:
                self._start_countdown(session)
            logger.error(f"❌ Submit failed for {session.attempt_id}, state kept for retry: {e}")
            raise SubmitFailed() from e

        session.state = SessionState.COMPLETED
        session.last_error = None
        session.result = self._result_summary(attempt, trigger)

        logger.info(f"✅ Session completed: {session.attempt_id} score={session.result['score']}")
        return session.result

    @staticmethod
    def _result_summary(attempt: Dict[str, Any], trigger: str) -> Dict[str, Any]:
        return {
            "attempt_id": attempt["id"],
            "score": attempt["score"],
            "correct_answers": attempt["correct_answers"],
            "incorrect_answers": attempt["incorrect_answers"],
            "unanswered": attempt["total_questions"] - attempt["correct_answers"] - attempt["incorrect_answers"],
            "total_questions": attempt["total_questions"],
            "time_taken_minutes": attempt["time_taken_minutes"],
            "completed_at": DateTimeUtils.format_datetime(attempt.get("completed_at"), "%Y-%m-%dT%H:%M:%S"),
            "trigger": trigger
        }

    # ==================== Housekeeping ====================

    def cleanup_expired_sessions(self) -> int:
        """Drop completed sessions and abandoned ones past their clock plus grace period"""
        now = time.time()
        expired = []

        for attempt_id, session in list(self.sessions.items()):
            age = now - session.created_at
            if session.state is SessionState.COMPLETED and age > config.SESSION_EXPIRATION_SECONDS:
                expired.append(attempt_id)
            elif age > session.total_seconds + config.SESSION_EXPIRATION_SECONDS:
                expired.append(attempt_id)

        for attempt_id in expired:
            session = self.sessions.pop(attempt_id, None)
            if session:
                self._cancel_countdown(session)

        if expired:
            logger.info(f"🧹 Cleanup: removed {len(expired)} sessions")
        return len(expired)

    def shutdown(self):
        """Cancel all running countdowns"""
        for session in self.sessions.values():
            self._cancel_countdown(session)
        logger.info(f"✅ Countdowns cancelled for {len(self.sessions)} sessions")

    def health_check(self) -> Dict[str, Any]:
        states = {state.value: 0 for state in SessionState}
        for session in self.sessions.values():
            states[session.state.value] += 1

        return {
            "status": "healthy",
            "active_sessions": len(self.sessions),
            "states": states,
            "timestamp": DateTimeUtils.get_current_timestamp()
        }

# Singleton pattern for session engine
_session_engine = None

def get_session_engine() -> SessionEngine:
    """Get session engine instance (singleton)"""
    global _session_engine
    if _session_engine is None:
        _session_engine = SessionEngine()
    return _session_engine
