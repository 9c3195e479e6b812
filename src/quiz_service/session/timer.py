"""Session timer.

A ``QuizSession`` tracks one learner taking one quiz: it restores drafts,
counts down against the time limit and fires exactly one submission, either
when the learner submits or when the deadline is reached, whichever comes
first.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional
import asyncio
import logging
import threading

from ..config import settings
from ..errors import AlreadyCompletedError, QuizServiceError, ValidationError
from ..utils.clock import Clock, utcnow
from .drafts import DraftState, DraftStore

logger = logging.getLogger(__name__)

# submitter(quiz_id, answers, time_taken_ms, auto_submitted)
Submitter = Callable[[int, Dict[str, Any], int, bool], Any]


class SessionEvent(str, Enum):
    SUBMIT = "submit"
    EXPIRED = "expired"


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    COMPLETED = "completed"


def compute_deadline(started_at: datetime, time_limit_minutes: Optional[int]) -> Optional[datetime]:
    if not time_limit_minutes:
        return None
    return started_at + timedelta(minutes=time_limit_minutes)


def compute_remaining(started_at: datetime, time_limit_minutes: Optional[int], now: datetime) -> Optional[int]:
    """Whole seconds left, never negative. None for untimed quizzes."""
    if not time_limit_minutes:
        return None
    limit = time_limit_minutes * 60
    elapsed = (now - started_at).total_seconds()
    if elapsed < 0:
        return limit
    return max(0, int(limit - elapsed))


class QuizSession:
    def __init__(
        self,
        quiz_id: int,
        time_limit_minutes: Optional[int],
        store: DraftStore,
        submitter: Submitter,
        question_ids: Iterable[int] = (),
        clock: Clock = utcnow,
    ):
        self.quiz_id = quiz_id
        self.time_limit_minutes = time_limit_minutes
        self.store = store
        self.submitter = submitter
        self.question_ids = [str(qid) for qid in question_ids]
        self.clock = clock

        self.state = SessionState.NOT_STARTED
        self.started_at: Optional[datetime] = None
        self.answers: Dict[str, Any] = {}
        self.result: Any = None
        # Bumped on every start so countdowns of an earlier start stop
        self.generation = 0
        self._lock = threading.Lock()

    @property
    def deadline(self) -> Optional[datetime]:
        if self.started_at is None:
            return None
        return compute_deadline(self.started_at, self.time_limit_minutes)

    @property
    def remaining_seconds(self) -> Optional[int]:
        if self.started_at is None:
            return None
        return compute_remaining(self.started_at, self.time_limit_minutes, self.clock())

    @property
    def elapsed_ms(self) -> int:
        if self.started_at is None:
            return 0
        return max(0, int((self.clock() - self.started_at).total_seconds() * 1000))

    def start(self) -> Optional[int]:
        """Start or resume the session and return the remaining seconds.

        A saved draft restores both the answers and the original start time,
        so reloading never grants extra time.
        """
        with self._lock:
            if self.state is SessionState.COMPLETED:
                raise AlreadyCompletedError("This quiz session is already completed")
            draft = self.store.load(self.quiz_id)
            if draft is not None and draft.started_at is not None:
                self.started_at = draft.started_at
                self.answers = dict(draft.answers)
                logger.info(f"Session resumed for quiz {self.quiz_id} with {len(self.answers)} answers")
            else:
                self.started_at = self.clock()
                self.answers = {}
                self.store.save(self.quiz_id, DraftState(self.started_at, {}))
                logger.info(f"Session started for quiz {self.quiz_id}")
            self.state = SessionState.IN_PROGRESS
            self.generation += 1
        return self.remaining_seconds

    def set_answer(self, question_id: int, value: Any) -> None:
        """Record one answer and persist the draft immediately"""
        with self._lock:
            if self.state is not SessionState.IN_PROGRESS:
                raise ValidationError(f"Cannot change answers while {self.state.value}")
            self.answers[str(question_id)] = value
            self.store.save(self.quiz_id, DraftState(self.started_at, dict(self.answers)))

    def missing_answers(self):
        return [qid for qid in self.question_ids if self.answers.get(qid) in (None, "", [])]

    def submit(self) -> Any:
        """Manual submission. Every question must be answered."""
        missing = self.missing_answers()
        if missing:
            raise ValidationError("Every question must be answered", missing_question_ids=missing)
        return self.handle(SessionEvent.SUBMIT)

    def tick(self) -> Any:
        """Emit ``EXPIRED`` once the deadline is reached. Returns the result when it fired."""
        if self.state is not SessionState.IN_PROGRESS:
            return None
        remaining = self.remaining_seconds
        if remaining is None or remaining > 0:
            return None
        logger.info(f"Time is up for quiz {self.quiz_id}, submitting automatically")
        return self.handle(SessionEvent.EXPIRED)

    def handle(self, event: SessionEvent) -> Any:
        """The single entry point into ``SUBMITTING``, for either trigger.

        Events arriving while a submission is in flight or after completion
        are no-ops.
        """
        with self._lock:
            if self.state is not SessionState.IN_PROGRESS:
                logger.debug(f"Ignoring {event.value} for quiz {self.quiz_id} while {self.state.value}")
                return None
            self.state = SessionState.SUBMITTING
            answers = dict(self.answers)

        auto_submitted = event is SessionEvent.EXPIRED
        try:
            result = self.submitter(self.quiz_id, answers, self.elapsed_ms, auto_submitted)
        except AlreadyCompletedError:
            self._finish()
            raise
        except QuizServiceError as e:
            # Retryable failures keep the drafts and go back to IN_PROGRESS.
            # A rejected timer payload would be rejected again on every tick.
            final = not e.retryable or (auto_submitted and isinstance(e, ValidationError))
            self.state = SessionState.COMPLETED if final else SessionState.IN_PROGRESS
            raise
        except Exception:
            self.state = SessionState.IN_PROGRESS
            raise

        self.result = result
        self._finish()
        return result

    def _finish(self) -> None:
        self.state = SessionState.COMPLETED
        self.store.clear(self.quiz_id)


async def run_countdown(
    session: QuizSession,
    interval: Optional[float] = None,
    on_tick: Optional[Callable[[Optional[int]], None]] = None,
) -> Any:
    """Drive the session timer until the session completes.

    Retryable submission failures are logged and retried on the next tick.
    A timer payload the service rejects as invalid ends the countdown with
    that error.
    Returns the submission result, or None when a newer start replaced this
    countdown.
    """
    if interval is None:
        interval = settings.TICK_INTERVAL_SECONDS
    generation = session.generation
    while session.state is not SessionState.COMPLETED:
        if session.generation != generation:
            logger.debug(f"Stale countdown for quiz {session.quiz_id} stopped")
            return None
        if on_tick is not None:
            on_tick(session.remaining_seconds)
        try:
            session.tick()
        except QuizServiceError as e:
            if not e.retryable or session.state is SessionState.COMPLETED:
                raise
            logger.warning(f"Automatic submission of quiz {session.quiz_id} failed, retrying: {e.detail}")
        if session.state is SessionState.COMPLETED:
            break
        await asyncio.sleep(interval)
    return session.result
