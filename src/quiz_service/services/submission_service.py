from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy.exc import IntegrityError as SQLAlchemyIntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..database import commit_or_rollback
from ..errors import (
    AlreadyCompletedError, ConcurrencyConflictError, NotAvailableError, NotFoundError,
    TransientPersistenceError, ValidationError,
)
from ..models.answers import Answer, parse_answer
from ..models.attempt import Attempt
from ..models.quiz import Question, Quiz
from ..models.schemas import CurrentUser, SubmissionRequest
from ..session.drafts import DraftStore
from ..session.timer import compute_deadline
from ..utils.clock import Clock, utcnow
from .access import require_learner
from .catalog import CourseCatalog
from .events import QUIZ_COMPLETED, EventPublisher
from .quiz_store import definition_problems
from .scoring import is_justification_missing, score_attempt

logger = logging.getLogger(__name__)


def check_window(quiz: Quiz, now: datetime) -> None:
    if quiz.start_datetime and now < quiz.start_datetime:
        raise NotAvailableError(
            "This quiz has not started yet",
            start_datetime=quiz.start_datetime,
        )
    if quiz.end_datetime and now > quiz.end_datetime:
        raise NotAvailableError(
            "This quiz has already ended",
            end_datetime=quiz.end_datetime,
        )


class SubmissionService:
    """Delivers quizzes to learners and accepts their single scored attempt"""

    def __init__(
        self,
        db: Session,
        catalog: CourseCatalog,
        publisher: EventPublisher,
        clock: Clock = utcnow,
        grace_seconds: Optional[float] = None,
    ):
        self.db = db
        self.catalog = catalog
        self.publisher = publisher
        self.clock = clock
        self.grace_seconds = settings.SUBMIT_GRACE_SECONDS if grace_seconds is None else grace_seconds

    def find_attempt(self, quiz_id: int, learner_id: str) -> Optional[Attempt]:
        return (
            self.db.query(Attempt)
            .filter(Attempt.quiz_id == quiz_id, Attempt.learner_id == learner_id)
            .first()
        )

    def _load_quiz(self, quiz_id: int, user: CurrentUser) -> Quiz:
        quiz = self.db.get(Quiz, quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found")
        require_learner(self.catalog, user, quiz.course_id)
        return quiz

    def _check_can_take(self, quiz: Quiz, user: CurrentUser) -> None:
        existing = self.find_attempt(quiz.id, user.id)
        if existing is not None:
            raise AlreadyCompletedError("You have already completed this quiz", attempt_id=existing.id)

        check_window(quiz, self.clock())

        problems = definition_problems(quiz)
        if problems:
            logger.warning(f"Quiz {quiz.id} cannot be taken: {problems}")
            raise NotAvailableError("This quiz is not ready yet")

    def get_quiz_for_taking(self, quiz_id: int, user: CurrentUser) -> Tuple[Quiz, List[Question]]:
        """Return the quiz and its ordered questions, refusing if it cannot be taken"""
        quiz = self._load_quiz(quiz_id, user)
        self._check_can_take(quiz, user)
        return quiz, list(quiz.questions)

    def parse_answers(
        self, quiz: Quiz, raw_answers: Dict[str, Any], complete: bool
    ) -> Dict[int, Optional[Answer]]:
        """Parse raw answers per question.

        With ``complete`` every question must be answered and required
        justifications must be present.
        """
        raw_answers = {str(k): v for k, v in (raw_answers or {}).items()}
        known = {str(q.id) for q in quiz.questions}
        unknown = sorted(set(raw_answers) - known)
        if unknown:
            logger.warning(f"Ignoring answers for unknown questions {unknown} on quiz {quiz.id}")

        parsed: Dict[int, Optional[Answer]] = {}
        for question in quiz.questions:
            try:
                parsed[question.id] = parse_answer(question.type, raw_answers.get(str(question.id)))
            except ValueError as e:
                raise ValidationError(f"Invalid answer for question {question.id}: {e}", question_id=question.id)

        if complete:
            missing = [q.id for q in quiz.questions if parsed[q.id] is None]
            if missing:
                raise ValidationError("Every question must be answered", missing_question_ids=missing)
            unjustified = [q.id for q in quiz.questions if is_justification_missing(q, parsed[q.id])]
            if unjustified:
                raise ValidationError("A justification is required", missing_question_ids=unjustified)
        return parsed

    def timer_expired(self, quiz: Quiz, drafts: Optional[DraftStore]) -> bool:
        """Whether the learner's recorded session has reached the quiz time limit"""
        if not quiz.time_limit_minutes or drafts is None:
            return False
        state = drafts.load(quiz.id)
        if state is None or state.started_at is None:
            return False
        deadline = compute_deadline(state.started_at, quiz.time_limit_minutes)
        return self.clock() >= deadline - timedelta(seconds=self.grace_seconds)

    def submit_attempt(
        self,
        quiz_id: int,
        user: CurrentUser,
        submission: SubmissionRequest,
        drafts: Optional[DraftStore] = None,
    ) -> Attempt:
        """Score and store the learner's one attempt for this quiz"""
        quiz = self._load_quiz(quiz_id, user)
        self._check_can_take(quiz, user)

        auto_submitted = submission.auto_submitted and self.timer_expired(quiz, drafts)
        if submission.auto_submitted and not auto_submitted:
            logger.warning(
                f"Timer submission for quiz {quiz.id} by {user.id} arrived before the deadline, "
                f"validating it as a manual submission"
            )
        # Timer-triggered submissions are accepted however incomplete
        parsed = self.parse_answers(quiz, submission.answers, complete=not auto_submitted)
        questions = list(quiz.questions)
        result = score_attempt(questions, parsed)

        attempt = Attempt(
            quiz_id=quiz.id,
            learner_id=user.id,
            answers={
                str(qid): (answer.to_json() if answer is not None else None)
                for qid, answer in parsed.items()
            },
            auto_awards=result.auto_awards,
            question_points={str(q.id): float(q.points) for q in questions},
            manual_question_ids=result.manual_question_ids,
            auto_score=result.auto_score,
            max_score=result.max_score,
            auto_submitted=auto_submitted,
            time_taken_ms=submission.time_taken_ms,
            completed_at=self.clock(),
        )
        attempt.recompute(quiz.passing_score)

        self.db.add(attempt)
        try:
            commit_or_rollback(self.db, "save attempt")
        except TransientPersistenceError as e:
            if isinstance(e.__cause__, SQLAlchemyIntegrityError):
                # Another submission for the same learner and quiz won the race
                existing = self.find_attempt(quiz.id, user.id)
                logger.warning(f"Duplicate submission for quiz {quiz.id} by {user.id} rejected")
                raise ConcurrencyConflictError(
                    "You have already completed this quiz",
                    attempt_id=existing.id if existing else None,
                ) from e
            raise
        self.db.refresh(attempt)

        logger.info(
            f"Attempt {attempt.id} stored: quiz={quiz.id} learner={user.id} "
            f"score={attempt.score}/{attempt.max_score} manual={attempt.needs_manual_grading} "
            f"auto_submitted={attempt.auto_submitted}"
        )

        if drafts is not None:
            drafts.clear(quiz.id)

        self.publisher.publish(QUIZ_COMPLETED, {
            "quiz_id": quiz.id,
            "course_id": quiz.course_id,
            "user_id": user.id,
            "attempt_id": attempt.id,
            "score": attempt.score,
            "max_score": attempt.max_score,
            "percentage": attempt.percentage,
            "passed": attempt.passed,
            "needs_manual_grading": attempt.needs_manual_grading,
        })
        return attempt
