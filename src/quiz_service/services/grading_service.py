from typing import List, Optional, Tuple
import logging

from sqlalchemy.exc import IntegrityError as SQLAlchemyIntegrityError
from sqlalchemy.orm import Session

from ..database import commit_or_rollback
from ..errors import IntegrityError, NotFoundError, TransientPersistenceError, ValidationError
from ..models.attempt import Attempt, ManualGrade
from ..models.quiz import Quiz
from ..models.schemas import (
    AttemptDetailResponse, AttemptSummary, CurrentUser, PendingGradingItem, QuizResultsResponse,
    QuizStats,
)
from ..utils.clock import Clock, utcnow
from .access import require_instructor
from .catalog import CourseCatalog
from .events import QUIZ_GRADED, EventPublisher
from .results_gate import build_review, build_summary

logger = logging.getLogger(__name__)


def quiz_stats(attempts: List[Attempt]) -> QuizStats:
    count = len(attempts)
    if not count:
        return QuizStats(attempts_count=0, average_percentage=0.0, pass_rate=0.0, pending_manual_count=0)
    return QuizStats(
        attempts_count=count,
        average_percentage=round(sum(a.percentage for a in attempts) / count, 1),
        pass_rate=round(sum(1 for a in attempts if a.passed) / count * 100, 1),
        pending_manual_count=sum(1 for a in attempts if a.needs_manual_grading),
    )


class GradingService:
    """Instructor-side work on stored attempts: the manual grading queue and reports"""

    def __init__(
        self,
        db: Session,
        catalog: CourseCatalog,
        publisher: EventPublisher,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.catalog = catalog
        self.publisher = publisher
        self.clock = clock

    def list_pending(
        self,
        user: CurrentUser,
        quiz_id: Optional[int] = None,
        course_id: Optional[str] = None,
    ) -> List[PendingGradingItem]:
        """Answers awaiting a manual grade, oldest attempt first"""
        if (quiz_id is None) == (course_id is None):
            raise ValidationError("Filter by exactly one of quiz_id or course_id")

        query = self.db.query(Attempt).join(Quiz).filter(Attempt.needs_manual_grading.is_(True))
        if quiz_id is not None:
            quiz = self.db.get(Quiz, quiz_id)
            if quiz is None:
                raise NotFoundError("Quiz not found")
            require_instructor(self.catalog, user, quiz.course_id)
            query = query.filter(Attempt.quiz_id == quiz_id)
        else:
            require_instructor(self.catalog, user, course_id)
            query = query.filter(Quiz.course_id == course_id)

        items = []
        for attempt in query.order_by(Attempt.completed_at, Attempt.id).all():
            quiz = attempt.quiz
            for question_id in attempt.pending_question_ids():
                question = quiz.question_by_id(question_id)
                items.append(PendingGradingItem(
                    attempt_id=attempt.id,
                    quiz_id=quiz.id,
                    course_id=quiz.course_id,
                    learner_id=attempt.learner_id,
                    question_id=question_id,
                    question=question.question if question is not None else None,
                    question_type=question.type if question is not None else None,
                    points=attempt.points_for(question_id) or 0.0,
                    answer=(attempt.answers or {}).get(str(question_id)),
                    completed_at=attempt.completed_at,
                ))
        return items

    def _load_attempt(self, attempt_id: int, user: CurrentUser, for_update: bool = False) -> Attempt:
        query = self.db.query(Attempt).filter(Attempt.id == attempt_id)
        if for_update:
            # Serializes concurrent grading of the same attempt
            query = query.with_for_update()
        attempt = query.first()
        if attempt is None:
            raise NotFoundError("Attempt not found")
        require_instructor(self.catalog, user, attempt.quiz.course_id)
        return attempt

    def _apply_grade(
        self,
        attempt: Attempt,
        question_id: int,
        points_awarded: float,
        max_points: float,
        feedback: Optional[str],
        user: CurrentUser,
    ) -> None:
        grade = attempt.grade_for(question_id)
        if grade is None:
            attempt.grades.append(ManualGrade(
                question_id=question_id,
                points_awarded=points_awarded,
                max_points=max_points,
                feedback=feedback,
                graded_by=user.id,
            ))
        else:
            grade.points_awarded = points_awarded
            grade.max_points = max_points
            grade.feedback = feedback
            grade.graded_by = user.id
            grade.updated_at = self.clock()
        attempt.recompute(attempt.quiz.passing_score)

    def grade_answer(
        self,
        attempt_id: int,
        question_id: int,
        points_awarded: float,
        user: CurrentUser,
        feedback: Optional[str] = None,
    ) -> Tuple[Attempt, bool]:
        """Record or overwrite the manual grade of one answer.

        Returns the attempt with its recomputed score and whether any of its
        answers still await grading.
        """
        attempt = self._load_attempt(attempt_id, user, for_update=True)

        max_points = attempt.points_for(question_id)
        if max_points is None:
            raise IntegrityError(
                "Question does not belong to this attempt's quiz",
                attempt_id=attempt.id,
                question_id=question_id,
            )
        if points_awarded < 0 or points_awarded > max_points:
            raise ValidationError(
                f"points_awarded must be between 0 and {max_points}",
                question_id=question_id,
            )
        feedback = (feedback or "").strip() or None

        self._apply_grade(attempt, question_id, points_awarded, max_points, feedback, user)
        try:
            commit_or_rollback(self.db, "save grade")
        except TransientPersistenceError as e:
            if not isinstance(e.__cause__, SQLAlchemyIntegrityError):
                raise
            # Another grader inserted the same grade first
            logger.warning(f"Concurrent grade for attempt {attempt_id} question {question_id}, retrying")
            self.db.expire_all()
            attempt = self._load_attempt(attempt_id, user, for_update=True)
            self._apply_grade(attempt, question_id, points_awarded, max_points, feedback, user)
            commit_or_rollback(self.db, "save grade")
        self.db.refresh(attempt)

        still_pending = attempt.needs_manual_grading
        logger.info(
            f"Attempt {attempt.id} question {question_id} graded {points_awarded}/{max_points} "
            f"by {user.id}: score={attempt.score}/{attempt.max_score} pending={still_pending}"
        )

        self.publisher.publish(QUIZ_GRADED, {
            "quiz_id": attempt.quiz_id,
            "course_id": attempt.quiz.course_id,
            "user_id": attempt.learner_id,
            "attempt_id": attempt.id,
            "question_id": question_id,
            "score": attempt.score,
            "max_score": attempt.max_score,
            "percentage": attempt.percentage,
            "passed": attempt.passed,
            "needs_manual_grading": still_pending,
        })
        return attempt, still_pending

    def get_attempt_detail(self, attempt_id: int, user: CurrentUser) -> AttemptDetailResponse:
        """Full per-question view for instructors, regardless of the results gate"""
        attempt = self._load_attempt(attempt_id, user)
        return AttemptDetailResponse(
            attempt_id=attempt.id,
            quiz_id=attempt.quiz_id,
            learner_id=attempt.learner_id,
            summary=build_summary(attempt),
            pending_question_ids=attempt.pending_question_ids(),
            detail=build_review(attempt.quiz, attempt),
        )

    def list_quiz_results(self, quiz_id: int, user: CurrentUser) -> QuizResultsResponse:
        quiz = self.db.get(Quiz, quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found")
        require_instructor(self.catalog, user, quiz.course_id)

        attempts = (
            self.db.query(Attempt)
            .filter(Attempt.quiz_id == quiz_id)
            .order_by(Attempt.completed_at, Attempt.id)
            .all()
        )
        return QuizResultsResponse(
            quiz_id=quiz.id,
            quiz_title=quiz.title,
            attempts=[
                AttemptSummary(
                    attempt_id=a.id,
                    learner_id=a.learner_id,
                    score=a.score,
                    max_score=a.max_score,
                    percentage=a.percentage,
                    passed=a.passed,
                    needs_manual_grading=a.needs_manual_grading,
                    completed_at=a.completed_at,
                    time_taken_ms=a.time_taken_ms,
                )
                for a in attempts
            ],
            stats=quiz_stats(attempts),
        )
