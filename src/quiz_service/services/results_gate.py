"""Results gate.

Decides how much of a stored attempt a learner may see. The summary is always
visible; per-question correctness and feedback only once the quiz's
``results_publish_datetime`` has passed. The gate is evaluated on every read
and never cached.
"""

from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from ..errors import NotFoundError
from ..models.attempt import Attempt
from ..models.quiz import Quiz
from ..models.schemas import CurrentUser, QuestionReview, ResultResponse, ScoreSummary, OptionResponse
from ..utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)


def is_published(quiz: Quiz, now: datetime) -> bool:
    """No publish time means immediately visible"""
    if quiz.results_publish_datetime is None:
        return True
    return now >= quiz.results_publish_datetime


def build_summary(attempt: Attempt) -> ScoreSummary:
    return ScoreSummary(
        score=attempt.score,
        max_score=attempt.max_score,
        auto_score=attempt.auto_score,
        percentage=attempt.percentage,
        passed=attempt.passed,
        needs_manual_grading=attempt.needs_manual_grading,
        completed_at=attempt.completed_at,
        time_taken_ms=attempt.time_taken_ms,
    )


def build_review(quiz: Quiz, attempt: Attempt) -> List[QuestionReview]:
    """Per-question breakdown of an attempt.

    Questions added after the submission are left out. Points come from the
    stored awards, never from re-scoring.
    """
    pending = set(attempt.pending_question_ids())
    answers = attempt.answers or {}
    awards = attempt.auto_awards or {}
    reviews = []
    for question in quiz.questions:
        key = str(question.id)
        if key not in awards:
            continue
        max_points = attempt.points_for(question.id)
        if max_points is None:
            max_points = float(question.points)

        grade = attempt.grade_for(question.id)
        if grade is not None:
            points_awarded: Optional[float] = grade.points_awarded
            is_correct: Optional[bool] = grade.points_awarded >= max_points
        elif question.id in pending:
            points_awarded = None
            is_correct = None
        else:
            points_awarded = float(awards[key])
            is_correct = points_awarded >= max_points > 0

        reviews.append(QuestionReview(
            question_id=question.id,
            question=question.question,
            question_type=question.type,
            points=max_points,
            options=[OptionResponse.model_validate(o) for o in question.options],
            learner_answer=answers.get(key),
            correct_option_ids=[o.id for o in question.correct_options],
            is_correct=is_correct,
            points_awarded=points_awarded,
            pending=question.id in pending,
            feedback=grade.feedback if grade is not None else None,
        ))
    return reviews


class ResultsGate:
    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    def get_result(self, quiz_id: int, user: CurrentUser) -> ResultResponse:
        """The requesting learner's own result for a quiz"""
        attempt = (
            self.db.query(Attempt)
            .filter(Attempt.quiz_id == quiz_id, Attempt.learner_id == user.id)
            .first()
        )
        if attempt is None:
            raise NotFoundError("No attempt found for this quiz")

        quiz = attempt.quiz
        published = is_published(quiz, self.clock())
        logger.debug(f"Result read: attempt {attempt.id} published={published}")

        return ResultResponse(
            quiz_id=quiz.id,
            attempt_id=attempt.id,
            quiz_title=quiz.title,
            passing_score=quiz.passing_score,
            summary=build_summary(attempt),
            results_published=published,
            results_publish_datetime=quiz.results_publish_datetime,
            detail=build_review(quiz, attempt) if published else None,
        )
