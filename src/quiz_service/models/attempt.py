from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import utcnow


def compute_percentage(score: float, max_score: float) -> float:
    if not max_score:
        return 0.0
    return round(score / max_score * 100, 1)


def compute_passed(score: float, max_score: float, passing_score: float) -> bool:
    if not max_score:
        return False
    return score / max_score * 100 >= passing_score


class Attempt(Base):
    """A learner's single scored submission for a quiz."""

    __tablename__ = "quiz_attempts"
    __table_args__ = (
        UniqueConstraint("quiz_id", "learner_id", name="uq_quiz_attempts_quiz_learner"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id"), nullable=False, index=True)
    learner_id = Column(String(64), nullable=False, index=True)
    # Raw answers keyed by question id, in the shape the learner sent them
    answers = Column(JSON, nullable=False, default=dict)
    # Points the scoring engine awarded per question id, snapshot at submission
    auto_awards = Column(JSON, nullable=False, default=dict)
    # Maximum points per question id at submission time
    question_points = Column(JSON, nullable=False, default=dict)
    # Question ids that need a human decision before the attempt is final
    manual_question_ids = Column(JSON, nullable=False, default=list)
    auto_score = Column(Float, nullable=False, default=0)
    score = Column(Float, nullable=False, default=0)
    max_score = Column(Float, nullable=False, default=0)
    passed = Column(Boolean, nullable=False, default=False)
    needs_manual_grading = Column(Boolean, nullable=False, default=False)
    auto_submitted = Column(Boolean, nullable=False, default=False)
    time_taken_ms = Column(Integer)
    completed_at = Column(DateTime, nullable=False, default=utcnow)

    quiz = relationship("Quiz")
    grades = relationship(
        "ManualGrade",
        back_populates="attempt",
        cascade="all, delete-orphan",
        order_by=lambda: ManualGrade.question_id,
    )

    @property
    def percentage(self) -> float:
        return compute_percentage(self.score, self.max_score)

    def grade_for(self, question_id: int):
        for grade in self.grades:
            if grade.question_id == question_id:
                return grade
        return None

    def points_for(self, question_id: int):
        """Maximum points of a question as recorded when the attempt was stored"""
        points = (self.question_points or {}).get(str(question_id))
        return float(points) if points is not None else None

    def pending_question_ids(self):
        graded = {g.question_id for g in self.grades}
        return [qid for qid in self.manual_question_ids if qid not in graded]

    def recompute(self, passing_score: float) -> None:
        """Rebuild score fields from the stored per-question awards.

        A manual grade replaces the automatic award of its question.
        """
        awards = {int(qid): float(points) for qid, points in (self.auto_awards or {}).items()}
        for grade in self.grades:
            awards[grade.question_id] = float(grade.points_awarded)
        self.score = round(sum(awards.values()), 2)
        self.passed = compute_passed(self.score, self.max_score, passing_score)
        self.needs_manual_grading = bool(self.pending_question_ids())


class ManualGrade(Base):
    __tablename__ = "quiz_manual_grades"
    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_manual_grades_attempt_question"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    attempt_id = Column(Integer, ForeignKey("quiz_attempts.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(Integer, nullable=False)
    points_awarded = Column(Float, nullable=False)
    max_points = Column(Float, nullable=False)
    feedback = Column(Text)
    graded_by = Column(String(64))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    attempt = relationship("Attempt", back_populates="grades")
