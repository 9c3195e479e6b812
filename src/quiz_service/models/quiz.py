from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import utcnow
from .answers import QuestionType


class Quiz(Base):
    __tablename__ = "quizzes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    course_id = Column(String(64), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text)
    passing_score = Column(Float, nullable=False, default=70)
    time_limit_minutes = Column(Integer)
    start_datetime = Column(DateTime)
    end_datetime = Column(DateTime)
    results_publish_datetime = Column(DateTime)
    is_required = Column(Boolean, nullable=False, default=False)
    created_by = Column(String(64))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    questions = relationship(
        "Question",
        back_populates="quiz",
        cascade="all, delete-orphan",
        order_by=lambda: [Question.sort_order, Question.id],
    )

    @property
    def max_score(self) -> float:
        return float(sum(q.points for q in self.questions))

    def question_by_id(self, question_id: int):
        for question in self.questions:
            if question.id == question_id:
                return question
        return None


class Question(Base):
    __tablename__ = "quiz_questions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    question = Column(Text, nullable=False)
    question_type = Column(String(32), nullable=False)
    points = Column(Float, nullable=False, default=1)
    sort_order = Column(Integer, nullable=False, default=1)
    require_justification = Column(Boolean, nullable=False, default=False)
    file_url = Column(String(500))

    quiz = relationship("Quiz", back_populates="questions")
    options = relationship(
        "Option",
        back_populates="question",
        cascade="all, delete-orphan",
        order_by=lambda: [Option.sort_order, Option.id],
    )

    @property
    def type(self) -> QuestionType:
        return QuestionType(self.question_type)

    @property
    def correct_options(self):
        return [o for o in self.options if o.is_correct]

    @property
    def false_option(self):
        """For true_false: the second statement in display order."""
        return self.options[1] if len(self.options) > 1 else None


class Option(Base):
    __tablename__ = "quiz_options"

    id = Column(Integer, primary_key=True, autoincrement=True)
    question_id = Column(Integer, ForeignKey("quiz_questions.id", ondelete="CASCADE"), nullable=False, index=True)
    option_text = Column(String(500), nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=1)

    question = relationship("Question", back_populates="options")
