from typing import List, Optional
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..database import commit_or_rollback
from ..errors import NotFoundError, ValidationError
from ..models.answers import QuestionType, SINGLE_CORRECT_TYPES
from ..models.attempt import Attempt
from ..models.quiz import Option, Question, Quiz
from ..models.schemas import CurrentUser, OptionCreate, QuestionCreate, QuizCreate, QuizUpdate
from .access import require_instructor
from .catalog import CourseCatalog

logger = logging.getLogger(__name__)


def definition_problems(quiz: Quiz) -> List[str]:
    """List what keeps a quiz from being taken. Empty means the quiz is ready."""
    problems = []
    if not quiz.questions:
        problems.append("Quiz has no questions")
    if quiz.start_datetime and quiz.end_datetime and quiz.end_datetime < quiz.start_datetime:
        problems.append("end_datetime is before start_datetime")

    for question in quiz.questions:
        label = f"Question {question.id}"
        correct = len(question.correct_options)
        qtype = question.type
        if question.points is None or question.points <= 0:
            problems.append(f"{label}: points must be positive")
        if qtype is QuestionType.TEXT:
            if question.options:
                problems.append(f"{label}: text questions have no options")
        elif qtype is QuestionType.TRUE_FALSE:
            if len(question.options) != 2:
                problems.append(f"{label}: true_false needs exactly two options")
            if correct != 1:
                problems.append(f"{label}: true_false needs exactly one correct option")
        elif qtype is QuestionType.SINGLE_CHOICE:
            if len(question.options) < 2:
                problems.append(f"{label}: single_choice needs at least two options")
            if correct != 1:
                problems.append(f"{label}: single_choice needs exactly one correct option")
        elif qtype is QuestionType.MULTIPLE_CHOICE:
            if len(question.options) < 2:
                problems.append(f"{label}: multiple_choice needs at least two options")
            if correct < 1:
                problems.append(f"{label}: multiple_choice needs at least one correct option")
    return problems


class QuizStore:
    """Durable quiz definitions: quizzes, questions and options"""

    def __init__(self, db: Session, catalog: CourseCatalog):
        self.db = db
        self.catalog = catalog

    # Quiz methods
    def get_quiz(self, quiz_id: int) -> Quiz:
        quiz = self.db.get(Quiz, quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found")
        return quiz

    def get_quiz_for_instructor(self, quiz_id: int, user: CurrentUser) -> Quiz:
        quiz = self.get_quiz(quiz_id)
        require_instructor(self.catalog, user, quiz.course_id)
        return quiz

    def list_quizzes(self, course_id: str, user: CurrentUser) -> List[Quiz]:
        require_instructor(self.catalog, user, course_id)
        return (
            self.db.query(Quiz)
            .filter(Quiz.course_id == course_id)
            .order_by(Quiz.created_at, Quiz.id)
            .all()
        )

    def create_quiz(self, data: QuizCreate, user: CurrentUser) -> Quiz:
        """Create a quiz, optionally with its questions and options"""
        if not self.catalog.course_exists(data.course_id):
            raise NotFoundError("Course not found")
        require_instructor(self.catalog, user, data.course_id)

        quiz = Quiz(
            course_id=data.course_id,
            title=data.title.strip(),
            description=(data.description or "").strip() or None,
            passing_score=data.passing_score,
            time_limit_minutes=data.time_limit_minutes,
            start_datetime=data.start_datetime,
            end_datetime=data.end_datetime,
            results_publish_datetime=data.results_publish_datetime,
            is_required=data.is_required,
            created_by=user.id,
        )
        for index, question_data in enumerate(data.questions, start=1):
            quiz.questions.append(self._build_question(question_data, default_order=index))

        self.db.add(quiz)
        commit_or_rollback(self.db, "create quiz")
        self.db.refresh(quiz)

        logger.info(f"Quiz created: {quiz.id} '{quiz.title}' in course {quiz.course_id} by {user.id}")
        return quiz

    def update_quiz(self, quiz_id: int, data: QuizUpdate, user: CurrentUser) -> Quiz:
        quiz = self.get_quiz_for_instructor(quiz_id, user)
        changes = data.model_dump(exclude_unset=True)

        start = changes.get("start_datetime", quiz.start_datetime)
        end = changes.get("end_datetime", quiz.end_datetime)
        if start and end and end < start:
            raise ValidationError("end_datetime must be after start_datetime")
        for field in ("title", "passing_score", "is_required"):
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be null")

        for field, value in changes.items():
            setattr(quiz, field, value)

        if self._has_attempts(quiz.id):
            logger.warning(f"Quiz {quiz.id} edited after attempts exist; stored attempts keep their scores")

        commit_or_rollback(self.db, "update quiz")
        self.db.refresh(quiz)
        return quiz

    # Question methods
    def add_question(self, quiz_id: int, data: QuestionCreate, user: CurrentUser) -> Question:
        quiz = self.get_quiz_for_instructor(quiz_id, user)
        if data.sort_order is None:
            max_order = (
                self.db.query(func.max(Question.sort_order))
                .filter(Question.quiz_id == quiz.id)
                .scalar()
            )
            default_order = (max_order or 0) + 1
        else:
            default_order = data.sort_order

        question = self._build_question(data, default_order=default_order)
        question.quiz_id = quiz.id
        self.db.add(question)
        commit_or_rollback(self.db, "add question")
        self.db.refresh(question)
        self.db.expire(quiz, ["questions"])

        logger.info(f"Question {question.id} ({question.question_type}) added to quiz {quiz.id}")
        return question

    def delete_question(self, quiz_id: int, question_id: int, user: CurrentUser) -> None:
        quiz = self.get_quiz_for_instructor(quiz_id, user)
        question = quiz.question_by_id(question_id)
        if question is None:
            raise NotFoundError("Question not found in this quiz")

        quiz.questions.remove(question)
        commit_or_rollback(self.db, "delete question")
        logger.info(f"Question {question_id} deleted from quiz {quiz_id}")

    # Option methods
    def add_option(self, question_id: int, data: OptionCreate, user: CurrentUser) -> Option:
        question = self.db.get(Question, question_id)
        if question is None:
            raise NotFoundError("Question not found")
        require_instructor(self.catalog, user, question.quiz.course_id)

        qtype = question.type
        if qtype is QuestionType.TEXT:
            raise ValidationError("Text questions do not have options")
        if qtype is QuestionType.TRUE_FALSE and len(question.options) >= 2:
            raise ValidationError("True/false questions have exactly two options")
        if data.is_correct and qtype in SINGLE_CORRECT_TYPES and question.correct_options:
            raise ValidationError(f"{qtype.value} questions can only have one correct option")

        sort_order = data.sort_order
        if sort_order is None:
            sort_order = max((o.sort_order for o in question.options), default=0) + 1

        option = Option(option_text=data.option_text.strip(), is_correct=data.is_correct, sort_order=sort_order)
        question.options.append(option)
        commit_or_rollback(self.db, "add option")
        self.db.refresh(option)
        self.db.expire(question, ["options"])
        return option

    def delete_option(self, option_id: int, user: CurrentUser) -> None:
        option = self.db.get(Option, option_id)
        if option is None:
            raise NotFoundError("Option not found")
        question = option.question
        require_instructor(self.catalog, user, question.quiz.course_id)

        question.options.remove(option)
        commit_or_rollback(self.db, "delete option")

    def validate(self, quiz_id: int, user: CurrentUser) -> List[str]:
        return definition_problems(self.get_quiz_for_instructor(quiz_id, user))

    def _has_attempts(self, quiz_id: int) -> bool:
        return self.db.query(Attempt.id).filter(Attempt.quiz_id == quiz_id).first() is not None

    @staticmethod
    def _build_question(data: QuestionCreate, default_order: Optional[int] = None) -> Question:
        question = Question(
            question=data.question.strip(),
            question_type=data.question_type.value,
            points=data.points,
            sort_order=data.sort_order if data.sort_order is not None else (default_order or 1),
            require_justification=data.require_justification,
            file_url=data.file_url,
        )
        for index, option_data in enumerate(data.options, start=1):
            question.options.append(Option(
                option_text=option_data.option_text.strip(),
                is_correct=option_data.is_correct,
                sort_order=option_data.sort_order if option_data.sort_order is not None else index,
            ))
        return question
