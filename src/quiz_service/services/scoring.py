"""Scoring engine.

One scoring function per question type, selected through ``SCORERS``. The
table is checked against ``QuestionType`` at import time so a new type cannot
be added without a scorer.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence
import logging

from ..models.answers import (
    Answer, ChoiceAnswer, QuestionType, TrueFalseAnswer
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuestionScore:
    question_id: int
    points_awarded: float
    # None when correctness is a matter of human judgment
    is_correct: Optional[bool]
    needs_manual: bool = False


@dataclass
class AttemptScore:
    max_score: float
    auto_score: float = 0.0
    questions: List[QuestionScore] = field(default_factory=list)

    @property
    def auto_awards(self) -> Dict[str, float]:
        return {str(q.question_id): q.points_awarded for q in self.questions}

    @property
    def manual_question_ids(self) -> List[int]:
        return [q.question_id for q in self.questions if q.needs_manual]

    @property
    def needs_manual_grading(self) -> bool:
        return any(q.needs_manual for q in self.questions)


def _score_choice(question, answer: Optional[Answer]) -> QuestionScore:
    correct_ids = {o.id for o in question.options if o.is_correct}
    selected = answer.option_ids if isinstance(answer, ChoiceAnswer) else frozenset()
    # All-or-nothing: the selection must be exactly the correct set
    is_correct = bool(correct_ids) and set(selected) == correct_ids
    return QuestionScore(question.id, float(question.points) if is_correct else 0.0, is_correct)


def _score_true_false(question, answer: Optional[Answer]) -> QuestionScore:
    correct = next((o for o in question.options if o.is_correct), None)
    chosen = answer.answer if isinstance(answer, TrueFalseAnswer) else None
    is_correct = correct is not None and chosen == correct.option_text
    # A supplied justification goes to an instructor for qualitative review
    needs_manual = bool(
        question.require_justification
        and isinstance(answer, TrueFalseAnswer)
        and answer.justification
    )
    return QuestionScore(
        question.id, float(question.points) if is_correct else 0.0, is_correct, needs_manual
    )


def _score_text(question, answer: Optional[Answer]) -> QuestionScore:
    return QuestionScore(question.id, 0.0, None, needs_manual=True)


SCORERS: Mapping[QuestionType, Callable[..., QuestionScore]] = {
    QuestionType.SINGLE_CHOICE: _score_choice,
    QuestionType.MULTIPLE_CHOICE: _score_choice,
    QuestionType.TRUE_FALSE: _score_true_false,
    QuestionType.TEXT: _score_text,
}

_missing = set(QuestionType) - set(SCORERS)
if _missing:
    raise RuntimeError(f"No scorer registered for question types: {sorted(t.value for t in _missing)}")


def score_question(question, answer: Optional[Answer]) -> QuestionScore:
    return SCORERS[question.type](question, answer)


def score_attempt(questions: Sequence, answers: Mapping[int, Optional[Answer]]) -> AttemptScore:
    """Score every question of a quiz against the parsed answers.

    ``max_score`` is the sum of all question points at the time of the call.
    """
    result = AttemptScore(max_score=float(sum(q.points for q in questions)))
    for question in questions:
        question_score = score_question(question, answers.get(question.id))
        result.questions.append(question_score)
        result.auto_score += question_score.points_awarded

    result.auto_score = round(result.auto_score, 2)
    logger.debug(
        f"Scored {len(questions)} questions: auto_score={result.auto_score}/{result.max_score}, "
        f"manual={result.manual_question_ids}"
    )
    return result


def is_justification_missing(question, answer: Optional[Answer]) -> bool:
    """True for a true_false answer choosing the false statement without the required justification."""
    if question.type is not QuestionType.TRUE_FALSE or not question.require_justification:
        return False
    if not isinstance(answer, TrueFalseAnswer):
        return False
    false_option = question.false_option
    return false_option is not None and answer.answer == false_option.option_text and not answer.justification
