"""Question types and the answer shapes a learner can give for each of them."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, FrozenSet, Optional, Union


class QuestionType(str, Enum):
    SINGLE_CHOICE = "single_choice"
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    TEXT = "text"


# Types whose answer is a set of option ids
CHOICE_TYPES = frozenset({QuestionType.SINGLE_CHOICE, QuestionType.MULTIPLE_CHOICE})
# Types that allow exactly one correct option
SINGLE_CORRECT_TYPES = frozenset({QuestionType.SINGLE_CHOICE, QuestionType.TRUE_FALSE})


@dataclass(frozen=True)
class ChoiceAnswer:
    """Selected option ids for single_choice and multiple_choice questions."""

    option_ids: FrozenSet[int]

    def is_empty(self) -> bool:
        return not self.option_ids

    def to_json(self) -> Any:
        return sorted(self.option_ids)


@dataclass(frozen=True)
class TrueFalseAnswer:
    answer: str
    justification: Optional[str] = None

    def is_empty(self) -> bool:
        return not self.answer

    def to_json(self) -> Any:
        return {"answer": self.answer, "justification": self.justification}


@dataclass(frozen=True)
class TextAnswer:
    text: str

    def is_empty(self) -> bool:
        return not self.text.strip()

    def to_json(self) -> Any:
        return self.text


Answer = Union[ChoiceAnswer, TrueFalseAnswer, TextAnswer]


def _option_ids(raw: Any) -> FrozenSet[int]:
    values = raw if isinstance(raw, (list, tuple, set, frozenset)) else [raw]
    ids = set()
    for value in values:
        if value is None or value == "":
            continue
        try:
            ids.add(int(value))
        except (TypeError, ValueError):
            raise ValueError(f"Invalid option id: {value!r}")
    return frozenset(ids)


def parse_answer(question_type: QuestionType, raw: Any) -> Optional[Answer]:
    """Turn a raw JSON answer into the variant for ``question_type``.

    Returns None when no answer was given. Raises ValueError when the payload
    does not fit the question type.
    """
    if raw is None:
        return None

    question_type = QuestionType(question_type)
    if question_type in CHOICE_TYPES:
        answer = ChoiceAnswer(_option_ids(raw))
        if question_type is QuestionType.SINGLE_CHOICE and len(answer.option_ids) > 1:
            raise ValueError("single_choice accepts one option")
    elif question_type is QuestionType.TRUE_FALSE:
        if isinstance(raw, dict):
            justification = raw.get("justification")
            if justification is not None and not isinstance(justification, str):
                raise ValueError("justification must be a string")
            answer = TrueFalseAnswer(str(raw.get("answer") or ""), (justification or "").strip() or None)
        elif isinstance(raw, str):
            answer = TrueFalseAnswer(raw)
        else:
            raise ValueError("true_false expects the chosen option text")
    elif question_type is QuestionType.TEXT:
        if not isinstance(raw, str):
            raise ValueError("text expects a string")
        answer = TextAnswer(raw)
    else:
        raise ValueError(f"Unsupported question type: {question_type}")

    return None if answer.is_empty() else answer
