from .answers import QuestionType, ChoiceAnswer, TrueFalseAnswer, TextAnswer, parse_answer
from .quiz import Quiz, Question, Option
from .attempt import Attempt, ManualGrade, compute_passed, compute_percentage
from .schemas import UserRole, CurrentUser

__all__ = [
    "QuestionType", "ChoiceAnswer", "TrueFalseAnswer", "TextAnswer", "parse_answer",
    "Quiz", "Question", "Option",
    "Attempt", "ManualGrade", "compute_passed", "compute_percentage",
    "UserRole", "CurrentUser",
]
