import pytest

from quiz_service.models import Option, Question, QuestionType, parse_answer
from quiz_service.models.answers import ChoiceAnswer, TextAnswer, TrueFalseAnswer
from quiz_service.services.scoring import (
    SCORERS, is_justification_missing, score_attempt, score_question,
)


def make_question(qid, question_type, points=10, options=(), require_justification=False):
    question = Question(
        id=qid,
        question=f"Question {qid}",
        question_type=question_type,
        points=points,
        require_justification=require_justification,
    )
    for index, (oid, text, is_correct) in enumerate(options, start=1):
        question.options.append(Option(id=oid, option_text=text, is_correct=is_correct, sort_order=index))
    return question


@pytest.fixture
def single():
    return make_question(1, "single_choice", 10, [(11, "Paris", True), (12, "Rome", False)])


@pytest.fixture
def multiple():
    return make_question(2, "multiple_choice", 20, [(21, "2", True), (22, "3", True), (23, "4", False)])


@pytest.fixture
def true_false():
    return make_question(3, "true_false", 5, [(31, "True", True), (32, "False", False)], require_justification=True)


def test_every_question_type_has_a_scorer():
    assert set(SCORERS) == set(QuestionType)


def test_single_choice_correct_and_incorrect(single):
    assert score_question(single, ChoiceAnswer(frozenset({11}))).points_awarded == 10
    wrong = score_question(single, ChoiceAnswer(frozenset({12})))
    assert wrong.points_awarded == 0
    assert wrong.is_correct is False


def test_multiple_choice_is_all_or_nothing(multiple):
    assert score_question(multiple, ChoiceAnswer(frozenset({21, 22}))).points_awarded == 20
    assert score_question(multiple, ChoiceAnswer(frozenset({21}))).points_awarded == 0
    assert score_question(multiple, ChoiceAnswer(frozenset({21, 22, 23}))).points_awarded == 0


def test_unanswered_question_scores_zero(single):
    result = score_question(single, None)
    assert result.points_awarded == 0
    assert result.needs_manual is False


def test_text_always_needs_manual_grading():
    question = make_question(4, "text", 20)
    result = score_question(question, TextAnswer("Because chlorophyll"))
    assert result.points_awarded == 0
    assert result.is_correct is None
    assert result.needs_manual is True


def test_true_false_justification_goes_to_manual_review(true_false):
    plain = score_question(true_false, TrueFalseAnswer("True"))
    assert plain.points_awarded == 5
    assert plain.needs_manual is False

    justified = score_question(true_false, TrueFalseAnswer("False", "The premise is wrong"))
    assert justified.points_awarded == 0
    assert justified.needs_manual is True


def test_justification_missing_only_for_false_statement(true_false):
    assert is_justification_missing(true_false, TrueFalseAnswer("False"))
    assert not is_justification_missing(true_false, TrueFalseAnswer("False", "reason"))
    assert not is_justification_missing(true_false, TrueFalseAnswer("True"))


def test_score_attempt_sums_awards_and_lists_manual_questions(single, multiple):
    text = make_question(4, "text", 20)
    result = score_attempt(
        [single, multiple, text],
        {1: ChoiceAnswer(frozenset({11})), 2: ChoiceAnswer(frozenset({21})), 4: TextAnswer("essay")},
    )
    assert result.max_score == 50
    assert result.auto_score == 10
    assert result.auto_awards == {"1": 10.0, "2": 0.0, "4": 0.0}
    assert result.manual_question_ids == [4]
    assert result.needs_manual_grading


def test_parse_answer_shapes():
    assert parse_answer("multiple_choice", ["1", 2]) == ChoiceAnswer(frozenset({1, 2}))
    assert parse_answer("single_choice", 5) == ChoiceAnswer(frozenset({5}))
    assert parse_answer("true_false", {"answer": "False", "justification": "  why "}) == TrueFalseAnswer("False", "why")
    assert parse_answer("text", "   ") is None
    assert parse_answer("single_choice", []) is None


@pytest.mark.parametrize("question_type,raw", [
    ("single_choice", [1, 2]),
    ("single_choice", "abc"),
    ("text", 42),
    ("true_false", 1),
])
def test_parse_answer_rejects_wrong_shape(question_type, raw):
    with pytest.raises(ValueError):
        parse_answer(question_type, raw)
