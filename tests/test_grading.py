from datetime import timedelta

import pytest

from quiz_service.errors import AccessDeniedError, IntegrityError, NotFoundError, ValidationError
from quiz_service.models import ManualGrade
from quiz_service.models.schemas import SubmissionRequest
from quiz_service.services.events import QUIZ_GRADED

from conftest import (
    ADMIN, COURSE_ID, OTHER_STUDENT, OTHER_TEACHER, STUDENT, TEACHER, correct_option, mixed_quiz_data,
    wrong_option,
)


@pytest.fixture
def mixed_attempt(make_quiz, submissions):
    quiz = make_quiz(mixed_quiz_data())
    text, choice = quiz.questions
    attempt = submissions.submit_attempt(quiz.id, STUDENT, SubmissionRequest(answers={
        str(text.id): "Light becomes sugar",
        str(choice.id): correct_option(choice).id,
    }))
    return quiz, attempt


def test_grading_text_answer_completes_the_attempt(mixed_attempt, grading, publisher):
    quiz, attempt = mixed_attempt
    text = quiz.questions[0]

    graded, still_pending = grading.grade_answer(attempt.id, text.id, 15, TEACHER, feedback="Good start")
    assert graded.score == 25
    assert graded.needs_manual_grading is False
    assert still_pending is False
    assert graded.passed is True
    assert graded.grade_for(text.id).feedback == "Good start"

    topic, payload = publisher.events[-1]
    assert topic == QUIZ_GRADED
    assert payload["score"] == 25
    assert payload["needs_manual_grading"] is False


def test_regrading_overwrites_instead_of_adding(mixed_attempt, grading, db):
    quiz, attempt = mixed_attempt
    text = quiz.questions[0]

    grading.grade_answer(attempt.id, text.id, 15, TEACHER)
    graded, _ = grading.grade_answer(attempt.id, text.id, 20, TEACHER)

    assert graded.score == 30
    assert graded.passed is True
    assert db.query(ManualGrade).filter(ManualGrade.attempt_id == attempt.id).count() == 1


def test_grading_an_auto_scored_question_replaces_its_award(mixed_attempt, grading):
    quiz, attempt = mixed_attempt
    choice = quiz.questions[1]
    graded, still_pending = grading.grade_answer(attempt.id, choice.id, 5, TEACHER)
    assert graded.score == 5
    assert still_pending is True


def test_points_must_fit_the_question(mixed_attempt, grading):
    quiz, attempt = mixed_attempt
    text = quiz.questions[0]
    with pytest.raises(ValidationError):
        grading.grade_answer(attempt.id, text.id, 21, TEACHER)
    with pytest.raises(ValidationError):
        grading.grade_answer(attempt.id, text.id, -1, TEACHER)


def test_question_outside_the_attempt_is_an_integrity_error(mixed_attempt, grading):
    _, attempt = mixed_attempt
    with pytest.raises(IntegrityError):
        grading.grade_answer(attempt.id, 424242, 1, TEACHER)


def test_grading_requires_course_instructor(mixed_attempt, grading):
    quiz, attempt = mixed_attempt
    with pytest.raises(AccessDeniedError):
        grading.grade_answer(attempt.id, quiz.questions[0].id, 10, OTHER_TEACHER)
    graded, _ = grading.grade_answer(attempt.id, quiz.questions[0].id, 10, ADMIN)
    assert graded.grade_for(quiz.questions[0].id).graded_by == ADMIN.id


def test_unknown_attempt(grading):
    with pytest.raises(NotFoundError):
        grading.grade_answer(999, 1, 1, TEACHER)


def test_pending_queue_by_quiz_and_course(mixed_attempt, grading, submissions):
    quiz, attempt = mixed_attempt
    text, choice = quiz.questions
    other = submissions.submit_attempt(quiz.id, OTHER_STUDENT, SubmissionRequest(answers={
        str(text.id): "No idea",
        str(choice.id): wrong_option(choice).id,
    }))

    by_quiz = grading.list_pending(TEACHER, quiz_id=quiz.id)
    assert [(i.attempt_id, i.question_id) for i in by_quiz] == [(attempt.id, text.id), (other.id, text.id)]
    assert by_quiz[0].answer == "Light becomes sugar"
    assert by_quiz[0].points == 20

    grading.grade_answer(attempt.id, text.id, 15, TEACHER)
    by_course = grading.list_pending(TEACHER, course_id=COURSE_ID)
    assert [i.attempt_id for i in by_course] == [other.id]

    with pytest.raises(ValidationError):
        grading.list_pending(TEACHER)
    with pytest.raises(AccessDeniedError):
        grading.list_pending(OTHER_TEACHER, course_id=COURSE_ID)


def test_quiz_results_and_stats(mixed_attempt, grading, submissions):
    quiz, attempt = mixed_attempt
    text, choice = quiz.questions
    submissions.submit_attempt(quiz.id, OTHER_STUDENT, SubmissionRequest(answers={
        str(text.id): "No idea",
        str(choice.id): wrong_option(choice).id,
    }))
    grading.grade_answer(attempt.id, text.id, 20, TEACHER)

    report = grading.list_quiz_results(quiz.id, TEACHER)
    assert report.stats.attempts_count == 2
    assert report.stats.pass_rate == 50.0
    assert report.stats.pending_manual_count == 1
    assert report.stats.average_percentage == 50.0


def test_attempt_detail_ignores_results_gate(make_quiz, submissions, grading, clock):
    quiz = make_quiz(mixed_quiz_data(results_publish_datetime=clock() + timedelta(days=7)))
    text, choice = quiz.questions
    attempt = submissions.submit_attempt(quiz.id, STUDENT, SubmissionRequest(answers={
        str(text.id): "Light becomes sugar",
        str(choice.id): correct_option(choice).id,
    }))

    detail = grading.get_attempt_detail(attempt.id, TEACHER)
    assert detail.pending_question_ids == [text.id]
    assert [r.question_id for r in detail.detail] == [text.id, choice.id]
    assert detail.detail[1].is_correct is True
    assert detail.detail[0].pending is True
