import json

import pytest
import requests

from quiz_service.errors import (
    AlreadyCompletedError, NotFoundError, TransientPersistenceError, ValidationError,
)
from quiz_service.session import AssessmentClient, MemoryDraftStore, QuizSession, SessionState

from conftest import STUDENT, TEACHER, auth, choice_quiz_data, make_token


def make_response(status_code, body=None):
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(body).encode() if body is not None else b""
    return response


class StubSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def request(self, method, url, json=None, headers=None, timeout=None):
        self.requests.append((method, url, json, headers))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class ServiceSession:
    """Routes the client's calls into the FastAPI test client"""

    def __init__(self, test_client):
        self.test_client = test_client

    def request(self, method, url, json=None, headers=None, timeout=None):
        response = self.test_client.request(method, url, json=json, headers=headers)
        return make_response(response.status_code, response.json() if response.content else None)


def test_errors_are_rebuilt_from_the_response_body():
    stub = StubSession([
        make_response(409, {"detail": "done", "code": "already_completed", "retryable": False, "attempt_id": 5}),
        make_response(400, {"detail": "missing", "code": "validation_error", "retryable": True}),
        make_response(404, {"detail": "Quiz not found", "code": "not_found", "retryable": False}),
    ])
    client = AssessmentClient("http://quiz", "token", session=stub)

    with pytest.raises(AlreadyCompletedError) as exc_info:
        client.submit_attempt(1, {})
    assert exc_info.value.attempt_id == 5
    with pytest.raises(ValidationError):
        client.submit_attempt(1, {})
    with pytest.raises(NotFoundError):
        client.get_result(1)

    method, url, payload, headers = stub.requests[0]
    assert (method, url) == ("POST", "http://quiz/quizzes/1/submit")
    assert payload == {"answers": {}, "time_taken_ms": None, "auto_submitted": False}
    assert headers["Authorization"] == "Bearer token"


def test_network_failure_is_retryable():
    stub = StubSession([requests.ConnectionError("refused"), make_response(502)])
    client = AssessmentClient("http://quiz", "token", session=stub)

    with pytest.raises(TransientPersistenceError) as exc_info:
        client.start_session(1)
    assert exc_info.value.retryable
    with pytest.raises(TransientPersistenceError):
        client.start_session(1)


def test_learner_session_against_the_service(client, clock):
    quiz = client.post("/quizzes/", json=choice_quiz_data(time_limit_minutes=5), headers=auth(TEACHER)).json()
    api = AssessmentClient("http://testserver", make_token(STUDENT), session=ServiceSession(client))

    taking = api.get_quiz_for_taking(quiz["id"])
    assert api.start_session(quiz["id"])["remaining_seconds"] == 300
    question_ids = [q["id"] for q in taking["questions"]]
    session = QuizSession(
        quiz["id"],
        taking["quiz"]["time_limit_minutes"],
        MemoryDraftStore(),
        api.submit_attempt,
        question_ids=question_ids,
        clock=clock,
    )
    assert session.start() == 300

    first, second = quiz["questions"]
    session.set_answer(first["id"], next(o["id"] for o in first["options"] if o["is_correct"]))
    clock.advance(minutes=5)
    response = session.tick()

    assert session.state is SessionState.COMPLETED
    assert response["score_summary"]["score"] == 50
    assert response["score_summary"]["needs_manual_grading"] is False

    with pytest.raises(AlreadyCompletedError) as exc_info:
        api.submit_attempt(quiz["id"], {}, auto_submitted=True)
    assert exc_info.value.attempt_id == response["attempt_id"]
    assert api.get_result(quiz["id"])["attempt_id"] == response["attempt_id"]
