import json
import logging

import pytest
import requests

from quiz_service.config import Settings
from quiz_service.errors import CatalogUnavailableError
from quiz_service.services.catalog import DaprCourseCatalog
from quiz_service.services.events import DaprEventPublisher, LoggingEventPublisher, QUIZ_COMPLETED


class StubSession:
    def __init__(self, statuses):
        self.statuses = list(statuses)
        self.urls = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        status = self.statuses.pop(0)
        if isinstance(status, Exception):
            raise status
        response = requests.Response()
        response.status_code = status
        response._content = b"{}"
        return response


def make_catalog(statuses):
    settings = Settings()
    settings.CATALOG_APP_ID = "content-service"
    session = StubSession(statuses)
    return DaprCourseCatalog(settings, session=session), session


def test_catalog_answers_from_status_codes():
    catalog, session = make_catalog([200, 404, 200])
    assert catalog.course_exists("c1") is True
    assert catalog.is_enrolled("u1", "c1") is False
    assert catalog.is_instructor("t1", "c1") is True
    assert session.urls[0] == "http://localhost:3500/v1.0/invoke/content-service/method/course/c1"
    assert session.urls[1].endswith("/course/c1/students/u1")
    assert session.urls[2].endswith("/course/c1/instructors/t1")


@pytest.mark.parametrize("failure", [503, requests.ConnectionError("refused")])
def test_catalog_outage_is_retryable(failure):
    catalog, _ = make_catalog([failure])
    with pytest.raises(CatalogUnavailableError) as exc_info:
        catalog.is_enrolled("u1", "c1")
    assert exc_info.value.retryable


def test_logging_publisher_writes_the_event(caplog):
    with caplog.at_level(logging.INFO):
        LoggingEventPublisher().publish(QUIZ_COMPLETED, {"attempt_id": 1})
    assert "quiz_completed" in caplog.text


def test_dapr_publisher_sends_json(monkeypatch):
    sent = []

    class FakeDaprClient:
        def __enter__(self):
            return self

        def __exit__(self, *args):
            return False

        def publish_event(self, pubsub_name, topic_name, data, data_content_type):
            sent.append((pubsub_name, topic_name, json.loads(data)))

    monkeypatch.setattr("quiz_service.services.events.DaprClient", FakeDaprClient)
    DaprEventPublisher("pubsub", "quiz-service").publish(QUIZ_COMPLETED, {"attempt_id": 3})

    pubsub_name, topic, payload = sent[0]
    assert (pubsub_name, topic) == ("pubsub", QUIZ_COMPLETED)
    assert payload["attempt_id"] == 3
    assert payload["service"] == "quiz-service"
    assert "timestamp" in payload


def test_dapr_publisher_failure_is_logged_not_raised(monkeypatch, caplog):
    class BrokenDaprClient:
        def __enter__(self):
            raise RuntimeError("sidecar down")

        def __exit__(self, *args):
            return False

    monkeypatch.setattr("quiz_service.services.events.DaprClient", BrokenDaprClient)
    DaprEventPublisher().publish(QUIZ_COMPLETED, {"attempt_id": 3})
    assert "Failed to publish event quiz_completed" in caplog.text


def test_dapr_client_is_bound_at_import():
    from dapr.clients import DaprClient

    from quiz_service.services import events

    assert events.DaprClient is DaprClient
