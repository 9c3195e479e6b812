from datetime import datetime
from typing import Any, Dict
import json
import logging

from dapr.clients import DaprClient

from ..utils.clock import utcnow

logger = logging.getLogger(__name__)

QUIZ_COMPLETED = "quiz_completed"
QUIZ_GRADED = "quiz_graded"


def _default(value):
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class EventPublisher:
    def publish(self, topic: str, data: Dict[str, Any]) -> None:
        raise NotImplementedError


class LoggingEventPublisher(EventPublisher):
    """Used when pub/sub is disabled: events only reach the log"""

    def publish(self, topic: str, data: Dict[str, Any]) -> None:
        logger.info(f"Event {topic} (not published): {json.dumps(data, default=_default)}")


class DaprEventPublisher(EventPublisher):
    """Publish through the Dapr sidecar. Failures are logged, never raised."""

    def __init__(self, pubsub_name: str = "pubsub", service_name: str = "quiz-service"):
        self.pubsub_name = pubsub_name
        self.service_name = service_name

    def publish(self, topic: str, data: Dict[str, Any]) -> None:
        payload = dict(data)
        payload.setdefault("timestamp", utcnow().isoformat())
        payload.setdefault("service", self.service_name)
        try:
            with DaprClient() as dapr_client:
                dapr_client.publish_event(
                    pubsub_name=self.pubsub_name,
                    topic_name=topic,
                    data=json.dumps(payload, default=_default),
                    data_content_type="application/json",
                )
            logger.info(f"Event published: {topic}")
        except Exception as e:
            logger.error(f"Failed to publish event {topic}: {e}")
