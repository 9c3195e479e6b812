from typing import Any, Dict, Optional
import logging

import requests

from ..errors import TransientPersistenceError, error_from_payload

logger = logging.getLogger(__name__)


class AssessmentClient:
    """HTTP client for the quiz service, used by the learner-side session.

    Error responses are turned back into the service's typed errors so the
    session can tell retryable failures from final ones.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        session: Optional[requests.Session] = None,
        timeout: float = 10,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {"Authorization": f"Bearer {token}"}

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method, url, json=payload, headers=self.headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"{method} {url} failed: {e}")
            raise TransientPersistenceError("Quiz service unreachable, please retry") from e

        if response.ok:
            return response.json() if response.content else None

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        error = error_from_payload(response.status_code, body)
        logger.warning(f"{method} {url} -> {response.status_code} {error.code}: {error.detail}")
        raise error

    def get_quiz_for_taking(self, quiz_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/quizzes/{quiz_id}/take")

    def start_session(self, quiz_id: int) -> Dict[str, Any]:
        return self._request("POST", f"/quizzes/{quiz_id}/session")

    def save_draft(self, quiz_id: int, answers: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/quizzes/{quiz_id}/draft", {"answers": answers})

    def submit_attempt(
        self,
        quiz_id: int,
        answers: Dict[str, Any],
        time_taken_ms: Optional[int] = None,
        auto_submitted: bool = False,
    ) -> Dict[str, Any]:
        return self._request("POST", f"/quizzes/{quiz_id}/submit", {
            "answers": answers,
            "time_taken_ms": time_taken_ms,
            "auto_submitted": auto_submitted,
        })

    def get_result(self, quiz_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/quizzes/{quiz_id}/result")
