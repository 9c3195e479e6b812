from typing import Any, Dict
import logging

from ..models.schemas import CurrentUser, SessionResponse
from ..session.drafts import DraftState, DraftStore
from ..session.timer import compute_deadline, compute_remaining
from .submission_service import SubmissionService

logger = logging.getLogger(__name__)


class SessionService:
    """Server-side start time and draft answers for an attempt in progress"""

    def __init__(self, submissions: SubmissionService, drafts: DraftStore):
        self.submissions = submissions
        self.drafts = drafts
        self.clock = submissions.clock

    def _response(self, quiz, state: DraftState) -> SessionResponse:
        return SessionResponse(
            quiz_id=quiz.id,
            started_at=state.started_at,
            deadline=compute_deadline(state.started_at, quiz.time_limit_minutes),
            remaining_seconds=compute_remaining(state.started_at, quiz.time_limit_minutes, self.clock()),
            answers=state.answers,
        )

    def _current_state(self, quiz_id: int) -> DraftState:
        state = self.drafts.load(quiz_id)
        if state is None or state.started_at is None:
            state = DraftState(started_at=self.clock(), answers=state.answers if state else {})
            self.drafts.save(quiz_id, state)
            # A concurrent start may have recorded its instant first
            state = self.drafts.load(quiz_id) or state
        return state

    def start_or_resume(self, quiz_id: int, user: CurrentUser) -> SessionResponse:
        """The start time is recorded once; later calls keep the original deadline"""
        quiz, _ = self.submissions.get_quiz_for_taking(quiz_id, user)
        state = self._current_state(quiz.id)
        logger.info(f"Session for quiz {quiz.id} learner {user.id} started_at={state.started_at.isoformat()}")
        return self._response(quiz, state)

    def save_draft(self, quiz_id: int, user: CurrentUser, answers: Dict[str, Any]) -> SessionResponse:
        quiz, _ = self.submissions.get_quiz_for_taking(quiz_id, user)
        state = self._current_state(quiz.id)
        state.answers = {str(k): v for k, v in (answers or {}).items()}
        self.drafts.save(quiz.id, state)
        return self._response(quiz, state)
