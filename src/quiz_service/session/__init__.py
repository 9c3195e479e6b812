from .client import AssessmentClient
from .drafts import DraftState, DraftStore, MemoryDraftStore, MongoDraftStore, ensure_draft_indexes
from .timer import QuizSession, SessionEvent, SessionState, compute_deadline, compute_remaining, run_countdown
