"""Draft answer cache.

Holds a learner's in-progress answers and the session start time so an
accidental reload resumes where it left off. Drafts are scoped to a single
learner: a store instance never reads or writes another learner's drafts.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
import logging

from pymongo import ASCENDING
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..errors import TransientPersistenceError
from ..utils.clock import utcnow

logger = logging.getLogger(__name__)


@dataclass
class DraftState:
    started_at: Optional[datetime] = None
    answers: Dict[str, Any] = field(default_factory=dict)


class DraftStore:
    """Per-learner draft storage keyed by quiz id"""

    def load(self, quiz_id: int) -> Optional[DraftState]:
        raise NotImplementedError

    def save(self, quiz_id: int, state: DraftState) -> None:
        raise NotImplementedError

    def clear(self, quiz_id: int) -> None:
        raise NotImplementedError


class MemoryDraftStore(DraftStore):
    """Process-local drafts, used by the client-side session"""

    def __init__(self):
        self._drafts: Dict[int, DraftState] = {}

    def load(self, quiz_id: int) -> Optional[DraftState]:
        state = self._drafts.get(quiz_id)
        if state is None:
            return None
        return DraftState(state.started_at, dict(state.answers))

    def save(self, quiz_id: int, state: DraftState) -> None:
        existing = self._drafts.get(quiz_id)
        started_at = existing.started_at if existing and existing.started_at else state.started_at
        self._drafts[quiz_id] = DraftState(started_at, dict(state.answers))

    def clear(self, quiz_id: int) -> None:
        self._drafts.pop(quiz_id, None)


def ensure_draft_indexes(collection: Collection) -> None:
    collection.create_index(
        [("learner_id", ASCENDING), ("quiz_id", ASCENDING)],
        unique=True,
        name="learner_quiz_unique",
    )


class MongoDraftStore(DraftStore):
    """Drafts kept in MongoDB, one document per (learner, quiz)"""

    def __init__(self, collection: Collection, learner_id: str):
        self.collection = collection
        self.learner_id = learner_id

    def _key(self, quiz_id: int) -> Dict[str, Any]:
        return {"learner_id": self.learner_id, "quiz_id": quiz_id}

    def load(self, quiz_id: int) -> Optional[DraftState]:
        try:
            doc = self.collection.find_one(self._key(quiz_id))
        except PyMongoError as e:
            logger.error(f"Error loading draft for quiz {quiz_id}: {e}")
            raise TransientPersistenceError("Could not load draft answers, please retry") from e
        if doc is None:
            return None
        return DraftState(started_at=doc.get("started_at"), answers=doc.get("answers") or {})

    def _upsert(self, quiz_id: int, state: DraftState) -> None:
        update: Dict[str, Any] = {"$set": {"answers": state.answers, "updated_at": utcnow()}}
        if state.started_at is not None:
            # Only the first recorded start is kept
            update["$setOnInsert"] = {"started_at": state.started_at}
        self.collection.update_one(self._key(quiz_id), update, upsert=True)

    def save(self, quiz_id: int, state: DraftState) -> None:
        try:
            try:
                self._upsert(quiz_id, state)
            except DuplicateKeyError:
                # A concurrent upsert inserted the document first
                self._upsert(quiz_id, state)
        except PyMongoError as e:
            logger.error(f"Error saving draft for quiz {quiz_id}: {e}")
            raise TransientPersistenceError("Could not save draft answers, please retry") from e

    def clear(self, quiz_id: int) -> None:
        try:
            result = self.collection.delete_one(self._key(quiz_id))
        except PyMongoError as e:
            # Only called once the attempt is stored
            logger.warning(f"Could not purge draft for quiz {quiz_id}: {e}")
            return
        if result.deleted_count:
            logger.info(f"Draft purged: learner={self.learner_id} quiz={quiz_id}")
