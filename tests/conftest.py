from datetime import datetime, timedelta

import jwt
import mongomock
import pytest
from fastapi.testclient import TestClient

from quiz_service import database
from quiz_service.config import Settings
from quiz_service.main import create_app
from quiz_service.models.schemas import CurrentUser, QuizCreate, UserRole
from quiz_service.services.catalog import StaticCourseCatalog
from quiz_service.services.events import EventPublisher
from quiz_service.services.grading_service import GradingService
from quiz_service.services.quiz_store import QuizStore
from quiz_service.services.results_gate import ResultsGate
from quiz_service.services.submission_service import SubmissionService

COURSE_ID = "course-1"
OTHER_COURSE_ID = "course-2"
NOW = datetime(2025, 3, 1, 12, 0, 0)
JWT_SECRET = "test-secret"

STUDENT = CurrentUser(id="student-1", role=UserRole.STUDENT)
OTHER_STUDENT = CurrentUser(id="student-2", role=UserRole.STUDENT)
OUTSIDER = CurrentUser(id="student-9", role=UserRole.STUDENT)
TEACHER = CurrentUser(id="teacher-1", role=UserRole.TEACHER)
OTHER_TEACHER = CurrentUser(id="teacher-2", role=UserRole.TEACHER)
ADMIN = CurrentUser(id="admin-1", role=UserRole.ADMIN)


class FrozenClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingPublisher(EventPublisher):
    def __init__(self):
        self.events = []

    def publish(self, topic, data):
        self.events.append((topic, data))

    def topics(self):
        return [topic for topic, _ in self.events]


def choice_quiz_data(**overrides):
    """Two single_choice questions worth 50 points each"""
    data = {
        "course_id": COURSE_ID,
        "title": "Arithmetic",
        "passing_score": 70,
        "questions": [
            {
                "question": "2 + 2 = ?",
                "question_type": "single_choice",
                "points": 50,
                "options": [
                    {"option_text": "3", "is_correct": False},
                    {"option_text": "4", "is_correct": True},
                ],
            },
            {
                "question": "3 + 3 = ?",
                "question_type": "single_choice",
                "points": 50,
                "options": [
                    {"option_text": "6", "is_correct": True},
                    {"option_text": "9", "is_correct": False},
                ],
            },
        ],
    }
    data.update(overrides)
    return data


def mixed_quiz_data(**overrides):
    """A text question worth 20 points and a single_choice worth 10"""
    data = {
        "course_id": COURSE_ID,
        "title": "Essay and choice",
        "passing_score": 70,
        "questions": [
            {"question": "Explain photosynthesis", "question_type": "text", "points": 20},
            {
                "question": "Plants need?",
                "question_type": "single_choice",
                "points": 10,
                "options": [
                    {"option_text": "Light", "is_correct": True},
                    {"option_text": "Noise", "is_correct": False},
                ],
            },
        ],
    }
    data.update(overrides)
    return data


def correct_option(question):
    return next(o for o in question.options if o.is_correct)


def wrong_option(question):
    return next(o for o in question.options if not o.is_correct)


def make_token(user: CurrentUser, secret: str = JWT_SECRET) -> str:
    return jwt.encode({"sub": user.id, "role": user.role.value}, secret, algorithm="HS256")


def auth(user: CurrentUser) -> dict:
    return {"Authorization": f"Bearer {make_token(user)}"}


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def catalog():
    return StaticCourseCatalog(
        courses=[COURSE_ID, OTHER_COURSE_ID],
        enrollments=[(STUDENT.id, COURSE_ID), (OTHER_STUDENT.id, COURSE_ID)],
        instructors=[(TEACHER.id, COURSE_ID), (OTHER_TEACHER.id, OTHER_COURSE_ID)],
    )


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def db():
    assert database.init_database("sqlite://", max_retries=1, retry_delay=0)
    session = database.SessionLocal()
    yield session
    session.close()
    database.close_database()


@pytest.fixture
def store(db, catalog):
    return QuizStore(db, catalog)


@pytest.fixture
def submissions(db, catalog, publisher, clock):
    return SubmissionService(db, catalog, publisher, clock=clock)


@pytest.fixture
def grading(db, catalog, publisher, clock):
    return GradingService(db, catalog, publisher, clock=clock)


@pytest.fixture
def gate(db, clock):
    return ResultsGate(db, clock=clock)


@pytest.fixture
def make_quiz(store):
    def _make(data=None, **overrides):
        payload = dict(data or choice_quiz_data())
        payload.update(overrides)
        return store.create_quiz(QuizCreate(**payload), TEACHER)
    return _make


@pytest.fixture
def settings():
    test_settings = Settings()
    test_settings.DATABASE_URL = "sqlite://"
    test_settings.DATABASE_CONNECT_RETRIES = 1
    test_settings.EVENTS_ENABLED = False
    test_settings.JWT_SECRET_KEY = JWT_SECRET
    return test_settings


@pytest.fixture
def drafts_collection():
    return mongomock.MongoClient()["quizdb"]["quiz_drafts"]


@pytest.fixture
def client(settings, catalog, publisher, drafts_collection, clock):
    app = create_app(
        settings=settings,
        catalog=catalog,
        publisher=publisher,
        drafts_collection=drafts_collection,
        clock=clock,
    )
    with TestClient(app) as test_client:
        yield test_client
