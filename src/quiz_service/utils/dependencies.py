from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from typing import Optional
import jwt

from ..config import Settings
from ..database import get_db
from ..errors import AccessDeniedError, AuthenticationError
from ..models.schemas import CurrentUser, UserRole
from ..services.catalog import CourseCatalog
from ..services.events import EventPublisher
from ..services.grading_service import GradingService
from ..services.quiz_store import QuizStore
from ..services.results_gate import ResultsGate
from ..services.session_service import SessionService
from ..services.submission_service import SubmissionService
from ..session.drafts import MongoDraftStore

# Tokens are issued by user-service
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_catalog(request: Request) -> CourseCatalog:
    return request.app.state.catalog


def get_publisher(request: Request) -> EventPublisher:
    return request.app.state.publisher


def get_clock(request: Request):
    return request.app.state.clock


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    settings: Settings = Depends(get_settings),
) -> CurrentUser:
    """Dependency to get current user from JWT token"""
    if not token:
        raise AuthenticationError("Not authenticated")
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError:
        raise AuthenticationError("Could not validate credentials")

    user_id = payload.get("sub")
    role = payload.get("role", UserRole.STUDENT.value)
    if user_id is None or role not in [r.value for r in UserRole]:
        raise AuthenticationError("Could not validate credentials")
    return CurrentUser(id=str(user_id), role=UserRole(role))


async def get_staff_user(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Dependency to check if user is a teacher or admin"""
    if not current_user.is_staff:
        raise AccessDeniedError("Not enough permissions")
    return current_user


async def get_student_user(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if current_user.role != UserRole.STUDENT:
        raise AccessDeniedError("Only students can take quizzes")
    return current_user


def get_quiz_store(
    db: Session = Depends(get_db),
    catalog: CourseCatalog = Depends(get_catalog),
) -> QuizStore:
    return QuizStore(db, catalog)


def get_submission_service(
    db: Session = Depends(get_db),
    catalog: CourseCatalog = Depends(get_catalog),
    publisher: EventPublisher = Depends(get_publisher),
    clock=Depends(get_clock),
    settings: Settings = Depends(get_settings),
) -> SubmissionService:
    return SubmissionService(db, catalog, publisher, clock=clock, grace_seconds=settings.SUBMIT_GRACE_SECONDS)


def get_grading_service(
    db: Session = Depends(get_db),
    catalog: CourseCatalog = Depends(get_catalog),
    publisher: EventPublisher = Depends(get_publisher),
    clock=Depends(get_clock),
) -> GradingService:
    return GradingService(db, catalog, publisher, clock=clock)


def get_results_gate(db: Session = Depends(get_db), clock=Depends(get_clock)) -> ResultsGate:
    return ResultsGate(db, clock=clock)


def get_draft_store(
    request: Request,
    current_user: CurrentUser = Depends(get_student_user),
) -> MongoDraftStore:
    return MongoDraftStore(request.app.state.drafts_collection, current_user.id)


def get_session_service(
    submissions: SubmissionService = Depends(get_submission_service),
    drafts: MongoDraftStore = Depends(get_draft_store),
) -> SessionService:
    return SessionService(submissions, drafts)
