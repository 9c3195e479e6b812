from fastapi import APIRouter, Depends

from ..models.schemas import (
    CurrentUser, DraftRequest, QuestionForTaking, QuizForTaking, ResultResponse, SessionResponse,
    SubmissionRequest, SubmissionResponse, TakeQuizResponse,
)
from ..services.results_gate import ResultsGate, build_summary, is_published
from ..services.session_service import SessionService
from ..services.submission_service import SubmissionService
from ..session.drafts import MongoDraftStore
from ..utils.dependencies import (
    get_draft_store, get_results_gate, get_session_service, get_student_user, get_submission_service,
)

router = APIRouter(
    prefix="/quizzes",
    tags=["taking"],
    responses={404: {"description": "Not found"}}
)


@router.get(
    "/{quiz_id}/take",
    response_model=TakeQuizResponse,
    summary="Get a quiz for taking",
    description="Quiz and questions without correct answers. Refused once the learner has an attempt."
)
async def take_quiz(
    quiz_id: int,
    current_user: CurrentUser = Depends(get_student_user),
    service: SubmissionService = Depends(get_submission_service)
):
    quiz, questions = service.get_quiz_for_taking(quiz_id, current_user)
    return TakeQuizResponse(
        quiz=QuizForTaking.model_validate(quiz),
        questions=[QuestionForTaking.model_validate(q) for q in questions],
    )


@router.post(
    "/{quiz_id}/session",
    response_model=SessionResponse,
    summary="Start or resume a quiz session"
)
async def start_session(
    quiz_id: int,
    current_user: CurrentUser = Depends(get_student_user),
    service: SessionService = Depends(get_session_service)
):
    return service.start_or_resume(quiz_id, current_user)


@router.put(
    "/{quiz_id}/draft",
    response_model=SessionResponse,
    summary="Save draft answers"
)
async def save_draft(
    quiz_id: int,
    draft: DraftRequest,
    current_user: CurrentUser = Depends(get_student_user),
    service: SessionService = Depends(get_session_service)
):
    return service.save_draft(quiz_id, current_user, draft.answers)


@router.post(
    "/{quiz_id}/submit",
    response_model=SubmissionResponse,
    status_code=201,
    summary="Submit quiz answers",
    description="Store the learner's single attempt. A second submission is rejected."
)
async def submit_quiz(
    quiz_id: int,
    submission: SubmissionRequest,
    current_user: CurrentUser = Depends(get_student_user),
    service: SubmissionService = Depends(get_submission_service),
    drafts: MongoDraftStore = Depends(get_draft_store)
):
    attempt = service.submit_attempt(quiz_id, current_user, submission, drafts=drafts)
    quiz = attempt.quiz
    return SubmissionResponse(
        attempt_id=attempt.id,
        results_published=is_published(quiz, service.clock()),
        results_publish_datetime=quiz.results_publish_datetime,
        score_summary=build_summary(attempt),
    )


@router.get(
    "/{quiz_id}/result",
    response_model=ResultResponse,
    summary="Get my result for a quiz"
)
async def get_my_result(
    quiz_id: int,
    current_user: CurrentUser = Depends(get_student_user),
    gate: ResultsGate = Depends(get_results_gate)
):
    return gate.get_result(quiz_id, current_user)
