from fastapi import APIRouter, Depends
from typing import List, Optional

from ..models.schemas import (
    AttemptDetailResponse, CurrentUser, GradeRequest, GradeResponse, PendingGradingItem,
    QuizResultsResponse,
)
from ..services.grading_service import GradingService
from ..utils.dependencies import get_grading_service, get_staff_user

router = APIRouter(
    tags=["grading"],
    responses={404: {"description": "Not found"}}
)


@router.get(
    "/grading/pending",
    response_model=List[PendingGradingItem],
    summary="Answers awaiting manual grading",
    description="Filter by quiz_id or course_id."
)
async def list_pending(
    quiz_id: Optional[int] = None,
    course_id: Optional[str] = None,
    current_user: CurrentUser = Depends(get_staff_user),
    service: GradingService = Depends(get_grading_service)
):
    return service.list_pending(current_user, quiz_id=quiz_id, course_id=course_id)


@router.post(
    "/attempts/{attempt_id}/grades",
    response_model=GradeResponse,
    summary="Grade one answer of an attempt",
    description="Grading the same answer again overwrites the previous grade."
)
async def grade_answer(
    attempt_id: int,
    grade: GradeRequest,
    current_user: CurrentUser = Depends(get_staff_user),
    service: GradingService = Depends(get_grading_service)
):
    attempt, still_pending = service.grade_answer(
        attempt_id, grade.question_id, grade.points_awarded, current_user, feedback=grade.feedback
    )
    return GradeResponse(
        attempt_id=attempt.id,
        question_id=grade.question_id,
        updated_score=attempt.score,
        max_score=attempt.max_score,
        percentage=attempt.percentage,
        passed=attempt.passed,
        still_pending=still_pending,
    )


@router.get(
    "/attempts/{attempt_id}",
    response_model=AttemptDetailResponse,
    summary="Get full attempt detail"
)
async def get_attempt(
    attempt_id: int,
    current_user: CurrentUser = Depends(get_staff_user),
    service: GradingService = Depends(get_grading_service)
):
    return service.get_attempt_detail(attempt_id, current_user)


@router.get(
    "/quizzes/{quiz_id}/results",
    response_model=QuizResultsResponse,
    summary="All attempts of a quiz with statistics"
)
async def list_quiz_results(
    quiz_id: int,
    current_user: CurrentUser = Depends(get_staff_user),
    service: GradingService = Depends(get_grading_service)
):
    return service.list_quiz_results(quiz_id, current_user)
