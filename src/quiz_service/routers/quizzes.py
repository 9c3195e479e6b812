from fastapi import APIRouter, Depends, Query, status
from typing import List

from ..models.schemas import (
    CurrentUser, QuestionCreate, QuestionResponse, QuizCreate, QuizResponse, QuizUpdate,
    QuizValidationResponse,
)
from ..services.quiz_store import QuizStore
from ..utils.dependencies import get_quiz_store, get_staff_user

router = APIRouter(
    prefix="/quizzes",
    tags=["quizzes"],
    responses={404: {"description": "Not found"}}
)


@router.post(
    "/",
    response_model=QuizResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new quiz",
    description="Create a new quiz, optionally with questions. Only instructors of the course can create quizzes."
)
async def create_quiz(
    quiz_data: QuizCreate,
    current_user: CurrentUser = Depends(get_staff_user),
    store: QuizStore = Depends(get_quiz_store)
):
    """Create a new quiz"""
    return store.create_quiz(quiz_data, current_user)


@router.get(
    "/",
    response_model=List[QuizResponse],
    summary="List quizzes of a course"
)
async def list_quizzes(
    course_id: str = Query(..., min_length=1),
    current_user: CurrentUser = Depends(get_staff_user),
    store: QuizStore = Depends(get_quiz_store)
):
    return store.list_quizzes(course_id, current_user)


@router.get(
    "/{quiz_id}",
    response_model=QuizResponse,
    summary="Get quiz with answers",
    description="Full quiz definition including correct options, for instructors."
)
async def get_quiz(
    quiz_id: int,
    current_user: CurrentUser = Depends(get_staff_user),
    store: QuizStore = Depends(get_quiz_store)
):
    return store.get_quiz_for_instructor(quiz_id, current_user)


@router.patch(
    "/{quiz_id}",
    response_model=QuizResponse,
    summary="Update quiz settings"
)
async def update_quiz(
    quiz_id: int,
    quiz_data: QuizUpdate,
    current_user: CurrentUser = Depends(get_staff_user),
    store: QuizStore = Depends(get_quiz_store)
):
    return store.update_quiz(quiz_id, quiz_data, current_user)


@router.get(
    "/{quiz_id}/validation",
    response_model=QuizValidationResponse,
    summary="Check whether a quiz can be taken"
)
async def validate_quiz(
    quiz_id: int,
    current_user: CurrentUser = Depends(get_staff_user),
    store: QuizStore = Depends(get_quiz_store)
):
    problems = store.validate(quiz_id, current_user)
    return QuizValidationResponse(quiz_id=quiz_id, valid=not problems, problems=problems)


@router.post(
    "/{quiz_id}/questions",
    response_model=QuestionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a question"
)
async def add_question(
    quiz_id: int,
    question_data: QuestionCreate,
    current_user: CurrentUser = Depends(get_staff_user),
    store: QuizStore = Depends(get_quiz_store)
):
    return store.add_question(quiz_id, question_data, current_user)


@router.delete(
    "/{quiz_id}/questions/{question_id}",
    summary="Delete a question"
)
async def delete_question(
    quiz_id: int,
    question_id: int,
    current_user: CurrentUser = Depends(get_staff_user),
    store: QuizStore = Depends(get_quiz_store)
):
    store.delete_question(quiz_id, question_id, current_user)
    return {"message": "Question deleted successfully"}
