from fastapi import APIRouter, Depends, status

from ..models.schemas import CurrentUser, OptionCreate, OptionResponse
from ..services.quiz_store import QuizStore
from ..utils.dependencies import get_quiz_store, get_staff_user

router = APIRouter(
    tags=["questions"],
    responses={404: {"description": "Not found"}}
)


@router.post(
    "/questions/{question_id}/options",
    response_model=OptionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add an option to a question"
)
async def add_option(
    question_id: int,
    option_data: OptionCreate,
    current_user: CurrentUser = Depends(get_staff_user),
    store: QuizStore = Depends(get_quiz_store)
):
    return store.add_option(question_id, option_data, current_user)


@router.delete(
    "/options/{option_id}",
    summary="Delete an option"
)
async def delete_option(
    option_id: int,
    current_user: CurrentUser = Depends(get_staff_user),
    store: QuizStore = Depends(get_quiz_store)
):
    store.delete_option(option_id, current_user)
    return {"message": "Option deleted successfully"}
