from ..errors import AccessDeniedError
from ..models.schemas import CurrentUser, UserRole
from .catalog import CourseCatalog


def require_instructor(catalog: CourseCatalog, user: CurrentUser, course_id: str) -> None:
    """Teachers assigned to the course, or any admin"""
    if user.role == UserRole.ADMIN:
        return
    if user.role != UserRole.TEACHER or not catalog.is_instructor(user.id, course_id):
        raise AccessDeniedError("You are not an instructor of this course")


def require_learner(catalog: CourseCatalog, user: CurrentUser, course_id: str) -> None:
    if user.role != UserRole.STUDENT:
        raise AccessDeniedError("Only students can take quizzes")
    if not catalog.is_enrolled(user.id, course_id):
        raise AccessDeniedError("You are not enrolled in this course")
