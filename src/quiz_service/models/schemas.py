from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Any, Dict, List, Optional
from datetime import datetime
from enum import Enum

from ..utils.clock import to_naive_utc
from .answers import QuestionType, SINGLE_CORRECT_TYPES


class UserRole(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


class CurrentUser(BaseModel):
    id: str
    role: UserRole

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.TEACHER, UserRole.ADMIN)


# ========== AUTHORING ==========

class OptionCreate(BaseModel):
    option_text: str = Field(..., min_length=1, max_length=500)
    is_correct: bool = False
    sort_order: Optional[int] = None


class QuestionCreate(BaseModel):
    question: str = Field(..., min_length=1)
    question_type: QuestionType
    points: float = Field(1, gt=0)
    sort_order: Optional[int] = None
    require_justification: bool = False
    file_url: Optional[str] = Field(None, max_length=500)
    options: List[OptionCreate] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_options(self):
        correct = sum(1 for o in self.options if o.is_correct)
        if self.question_type is QuestionType.TEXT and self.options:
            raise ValueError("text questions have no options")
        if self.question_type is QuestionType.TRUE_FALSE and len(self.options) > 2:
            raise ValueError("true_false questions have exactly two options")
        if self.question_type in SINGLE_CORRECT_TYPES and correct > 1:
            raise ValueError(f"{self.question_type.value} questions have exactly one correct option")
        if self.require_justification and self.question_type is not QuestionType.TRUE_FALSE:
            raise ValueError("require_justification only applies to true_false questions")
        return self


class QuizBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    passing_score: float = Field(70, ge=0, le=100)
    time_limit_minutes: Optional[int] = Field(None, gt=0)
    start_datetime: Optional[datetime] = None
    end_datetime: Optional[datetime] = None
    results_publish_datetime: Optional[datetime] = None
    is_required: bool = False

    @field_validator("start_datetime", "end_datetime", "results_publish_datetime")
    @classmethod
    def normalize_datetime(cls, v):
        return to_naive_utc(v)


class QuizCreate(QuizBase):
    course_id: str = Field(..., min_length=1)
    questions: List[QuestionCreate] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_window(self):
        if self.start_datetime and self.end_datetime and self.end_datetime < self.start_datetime:
            raise ValueError("end_datetime must be after start_datetime")
        return self


class QuizUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    passing_score: Optional[float] = Field(None, ge=0, le=100)
    time_limit_minutes: Optional[int] = Field(None, gt=0)
    start_datetime: Optional[datetime] = None
    end_datetime: Optional[datetime] = None
    results_publish_datetime: Optional[datetime] = None
    is_required: Optional[bool] = None

    @field_validator("start_datetime", "end_datetime", "results_publish_datetime")
    @classmethod
    def normalize_datetime(cls, v):
        return to_naive_utc(v)


class OptionResponse(BaseModel):
    id: int
    option_text: str
    is_correct: bool
    sort_order: int

    model_config = ConfigDict(from_attributes=True)


class QuestionResponse(BaseModel):
    id: int
    question: str
    question_type: QuestionType
    points: float
    sort_order: int
    require_justification: bool
    file_url: Optional[str] = None
    options: List[OptionResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class QuizResponse(QuizBase):
    id: int
    course_id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    max_score: float = 0
    questions: List[QuestionResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class QuizValidationResponse(BaseModel):
    quiz_id: int
    valid: bool
    problems: List[str]


# ========== TAKING ==========

class OptionForTaking(BaseModel):
    id: int
    option_text: str
    sort_order: int

    model_config = ConfigDict(from_attributes=True)


class QuestionForTaking(BaseModel):
    id: int
    question: str
    question_type: QuestionType
    points: float
    sort_order: int
    require_justification: bool
    file_url: Optional[str] = None
    options: List[OptionForTaking] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class QuizForTaking(BaseModel):
    id: int
    course_id: str
    title: str
    description: Optional[str] = None
    passing_score: float
    time_limit_minutes: Optional[int] = None
    start_datetime: Optional[datetime] = None
    end_datetime: Optional[datetime] = None
    results_publish_datetime: Optional[datetime] = None
    is_required: bool

    model_config = ConfigDict(from_attributes=True)


class TakeQuizResponse(BaseModel):
    quiz: QuizForTaking
    questions: List[QuestionForTaking]


class SessionResponse(BaseModel):
    quiz_id: int
    started_at: datetime
    deadline: Optional[datetime] = None
    remaining_seconds: Optional[int] = None
    answers: Dict[str, Any] = Field(default_factory=dict)


class DraftRequest(BaseModel):
    answers: Dict[str, Any] = Field(default_factory=dict)


class SubmissionRequest(BaseModel):
    answers: Dict[str, Any]
    time_taken_ms: Optional[int] = Field(None, ge=0)
    # Set by the session timer when the deadline forced the submission
    auto_submitted: bool = False


class ScoreSummary(BaseModel):
    score: float
    max_score: float
    auto_score: float
    percentage: float
    passed: bool
    needs_manual_grading: bool
    completed_at: datetime
    time_taken_ms: Optional[int] = None


class SubmissionResponse(BaseModel):
    attempt_id: int
    results_published: bool
    results_publish_datetime: Optional[datetime] = None
    score_summary: Optional[ScoreSummary] = None


class QuestionReview(BaseModel):
    question_id: int
    question: str
    question_type: QuestionType
    points: float
    options: List[OptionResponse] = Field(default_factory=list)
    learner_answer: Any = None
    correct_option_ids: List[int] = Field(default_factory=list)
    is_correct: Optional[bool] = None
    points_awarded: Optional[float] = None
    pending: bool = False
    feedback: Optional[str] = None


class ResultResponse(BaseModel):
    quiz_id: int
    attempt_id: int
    quiz_title: str
    passing_score: float
    summary: ScoreSummary
    results_published: bool
    results_publish_datetime: Optional[datetime] = None
    detail: Optional[List[QuestionReview]] = None


# ========== GRADING ==========

class PendingGradingItem(BaseModel):
    attempt_id: int
    quiz_id: int
    course_id: str
    learner_id: str
    question_id: int
    # None when the question was deleted after the attempt was stored
    question: Optional[str] = None
    question_type: Optional[QuestionType] = None
    points: float
    answer: Any = None
    completed_at: datetime


class GradeRequest(BaseModel):
    question_id: int
    points_awarded: float = Field(..., ge=0)
    feedback: Optional[str] = None


class GradeResponse(BaseModel):
    attempt_id: int
    question_id: int
    updated_score: float
    max_score: float
    percentage: float
    passed: bool
    still_pending: bool


class AttemptSummary(BaseModel):
    attempt_id: int
    learner_id: str
    score: float
    max_score: float
    percentage: float
    passed: bool
    needs_manual_grading: bool
    completed_at: datetime
    time_taken_ms: Optional[int] = None


class QuizStats(BaseModel):
    attempts_count: int
    average_percentage: float
    pass_rate: float
    pending_manual_count: int


class QuizResultsResponse(BaseModel):
    quiz_id: int
    quiz_title: str
    attempts: List[AttemptSummary]
    stats: QuizStats


class AttemptDetailResponse(BaseModel):
    attempt_id: int
    quiz_id: int
    learner_id: str
    summary: ScoreSummary
    pending_question_ids: List[int]
    detail: List[QuestionReview]
