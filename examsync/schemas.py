"""Pydantic schemas for exams, students and results.

These are the wire/domain shapes; the JSON keys are camelCase (``examCode``,
``timeLimitMinutes`` ...) while Python code uses snake_case attributes.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from examsync.utils import derive_student_id, normalize_exam_code


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    COMPLEX_MULTIPLE_CHOICE = "COMPLEX_MULTIPLE_CHOICE"
    TRUE_FALSE = "TRUE_FALSE"
    MATCHING = "MATCHING"
    ESSAY = "ESSAY"
    FILL_IN_THE_BLANK = "FILL_IN_THE_BLANK"
    INFO = "INFO"


# Never counted in either the numerator or the denominator of a score
UNSCORED_TYPES = {QuestionType.ESSAY, QuestionType.INFO}


class PublishState(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class ResultStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FORCE_SUBMITTED = "force_submitted"


STATUS_CODES = {
    ResultStatus.NOT_STARTED: 0,
    ResultStatus.IN_PROGRESS: 1,
    ResultStatus.FORCE_SUBMITTED: 2,
    ResultStatus.COMPLETED: 3,
}

TERMINAL_STATUSES = {ResultStatus.COMPLETED, ResultStatus.FORCE_SUBMITTED}


class TeacherActionType(str, Enum):
    UNLOCK = "UNLOCK"
    STOP = "STOP"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Exams ---


class TrueFalseRow(CamelModel):
    text: str = ""
    answer: Optional[bool] = None


class MatchingPair(CamelModel):
    left: str = ""
    right: str = ""


class Question(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    question_type: QuestionType
    question_text: str = ""
    options: Optional[List[str]] = None
    correct_answer: Optional[str] = None
    image_url: Optional[str] = None
    option_images: Optional[List[Optional[str]]] = None
    category: Optional[str] = None
    level: Optional[str] = None
    true_false_rows: Optional[List[TrueFalseRow]] = None
    matching_pairs: Optional[List[MatchingPair]] = None

    @property
    def is_scorable(self) -> bool:
        return self.question_type not in UNSCORED_TYPES


class ExamConfig(CamelModel):
    # Authoring tools send many more settings (dates, subject, ...); keep them.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    time_limit_minutes: int = Field(default=60, ge=0)
    shuffle_questions: bool = False
    shuffle_answers: bool = False
    auto_save_interval_seconds: int = Field(default=30, ge=1)
    detect_behavior: bool = False
    continue_with_permission: bool = False
    track_location: bool = False
    publish_state: PublishState = PublishState.PUBLISHED


class Exam(CamelModel):
    code: str = Field(min_length=1)
    author_id: str = "anonymous"
    questions: List[Question] = Field(default_factory=list)
    config: ExamConfig = Field(default_factory=ExamConfig)
    created_at: str = ""

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        code = normalize_exam_code(value)
        if not code:
            raise ValueError("code is required")
        return code

    @field_validator("author_id", mode="before")
    @classmethod
    def _default_author(cls, value):
        if value is None or not str(value).strip():
            return "anonymous"
        return value

    def question(self, question_id: str) -> Optional[Question]:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None


# --- Students & results ---


class Student(CamelModel):
    full_name: str
    class_name: str = Field(default="", alias="class")
    absent_number: str = ""
    student_id: Optional[str] = None

    @model_validator(mode="after")
    def _fill_student_id(self):
        if not (self.student_id or "").strip():
            self.student_id = derive_student_id(self.full_name, self.class_name, self.absent_number)
        else:
            self.student_id = self.student_id.strip()
        return self


class SubmitPayload(CamelModel):
    """Body of ``POST /submit-exam``.

    Score fields a client may send (score, correctAnswers, totalQuestions)
    are not part of this model and are dropped during validation.
    """

    exam_code: str = Field(min_length=1)
    student: Student
    answers: Dict[str, str] = Field(default_factory=dict)
    activity_log: List[str] = Field(default_factory=list)
    status: ResultStatus = ResultStatus.COMPLETED
    completion_time: Optional[int] = Field(default=None, ge=0)
    location: str = ""

    @field_validator("exam_code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        return normalize_exam_code(value)


class TeacherActionPayload(CamelModel):
    exam_code: str = Field(min_length=1)
    student_id: str = Field(min_length=1)
    action: TeacherActionType
    teacher_id: str = "teacher"


class ExtendTimePayload(CamelModel):
    exam_code: str = Field(min_length=1)
    additional_minutes: int = Field(gt=0)


class Result(CamelModel):
    exam_code: str
    student: Student
    answers: Dict[str, str] = Field(default_factory=dict)
    # None while the attempt is in progress (not revealed to the student)
    score: Optional[int] = None
    correct_answers: Optional[int] = None
    total_questions: int = 0
    status: ResultStatus = ResultStatus.NOT_STARTED
    status_code: int = 0
    activity_log: List[str] = Field(default_factory=list)
    timestamp: int = 0
    completion_time: Optional[int] = None
    location: str = ""


class ProgressSnapshot(BaseModel):
    """Locally persisted in-progress attempt: ``{"answers": {...}, "logs": [...]}``."""

    answers: Dict[str, str] = Field(default_factory=dict)
    logs: List[str] = Field(default_factory=list)
