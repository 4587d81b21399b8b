"""SQLModel tables for exams and results."""

from typing import Dict, List, Optional

from sqlalchemy import JSON, BigInteger
from sqlmodel import Field, SQLModel


class ExamRecord(SQLModel, table=True):
    """Stored exam definition, keyed by its (upper-cased) code.

    ``questions`` and ``config`` hold the camelCase JSON produced by
    ``schemas.Exam``, answer keys included. Never send a record to a student
    without going through the sanitized projection.
    """

    __tablename__ = "exams"

    code: str = Field(primary_key=True)
    author_id: str = Field(default="anonymous")
    questions: List[dict] = Field(default_factory=list, sa_type=JSON)
    config: dict = Field(default_factory=dict, sa_type=JSON)
    created_at: str = Field(default="")


class ResultRecord(SQLModel, table=True):
    """One row per (exam_code, student_id); written only through upserts."""

    __tablename__ = "results"

    exam_code: str = Field(primary_key=True)
    student_id: str = Field(primary_key=True)
    student_name: str = Field(default="")
    student_class: str = Field(default="")
    student_absent_number: str = Field(default="")
    answers: Dict[str, str] = Field(default_factory=dict, sa_type=JSON)
    score: int = Field(default=0)
    correct_answers: int = Field(default=0)
    total_questions: int = Field(default=0)
    status: str = Field(default="not_started")  # not_started | in_progress | completed | force_submitted
    status_code: int = Field(default=0)
    activity_log: List[str] = Field(default_factory=list, sa_type=JSON)
    timestamp: int = Field(default=0, sa_type=BigInteger)  # epoch milliseconds
    completion_time: Optional[int] = None  # seconds spent on the attempt
    location: str = Field(default="")
