"""Server-authoritative operations behind the HTTP API.

The gateway is the trust boundary between students and stored results:

* student-facing exam projections never carry answer keys;
* scores are always recomputed here from the canonical exam, whatever
  the client sent;
* teacher actions only touch status, status code, log and timestamp.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlmodel import Session

from examsync.errors import (
    AttemptAlreadyCompleted,
    AttemptLocked,
    ExamNotFound,
    ExamNotPublished,
    StudentResultNotFound,
)
from examsync.models import ExamRecord, ResultRecord
from examsync.schemas import (
    STATUS_CODES,
    TERMINAL_STATUSES,
    Exam,
    PublishState,
    Result,
    ResultStatus,
    Student,
    SubmitPayload,
    TeacherActionType,
)
from examsync.services import repository
from examsync.services.grading import grade
from examsync.utils import (
    clean_text,
    merge_activity_log,
    normalize_exam_code,
    now_ms,
    stamp_log_entry,
)

logger = logging.getLogger(__name__)

TEACHER_ACTIONS = {
    TeacherActionType.UNLOCK: (ResultStatus.IN_PROGRESS, "allowed the student to continue the exam"),
    TeacherActionType.STOP: (ResultStatus.COMPLETED, "stopped the exam"),
}


# --- Conversions ---


def record_to_exam(record: ExamRecord) -> Exam:
    return Exam.model_validate(
        {
            "code": record.code,
            "authorId": record.author_id,
            "questions": record.questions or [],
            "config": record.config or {},
            "createdAt": record.created_at or "",
        }
    )


def record_to_result(record: ResultRecord, hide_score: bool = False) -> Result:
    status = ResultStatus(record.status)
    return Result(
        exam_code=record.exam_code,
        student=Student(
            student_id=record.student_id,
            full_name=record.student_name,
            class_name=record.student_class,
            absent_number=record.student_absent_number,
        ),
        answers=dict(record.answers or {}),
        score=None if hide_score else record.score,
        correct_answers=None if hide_score else record.correct_answers,
        total_questions=record.total_questions,
        status=status,
        status_code=record.status_code,
        activity_log=list(record.activity_log or []),
        timestamp=record.timestamp,
        completion_time=record.completion_time,
        location=record.location,
    )


def sanitize_exam(exam: Exam) -> dict:
    """Student-facing copy of ``exam`` with every answer key removed.

    ``correctAnswer`` is dropped, TRUE_FALSE rows keep their text with a
    null answer and MATCHING pairs keep their left side with an empty right
    side. All other fields pass through untouched.
    """
    data = exam.model_dump(by_alias=True, mode="json")
    for question in data["questions"]:
        question.pop("correctAnswer", None)
        if question.get("trueFalseRows") is not None:
            question["trueFalseRows"] = [
                {"text": row.get("text", ""), "answer": None} for row in question["trueFalseRows"]
            ]
        if question.get("matchingPairs") is not None:
            question["matchingPairs"] = [
                {"left": pair.get("left", ""), "right": ""} for pair in question["matchingPairs"]
            ]
    return data


# --- Exams ---


def get_exam(session: Session, code: str) -> Exam:
    record = repository.get_exam(session, normalize_exam_code(code))
    if not record:
        raise ExamNotFound()
    return record_to_exam(record)


def list_exams(session: Session) -> List[Exam]:
    return [record_to_exam(record) for record in repository.list_exams(session)]


def upsert_exam(session: Session, exam: Exam) -> Exam:
    """Create or replace the exam stored under ``exam.code``."""
    created_at = exam.created_at or datetime.now().strftime("%Y-%m-%d %H:%M")
    data = exam.model_dump(by_alias=True, mode="json")
    record = repository.upsert_exam(
        session,
        {
            "code": exam.code,
            "author_id": exam.author_id,
            "questions": data["questions"],
            "config": data["config"],
            "created_at": created_at,
        },
    )
    logger.info("Exam %s saved by %s (%d questions)", exam.code, exam.author_id, len(exam.questions))
    return record_to_exam(record)


def fetch_exam_for_student(session: Session, code: str, student_id: Optional[str] = None) -> dict:
    """Return the sanitized exam a student may start.

    Drafts are refused. When ``student_id`` is given, a locked attempt
    (waiting for a teacher) or an already completed one is refused too.
    """
    exam = get_exam(session, code)
    if exam.config.publish_state is PublishState.DRAFT:
        raise ExamNotPublished()

    if student_id:
        existing = repository.get_result(session, exam.code, student_id.strip())
        if existing is not None:
            if existing.status == ResultStatus.FORCE_SUBMITTED.value:
                raise AttemptLocked()
            if existing.status == ResultStatus.COMPLETED.value:
                raise AttemptAlreadyCompleted()

    return sanitize_exam(exam)


def extend_time(session: Session, exam_code: str, additional_minutes: int) -> int:
    """Add minutes to an exam's time limit and return the new limit."""
    record = repository.get_exam(session, normalize_exam_code(exam_code), for_update=True)
    if not record:
        raise ExamNotFound()
    config = dict(record.config or {})
    new_limit = int(config.get("timeLimitMinutes") or 60) + additional_minutes
    # Reassign so the JSON column is flagged as modified
    record.config = {**config, "timeLimitMinutes": new_limit}
    repository.save(session, record)
    logger.info("Exam %s extended by %d minutes (now %d)", record.code, additional_minutes, new_limit)
    return new_limit


# --- Results ---


def submit_result(session: Session, payload: SubmitPayload) -> Result:
    """Grade and store an attempt, returning the authoritative result.

    The score is always recomputed from the stored exam. A repeated
    submission for the same student replaces answers and score; the
    activity log is merged so entries are only ever appended.
    """
    exam = get_exam(session, payload.exam_code)
    student = payload.student
    status = payload.status

    # Locked so a teacher action committed meanwhile is merged, not overwritten
    existing = repository.get_result(session, exam.code, student.student_id, for_update=True)
    if (
        existing is not None
        and status is ResultStatus.IN_PROGRESS
        and ResultStatus(existing.status) in TERMINAL_STATUSES
    ):
        # A late progress ping must not reopen a finished or locked attempt
        logger.info(
            "Ignoring in_progress update for %s/%s (already %s)",
            exam.code,
            student.student_id,
            existing.status,
        )
        return record_to_result(existing, hide_score=True)

    grading = grade(exam, payload.answers)
    incoming_log = [clean_text(entry) for entry in payload.activity_log]
    activity_log = merge_activity_log(existing.activity_log if existing else [], incoming_log)

    record = repository.upsert_result(
        session,
        {
            "exam_code": exam.code,
            "student_id": student.student_id,
            "student_name": clean_text(student.full_name),
            "student_class": clean_text(student.class_name),
            "student_absent_number": clean_text(student.absent_number),
            "answers": dict(payload.answers),
            "score": grading.score,
            "correct_answers": grading.correct_count,
            "total_questions": grading.total_questions,
            "status": status.value,
            "status_code": STATUS_CODES[status],
            "activity_log": activity_log,
            "timestamp": now_ms(),
            "completion_time": payload.completion_time,
            "location": clean_text(payload.location),
        },
    )
    logger.info(
        "Result %s/%s stored as %s (score %d, %d/%d scorable)",
        exam.code,
        student.student_id,
        status.value,
        grading.score,
        grading.correct_count,
        grading.scorable,
    )
    return record_to_result(record, hide_score=status is ResultStatus.IN_PROGRESS)


def teacher_action(
    session: Session,
    exam_code: str,
    student_id: str,
    action: TeacherActionType,
    teacher_id: str = "teacher",
) -> Result:
    """Apply a teacher override to an existing result.

    Only ``status``, ``status_code``, ``activity_log`` (one appended line)
    and ``timestamp`` change; answers and score are left alone.
    """
    code = normalize_exam_code(exam_code)
    record = repository.get_result(session, code, student_id.strip(), for_update=True)
    if record is None:
        raise StudentResultNotFound()

    new_status, description = TEACHER_ACTIONS[action]
    teacher = clean_text(teacher_id) or "teacher"
    record.status = new_status.value
    record.status_code = STATUS_CODES[new_status]
    record.activity_log = [
        *(record.activity_log or []),
        stamp_log_entry(f"[Teacher {teacher}] {description}"),
    ]
    record.timestamp = now_ms()
    repository.save(session, record)
    logger.info("Teacher %s applied %s to %s/%s", teacher, action.value, code, record.student_id)
    return record_to_result(record)


def fetch_all_results(
    session: Session, exam_code: Optional[str] = None, class_name: Optional[str] = None
) -> List[Result]:
    """All results, newest first, optionally narrowed to one exam or class."""
    code = normalize_exam_code(exam_code) if exam_code else None
    if class_name == "ALL":
        class_name = None
    return [record_to_result(r) for r in repository.list_results(session, code, class_name)]
