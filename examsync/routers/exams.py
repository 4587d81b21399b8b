"""Exam endpoints: student projection, teacher listing and upsert."""

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlmodel import Session

from examsync.database import get_session
from examsync.schemas import Exam
from examsync.services import sync_gateway

router = APIRouter()


@router.get("")
def get_exams(
    code: Optional[str] = Query(None),
    public: Optional[str] = Query(None),
    student_id: Optional[str] = Query(None, alias="studentId"),
    session: Session = Depends(get_session),
):
    """``?code=X&public=1`` returns the sanitized exam for a student.

    Without those parameters the full listing (answer keys included) is
    returned; that view belongs to the teacher dashboard.
    """
    if code and public is not None:
        return sync_gateway.fetch_exam_for_student(session, code, student_id)
    return [exam.model_dump(by_alias=True, mode="json") for exam in sync_gateway.list_exams(session)]


@router.post("")
def save_exam(exam: Exam = Body(...), session: Session = Depends(get_session)):
    sync_gateway.upsert_exam(session, exam)
    return {"success": True, "message": "Exam saved successfully"}
