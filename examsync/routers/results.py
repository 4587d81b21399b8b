"""Result endpoints: submissions, teacher overrides and dashboard listing."""

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlmodel import Session

from examsync.database import get_session
from examsync.schemas import ExtendTimePayload, Result, SubmitPayload, TeacherActionPayload
from examsync.services import sync_gateway

router = APIRouter()


@router.get("/results", response_model=List[Result])
def list_results(
    code: Optional[str] = Query(None),
    class_name: Optional[str] = Query(None, alias="class"),
    session: Session = Depends(get_session),
):
    return sync_gateway.fetch_all_results(session, exam_code=code, class_name=class_name)


@router.post("/submit-exam", response_model=Result)
def submit_exam(payload: SubmitPayload = Body(...), session: Session = Depends(get_session)):
    """Store an attempt. The score in the response is computed server side."""
    return sync_gateway.submit_result(session, payload)


@router.post("/teacher-action", response_model=Result)
def teacher_action(payload: TeacherActionPayload = Body(...), session: Session = Depends(get_session)):
    return sync_gateway.teacher_action(
        session,
        exam_code=payload.exam_code,
        student_id=payload.student_id,
        action=payload.action,
        teacher_id=payload.teacher_id,
    )


@router.post("/extend-time")
def extend_time(payload: ExtendTimePayload = Body(...), session: Session = Depends(get_session)):
    new_limit = sync_gateway.extend_time(session, payload.exam_code, payload.additional_minutes)
    return {"success": True, "newTimeLimit": new_limit}
