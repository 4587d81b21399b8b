"""HTTP client for the sync gateway, used by the student session.

Transport problems (offline, DNS, timeouts) become ``NetworkFailure``;
error responses are turned back into the matching ``ExamSyncError``
subclass so callers can handle both sides the same way.
"""

import logging
from typing import List, Optional, Type

import httpx

from examsync.config import API_URL, REQUEST_TIMEOUT_SECONDS
from examsync.errors import (
    ERRORS_BY_STATUS,
    ExamNotFound,
    ExamSyncError,
    NetworkFailure,
    PersistenceFailure,
    StudentResultNotFound,
)
from examsync.schemas import Exam, Result, SubmitPayload, TeacherActionType

logger = logging.getLogger(__name__)


def _error_from_response(response: httpx.Response, not_found: Type[ExamSyncError]) -> ExamSyncError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = body.get("error")
    details = body.get("details")

    if response.status_code == 404:
        error_class = not_found
    elif response.status_code >= 500:
        error_class = PersistenceFailure
    else:
        error_class = ERRORS_BY_STATUS.get(response.status_code, ExamSyncError)
    return error_class(message, details)


class SyncGatewayClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url or API_URL, timeout=timeout, transport=transport
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def _request(self, method: str, url: str, not_found=ExamNotFound, **kwargs):
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise NetworkFailure(details=str(exc)) from exc
        if response.is_success:
            return response.json()
        raise _error_from_response(response, not_found)

    async def fetch_exam(self, code: str, student_id: Optional[str] = None) -> Exam:
        """Fetch the sanitized exam a student is about to take."""
        params = {"code": code, "public": "1"}
        if student_id:
            params["studentId"] = student_id
        data = await self._request("GET", "/exams", params=params)
        return Exam.model_validate(data)

    async def submit_result(self, payload: SubmitPayload) -> Result:
        data = await self._request(
            "POST", "/submit-exam", json=payload.model_dump(by_alias=True, mode="json")
        )
        return Result.model_validate(data)

    async def teacher_action(
        self, exam_code: str, student_id: str, action: TeacherActionType, teacher_id: str = "teacher"
    ) -> Result:
        body = {
            "examCode": exam_code,
            "studentId": student_id,
            "action": TeacherActionType(action).value,
            "teacherId": teacher_id,
        }
        data = await self._request("POST", "/teacher-action", not_found=StudentResultNotFound, json=body)
        return Result.model_validate(data)

    async def fetch_results(self, exam_code: Optional[str] = None) -> List[Result]:
        params = {"code": exam_code} if exam_code else None
        data = await self._request("GET", "/results", params=params)
        return [Result.model_validate(item) for item in data]
