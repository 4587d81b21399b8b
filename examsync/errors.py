"""Error taxonomy shared by the server and the student client.

Every error carries a stable ``code`` and the HTTP status the API answers
with. ``to_dict`` produces the wire body ``{"error": ..., "details": ...}``.
"""

from typing import Optional


class ExamSyncError(Exception):
    code = "ERROR"
    status_code = 500
    default_message = "Server Error"

    def __init__(self, message: Optional[str] = None, details: Optional[str] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ExamNotFound(ExamSyncError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Exam not found"


class ExamNotPublished(ExamSyncError):
    code = "DRAFT_NOT_PUBLISHED"
    status_code = 403
    default_message = "Exam is not published yet"


class ValidationFailed(ExamSyncError):
    code = "VALIDATION"
    status_code = 400
    default_message = "Invalid request"


class StudentResultNotFound(ExamSyncError):
    code = "STUDENT_RESULT_NOT_FOUND"
    status_code = 404
    default_message = "Result not found"


class AttemptLocked(ExamSyncError):
    code = "ATTEMPT_LOCKED"
    status_code = 423
    default_message = "Attempt is locked until a teacher allows it to continue"


class AttemptAlreadyCompleted(ExamSyncError):
    code = "ALREADY_COMPLETED"
    status_code = 409
    default_message = "Attempt has already been completed"


class PersistenceFailure(ExamSyncError):
    code = "PERSISTENCE_FAILURE"
    status_code = 500
    default_message = "Server Error"


class NetworkFailure(ExamSyncError):
    """Raised on the client when the gateway cannot be reached."""

    code = "NETWORK_FAILURE"
    status_code = 503
    default_message = "Could not reach the exam server"


class SessionStateError(ExamSyncError):
    """Raised on the client when an operation is not valid in the current session state."""

    code = "SESSION_STATE"
    status_code = 409
    default_message = "Operation not allowed in the current session state"


# Status code -> error class, used by the client to rebuild server errors.
# 404 is ambiguous (exam vs. result) and is resolved per call.
ERRORS_BY_STATUS = {
    400: ValidationFailed,
    403: ExamNotPublished,
    409: AttemptAlreadyCompleted,
    422: ValidationFailed,
    423: AttemptLocked,
}
