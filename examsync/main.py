"""FastAPI entrypoint for the examsync gateway."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from examsync.database import create_db_and_tables
from examsync.errors import ExamSyncError
from examsync.logging_config import configure_logging
from examsync.routers import exams as exams_router_module
from examsync.routers import results as results_router_module

logger = logging.getLogger(__name__)

app = FastAPI(title="examsync")


@app.exception_handler(ExamSyncError)
async def examsync_exception_handler(request: Request, exc: ExamSyncError):
    """Render domain errors as ``{"error": ..., "details": ...}``."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.details)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Missing or malformed request fields are a 400, not FastAPI's default 422."""
    messages = []
    for error in exc.errors():
        field_path = [str(part) for part in error.get("loc", []) if part != "body"]
        field_name = ".".join(field_path) or "body"
        if error.get("type") == "missing":
            messages.append(f"{field_name} is required")
        else:
            messages.append(f"{field_name}: {error.get('msg', 'Invalid input')}")

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request", "details": "; ".join(messages)},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Keep routing errors (404/405) in the same JSON error shape."""
    if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        message = "Method not allowed"
    elif exc.status_code == status.HTTP_404_NOT_FOUND:
        message = "Not found"
    else:
        message = str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": message}, headers=exc.headers)


# Routers
app.include_router(exams_router_module.router, prefix="/exams", tags=["exams"])
app.include_router(results_router_module.router, tags=["results"])


@app.on_event("startup")
def on_startup():
    """Configure logging and initialize the database schema."""
    configure_logging()
    create_db_and_tables()
    logger.info("examsync gateway ready")
