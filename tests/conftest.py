import sys
from pathlib import Path

import pytest
from sqlmodel import Session, SQLModel, create_engine, text


def _ensure_app_on_path():
    repo_root = Path(__file__).resolve().parent.parent
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))
    return repo_root


_ensure_app_on_path()

# ============================================================================
# IN-MEMORY DATABASE FOR TESTING
# ============================================================================

from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from examsync.models import ExamRecord, ResultRecord  # noqa: F401  (registers tables)
from examsync.schemas import Exam, Student
from examsync.services import sync_gateway

# StaticPool: every connection shares the same in-memory database
test_engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@pytest.fixture(scope="session")
def engine():
    """Provide test engine as a fixture."""
    return test_engine


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create all tables in the test database once per session."""
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(autouse=True)
def cleanup_db_between_tests():
    """Clean up test data after each test."""
    yield
    with Session(test_engine) as session:
        session.exec(text("DELETE FROM results"))
        session.exec(text("DELETE FROM exams"))
        session.commit()


# ============================================================================
# FASTAPI APP & TEST CLIENT
# ============================================================================

from examsync.database import get_session
from examsync.main import app


def override_get_session():
    # Must use the same test_engine instance that has the tables
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def client():
    """FastAPI TestClient bound to the in-memory database."""
    app.dependency_overrides[get_session] = override_get_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def asgi_app():
    """The app with the in-memory database, for httpx.ASGITransport based tests."""
    app.dependency_overrides[get_session] = override_get_session
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def session():
    """Provide a database session for tests."""
    with Session(test_engine) as session:
        yield session


# ============================================================================
# ENTITY FIXTURES
# ============================================================================


def make_exam(code="AB12CD", questions=None, **config) -> Exam:
    """Build an Exam from camelCase question dicts and snake_case config overrides."""
    settings = {"time_limit_minutes": 30, "auto_save_interval_seconds": 5}
    settings.update(config)
    return Exam.model_validate(
        {
            "code": code,
            "authorId": "teacher-1",
            "questions": questions or [],
            "config": settings,
            "createdAt": "2026-10-18 08:00",
        }
    )


MC_QUESTIONS = [
    {
        "id": f"mc{i}",
        "questionType": "MULTIPLE_CHOICE",
        "questionText": f"Question {i}?",
        "options": ["Alpha", "Beta", "Gamma", "Delta"],
        "correctAnswer": "Alpha",
    }
    for i in range(1, 4)
]

MIXED_QUESTIONS = MC_QUESTIONS + [
    {
        "id": "cmc",
        "questionType": "COMPLEX_MULTIPLE_CHOICE",
        "questionText": "Pick the vowels",
        "options": ["a", "b", "e"],
        "correctAnswer": "a,e",
    },
    {
        "id": "tf",
        "questionType": "TRUE_FALSE",
        "questionText": "Decide",
        "trueFalseRows": [
            {"text": "The sky is blue", "answer": True},
            {"text": "Fire is cold", "answer": False},
        ],
    },
    {
        "id": "match",
        "questionType": "MATCHING",
        "questionText": "Match the pairs",
        "matchingPairs": [{"left": "X", "right": "1"}, {"left": "Y", "right": "2"}],
    },
    {
        "id": "blank",
        "questionType": "FILL_IN_THE_BLANK",
        "questionText": "Capital of France is ____",
        "correctAnswer": "Paris",
    },
    {"id": "essay", "questionType": "ESSAY", "questionText": "Explain photosynthesis"},
    {"id": "info", "questionType": "INFO", "questionText": "Read the passage below"},
]


@pytest.fixture
def exam_factory():
    """Unsaved exams: ``exam_factory(code, questions, **config)``."""
    return make_exam


@pytest.fixture
def mc_questions():
    return [dict(q) for q in MC_QUESTIONS]


@pytest.fixture
def student():
    return Student(full_name="Alice Tan", class_name="9A", absent_number="7")


@pytest.fixture
def mc_exam():
    """Published exam AB12CD with three multiple choice questions, 30 minutes."""
    exam = make_exam("AB12CD", MC_QUESTIONS)
    with Session(test_engine) as session:
        sync_gateway.upsert_exam(session, exam)
    return exam


@pytest.fixture
def mixed_exam():
    """Published exam covering every question type."""
    exam = make_exam("MIX001", MIXED_QUESTIONS)
    with Session(test_engine) as session:
        sync_gateway.upsert_exam(session, exam)
    return exam


@pytest.fixture
def draft_exam():
    exam = make_exam("DRAFT1", MC_QUESTIONS, publish_state="draft")
    with Session(test_engine) as session:
        sync_gateway.upsert_exam(session, exam)
    return exam


# ============================================================================
# PYTEST HOOKS FOR TEST SUMMARY
# ============================================================================

test_results = {
    "total": 0,
    "passed": 0,
    "failed": 0,
}


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """Hook to capture test result outcomes."""
    outcome = yield
    rep = outcome.get_result()

    if rep.when == "call":
        test_results["total"] += 1
        if rep.passed:
            test_results["passed"] += 1
        elif rep.failed:
            test_results["failed"] += 1


def pytest_sessionfinish(session, exitstatus):
    """Print test summary at the end of the session."""
    total = test_results["total"]
    print("\n")
    print("=" * 70)
    print("TEST SUMMARY")
    print("=" * 70)
    print(f"Total Tests:  {total}")
    print(f"Passed:       {test_results['passed']} / {total}")
    print(f"Failed:       {test_results['failed']}")
    print("=" * 70)
