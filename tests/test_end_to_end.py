"""Student attempts driven through the HTTP client against the real app."""

import asyncio

import httpx
import pytest

from examsync.client.gateway_client import SyncGatewayClient
from examsync.client.progress_store import FileProgressStore
from examsync.client.session import LocationProvider, ManualVisibilitySignal, SessionState, begin_attempt
from examsync.errors import (
    AttemptAlreadyCompleted,
    AttemptLocked,
    ExamNotFound,
    ExamNotPublished,
    NetworkFailure,
    PersistenceFailure,
    StudentResultNotFound,
)
from examsync.schemas import ResultStatus, TeacherActionType
from examsync.services import sync_gateway


def _gateway(asgi_app):
    return SyncGatewayClient(base_url="http://testserver", transport=httpx.ASGITransport(app=asgi_app))


class TestStudentAttempt:
    def test_full_attempt(self, asgi_app, mc_exam, student, tmp_path):
        store = FileProgressStore(tmp_path)

        async def scenario():
            gateway = _gateway(asgi_app)
            # Given a student who starts AB12CD with the full 30 minutes
            controller = await begin_attempt(gateway, store, "ab12cd", student)
            exam_seen = controller.exam
            await controller.wait_settled()

            # When they answer everything correctly and submit after 10 minutes
            for question in controller.questions:
                controller.set_answer(question.id, "Alpha")
            controller.remaining_seconds = 20 * 60
            result = await controller.submit(confirm=True)
            results = await gateway.fetch_results("AB12CD")
            await gateway.aclose()
            return controller, exam_seen, result, results

        controller, exam_seen, result, results = asyncio.run(scenario())

        # Then the attempt is completed and graded on the server
        assert all(q.correct_answer is None for q in exam_seen.questions)
        assert controller.state is SessionState.COMPLETED
        assert result.status is ResultStatus.COMPLETED
        assert result.score == 100
        assert result.correct_answers == 3
        assert result.completion_time == 600
        assert len(results) == 1
        assert results[0].student.student_id == "Alice Tan-9A-7"
        assert list(tmp_path.iterdir()) == []

    def test_completed_student_cannot_reenter(self, asgi_app, mc_exam, student, tmp_path):
        store = FileProgressStore(tmp_path)

        async def scenario():
            gateway = _gateway(asgi_app)
            controller = await begin_attempt(gateway, store, "AB12CD", student)
            await controller.wait_settled()
            await controller.submit(confirm=True)
            try:
                with pytest.raises(AttemptAlreadyCompleted):
                    await begin_attempt(gateway, store, "AB12CD", student)
            finally:
                await gateway.aclose()

        asyncio.run(scenario())

    def test_tracked_location_is_stored(self, asgi_app, exam_factory, mc_questions, session, student, tmp_path):
        sync_gateway.upsert_exam(session, exam_factory("GEO010", mc_questions, track_location=True))

        class FixedLocation(LocationProvider):
            async def current_location(self):
                return "1.3521,103.8198"

        async def scenario():
            gateway = _gateway(asgi_app)
            try:
                controller = await begin_attempt(
                    gateway, FileProgressStore(tmp_path), "GEO010", student, location=FixedLocation()
                )
                await controller.wait_settled()
                await controller.submit(confirm=True)
                return await gateway.fetch_results("GEO010")
            finally:
                await gateway.aclose()

        results = asyncio.run(scenario())

        assert results[0].status is ResultStatus.COMPLETED
        assert results[0].location == "1.3521,103.8198"

    def test_lock_then_teacher_unlock(self, asgi_app, exam_factory, mc_questions, session, student, tmp_path):
        exam = exam_factory("LOCK02", mc_questions, detect_behavior=True, continue_with_permission=True)
        sync_gateway.upsert_exam(session, exam)
        store = FileProgressStore(tmp_path)
        visibility = ManualVisibilitySignal()

        async def scenario():
            gateway = _gateway(asgi_app)
            try:
                controller = await begin_attempt(gateway, store, "LOCK02", student, visibility=visibility)
                await controller.wait_settled()
                controller.set_answer("mc1", "Alpha")
                visibility.set_hidden(True)
                locked = await controller.wait_settled()

                # While locked, the student cannot get back in
                with pytest.raises(AttemptLocked):
                    await begin_attempt(gateway, store, "LOCK02", student)

                unlocked = await gateway.teacher_action(
                    "LOCK02", student.student_id, TeacherActionType.UNLOCK, teacher_id="Ms. K"
                )

                # After the unlock they resume with their saved answers
                resumed = await begin_attempt(gateway, store, "LOCK02", student)
                answers = dict(resumed.answers)
                await resumed.wait_settled()
                await resumed.close()
                return locked, unlocked, resumed, answers
            finally:
                await gateway.aclose()

        locked, unlocked, resumed, answers = asyncio.run(scenario())

        assert locked.status is ResultStatus.FORCE_SUBMITTED
        assert locked.status_code == 2
        assert unlocked.status is ResultStatus.IN_PROGRESS
        assert unlocked.answers == {"mc1": "Alpha"}
        assert resumed.resumed is True
        assert answers == {"mc1": "Alpha"}


class TestClientErrors:
    def test_error_responses_map_to_exceptions(self, asgi_app, draft_exam):
        async def scenario():
            gateway = _gateway(asgi_app)
            try:
                with pytest.raises(ExamNotFound):
                    await gateway.fetch_exam("NOPE00")
                with pytest.raises(ExamNotPublished):
                    await gateway.fetch_exam("DRAFT1")
                with pytest.raises(StudentResultNotFound):
                    await gateway.teacher_action("DRAFT1", "ghost", TeacherActionType.STOP)
            finally:
                await gateway.aclose()

        asyncio.run(scenario())

    def test_unreachable_server_is_network_failure(self, student, tmp_path):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        async def scenario():
            async with httpx.AsyncClient(
                transport=httpx.MockTransport(refuse), base_url="http://exam.invalid"
            ) as http_client:
                gateway = SyncGatewayClient(client=http_client)
                with pytest.raises(NetworkFailure):
                    await begin_attempt(gateway, FileProgressStore(tmp_path), "AB12CD", student)

        asyncio.run(scenario())
        # Nothing local is created for an attempt that never started
        assert list(tmp_path.iterdir()) == []

    def test_server_error_is_persistence_failure(self):
        def broken(request):
            return httpx.Response(500, json={"error": "Server Error", "details": "disk full"})

        async def scenario():
            gateway = SyncGatewayClient(base_url="http://exam.test", transport=httpx.MockTransport(broken))
            try:
                with pytest.raises(PersistenceFailure) as excinfo:
                    await gateway.fetch_results()
            finally:
                await gateway.aclose()
            return excinfo.value

        error = asyncio.run(scenario())
        assert error.details == "disk full"
