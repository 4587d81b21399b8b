"""Client-side state machine driving one timed exam attempt.

States::

    INITIALIZING -> ACTIVE -> SUBMITTING -> COMPLETED
                      |
                      +-> LOCKED   (anti-cheat, absorbing)

The controller runs on a single asyncio loop. The countdown task, the
autosave task (with its best-effort progress sync) and the visibility
subscription share the answer map and the remaining time. Every terminal
transition cancels them before it writes the snapshot or talks to the
server, so a stale autosave can never overwrite the final state.

Only the terminal submission needs the network. When it fails the local
snapshot is kept and the submission can be retried.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from examsync.errors import ExamSyncError, SessionStateError
from examsync.schemas import Exam, ProgressSnapshot, Result, ResultStatus, Student, SubmitPayload
from examsync.client.ordering import ordered_questions
from examsync.utils import stamp_log_entry

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    INITIALIZING = "initializing"
    ACTIVE = "active"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    LOCKED = "locked"


class VisibilitySignal:
    """Port for the host's "window hidden / app backgrounded" notifications.

    ``subscribe`` registers ``callback(hidden)`` and returns a function that
    removes the subscription.
    """

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        raise NotImplementedError


class ManualVisibilitySignal(VisibilitySignal):
    """Visibility source driven by calling ``set_hidden``; used by tests and embedding hosts."""

    def __init__(self):
        self._listeners: List[Callable[[bool], None]] = []

    def subscribe(self, callback):
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def set_hidden(self, hidden: bool = True) -> None:
        for listener in list(self._listeners):
            listener(hidden)

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)


LOCATION_TIMEOUT_SECONDS = 5.0


class LocationUnavailable(Exception):
    """The host could not determine the device position."""


class LocationProvider:
    """Port for the host's geolocation.

    ``current_location`` returns ``"latitude,longitude"`` or raises
    ``LocationUnavailable``.
    """

    async def current_location(self) -> str:
        raise NotImplementedError


class SessionController:
    def __init__(
        self,
        exam: Exam,
        student: Student,
        gateway,
        store,
        visibility: Optional[VisibilitySignal] = None,
        remaining_seconds: Optional[int] = None,
        tick_seconds: float = 1.0,
        announce_start: bool = True,
        location: Optional[LocationProvider] = None,
    ):
        self.exam = exam
        self.student = student
        self.gateway = gateway
        self.store = store
        self.visibility = visibility
        self.location_provider = location
        self.tick_seconds = tick_seconds
        self.announce_start = announce_start

        self.state = SessionState.INITIALIZING
        self.answers: Dict[str, str] = {}
        self.activity_log: List[str] = []
        self.time_limit_seconds = exam.config.time_limit_minutes * 60
        self.remaining_seconds = (
            self.time_limit_seconds if remaining_seconds is None else max(0, int(remaining_seconds))
        )
        self.questions = ordered_questions(exam, student.student_id)
        self.resumed = False
        self.result: Optional[Result] = None
        self.last_error: Optional[ExamSyncError] = None
        self.location = ""

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._countdown_task: Optional[asyncio.Task] = None
        self._autosave_task: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._announce_task: Optional[asyncio.Task] = None
        self._sync_task: Optional[asyncio.Task] = None
        self._terminal_task: Optional[asyncio.Task] = None
        self._terminal_lock = asyncio.Lock()
        self._pending: Optional[SubmitPayload] = None
        self._delivered = False

    # --- Properties ---

    @property
    def exam_code(self) -> str:
        return self.exam.code

    @property
    def student_id(self) -> str:
        return self.student.student_id

    @property
    def anti_cheat_armed(self) -> bool:
        config = self.exam.config
        return bool(config.detect_behavior and config.continue_with_permission)

    @property
    def has_pending_submission(self) -> bool:
        return self._pending is not None

    # --- Lifecycle ---

    async def start(self) -> None:
        """Enter the attempt, resuming a local snapshot when one exists."""
        self._require_state(SessionState.INITIALIZING)
        self._loop = asyncio.get_running_loop()

        snapshot = self.store.load(self.exam_code, self.student_id)
        if snapshot is not None:
            self.answers = dict(snapshot.answers)
            self.activity_log = list(snapshot.logs)
            self.resumed = True
            self._log("Resumed the exam")
        else:
            self._log("Started the exam")

        self.state = SessionState.ACTIVE
        self._schedule()
        logger.info(
            "Session %s/%s active (%s, %ds left)",
            self.exam_code,
            self.student_id,
            "resumed" if self.resumed else "new",
            self.remaining_seconds,
        )
        if self.announce_start:
            self._announce_task = self._loop.create_task(self._sync_progress("Start notification"))

    def set_answer(self, question_id: str, encoded_answer: str) -> None:
        """Record one question's encoded answer. Nothing is graded or sent here."""
        self._require_state(SessionState.ACTIVE)
        self.answers[question_id] = encoded_answer

    async def submit(self, confirm: Union[bool, Callable[[], bool]] = False) -> Optional[Result]:
        """Hand in the attempt on the student's request.

        ``confirm`` must be True (or a callable returning True); otherwise
        nothing happens and None is returned. If the server cannot be
        reached the session goes back to ACTIVE with its snapshot intact and
        the error is raised.
        """
        confirmed = confirm() if callable(confirm) else confirm
        if not confirmed:
            return None
        self._require_state(SessionState.ACTIVE)

        self.state = SessionState.SUBMITTING
        self._cancel_scheduled()
        await self._capture_location()
        self._log("Submitted the exam")
        self._save_snapshot()

        result = await self._send_terminal(ResultStatus.COMPLETED)
        if result is None:
            # Answers may still change, so the next attempt builds a fresh payload
            self._pending = None
            self.state = SessionState.ACTIVE
            self._schedule()
            raise self.last_error
        self._complete()
        return result

    async def retry_submit(self) -> Result:
        """Re-send a forced submission (timeout or lockout) that failed."""
        if self._pending is None:
            raise SessionStateError("There is no pending submission to retry")
        result = await self._send_terminal(self._pending.status)
        if result is None:
            raise self.last_error
        if self.state is SessionState.SUBMITTING:
            self._complete()
        return result

    async def wait_settled(self) -> Optional[Result]:
        """Wait for the start notification and any forced submission in flight."""
        await asyncio.sleep(0)
        for task in (self._announce_task, self._terminal_task):
            if task is not None:
                await task
        return self.result

    async def close(self) -> None:
        """Stop the scheduled tasks, e.g. when the host page unloads.

        An active attempt is snapshotted first so it can be resumed later.
        """
        if self.state is SessionState.ACTIVE:
            self._save_snapshot()
        tasks = [t for t in (self._countdown_task, self._autosave_task, self._sync_task) if t is not None]
        self._cancel_scheduled()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    # --- Scheduled work ---

    def _schedule(self) -> None:
        self._countdown_task = self._loop.create_task(self._run_countdown())
        self._autosave_task = self._loop.create_task(self._run_autosave())
        if self.visibility is not None and self.anti_cheat_armed:
            self._unsubscribe = self.visibility.subscribe(self._on_visibility)

    def _cancel_scheduled(self) -> None:
        current = asyncio.current_task()
        for task in (self._countdown_task, self._autosave_task, self._sync_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._countdown_task = None
        self._autosave_task = None
        self._sync_task = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def _run_countdown(self) -> None:
        while self.state is SessionState.ACTIVE and self.remaining_seconds > 0:
            await asyncio.sleep(self.tick_seconds)
            if self.state is not SessionState.ACTIVE:
                return
            self.remaining_seconds -= 1
        if self.state is SessionState.ACTIVE:
            self._expire()

    async def _run_autosave(self) -> None:
        interval = self.exam.config.auto_save_interval_seconds * self.tick_seconds
        while self.state is SessionState.ACTIVE:
            await asyncio.sleep(interval)
            if self.state is not SessionState.ACTIVE:
                return
            self._save_snapshot()
            # Live progress for the teacher dashboard; skipped while the last sync is in flight
            if self._sync_task is None or self._sync_task.done():
                self._sync_task = self._loop.create_task(self._sync_progress("Progress sync"))

    async def _sync_progress(self, what: str) -> None:
        """Send the current answers as ``in_progress``; failures are only logged."""
        payload = self._build_payload(ResultStatus.IN_PROGRESS)
        try:
            await self.gateway.submit_result(payload)
        except ExamSyncError as exc:
            logger.info("%s for %s/%s not delivered: %s", what, self.exam_code, self.student_id, exc)

    async def _capture_location(self) -> None:
        if not self.exam.config.track_location or self.location_provider is None:
            return
        try:
            self.location = await asyncio.wait_for(
                self.location_provider.current_location(), LOCATION_TIMEOUT_SECONDS
            )
        except (LocationUnavailable, asyncio.TimeoutError) as exc:
            logger.info("No location for %s/%s: %r", self.exam_code, self.student_id, exc)

    # --- Forced transitions ---

    def _expire(self) -> None:
        self.state = SessionState.SUBMITTING
        self._cancel_scheduled()
        self.remaining_seconds = 0
        self._log("Time is up; the exam was submitted automatically")
        self._save_snapshot()
        logger.info("Session %s/%s timed out", self.exam_code, self.student_id)
        self._terminal_task = self._loop.create_task(self._finish_expiry())

    async def _finish_expiry(self) -> None:
        result = await self._send_terminal(ResultStatus.COMPLETED)
        if result is not None and self.state is SessionState.SUBMITTING:
            self._complete()

    def _on_visibility(self, hidden: bool) -> None:
        if self._loop is None:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._handle_visibility(hidden)
        else:
            self._loop.call_soon_threadsafe(self._handle_visibility, hidden)

    def _handle_visibility(self, hidden: bool) -> None:
        if not hidden or not self.anti_cheat_armed or self.state is not SessionState.ACTIVE:
            return
        self.state = SessionState.LOCKED
        self._cancel_scheduled()
        self._log("Left the exam window; the attempt was locked")
        self._save_snapshot()
        logger.warning("Session %s/%s locked by anti-cheat", self.exam_code, self.student_id)
        self._terminal_task = self._loop.create_task(self._send_terminal(ResultStatus.FORCE_SUBMITTED))

    # --- Helpers ---

    async def _send_terminal(self, status: ResultStatus) -> Optional[Result]:
        """Deliver the terminal submission; at most one call is in flight."""
        async with self._terminal_lock:
            if self._delivered:
                return self.result
            payload = self._pending or self._build_payload(status)
            self._pending = payload
            try:
                result = await self.gateway.submit_result(payload)
            except ExamSyncError as exc:
                self.last_error = exc
                logger.warning(
                    "Submitting %s for %s/%s failed; keeping local progress: %s",
                    status.value,
                    self.exam_code,
                    self.student_id,
                    exc,
                )
                return None
            self._pending = None
            self._delivered = True
            self.last_error = None
            self.result = result
            return result

    def _complete(self) -> None:
        try:
            self.store.delete(self.exam_code, self.student_id)
        except OSError as exc:
            logger.error("Could not clear local progress for %s/%s: %s", self.exam_code, self.student_id, exc)
        self.state = SessionState.COMPLETED
        logger.info("Session %s/%s completed", self.exam_code, self.student_id)

    def _build_payload(self, status: ResultStatus) -> SubmitPayload:
        return SubmitPayload(
            exam_code=self.exam_code,
            student=self.student,
            answers=dict(self.answers),
            activity_log=list(self.activity_log),
            status=status,
            completion_time=max(0, self.time_limit_seconds - self.remaining_seconds),
            location=self.location,
        )

    def _save_snapshot(self) -> None:
        snapshot = ProgressSnapshot(answers=dict(self.answers), logs=list(self.activity_log))
        try:
            self.store.save(self.exam_code, self.student_id, snapshot)
        except OSError as exc:
            logger.error("Autosave for %s/%s failed: %s", self.exam_code, self.student_id, exc)

    def _log(self, message: str) -> None:
        self.activity_log.append(stamp_log_entry(message))

    def _require_state(self, *states: SessionState) -> None:
        if self.state not in states:
            raise SessionStateError(details=f"state is {self.state.value}")


async def begin_attempt(
    gateway,
    store,
    exam_code: str,
    student: Student,
    visibility: Optional[VisibilitySignal] = None,
    remaining_seconds: Optional[int] = None,
    tick_seconds: float = 1.0,
    location: Optional[LocationProvider] = None,
) -> SessionController:
    """Fetch the exam and start a session for ``student``.

    Unknown, draft, locked or completed exams raise before any local state
    is created.
    """
    exam = await gateway.fetch_exam(exam_code, student.student_id)
    controller = SessionController(
        exam,
        student,
        gateway,
        store,
        visibility=visibility,
        remaining_seconds=remaining_seconds,
        tick_seconds=tick_seconds,
        location=location,
    )
    await controller.start()
    return controller
