"""
Session Manager: composition root for a single in-progress test attempt.

Architecture:
- Countdown        -> exam_session.attempt.clock
- Answers/statuses -> exam_session.attempt.answer_store
- Summary counts   -> exam_session.attempt.stats
- Persistence      -> exam_session.sync.progress
- Submission       -> exam_session.sync.submission

The manager owns two autonomous tasks, the one-second clock tick and the
scheduled progress save. Both are cancelled as a unit by dispose() or once
the attempt is submitted.

Usage:
    async with SessionManager("test-1", "user-1", api) as session:
        session.set_answer(qid, "B")
        session.next_question()
        await session.submit()
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Coroutine

from loguru import logger

from exam_session.attempt.answer_store import AnswerStore, QuestionStatus
from exam_session.attempt.clock import Clock, format_time
from exam_session.attempt.stats import AttemptStats, compute_stats
from exam_session.config import Settings, get_settings
from exam_session.core.errors import AttemptApiError, NotFoundError, TestNotFoundError
from exam_session.core.models import Question, Section, SubmissionResult, TestDefinition
from exam_session.sync.api_client import AttemptApiClient
from exam_session.sync.attempt_cache import AttemptIdCache
from exam_session.sync.progress import ProgressSynchronizer
from exam_session.sync.submission import SubmissionCoordinator, SubmissionState


@dataclass(frozen=True)
class AttemptView:
    """Read model consumed by the presentation layer."""

    test_id: str
    title: str
    section_index: int
    question_index: int
    current_question: Question | None
    answers: dict[str, Any]
    statuses: dict[str, QuestionStatus]
    time_remaining: int
    formatted_time: str
    expired: bool
    stats: AttemptStats
    submission_state: SubmissionState
    attempt_id: str | None
    last_error: AttemptApiError | None


class SessionManager:
    """Owns the clock, answer store, synchronizer and coordinator for one attempt."""

    def __init__(
        self,
        test_id: str,
        user_id: str,
        api: AttemptApiClient,
        settings: Settings | None = None,
        cache: AttemptIdCache | None = None,
        on_submission_failed: Callable[[AttemptApiError], None] | None = None,
    ):
        """
        Args:
            test_id: Test being attempted
            user_id: Owner of the attempt
            api: Backend client (injected, not closed by the manager)
            settings: Overrides for get_settings()
            cache: Local attempt-id cache; defaults to one under settings.cache_dir
            on_submission_failed: Called when a forced (clock-expiry) submission fails
        """
        self.test_id = test_id
        self.user_id = user_id
        self.api = api
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else AttemptIdCache(self.settings.cache_dir)
        self.on_submission_failed = on_submission_failed

        self.test: TestDefinition | None = None
        self.store: AnswerStore | None = None
        self.clock: Clock | None = None
        self.synchronizer: ProgressSynchronizer | None = None
        self.coordinator: SubmissionCoordinator | None = None

        self._section_index = 0
        self._question_index = 0
        self._started = False
        self._disposed = False
        self._start_lock = asyncio.Lock()
        self._clock_task: asyncio.Task | None = None
        self._autosave_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()

    async def __aenter__(self) -> "SessionManager":
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.dispose()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> "SessionManager":
        """
        Load the test, restore saved progress and start the timers.

        Overlapping calls share a single start; later callers wait for it.

        Raises:
            TestNotFoundError: The test does not exist
            AuthRequiredError: Credentials were rejected
            TransientError: The test could not be loaded after retries
        """
        async with self._start_lock:
            if self._started:
                return self
            if self._disposed:
                raise RuntimeError("Session has been disposed")
            await self._load()
        return self

    async def _load(self) -> None:
        try:
            test = await self.settings.retry_policy("fetch_test").run(
                lambda: self.api.fetch_test(self.test_id),
                description=f"Fetch test {self.test_id}",
            )
        except NotFoundError as e:
            raise TestNotFoundError(
                f"Test {self.test_id} not found", status_code=e.status_code, payload=e.payload
            ) from e

        self._attach(test)
        logger.info(
            f"Loaded test {self.test_id}: {len(self.test.questions)} questions "
            f"in {len(self.test.sections)} sections, {self.clock.duration_seconds}s"
        )

        if not await self.synchronizer.restore():
            self.clock.set_remaining(self.clock.duration_seconds)

        if self._disposed:
            logger.info(f"Session for test {self.test_id} disposed while starting")
            return
        self._started = True
        self._visit_current()
        self._start_timers()

    def _attach(self, test: TestDefinition) -> None:
        """Build the baseline state from the question set."""
        if not test.sections and test.questions:
            titles = list(dict.fromkeys(q.section_title for q in test.questions))
            test = test.model_copy(update={"sections": [Section(title=t) for t in titles]})
        self.test = test

        self.store = AnswerStore(test.questions)
        self.clock = Clock(
            test.duration_seconds,
            on_expired=self._on_clock_expired,
            on_minute_boundary=self._on_minute_boundary,
        )
        self.synchronizer = ProgressSynchronizer(
            self.api,
            self.test_id,
            self.user_id,
            self.store,
            self.clock,
            cache=self.cache,
            retry_policy=self.settings.retry_policy("fetch_progress"),
        )
        self.coordinator = SubmissionCoordinator(
            self.api,
            self.test_id,
            self.store,
            self.clock,
            self.synchronizer,
            cache=self.cache,
            retry_policy=self.settings.retry_policy("submit"),
        )
        self._section_index = self._next_section_with_questions(0, 1) or 0
        self._question_index = 0

    def _start_timers(self) -> None:
        if self._clock_task is not None or self._autosave_task is not None:
            logger.warning(f"Timers for test {self.test_id} already running")
            return
        self._clock_task = asyncio.create_task(self._run_clock())
        self._autosave_task = asyncio.create_task(
            self.synchronizer.run_autosave(self.settings.autosave_interval_seconds)
        )

    async def _run_clock(self) -> None:
        while self.clock.running:
            await asyncio.sleep(self.settings.tick_interval_seconds)
            self.clock.tick()

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _cancel_timers(self) -> None:
        tasks = [t for t in (self._clock_task, self._autosave_task) if t is not None]
        tasks.extend(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._clock_task = None
        self._autosave_task = None

    async def dispose(self) -> None:
        """
        Tear the session down.

        Makes one bounded best-effort save (unless already submitted), then
        cancels every timer and background task. Safe to call twice.
        """
        if self._disposed:
            return
        self._disposed = True
        if not self._started:
            return

        self.clock.stop()
        if not self.coordinator.is_submitted:
            timeout = self.settings.teardown_save_timeout_seconds
            try:
                await asyncio.wait_for(self.synchronizer.save("teardown"), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Final progress save for test {self.test_id} timed out after {timeout}s")

        await self._cancel_timers()
        logger.info(f"Session for test {self.test_id} disposed")

    @property
    def is_running(self) -> bool:
        return self._started and not self._disposed

    def _require_started(self) -> None:
        if not self._started:
            raise RuntimeError("Session not started; call start() first")

    # =========================================================================
    # Timer events
    # =========================================================================

    def _on_minute_boundary(self, remaining: int) -> None:
        logger.debug(f"{remaining}s left on test {self.test_id}, saving progress")
        self._spawn(self.synchronizer.save("minute"))

    def _on_clock_expired(self) -> None:
        logger.info(f"Time is up for test {self.test_id}, submitting")
        self._spawn(self._forced_submit())

    async def _forced_submit(self) -> None:
        try:
            await self.submit(forced=True)
        except AttemptApiError as e:
            logger.error(f"Automatic submission of test {self.test_id} failed: {e}")
            if self.on_submission_failed:
                self.on_submission_failed(e)

    # =========================================================================
    # Answers & statuses
    # =========================================================================

    def _accepting_input(self) -> bool:
        if self.coordinator.is_submitted or self.clock.expired or self._disposed:
            logger.info(f"Test {self.test_id} is closed for input")
            return False
        return True

    def set_answer(self, question_id: str, value: Any) -> None:
        self._require_started()
        if self._accepting_input():
            self.store.set_answer(question_id, value)

    def clear_answer(self, question_id: str) -> None:
        self.set_answer(question_id, None)

    def mark_for_review(self, question_id: str) -> None:
        self._require_started()
        if self._accepting_input():
            self.store.mark_for_review(question_id)

    def visit(self, question_id: str) -> None:
        self._require_started()
        if not self.coordinator.is_submitted:
            self.store.visit(question_id)

    def compute_stats(self) -> AttemptStats:
        self._require_started()
        return compute_stats(self.store)

    # =========================================================================
    # Navigation
    # =========================================================================

    @property
    def section_index(self) -> int:
        return self._section_index

    @property
    def question_index(self) -> int:
        return self._question_index

    def current_question(self) -> Question | None:
        if self.test is None:
            return None
        questions = self.test.section_questions(self._section_index)
        if 0 <= self._question_index < len(questions):
            return questions[self._question_index]
        return None

    def next_question(self) -> Question | None:
        """Advance within the section, then into the next non-empty section."""
        self._require_started()
        questions = self.test.section_questions(self._section_index)
        if self._question_index < len(questions) - 1:
            self._question_index += 1
        else:
            section = self._next_section_with_questions(self._section_index + 1, 1)
            if section is None:
                return self.current_question()
            self._section_index, self._question_index = section, 0
        self._visit_current()
        return self.current_question()

    def previous_question(self) -> Question | None:
        """Step back within the section, then to the last question of the previous one."""
        self._require_started()
        if self._question_index > 0:
            self._question_index -= 1
        else:
            section = self._next_section_with_questions(self._section_index - 1, -1)
            if section is None:
                return self.current_question()
            self._section_index = section
            self._question_index = len(self.test.section_questions(section)) - 1
        self._visit_current()
        return self.current_question()

    def jump_to(self, section_index: int, question_index: int) -> Question | None:
        """Move the cursor; out-of-range targets leave it where it is."""
        self._require_started()
        questions = self.test.section_questions(section_index)
        if not 0 <= question_index < len(questions):
            logger.debug(f"Ignoring jump to section {section_index}, question {question_index}")
            return self.current_question()
        self._section_index, self._question_index = section_index, question_index
        self._visit_current()
        return self.current_question()

    def jump_to_question(self, question_id: str) -> Question | None:
        self._require_started()
        for section_index in range(len(self.test.sections)):
            for question_index, question in enumerate(self.test.section_questions(section_index)):
                if question.id == question_id:
                    return self.jump_to(section_index, question_index)
        logger.debug(f"Ignoring jump to unknown question {question_id}")
        return self.current_question()

    def _next_section_with_questions(self, start: int, step: int) -> int | None:
        index = start
        while 0 <= index < len(self.test.sections):
            if self.test.section_questions(index):
                return index
            index += step
        return None

    def _visit_current(self) -> None:
        question = self.current_question()
        if question is not None and not self.coordinator.is_submitted:
            self.store.visit(question.id)

    # =========================================================================
    # Submission & read model
    # =========================================================================

    async def submit(self, forced: bool = False) -> SubmissionResult:
        """
        Submit the attempt. Confirmation, if any, is the caller's business.

        Raises:
            AuthRequiredError: Re-authenticate, then call submit() again
            TransientError: Try again
        """
        self._require_started()
        result = await self.coordinator.submit(forced=forced)
        current = asyncio.current_task()
        tasks = [t for t in (self._clock_task, self._autosave_task) if t is not None]
        tasks.extend(self._background)
        for task in tasks:
            if task is not current:
                task.cancel()
        self._clock_task = None
        self._autosave_task = None
        return result

    def view(self) -> AttemptView:
        self._require_started()
        return AttemptView(
            test_id=self.test_id,
            title=self.test.title,
            section_index=self._section_index,
            question_index=self._question_index,
            current_question=self.current_question(),
            answers=self.store.answers(),
            statuses=self.store.statuses(),
            time_remaining=self.clock.remaining,
            formatted_time=format_time(self.clock.remaining),
            expired=self.clock.expired,
            stats=compute_stats(self.store),
            submission_state=self.coordinator.state,
            attempt_id=self.coordinator.attempt_id,
            last_error=self.coordinator.last_error,
        )
