"""
Submission coordinator: the terminal transition of an attempt.

State machine:

    IDLE -> SUBMITTING -> SUBMITTED        (terminal)
                       -> FAILED           (retryable, may re-enter SUBMITTING)

Concurrent submit() calls (double click, clock expiry racing a manual
click) join the single in-flight request and observe the same outcome.
A 409 from the backend means the attempt was already submitted and is
treated as success.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any

from loguru import logger

from exam_session.attempt.answer_store import AnswerStore
from exam_session.attempt.clock import Clock
from exam_session.core.errors import AttemptApiError, ConflictError, extract_attempt_id
from exam_session.core.models import SubmissionResult
from exam_session.core.retry import Backoff, RetryPolicy
from exam_session.sync.api_client import AttemptApiClient
from exam_session.sync.attempt_cache import AttemptIdCache
from exam_session.sync.progress import ProgressSynchronizer


class SubmissionState(str, Enum):
    """Where the attempt is in its submission lifecycle."""

    IDLE = "idle"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    FAILED = "failed"


class SubmissionCoordinator:
    """Drives at-most-one successful submission for an attempt."""

    def __init__(
        self,
        api: AttemptApiClient,
        test_id: str,
        store: AnswerStore,
        clock: Clock,
        synchronizer: ProgressSynchronizer,
        cache: AttemptIdCache | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        self.api = api
        self.test_id = test_id
        self.store = store
        self.clock = clock
        self.synchronizer = synchronizer
        self.cache = cache
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=3, base_delay=2.0, backoff=Backoff.FIXED
        )

        self.state = SubmissionState.IDLE
        self.result: SubmissionResult | None = None
        self.last_error: AttemptApiError | None = None
        self.request_count = 0
        self._inflight: asyncio.Task | None = None

    @property
    def attempt_id(self) -> str | None:
        return self.result.attempt_id if self.result else None

    @property
    def is_submitted(self) -> bool:
        return self.state == SubmissionState.SUBMITTED

    async def submit(self, forced: bool = False) -> SubmissionResult:
        """
        Submit the attempt, or join the submission already in flight.

        Args:
            forced: True when triggered by clock expiry (no confirmation step)

        Returns:
            The submission result (also for an already-submitted attempt)

        Raises:
            AuthRequiredError: Credentials rejected; re-authenticate before retrying
            TransientError: Network failure, timeout or 5xx after retries
            AttemptApiError: Any other rejection
        """
        if self.state == SubmissionState.SUBMITTED and self.result is not None:
            logger.info(f"Test {self.test_id} already submitted, ignoring submit()")
            return self.result

        if self._inflight is not None and not self._inflight.done():
            logger.info(f"Submission for test {self.test_id} already in flight, joining it")
        else:
            self.state = SubmissionState.SUBMITTING
            self.last_error = None
            self._inflight = asyncio.create_task(self._submit(forced))

        return await asyncio.shield(self._inflight)

    def build_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "answers": self.store.serialized_answers(),
            "timeLeft": self.clock.remaining,
            "timeTaken": self.clock.elapsed,
            "testId": self.test_id,
        }
        attempt_id = self.cache.get(self.test_id) if self.cache else None
        if attempt_id:
            payload["attemptId"] = attempt_id
        return payload

    async def _submit(self, forced: bool) -> SubmissionResult:
        logger.info(f"Submitting test {self.test_id} ({'forced' if forced else 'manual'})")
        try:
            # Best effort; never raises
            await self.synchronizer.save("final")

            payload = self.build_payload()
            logger.info(
                f"Submission payload for test {self.test_id}: "
                f"{len(payload['answers'])} answers, {payload['timeLeft']}s left"
            )
            try:
                response = await self.retry_policy.run(
                    lambda: self._send(payload),
                    description=f"Submit test {self.test_id}",
                )
            except ConflictError as e:
                logger.info(f"Test {self.test_id} was already submitted, treating as success")
                return self._complete(
                    e.attempt_id or payload.get("attemptId"),
                    response=e.payload,
                    already_submitted=True,
                )
            except AttemptApiError as e:
                self.state = SubmissionState.FAILED
                self.last_error = e
                logger.error(f"Submission of test {self.test_id} failed: {e}")
                raise

            return self._complete(extract_attempt_id(response), response=response)
        finally:
            if self.state == SubmissionState.SUBMITTING:
                self.state = SubmissionState.FAILED

    async def _send(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.request_count += 1
        return await self.api.submit_attempt(self.test_id, payload)

    def _complete(
        self,
        attempt_id: str | None,
        response: dict[str, Any],
        already_submitted: bool = False,
    ) -> SubmissionResult:
        self.state = SubmissionState.SUBMITTED
        self.clock.stop()
        self.result = SubmissionResult(
            attempt_id=attempt_id,
            already_submitted=already_submitted,
            response=response or {},
        )
        if self.cache:
            self.cache.delete(self.test_id)
        logger.info(f"Test {self.test_id} submitted (attempt {attempt_id})")
        return self.result
