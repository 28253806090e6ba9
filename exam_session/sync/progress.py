"""
Progress synchronization for an in-progress attempt.

Pushes a ProgressSnapshot to the backend on a schedule and on key events,
and pulls one back once when the attempt starts. Saving is best-effort:
failures are logged and dropped, the next scheduled save tries again.
"""

from __future__ import annotations

import asyncio
import math
from datetime import datetime

from loguru import logger
from pydantic import ValidationError

from exam_session.attempt.answer_store import (
    AnswerStore,
    QuestionStatus,
    deserialize_answer,
    is_empty,
)
from exam_session.attempt.clock import Clock
from exam_session.core.errors import (
    AttemptApiError,
    AuthRequiredError,
    NotFoundError,
    extract_attempt_id,
)
from exam_session.core.models import ProgressSnapshot
from exam_session.core.retry import RetryPolicy
from exam_session.sync.api_client import AttemptApiClient
from exam_session.sync.attempt_cache import AttemptIdCache


class ProgressSynchronizer:
    """Saves and restores answers, statuses and remaining time for one attempt."""

    def __init__(
        self,
        api: AttemptApiClient,
        test_id: str,
        user_id: str,
        store: AnswerStore,
        clock: Clock,
        cache: AttemptIdCache | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        self.api = api
        self.test_id = test_id
        self.user_id = user_id
        self.store = store
        self.clock = clock
        self.cache = cache
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=2, base_delay=1.0)

        # One restore in flight per attempt
        self._restore_lock = asyncio.Lock()
        self._restored = False
        self.last_saved_at: datetime | None = None
        self.save_failures = 0

    # =========================================================================
    # Restore
    # =========================================================================

    async def restore(self) -> bool:
        """
        Pull the saved snapshot and apply it to the answer store and clock.

        A concurrent or repeated call is a no-op. A missing snapshot or a
        transient failure leaves the attempt at its fresh baseline.

        Returns:
            True if a valid remaining time was restored from the snapshot

        Raises:
            AuthRequiredError: Credentials were rejected
        """
        if self._restore_lock.locked() or self._restored:
            logger.info(f"Progress restore for test {self.test_id} already done or in flight")
            return False

        async with self._restore_lock:
            self._restored = True
            try:
                snapshot = await self.retry_policy.run(
                    lambda: self.api.fetch_progress(self.test_id, self.user_id),
                    description=f"Fetch progress for test {self.test_id}",
                )
            except NotFoundError:
                logger.info(f"No saved progress found for test {self.test_id}")
                return False
            except AuthRequiredError:
                raise
            except AttemptApiError as e:
                logger.warning(f"Could not load saved progress for test {self.test_id}, starting fresh: {e}")
                return False
            except ValidationError as e:
                logger.warning(f"Ignoring malformed saved progress for test {self.test_id}: {e}")
                return False

            return self.apply_snapshot(snapshot)

    def apply_snapshot(self, snapshot: ProgressSnapshot) -> bool:
        """
        Apply a snapshot on top of the not-visited baseline.

        Order matters: answers, then review marks, then visited ids (which
        never downgrade), then the remaining time.
        """
        valid_ids = set(self.store.question_ids)

        restored = dropped = 0
        for qid, raw in snapshot.answers.items():
            if qid not in valid_ids or is_empty(raw):
                dropped += 1
                continue
            self.store.set_answer(qid, deserialize_answer(self.store.question(qid).type, raw))
            if self.store.has_answer(qid):
                restored += 1
            else:
                dropped += 1

        for qid in snapshot.marked_for_review:
            if qid in valid_ids:
                self.store.mark_for_review(qid)

        for qid in snapshot.visited:
            if qid in valid_ids:
                self.store.visit(qid)

        logger.info(
            f"Restored {restored} saved answers for test {self.test_id}"
            + (f" (ignored {dropped} invalid answers)" if dropped else "")
        )
        if snapshot.save_timestamp:
            saved = snapshot.save_timestamp
            minutes = int((datetime.now(saved.tzinfo) - saved).total_seconds() // 60)
            logger.info(f"Test progress was last saved {minutes} minutes ago")

        return self._restore_time(snapshot.time_left)

    def _restore_time(self, time_left: float | None) -> bool:
        duration = self.clock.duration_seconds
        if time_left is not None and 0 < time_left <= duration:
            self.clock.set_remaining(math.ceil(time_left))
            logger.info(f"Restoring timer from saved progress: {math.ceil(time_left)} seconds")
            return True

        if time_left is not None and time_left > duration:
            logger.warning(
                f"Saved time ({time_left}s) exceeds test duration ({duration}s). "
                f"Using maximum allowed time."
            )
        else:
            logger.warning(f"Saved progress has no usable time ({time_left}), using full duration")
        self.clock.set_remaining(duration)
        return False

    # =========================================================================
    # Save
    # =========================================================================

    def build_snapshot(self) -> ProgressSnapshot:
        """Project current state into a snapshot. Only known, non-empty answers."""
        return ProgressSnapshot(
            answers=self.store.serialized_answers(),
            time_left=self.clock.remaining,
            marked_for_review=self.store.ids_with_status(QuestionStatus.MARKED_FOR_REVIEW),
            visited=self.store.visited_ids(),
        )

    async def save(self, reason: str = "scheduled") -> bool:
        """
        Push the current snapshot. Never raises on backend failure.

        Returns:
            True if the backend accepted the snapshot
        """
        snapshot = self.build_snapshot()
        try:
            response = await self.api.save_progress(self.test_id, snapshot.to_payload())
        except AttemptApiError as e:
            self.save_failures += 1
            logger.warning(f"Progress save ({reason}) for test {self.test_id} failed: {e}")
            return False

        self.last_saved_at = datetime.now()
        logger.debug(
            f"Progress saved ({reason}) with {len(snapshot.answers)} answers, "
            f"{snapshot.time_left}s left"
        )

        attempt_id = extract_attempt_id(response)
        if attempt_id and self.cache:
            self.cache.put(self.test_id, attempt_id)
        return True

    async def run_autosave(self, interval_seconds: float) -> None:
        """Save every ``interval_seconds`` while answers exist. Runs until cancelled."""
        while True:
            await asyncio.sleep(interval_seconds)
            if self.store.has_answers:
                await self.save("scheduled")
