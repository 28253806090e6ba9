"""
Sync Module - Everything that crosses the network boundary.

Components:
- api_client: REST client for tests, progress and submissions
- attempt_cache: Local cache of server-issued attempt ids
- progress: Scheduled and event-driven progress saves, one-shot restore
- submission: Exactly-once submission state machine
"""

from exam_session.sync.api_client import AttemptApiClient
from exam_session.sync.attempt_cache import AttemptIdCache
from exam_session.sync.progress import ProgressSynchronizer
from exam_session.sync.submission import SubmissionCoordinator, SubmissionState

__all__ = [
    "AttemptApiClient",
    "AttemptIdCache",
    "ProgressSynchronizer",
    "SubmissionCoordinator",
    "SubmissionState",
]
