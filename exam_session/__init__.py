"""
exam-session: test attempt session manager.

Owns a single in-progress test attempt: answers and per-question status,
the countdown, progress persistence to the backend, and exactly-once
submission. Rendering is left to the host application, which reads
SessionManager.view().
"""

from exam_session.attempt.manager import AttemptView, SessionManager
from exam_session.attempt.answer_store import QuestionStatus
from exam_session.attempt.stats import AttemptStats
from exam_session.config import Settings, get_settings
from exam_session.core.errors import (
    AttemptApiError,
    AuthRequiredError,
    ConflictError,
    NotFoundError,
    TestNotFoundError,
    TransientError,
)
from exam_session.log_setup import configure_logging
from exam_session.sync.api_client import AttemptApiClient
from exam_session.sync.submission import SubmissionState

__version__ = "1.0.0"

__all__ = [
    "AttemptApiClient",
    "AttemptApiError",
    "AttemptStats",
    "AttemptView",
    "AuthRequiredError",
    "ConflictError",
    "NotFoundError",
    "QuestionStatus",
    "SessionManager",
    "Settings",
    "SubmissionState",
    "TestNotFoundError",
    "TransientError",
    "configure_logging",
    "get_settings",
]
