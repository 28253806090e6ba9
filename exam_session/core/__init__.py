"""
Core Module - Shared domain models, error kinds and retry policy.

Components:
- models: Test definition, questions, progress snapshots
- errors: Error kinds raised across the network boundary
- retry: Retry policy applied to fetch and submit paths
"""

from exam_session.core.errors import (
    AttemptApiError,
    AuthRequiredError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    TestNotFoundError,
    TransientError,
)
from exam_session.core.models import (
    ProgressSnapshot,
    Question,
    QuestionType,
    Section,
    SubmissionResult,
    TestDefinition,
)
from exam_session.core.retry import Backoff, RetryPolicy

__all__ = [
    # Errors
    "AttemptApiError",
    "AuthRequiredError",
    "ConflictError",
    "InvalidStateError",
    "NotFoundError",
    "TestNotFoundError",
    "TransientError",
    # Models
    "ProgressSnapshot",
    "Question",
    "QuestionType",
    "Section",
    "SubmissionResult",
    "TestDefinition",
    # Retry
    "Backoff",
    "RetryPolicy",
]
