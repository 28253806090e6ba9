"""
Attempt Module - Local state of a single in-progress test attempt.

Components:
- clock: Countdown with a one-shot expiry signal
- answer_store: Answers plus per-question visitation status
- stats: Reconciled summary counts
- manager: Session manager tying it all together
"""

from exam_session.attempt.answer_store import AnswerStore, QuestionStatus
from exam_session.attempt.clock import Clock, format_time
from exam_session.attempt.stats import AttemptStats, compute_stats

__all__ = [
    "AnswerStore",
    "AttemptStats",
    "Clock",
    "QuestionStatus",
    "compute_stats",
    "format_time",
]
