"""
Summary counts for the question navigator.

compute_stats() is the single place that decides whether a question
counts as answered: its status must be ANSWERED *and* an answer must
actually be stored. The four buckets always partition the total.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from loguru import logger

from .answer_store import AnswerStore, QuestionStatus


@dataclass(frozen=True)
class AttemptStats:
    """Mutually exclusive status buckets for one attempt."""

    total: int = 0
    answered: int = 0
    not_visited: int = 0
    visited: int = 0
    marked_for_review: int = 0

    def to_dict(self) -> dict[str, int]:
        """camelCase keys, as the presentation layer expects them."""
        data = asdict(self)
        return {
            "total": data["total"],
            "answered": data["answered"],
            "notVisited": data["not_visited"],
            "visited": data["visited"],
            "markedForReview": data["marked_for_review"],
        }


def compute_stats(store: AnswerStore) -> AttemptStats:
    """Classify every question of the attempt into exactly one bucket."""
    question_ids = store.question_ids
    total = len(question_ids)
    answered = not_visited = visited = marked = 0

    for qid in question_ids:
        status = store.status(qid)
        if status == QuestionStatus.ANSWERED:
            if store.has_answer(qid):
                answered += 1
            else:
                visited += 1
        elif status == QuestionStatus.MARKED_FOR_REVIEW:
            marked += 1
        elif status == QuestionStatus.VISITED:
            visited += 1
        else:
            not_visited += 1

    return reconcile(total, answered, not_visited, visited, marked)


def reconcile(
    total: int,
    answered: int,
    not_visited: int,
    visited: int,
    marked_for_review: int,
) -> AttemptStats:
    """
    Force raw counts to partition ``total``.

    Overflow is taken from not_visited, then visited, then answered.
    A shortfall is added to not_visited.
    """
    counted = answered + not_visited + visited + marked_for_review
    if counted > total:
        overflow = counted - total
        logger.warning(
            f"Question stats overflow: counted {counted} of {total} questions "
            f"(answered={answered}, notVisited={not_visited}, visited={visited}, "
            f"markedForReview={marked_for_review})"
        )
        taken = min(not_visited, overflow)
        not_visited -= taken
        overflow -= taken

        taken = min(visited, overflow)
        visited -= taken
        overflow -= taken

        taken = min(answered, overflow)
        answered -= taken
        overflow -= taken

        if overflow:
            marked_for_review = max(marked_for_review - overflow, 0)
    elif counted < total:
        not_visited += total - counted

    return AttemptStats(
        total=total,
        answered=answered,
        not_visited=not_visited,
        visited=visited,
        marked_for_review=marked_for_review,
    )
