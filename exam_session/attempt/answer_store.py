"""
Answer store and question status classification.

Holds the user's current answer per question and the visitation status
that the navigator and stats are derived from. Status rules:

    set_answer(non-empty)  -> ANSWERED (clears a review mark)
    set_answer(empty)      -> ANSWERED demotes to VISITED; others unchanged
    mark_for_review        -> MARKED_FOR_REVIEW, answer untouched
    visit                  -> NOT_VISITED promotes to VISITED; others unchanged

Ids that are not part of the attempt are ignored without raising.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Iterable

from loguru import logger

from exam_session.core.errors import InvalidStateError
from exam_session.core.models import Question, QuestionType


class QuestionStatus(str, Enum):
    """Visitation state of a question. Exactly one per question."""

    NOT_VISITED = "not_visited"
    VISITED = "visited"
    ANSWERED = "answered"
    MARKED_FOR_REVIEW = "marked_for_review"


def is_empty(value: Any) -> bool:
    """True for values that mean "no answer"."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def normalize_answer(question_type: QuestionType, raw: Any) -> Any:
    """
    Normalize a raw answer for the given question type.

    Raises:
        InvalidStateError: If an integer answer cannot be parsed
    """
    if is_empty(raw):
        return None
    if question_type == QuestionType.MULTI_SELECT and isinstance(raw, (list, tuple, set)):
        return ",".join(str(item) for item in raw)
    if question_type == QuestionType.INTEGER:
        if isinstance(raw, bool):
            raise InvalidStateError(f"Not an integer: {raw!r}")
        if isinstance(raw, int):
            return raw
        try:
            return int(str(raw).strip())
        except ValueError as e:
            raise InvalidStateError(f"Not an integer: {raw!r}") from e
    return raw


def serialize_answer(question_type: QuestionType, value: Any) -> str:
    """Stringify a stored answer for the wire (save and submit payloads)."""
    if question_type == QuestionType.MATCHING and not isinstance(value, str):
        return json.dumps(value)
    if question_type == QuestionType.BOOLEAN:
        return str(value).lower()
    if question_type == QuestionType.MULTI_SELECT and isinstance(value, (list, tuple, set)):
        return ",".join(str(item) for item in value)
    return str(value)


def deserialize_answer(question_type: QuestionType, value: Any) -> Any:
    """Undo serialize_answer for matching pairs; everything else passes through."""
    if question_type == QuestionType.MATCHING and isinstance(value, str) and value[:1] in ("{", "["):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


class AnswerStore:
    """In-memory answers plus the status classifier for one attempt."""

    def __init__(self, questions: Iterable[Question]):
        self._questions: dict[str, Question] = {q.id: q for q in questions}
        self._answers: dict[str, Any] = {}
        self._status: dict[str, QuestionStatus] = {
            qid: QuestionStatus.NOT_VISITED for qid in self._questions
        }

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def question_ids(self) -> list[str]:
        return list(self._questions)

    def has_question(self, question_id: str) -> bool:
        return question_id in self._questions

    def question(self, question_id: str) -> Question | None:
        return self._questions.get(question_id)

    def answer(self, question_id: str) -> Any:
        return self._answers.get(question_id)

    def has_answer(self, question_id: str) -> bool:
        return question_id in self._answers

    @property
    def has_answers(self) -> bool:
        return bool(self._answers)

    def answers(self) -> dict[str, Any]:
        return dict(self._answers)

    def status(self, question_id: str) -> QuestionStatus | None:
        return self._status.get(question_id)

    def statuses(self) -> dict[str, QuestionStatus]:
        return dict(self._status)

    def ids_with_status(self, status: QuestionStatus) -> list[str]:
        return [qid for qid, s in self._status.items() if s == status]

    def visited_ids(self) -> list[str]:
        """Ids the user has seen, whatever they did with them."""
        return [qid for qid, s in self._status.items() if s != QuestionStatus.NOT_VISITED]

    def serialized_answers(self) -> dict[str, str]:
        """Non-empty answers for known questions, stringified for the wire."""
        payload: dict[str, str] = {}
        for qid, value in self._answers.items():
            question = self._questions.get(qid)
            if question is None or is_empty(value):
                continue
            payload[qid] = serialize_answer(question.type, value)
        return payload

    # =========================================================================
    # Mutations
    # =========================================================================

    def set_answer(self, question_id: str, raw_value: Any) -> None:
        """Upsert or clear the answer for a question and re-derive its status."""
        question = self._questions.get(question_id)
        if question is None:
            logger.debug(f"Ignoring answer for unknown question {question_id}")
            return

        try:
            value = normalize_answer(question.type, raw_value)
        except InvalidStateError as e:
            logger.debug(f"Dropping answer for {question_id}: {e}")
            value = None

        if value is None:
            self._answers.pop(question_id, None)
            if self._status[question_id] == QuestionStatus.ANSWERED:
                self._status[question_id] = QuestionStatus.VISITED
            return

        self._answers[question_id] = value
        self._status[question_id] = QuestionStatus.ANSWERED

    def mark_for_review(self, question_id: str) -> None:
        if question_id not in self._questions:
            logger.debug(f"Ignoring review mark for unknown question {question_id}")
            return
        self._status[question_id] = QuestionStatus.MARKED_FOR_REVIEW

    def visit(self, question_id: str) -> None:
        if self._status.get(question_id) == QuestionStatus.NOT_VISITED:
            self._status[question_id] = QuestionStatus.VISITED
