"""
Data model for a test attempt.

Wire shapes follow the backend's test document:

    {"_id": "...", "title": "...", "duration": 60,
     "sections": [{"title": "Physics"}],
     "questions": [{"_id": "...", "text": "...", "type": "mcq",
                    "options": [...], "sectionTitle": "Physics"}]}

Tests, sections and questions are server-authored and immutable for the
duration of an attempt.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator


class QuestionType(str, Enum):
    """Kind of question. Drives answer normalization."""

    SINGLE_CHOICE = "mcq"
    MULTI_SELECT = "multiple_select"
    BOOLEAN = "trueFalse"
    FREE_TEXT = "shortAnswer"
    INTEGER = "integer"
    MATCHING = "matching"


# Alternate spellings the backend has used over time
_TYPE_ALIASES = {
    "multiple_choice": QuestionType.SINGLE_CHOICE,
    "single_choice": QuestionType.SINGLE_CHOICE,
    "multi_select": QuestionType.MULTI_SELECT,
    "true_false": QuestionType.BOOLEAN,
    "boolean": QuestionType.BOOLEAN,
    "short_answer": QuestionType.FREE_TEXT,
    "text": QuestionType.FREE_TEXT,
}

_DATETIME = TypeAdapter(datetime)


class Section(BaseModel):
    """A titled group of questions."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    title: str


class Question(BaseModel):
    """A single question in a test."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    id: str = Field(..., alias="_id", min_length=1)
    text: str = ""
    type: QuestionType = QuestionType.FREE_TEXT
    options: list[Any] = Field(default_factory=list)
    section_title: str = Field(default="", alias="sectionTitle")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        return str(v) if v is not None else v

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v: Any) -> QuestionType:
        """Map legacy spellings; unknown kinds are treated as free text."""
        if isinstance(v, QuestionType):
            return v
        try:
            return QuestionType(v)
        except ValueError:
            return _TYPE_ALIASES.get(str(v), QuestionType.FREE_TEXT)


class TestDefinition(BaseModel):
    """Static question/section data for a test (GET /tests/{testId})."""

    __test__ = False

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    id: str = Field(default="", alias="_id")
    title: str = ""
    duration: float = Field(default=0, ge=0, description="Duration in minutes")
    sections: list[Section] = Field(default_factory=list)
    questions: list[Question] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @property
    def duration_seconds(self) -> int:
        return int(self.duration * 60)

    @property
    def question_ids(self) -> list[str]:
        return [q.id for q in self.questions]

    def section_questions(self, section_index: int) -> list[Question]:
        """Questions belonging to the section at ``section_index``, in order."""
        if not 0 <= section_index < len(self.sections):
            return []
        title = self.sections[section_index].title
        return [q for q in self.questions if q.section_title == title]


class ProgressSnapshot(BaseModel):
    """
    Persisted resume aid for an attempt.

    Not authoritative for grading. Produced by the progress synchronizer on
    save and consumed once when an attempt starts.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    answers: dict[str, Any] = Field(default_factory=dict)
    time_left: int | float | None = Field(default=None, alias="timeLeft")
    marked_for_review: list[str] = Field(default_factory=list, alias="markedForReview")
    visited: list[str] = Field(default_factory=list)
    save_timestamp: datetime | None = Field(default=None, alias="saveTimestamp")

    @field_validator("answers", mode="before")
    @classmethod
    def coerce_answers(cls, v: Any) -> dict[str, Any]:
        return v if isinstance(v, dict) else {}

    @field_validator("marked_for_review", "visited", mode="before")
    @classmethod
    def coerce_id_lists(cls, v: Any) -> list[str]:
        if not isinstance(v, (list, tuple, set)):
            return []
        return [str(item) for item in v if item is not None]

    @field_validator("time_left", mode="before")
    @classmethod
    def coerce_time_left(cls, v: Any) -> int | float | None:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return None
        return v

    @field_validator("save_timestamp", mode="before")
    @classmethod
    def coerce_save_timestamp(cls, v: Any) -> datetime | None:
        """Unparsable timestamps are dropped; the snapshot is still usable."""
        if v is None or isinstance(v, datetime):
            return v
        try:
            return _DATETIME.validate_python(v)
        except ValidationError:
            return None

    def to_payload(self) -> dict[str, Any]:
        """Body for POST /tests/{testId}/save-progress."""
        return {
            "answers": self.answers,
            "timeLeft": self.time_left,
            "markedForReview": self.marked_for_review,
            "visited": self.visited,
        }


@dataclass
class SubmissionResult:
    """Outcome of a successful (or conflict-equivalent) submission."""

    attempt_id: str | None
    already_submitted: bool = False
    response: dict[str, Any] = field(default_factory=dict)
    submitted_at: datetime = field(default_factory=datetime.now)
