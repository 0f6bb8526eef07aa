"""
Data models for flashcards, their memory state and study queue entries.
"""

from __future__ import annotations

import uuid
from enum import Enum, IntEnum
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Grade(IntEnum):
    """
    The user's rating of their recall, ordered by recall quality.
    """

    Forgot = 1
    Hard = 2
    Good = 3
    Easy = 4

    @property
    def label(self) -> str:
        return self.name

    @property
    def is_lapse(self) -> bool:
        return self is Grade.Forgot

    @property
    def requeues(self) -> bool:
        """Whether a card graded this way is shown again in the same round."""
        return self in (Grade.Forgot, Grade.Hard)


class QuestionType(str, Enum):
    """
    How a card is presented during a study round.
    """

    FLASHCARDS = "flashcards"
    MULTIPLE_CHOICE = "multipleChoice"
    WRITTEN = "written"
    TRUE_FALSE = "trueFalse"


class QuestionFormat(str, Enum):
    """
    Which side the user answers with. ``term`` shows the definition and asks
    for the term; ``definition`` shows the term and asks for the definition.
    """

    TERM = "term"
    DEFINITION = "definition"


class Flashcard(BaseModel):
    """
    A term/definition pair together with its persisted scheduling state.

    ``stability`` and ``difficulty`` are set together on the first review and
    are absent before it; a card is new exactly when ``last_reviewed`` is None.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    id: str = Field(
        default_factory=lambda: uuid.uuid4().hex,
        description="Store identity of the card.",
    )
    term: str = Field(..., min_length=1, description="Term, usually in the target language.")
    definition: str = Field(..., min_length=1, description="Definition or translation.")
    term_language: Optional[str] = Field(
        default=None, description="Language code used for the term."
    )
    definition_language: Optional[str] = Field(
        default=None, description="Language code used for the definition."
    )
    starred: bool = Field(default=False, description="User curation flag.")

    stability: Optional[float] = Field(
        default=None,
        gt=0,
        description="Memory stability in days.",
    )
    difficulty: Optional[float] = Field(
        default=None,
        ge=1,
        le=10,
        description="Intrinsic difficulty in [1, 10].",
    )
    reps: int = Field(default=0, ge=0, description="Number of reviews.")
    lapses: int = Field(default=0, ge=0, description="Number of Forgot grades.")
    last_reviewed: Optional[datetime] = Field(
        default=None, description="UTC timestamp of the last review."
    )
    next_review_date: Optional[datetime] = Field(
        default=None, description="UTC timestamp when the card becomes due."
    )
    interval: Optional[int] = Field(
        default=None, ge=0, description="Current interval in days."
    )
    last_grade: Optional[Grade] = Field(
        default=None, description="Grade given at the last review."
    )

    @field_validator("term", "definition")
    @classmethod
    def strip_text(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Text must not be blank.")
        return stripped

    @property
    def is_new(self) -> bool:
        return self.last_reviewed is None

    @property
    def has_memory_state(self) -> bool:
        return self.stability is not None and self.difficulty is not None

    @property
    def status_label(self) -> str:
        """Human readable study status, e.g. ``Studied: Hard``."""
        if self.is_new:
            return "New Card"
        if self.last_grade is not None:
            return f"Studied: {self.last_grade.label}"
        return "Studied"

    def with_memory_state(self, state: MemoryState) -> Flashcard:
        """Return a copy of this card with a scheduling result applied."""
        return self.model_copy(
            update={
                "stability": state.stability,
                "difficulty": state.difficulty,
                "reps": state.reps,
                "lapses": state.lapses,
                "last_reviewed": state.last_reviewed,
                "next_review_date": state.review_date,
                "interval": state.interval_days,
                "last_grade": state.last_grade,
            }
        )


class MemoryState(BaseModel):
    """
    Scheduling state produced by a single review, handed to the store.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    stability: float = Field(..., gt=0)
    difficulty: float = Field(..., ge=1, le=10)
    review_date: datetime = Field(..., description="When the card is next due.")
    last_reviewed: datetime = Field(..., description="When this review happened.")
    lapses: int = Field(..., ge=0)
    reps: int = Field(..., ge=1)
    interval_days: int = Field(..., ge=1)
    last_grade: Grade


class StudyQueueEntry(BaseModel):
    """
    A card decorated for one study round. Never persisted.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    card: Flashcard
    question_type: QuestionType
    is_true_false_correct: Optional[bool] = None
    false_pair: Optional[Flashcard] = None

    @property
    def card_id(self) -> str:
        return self.card.id

    @property
    def is_new(self) -> bool:
        return self.card.is_new


class FlashcardSet(BaseModel):
    """
    An ordered collection of flashcards. Card positions are 1-based.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str = Field(..., min_length=1)
    description: str = ""
    is_public: bool = True
    flashcards: List[Flashcard] = Field(default_factory=list)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def position_of(self, card_id: str) -> Optional[int]:
        """1-based position of a card in this set, or None."""
        for index, card in enumerate(self.flashcards):
            if card.id == card_id:
                return index + 1
        return None
