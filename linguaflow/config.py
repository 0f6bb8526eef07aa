"""
Study options and application settings.

Study options are stored per flashcard set and may be partially specified
(older records lack newer fields, the UI writes camelCase keys). They are
always turned into a complete StudyConfig through apply_defaults().
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DEFAULT_CARDS_PER_ROUND,
    DEFAULT_DESIRED_RETENTION,
    DEFAULT_NEW_CARDS_PER_DAY,
    DEFAULT_RETRY_DELAY_SECONDS,
)
from .models import QuestionFormat, QuestionType

logger = logging.getLogger(__name__)


class _OptionsModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        validate_assignment=True,
    )


class QuestionTypeToggles(_OptionsModel):
    """Independent on/off switches, one per question type."""

    flashcards: bool = False
    multiple_choice: bool = False
    written: bool = False
    true_false: bool = False

    def enabled(self) -> List[QuestionType]:
        """Enabled question types in declaration order."""
        toggles = {
            QuestionType.FLASHCARDS: self.flashcards,
            QuestionType.MULTIPLE_CHOICE: self.multiple_choice,
            QuestionType.WRITTEN: self.written,
            QuestionType.TRUE_FALSE: self.true_false,
        }
        return [qtype for qtype, is_on in toggles.items() if is_on]


class CardRange(_OptionsModel):
    """
    A 1-based inclusive range of card positions.

    Bounds are kept as entered (the UI stores strings, blank meaning unset);
    bounds() reports whether the range is usable.
    """

    start: Union[int, str, None] = ""
    end: Union[int, str, None] = ""

    def bounds(self) -> Optional[Tuple[int, int]]:
        """
        Return (start, end) when both bounds are positive integers with
        end >= start, otherwise None.
        """
        start = _parse_bound(self.start)
        end = _parse_bound(self.end)
        if start is None or end is None:
            return None
        if start <= 0 or end < start:
            return None
        return start, end


def _parse_bound(value: Union[int, str, None]) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


class LearningOptions(_OptionsModel):
    """
    Per-set learning switches. ``sound_effects`` and ``auto_advance`` are
    stored only, so saved options keep their shape; nothing here reads them.
    """

    study_starred_only: bool = False
    shuffle: bool = False
    study_range_only: CardRange = Field(default_factory=CardRange)
    exclude_range: CardRange = Field(default_factory=CardRange)
    retype_answer: bool = True
    sound_effects: bool = True
    auto_advance: bool = False


def _default_new_card_types() -> QuestionTypeToggles:
    return QuestionTypeToggles(flashcards=True)


def _default_seen_card_types() -> QuestionTypeToggles:
    return QuestionTypeToggles(written=True)


class StudyConfig(_OptionsModel):
    """
    Shape of a study session for one flashcard set.

    ``exam_date`` is stored only; scheduling does not read it.
    """

    exam_date: Optional[datetime] = None
    new_cards_per_day: int = Field(default=DEFAULT_NEW_CARDS_PER_DAY, ge=0)
    cards_per_round: int = Field(default=DEFAULT_CARDS_PER_ROUND, ge=1)
    new_card_question_types: QuestionTypeToggles = Field(
        default_factory=_default_new_card_types
    )
    seen_card_question_types: QuestionTypeToggles = Field(
        default_factory=_default_seen_card_types
    )
    question_format: QuestionFormat = QuestionFormat.TERM
    learning_options: LearningOptions = Field(default_factory=LearningOptions)

    def enabled_types(self, is_new: bool) -> List[QuestionType]:
        """Enabled question types for the given novelty class."""
        toggles = (
            self.new_card_question_types
            if is_new
            else self.seen_card_question_types
        )
        return toggles.enabled()

    def to_storage(self) -> Dict[str, Any]:
        """camelCase mapping suitable for persisting."""
        return self.model_dump(mode="json", by_alias=True)


def _drop_nones(data: Mapping[str, Any]) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}
    for key, value in data.items():
        if value is None:
            continue
        if isinstance(value, Mapping):
            value = _drop_nones(value)
        cleaned[key] = value
    return cleaned


def apply_defaults(partial: Optional[Mapping[str, Any]] = None) -> StudyConfig:
    """
    Merge partially specified study options with the defaults, field by field.

    Missing or null fields (at any nesting level) take their default. A
    missing, zero or otherwise falsy ``cardsPerRound`` falls back to the
    default rather than failing validation. Unknown keys are ignored.

    Raises:
        pydantic.ValidationError: If a present field has an invalid value.
    """
    if not partial:
        return StudyConfig()

    data = _drop_nones(partial)
    for key in ("cardsPerRound", "cards_per_round"):
        if key in data and not data[key]:
            logger.debug(f"Ignoring falsy {key}={data[key]!r}, using default")
            del data[key]
    return StudyConfig.model_validate(data)


class Settings(BaseSettings):
    """
    Application settings, loaded from LINGUAFLOW_* environment variables or
    a .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="LINGUAFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    db_path: Optional[Path] = None
    retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS
    # None retries until the store accepts the review.
    max_review_attempts: Optional[int] = None
    desired_retention: float = DEFAULT_DESIRED_RETENTION
    log_level: str = "WARNING"


def get_settings() -> Settings:
    return Settings()
