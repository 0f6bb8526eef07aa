"""
Utility functions for data marshalling between pydantic models and database
formats. Keeps type conversion out of the FlashcardDatabase facade.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..config import StudyConfig, apply_defaults
from ..exceptions import MarshallingError
from ..models import Flashcard, FlashcardSet, Grade, MemoryState


def to_db_timestamp(ts: Optional[datetime]) -> Optional[datetime]:
    """Aware datetime -> naive UTC for TIMESTAMP columns. Naive input is taken as UTC."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


def from_db_timestamp(ts: Optional[datetime]) -> Optional[datetime]:
    """Naive UTC from a TIMESTAMP column -> aware UTC datetime."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def card_to_db_params(card: Flashcard, set_id: str, position: int) -> Tuple:
    """
    Serialize a card for the flashcards table.

    Returns:
        Tuple: (id, set_id, position, term, definition, term_language,
        definition_language, starred, stability, difficulty, reps, lapses,
        last_reviewed, next_review_date, interval_days, last_grade)
    """
    return (
        card.id,
        set_id,
        position,
        card.term,
        card.definition,
        card.term_language,
        card.definition_language,
        card.starred,
        card.stability,
        card.difficulty,
        card.reps,
        card.lapses,
        to_db_timestamp(card.last_reviewed),
        to_db_timestamp(card.next_review_date),
        card.interval,
        int(card.last_grade) if card.last_grade is not None else None,
    )


def db_row_to_card(row_dict: Dict[str, Any]) -> Flashcard:
    """
    Create a Flashcard from a flashcards row.

    Raises:
        MarshallingError: If the row does not validate as a Flashcard.
    """
    data = row_dict.copy()
    data.pop("set_id", None)
    data.pop("position", None)
    data["interval"] = data.pop("interval_days", None)
    data["last_reviewed"] = from_db_timestamp(data.get("last_reviewed"))
    data["next_review_date"] = from_db_timestamp(data.get("next_review_date"))
    if data.get("last_grade") is not None:
        data["last_grade"] = Grade(data["last_grade"])
    for key in ("reps", "lapses"):
        if data.get(key) is None:
            data[key] = 0
    if data.get("starred") is None:
        data["starred"] = False

    try:
        return Flashcard(**data)
    except (ValidationError, ValueError) as e:
        raise MarshallingError(
            f"Failed to parse card from DB row: {row_dict}. Error: {e}",
            original_exception=e,
        ) from e


def db_row_to_set(
    row_dict: Dict[str, Any], cards: List[Flashcard]
) -> FlashcardSet:
    """Create a FlashcardSet from a flashcard_sets row and its ordered cards."""
    try:
        return FlashcardSet(
            id=row_dict["id"],
            title=row_dict["title"],
            description=row_dict.get("description") or "",
            is_public=bool(row_dict.get("is_public", True)),
            flashcards=cards,
            created_at=from_db_timestamp(row_dict["created_at"]),
            updated_at=from_db_timestamp(row_dict["updated_at"]),
        )
    except (ValidationError, KeyError) as e:
        raise MarshallingError(
            f"Failed to parse flashcard set from DB row: {row_dict}. Error: {e}",
            original_exception=e,
        ) from e


def review_to_db_params(
    set_id: str, card_id: str, grade: Grade, state: MemoryState
) -> Tuple:
    """
    Returns:
        Tuple: (card_id, set_id, ts, grade, stability, difficulty,
        review_date, interval_days)
    """
    return (
        card_id,
        set_id,
        to_db_timestamp(state.last_reviewed),
        int(grade),
        state.stability,
        state.difficulty,
        to_db_timestamp(state.review_date),
        state.interval_days,
    )


def study_options_to_json(config: StudyConfig) -> str:
    return json.dumps(config.to_storage())


def json_to_study_options(raw: Optional[str]) -> StudyConfig:
    """
    Parse stored study options, filling missing fields with defaults.

    Raises:
        MarshallingError: If the stored JSON is malformed or invalid.
    """
    if not raw:
        return apply_defaults(None)
    try:
        return apply_defaults(json.loads(raw))
    except (ValueError, ValidationError) as e:
        raise MarshallingError(
            f"Failed to parse stored study options: {e}", original_exception=e
        ) from e
