"""
Study round composition.

Turns a flashcard set and its study options into an ordered queue of
StudyQueueEntry objects: which cards are studied this round, in what order,
and how each one is asked. Pure functions; randomness comes from an injected
source so tests can make it deterministic.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Sequence, Tuple, TypeVar

from .config import CardRange, StudyConfig
from .exceptions import StudyConfigurationError
from .models import (
    Flashcard,
    QuestionFormat,
    QuestionType,
    StudyQueueEntry,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

NO_CARDS_MESSAGE = (
    "No cards to study with the current settings. Try adjusting the study "
    "options or wait for cards to become due."
)
NO_NEW_CARD_TYPES_MESSAGE = (
    "Your study session includes new cards, but you have no question types "
    "selected for them. Please adjust your study options."
)
NO_SEEN_CARD_TYPES_MESSAGE = (
    "Your study session includes review cards, but you have no question "
    "types selected for them. Please adjust your study options."
)

MAX_WRONG_OPTIONS = 3


class RandomSource(Protocol):
    """Anything with ``random() -> float`` in [0, 1), e.g. random.Random."""

    def random(self) -> float: ...


# --- Randomness helpers ---


def shuffle(items: Sequence[T], rng: RandomSource) -> List[T]:
    """Return a Fisher-Yates shuffled copy of ``items``."""
    result = list(items)
    for i in range(len(result) - 1, 0, -1):
        j = min(int(rng.random() * (i + 1)), i)
        result[i], result[j] = result[j], result[i]
    return result


def choose(items: Sequence[T], rng: RandomSource) -> T:
    """Uniformly pick one element of a non-empty sequence."""
    if not items:
        raise ValueError("Cannot choose from an empty sequence.")
    return items[min(int(rng.random() * len(items)), len(items) - 1)]


# --- Dates ---


def _as_local(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_today(ts: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """Whether ``ts`` falls on the same local calendar day as ``now``."""
    if ts is None:
        return False
    now = now or _utc_now()
    return _as_local(ts).date() == _as_local(now).date()


def is_due(card: Flashcard, now: datetime) -> bool:
    if card.next_review_date is None:
        return True
    return _as_local(card.next_review_date) <= _as_local(now)


# --- Selection ---


def count_new_cards_reviewed_today(
    cards: Sequence[Flashcard], now: Optional[datetime] = None
) -> int:
    """
    Cards whose first-ever review happened today.

    Counts ``reps == 1`` cards reviewed today, so a new card reviewed twice
    today is not counted. Known approximation, kept as is.
    """
    return sum(
        1 for card in cards if card.reps == 1 and is_today(card.last_reviewed, now)
    )


def remaining_new_cards_today(
    cards: Sequence[Flashcard], config: StudyConfig, now: Optional[datetime] = None
) -> int:
    reviewed = count_new_cards_reviewed_today(cards, now)
    return max(0, config.new_cards_per_day - reviewed)


def parse_card_range(card_range: Optional[CardRange]) -> Optional[Tuple[int, int]]:
    """(start, end) for a usable 1-based inclusive range, else None."""
    if card_range is None:
        return None
    return card_range.bounds()


def partition_by_novelty(
    cards: Sequence[Flashcard],
) -> Tuple[List[Flashcard], List[Flashcard]]:
    """Split into (review cards, new cards), preserving order."""
    review_cards = [card for card in cards if not card.is_new]
    new_cards = [card for card in cards if card.is_new]
    return review_cards, new_cards


def _fill_round(
    pool: Sequence[Flashcard],
    cards_per_round: int,
    new_allowance: int,
    shuffle_enabled: bool,
    rng: RandomSource,
) -> List[Flashcard]:
    """Review cards first, then new cards up to the free slots and allowance."""
    review_cards, new_cards = partition_by_novelty(pool)
    if shuffle_enabled:
        review_cards = shuffle(review_cards, rng)
        new_cards = shuffle(new_cards, rng)

    selected = review_cards[:cards_per_round]
    remaining_slots = cards_per_round - len(selected)
    if remaining_slots > 0:
        selected.extend(new_cards[: min(remaining_slots, new_allowance)])
    return selected


def compose_round(
    cards: Sequence[Flashcard],
    config: StudyConfig,
    now: Optional[datetime] = None,
    rng: Optional[RandomSource] = None,
) -> List[Flashcard]:
    """
    Select and order the cards for one study round.

    A usable "study only" range takes precedence over due dates and the
    exclude range. Review cards always come before new cards.
    """
    now = now or _utc_now()
    rng = rng or random.Random()
    options = config.learning_options

    new_allowance = remaining_new_cards_today(cards, config, now)

    study_range = parse_card_range(options.study_range_only)
    if study_range is not None:
        start, end = study_range
        pool = list(cards[start - 1 : end])
        logger.debug(f"Study range {start}-{end} selects {len(pool)} cards")
    else:
        pool = list(cards)
        exclude = parse_card_range(options.exclude_range)
        if exclude is not None:
            ex_start, ex_end = exclude
            pool = [
                card
                for position, card in enumerate(pool, start=1)
                if position < ex_start or position > ex_end
            ]
        pool = [card for card in pool if is_due(card, now)]

    selected = _fill_round(
        pool, config.cards_per_round, new_allowance, options.shuffle, rng
    )

    if options.study_starred_only:
        selected = [card for card in selected if card.starred]

    if options.shuffle:
        review_cards, new_cards = partition_by_novelty(selected)
        selected = shuffle(review_cards, rng) + shuffle(new_cards, rng)

    return selected


# --- Annotation ---


def _annotate(
    card: Flashcard,
    question_type: QuestionType,
    all_cards: Sequence[Flashcard],
    rng: RandomSource,
) -> StudyQueueEntry:
    entry = StudyQueueEntry(card=card, question_type=question_type)
    if question_type is QuestionType.TRUE_FALSE:
        entry.is_true_false_correct = rng.random() < 0.5
        if not entry.is_true_false_correct:
            others = [other for other in all_cards if other.id != card.id]
            if others:
                entry.false_pair = choose(others, rng)
            else:
                # A single-card set cannot make a false statement.
                entry.is_true_false_correct = True
    elif question_type in (
        QuestionType.FLASHCARDS,
        QuestionType.MULTIPLE_CHOICE,
        QuestionType.WRITTEN,
    ):
        pass
    else:
        raise ValueError(f"Unknown question type: {question_type!r}")
    return entry


def assign_question_types(
    cards: Sequence[Flashcard],
    all_cards: Sequence[Flashcard],
    config: StudyConfig,
    rng: Optional[RandomSource] = None,
) -> List[StudyQueueEntry]:
    """
    Give every card a question type drawn uniformly from the types enabled
    for its novelty class.

    Raises:
        StudyConfigurationError: If a card's novelty class has no enabled type.
    """
    rng = rng or random.Random()
    new_types = config.enabled_types(is_new=True)
    seen_types = config.enabled_types(is_new=False)

    entries = []
    for card in cards:
        types = new_types if card.is_new else seen_types
        if not types:
            raise StudyConfigurationError(
                NO_NEW_CARD_TYPES_MESSAGE if card.is_new else NO_SEEN_CARD_TYPES_MESSAGE
            )
        entries.append(_annotate(card, choose(types, rng), all_cards, rng))
    return entries


def build_study_queue(
    cards: Sequence[Flashcard],
    config: StudyConfig,
    now: Optional[datetime] = None,
    rng: Optional[RandomSource] = None,
) -> List[StudyQueueEntry]:
    """
    Compose and annotate the study queue for a round.

    Args:
        cards: Every card of the set, in set order (positions are 1-based).
        config: Study options.
        now: Reference time for due and "today" checks.
        rng: Random source for shuffling and question assignment.

    Returns:
        The ordered queue, review cards before new cards.

    Raises:
        StudyConfigurationError: If the round would be empty or contains a
            novelty class without any enabled question type.
    """
    rng = rng or random.Random()
    selected = compose_round(cards, config, now=now, rng=rng)

    if not selected:
        raise StudyConfigurationError(NO_CARDS_MESSAGE)

    review_cards, new_cards = partition_by_novelty(selected)
    if new_cards and not config.enabled_types(is_new=True):
        raise StudyConfigurationError(NO_NEW_CARD_TYPES_MESSAGE)
    if review_cards and not config.enabled_types(is_new=False):
        raise StudyConfigurationError(NO_SEEN_CARD_TYPES_MESSAGE)

    queue = assign_question_types(selected, cards, config, rng)
    logger.info(
        f"Composed study queue: {len(review_cards)} review, {len(new_cards)} new"
    )
    return queue


# --- Presenting and checking answers ---


def prompt_and_answer(
    card: Flashcard, question_format: QuestionFormat
) -> Tuple[str, str]:
    """(shown side, expected answer) for a card."""
    if question_format is QuestionFormat.TERM:
        return card.definition, card.term
    elif question_format is QuestionFormat.DEFINITION:
        return card.term, card.definition
    raise ValueError(f"Unknown question format: {question_format!r}")


def build_multiple_choice_options(
    entry: StudyQueueEntry,
    all_cards: Sequence[Flashcard],
    question_format: QuestionFormat,
    rng: Optional[RandomSource] = None,
) -> List[str]:
    """
    The correct answer plus up to three distinct wrong answers, shuffled.
    """
    rng = rng or random.Random()
    _, correct = prompt_and_answer(entry.card, question_format)

    wrong: List[str] = []
    for card in all_cards:
        _, candidate = prompt_and_answer(card, question_format)
        if candidate.strip() != correct.strip() and candidate not in wrong:
            wrong.append(candidate)

    options = [correct] + shuffle(wrong, rng)[:MAX_WRONG_OPTIONS]
    return shuffle(options, rng)


def true_false_statement(
    entry: StudyQueueEntry, question_format: QuestionFormat
) -> Tuple[str, str]:
    """(shown side, proposed answer) for a true/false item."""
    prompt, answer = prompt_and_answer(entry.card, question_format)
    if entry.is_true_false_correct or entry.false_pair is None:
        return prompt, answer
    _, false_answer = prompt_and_answer(entry.false_pair, question_format)
    return prompt, false_answer


def check_written_answer(given: str, expected: str) -> bool:
    return given.strip().lower() == expected.strip().lower()


def check_multiple_choice_answer(selected: str, expected: str) -> bool:
    return selected.strip() == expected.strip()


def check_true_false_answer(entry: StudyQueueEntry, answered_true: bool) -> bool:
    return answered_true == bool(entry.is_true_false_correct)
