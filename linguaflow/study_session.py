"""
This module defines the StudySession class, which runs study rounds for one
flashcard set: it builds the queue, hands out cards one at a time, grades
them through the ReviewProcessor and requeues cards that were not recalled
well enough.
"""

import logging
import random
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional, Sequence, Union

from .config import StudyConfig
from .exceptions import StudyConfigurationError
from .models import Flashcard, Grade, MemoryState, QuestionType, StudyQueueEntry
from .review_processor import ReviewProcessor
from .session_composer import RandomSource, build_study_queue

# Initialize logger
logger = logging.getLogger(__name__)

# Card fields a user can edit while a round is running.
EDITABLE_FIELDS = ("term", "definition", "starred", "term_language", "definition_language")


class SessionState(Enum):
    IDLE = "idle"
    IN_ROUND = "in_round"
    ROUND_COMPLETE = "round_complete"


class StudySession:
    """
    Manages study rounds for a flashcard set.

    Life cycle: IDLE -> start() -> IN_ROUND -> queue empties ->
    ROUND_COMPLETE -> stop() (IDLE) or keep_studying() (IN_ROUND).

    The queue is only mutated after the graded state has been persisted.
    """

    def __init__(
        self,
        processor: ReviewProcessor,
        set_id: str,
        config: Optional[StudyConfig] = None,
        rng: Optional[RandomSource] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Create a StudySession for a set.

        Parameters:
            processor (ReviewProcessor): Grades cards and persists the results.
            set_id (str): Identity of the set being studied.
            config (Optional[StudyConfig]): Study options; defaults apply when omitted.
            rng (Optional[RandomSource]): Random source for queue composition.
            clock (Optional[Callable[[], datetime]]): Returns the current time.
        """
        self.processor = processor
        self.set_id = set_id
        self.config = config or StudyConfig()
        self.rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.state = SessionState.IDLE
        self.queue: List[StudyQueueEntry] = []
        self.current_index = 0
        self.all_cards: List[Flashcard] = []
        self.error: Optional[str] = None
        self.is_processing_review = False
        self.awaiting_retype = False
        self.reviewed_count = 0

    # --- State ---

    @property
    def current_entry(self) -> Optional[StudyQueueEntry]:
        if self.state is not SessionState.IN_ROUND or not self.queue:
            return None
        return self.queue[self.current_index]

    @property
    def remaining(self) -> int:
        return len(self.queue)

    @property
    def is_round_complete(self) -> bool:
        return self.state is SessionState.ROUND_COMPLETE

    def _require_current(self) -> StudyQueueEntry:
        entry = self.current_entry
        if entry is None:
            raise ValueError(
                f"No card to study: session is {self.state.value}."
            )
        return entry

    # --- Round life cycle ---

    def start(
        self, cards: Sequence[Flashcard], config: Optional[StudyConfig] = None
    ) -> bool:
        """
        Build a new round from the full card collection of the set.

        Returns True when the round started. On a configuration problem the
        user-facing message is stored in ``error``, the current queue is left
        untouched and False is returned; a session that was not mid-round is
        IDLE afterwards.
        """
        if config is not None:
            self.config = config
        try:
            queue = build_study_queue(
                cards, self.config, now=self._clock(), rng=self.rng
            )
        except StudyConfigurationError as e:
            logger.info(f"Study round for set {self.set_id} not started: {e}")
            self.error = str(e)
            if self.state is not SessionState.IN_ROUND:
                self.state = SessionState.IDLE
            return False

        self.all_cards = list(cards)
        self.queue = queue
        self.current_index = 0
        self.awaiting_retype = False
        self.error = None
        self.state = SessionState.IN_ROUND
        logger.info(
            f"Started study round for set {self.set_id} with {len(queue)} cards."
        )
        return True

    def keep_studying(self, cards: Optional[Sequence[Flashcard]] = None) -> bool:
        """Start another round, by default from the cards as updated so far."""
        return self.start(cards if cards is not None else self.all_cards)

    def stop(self) -> None:
        """Discard the round and return to IDLE."""
        self.queue = []
        self.current_index = 0
        self.awaiting_retype = False
        self.state = SessionState.IDLE
        logger.info(f"Stopped studying set {self.set_id}.")

    def _remove_current(self) -> None:
        del self.queue[self.current_index]
        self.awaiting_retype = False
        if not self.queue:
            self.current_index = 0
            self.state = SessionState.ROUND_COMPLETE
            logger.info(f"Round complete for set {self.set_id}.")
        elif self.current_index >= len(self.queue):
            self.current_index = 0

    # --- Grading ---

    def _latest_card(self, card_id: str, fallback: Flashcard) -> Flashcard:
        for card in self.all_cards:
            if card.id == card_id:
                return card
        return fallback

    def _replace_card(self, updated: Flashcard) -> None:
        self.all_cards = [
            updated if card.id == updated.id else card for card in self.all_cards
        ]

    def grade(self, grade: Union[Grade, int]) -> Optional[MemoryState]:
        """
        Grade the current card.

        Persists the new memory state, then removes the card from the queue.
        Forgot and Hard append the same entry to the end of the queue first,
        so it comes back later in this round. A call made while a previous
        grading is still being processed is ignored and returns None.

        Raises:
            ValueError: If there is no current card or the grade is invalid.
        """
        if self.is_processing_review:
            logger.warning(
                f"Ignoring grade {grade!r}: a review is already being processed."
            )
            return None

        entry = self._require_current()
        self.is_processing_review = True
        try:
            card = self._latest_card(entry.card_id, entry.card)
            state = self.processor.process_review(
                self.set_id, card, grade, reviewed_at=self._clock()
            )
            self._replace_card(card.with_memory_state(state))
            self.reviewed_count += 1

            if state.last_grade.requeues:
                self.queue.append(entry)
            self._remove_current()
            return state
        finally:
            self.is_processing_review = False

    def skip(self) -> None:
        """
        Pass over the current card without grading it.

        Written questions start the "don't know" flow instead: the answer is
        revealed and must be retyped, then complete_dont_know() grades it.
        """
        if self.is_processing_review:
            logger.warning("Ignoring skip: a review is already being processed.")
            return

        entry = self._require_current()
        if entry.question_type is QuestionType.WRITTEN:
            self.awaiting_retype = True
        elif entry.question_type in (
            QuestionType.FLASHCARDS,
            QuestionType.MULTIPLE_CHOICE,
            QuestionType.TRUE_FALSE,
        ):
            self._remove_current()
        else:
            raise ValueError(f"Unknown question type: {entry.question_type!r}")

    def complete_dont_know(self) -> Optional[MemoryState]:
        """Finish the "don't know" flow; same as grading Forgot."""
        if not self.awaiting_retype:
            raise ValueError("No \"don't know\" answer is pending.")
        return self.grade(Grade.Forgot)

    # --- Edits ---

    def apply_card_edit(self, edited: Flashcard) -> None:
        """Update the content of a card everywhere it appears in this round."""
        changes = {field: getattr(edited, field) for field in EDITABLE_FIELDS}

        self.all_cards = [
            card.model_copy(update=changes) if card.id == edited.id else card
            for card in self.all_cards
        ]
        for entry in self.queue:
            if entry.card_id == edited.id:
                entry.card = entry.card.model_copy(update=changes)
