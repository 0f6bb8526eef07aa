"""
Shared review processing logic for linguaflow.

The ReviewProcessor class encapsulates the steps every grading goes through:
1. Timestamp handling
2. Scheduler computation
3. Persistence of the new memory state, retried until the store accepts it
"""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, Tuple, Type, TypeVar, Union

from .constants import DEFAULT_RETRY_DELAY_SECONDS
from .exceptions import CardNotFoundError
from .models import Flashcard, Grade, MemoryState
from .scheduler import BaseScheduler

# Initialize logger
logger = logging.getLogger(__name__)

T = TypeVar("T")


class CardStore(Protocol):
    """Where graded memory states are persisted."""

    def record_review(
        self, set_id: str, card_id: str, grade: Grade, state: MemoryState
    ) -> Flashcard: ...


def retry_until_success(
    operation: Callable[[], T],
    delay: float = DEFAULT_RETRY_DELAY_SECONDS,
    max_attempts: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
    permanent_errors: Tuple[Type[Exception], ...] = (),
) -> T:
    """
    Call ``operation`` until it returns, sleeping ``delay`` seconds between
    failed attempts.

    With ``max_attempts`` of None this retries forever. Otherwise the last
    exception is re-raised once the attempts are used up. Exceptions listed
    in ``permanent_errors`` are re-raised at once.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return operation()
        except permanent_errors as e:
            logger.error(f"Attempt {attempt} failed permanently, not retrying: {e}")
            raise
        except Exception as e:
            if max_attempts is not None and attempt >= max_attempts:
                logger.error(f"Giving up after {attempt} attempts: {e}")
                raise
            logger.warning(
                f"Attempt {attempt} failed, retrying in {delay}s: {e}"
            )
            sleep(delay)


class ReviewProcessor:
    """
    Processes review submissions with consistent logic across all review workflows.
    """

    def __init__(
        self,
        store: CardStore,
        scheduler: BaseScheduler,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
        max_attempts: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the ReviewProcessor.

        Args:
            store: Persistence for updated memory states
            scheduler: Scheduler computing the next memory state
            retry_delay: Seconds to wait between failed persistence attempts
            max_attempts: Bound on persistence attempts (None retries forever)
            sleep: Sleep function, replaceable in tests
        """
        self.store = store
        self.scheduler = scheduler
        self.retry_delay = retry_delay
        self.max_attempts = max_attempts
        self._sleep = sleep

    def process_review(
        self,
        set_id: str,
        card: Flashcard,
        grade: Union[Grade, int],
        reviewed_at: Optional[datetime] = None,
    ) -> MemoryState:
        """
        Grade a card and persist the resulting memory state.

        Only persistence is retried; an invalid grade fails immediately.

        Args:
            set_id: Identity of the set the card belongs to
            card: The card being reviewed
            grade: User's grade (1-4: Forgot, Hard, Good, Easy)
            reviewed_at: Review timestamp (defaults to current time)

        Returns:
            The MemoryState that was persisted

        Raises:
            ValueError: If the grade is invalid
            CardNotFoundError: If the card is gone from the set (never retried)
            Exception: Whatever the store raised last, once max_attempts is used up
        """
        ts = reviewed_at or datetime.now(timezone.utc)

        logger.debug(f"Processing review for card {card.id} with grade {grade}")

        state = self.scheduler.schedule(card, grade, now=ts)

        retry_until_success(
            lambda: self.store.record_review(
                set_id, card.id, state.last_grade, state
            ),
            delay=self.retry_delay,
            max_attempts=self.max_attempts,
            sleep=self._sleep,
            permanent_errors=(CardNotFoundError,),
        )

        logger.debug(
            f"Review processed successfully for card {card.id}. "
            f"Next due: {state.review_date}, interval: {state.interval_days}d"
        )
        return state
