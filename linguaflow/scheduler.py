# linguaflow/scheduler.py

"""
Defines the BaseScheduler abstract class and FSRS_Scheduler, the FSRS-style
memory model used to schedule flashcard reviews.

The model tracks two numbers per card: stability (days until recall
probability decays to the target retention) and difficulty (1-10). Every
review moves both and yields the next due date.
"""

import logging
import math
from abc import ABC, abstractmethod
import datetime
from typing import Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator

from .constants import (
    DECAY,
    DEFAULT_DESIRED_RETENTION,
    DEFAULT_MAXIMUM_INTERVAL_DAYS,
    DEFAULT_PARAMETERS,
    FACTOR,
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
    MIN_INTERVAL_DAYS,
)
from .models import Flashcard, Grade, MemoryState

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0


def retrievability(t: float, s: float) -> float:
    """
    Probability of recall ``t`` days after a review, for stability ``s``.

    R(t) = (1 + F * t / S) ** C. Equals 1.0 at t = 0 and decays monotonically
    towards 0. Negative elapsed time (clock skew) is treated as 0.
    """
    if s <= 0:
        raise ValueError(f"Stability must be positive, got {s}")
    if t <= 0:
        return 1.0
    return (1.0 + FACTOR * (t / s)) ** DECAY


def interval(r_d: float, s: float) -> float:
    """
    Days until retrievability decays to ``r_d`` for stability ``s``.

    I(r_d) = (S / F) * (r_d ** (1 / C) - 1). Non-negative for r_d in (0, 1].
    """
    if not 0 < r_d <= 1:
        raise ValueError(f"Desired retention must be in (0, 1], got {r_d}")
    if s <= 0:
        raise ValueError(f"Stability must be positive, got {s}")
    return (s / FACTOR) * (r_d ** (1.0 / DECAY) - 1.0)


def clamp_difficulty(d: float) -> float:
    return max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, d))


def round_half_up(value: float) -> int:
    """
    Round to the nearest whole number, halves away from zero for positives.

    Float noise below 1e-9 is dropped first, so an exact half that comes out
    of the interval formula as 3.4999999999999996 still rounds up.
    """
    return int(math.floor(round(value, 9) + 0.5))


class BaseScheduler(ABC):
    """
    Abstract base class for all schedulers in linguaflow.
    """

    @abstractmethod
    def schedule(
        self,
        card: Flashcard,
        grade: Union[Grade, int],
        now: Optional[datetime.datetime] = None,
    ) -> MemoryState:
        """
        Computes the next memory state of a card for a new grade.

        Args:
            card: The card with its current memory state (may be new).
            grade: The grade given at this review (1=Forgot .. 4=Easy).
            now: Timestamp of the review; defaults to the current UTC time.

        Returns:
            The new MemoryState. The input card is not modified.

        Raises:
            ValueError: If the grade is invalid.
        """
        pass


class FSRSSchedulerConfig(BaseModel):
    """Configuration for the FSRS Scheduler."""

    parameters: Tuple[float, ...] = Field(
        default_factory=lambda: tuple(DEFAULT_PARAMETERS)
    )
    desired_retention: float = DEFAULT_DESIRED_RETENTION
    maximum_interval: int = Field(
        default=DEFAULT_MAXIMUM_INTERVAL_DAYS, ge=MIN_INTERVAL_DAYS
    )

    @field_validator("parameters")
    @classmethod
    def check_parameter_count(cls, v: Tuple[float, ...]) -> Tuple[float, ...]:
        if len(v) != len(DEFAULT_PARAMETERS):
            raise ValueError(
                f"Expected {len(DEFAULT_PARAMETERS)} parameters, got {len(v)}."
            )
        return v

    @field_validator("desired_retention")
    @classmethod
    def check_retention(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError(f"desired_retention must be in (0, 1], got {v}.")
        return v


class FSRS_Scheduler(BaseScheduler):
    """
    FSRS (Free Spaced Repetition Scheduler) implementation for linguaflow.

    Pure and deterministic given its inputs and the review timestamp.
    """

    def __init__(self, config: Optional[FSRSSchedulerConfig] = None):
        if config is None:
            config = FSRSSchedulerConfig()
        self.config = config
        self.w = tuple(self.config.parameters)

    def _ensure_utc(self, ts: datetime.datetime) -> datetime.datetime:
        """Ensures the given datetime is UTC. Assumes UTC if naive."""
        if ts.tzinfo is None or ts.tzinfo.utcoffset(ts) is None:
            return ts.replace(tzinfo=datetime.timezone.utc)
        if ts.tzinfo != datetime.timezone.utc:
            return ts.astimezone(datetime.timezone.utc)
        return ts

    def _validate_grade(self, grade: Union[Grade, int]) -> Grade:
        """Maps an int or Grade to Grade and validates."""
        if isinstance(grade, bool) or not isinstance(grade, int):
            raise ValueError(
                f"Invalid grade: {grade!r}. Must be 1-4 (1=Forgot, 2=Hard, 3=Good, 4=Easy)."
            )
        if not (1 <= grade <= 4):
            raise ValueError(
                f"Invalid grade: {grade}. Must be 1-4 (1=Forgot, 2=Hard, 3=Good, 4=Easy)."
            )
        return Grade(grade)

    # --- Memory model ---

    def initial_stability(self, grade: Grade) -> float:
        """S0(G): stability after the very first review."""
        if grade is Grade.Forgot:
            return self.w[0]
        elif grade is Grade.Hard:
            return self.w[1]
        elif grade is Grade.Good:
            return self.w[2]
        elif grade is Grade.Easy:
            return self.w[3]
        raise ValueError(f"Invalid grade: {grade!r}")

    def initial_difficulty(self, grade: Grade) -> float:
        """D0(G) = w4 - e^(w5 * (G - 1)) + 1, clamped to [1, 10]."""
        return clamp_difficulty(
            self.w[4] - math.exp(self.w[5] * (int(grade) - 1.0)) + 1.0
        )

    def stability_after_success(
        self, d: float, s: float, r: float, grade: Grade
    ) -> float:
        t_d = 11.0 - d
        t_s = s ** (-self.w[9])
        t_r = math.exp(self.w[10] * (1.0 - r)) - 1.0
        h = self.w[15] if grade is Grade.Hard else 1.0
        b = self.w[16] if grade is Grade.Easy else 1.0
        c = math.exp(self.w[8])
        return s * (1.0 + t_d * t_s * t_r * h * b * c)

    def stability_after_failure(self, d: float, s: float, r: float) -> float:
        # A lapse never increases stability.
        d_f = d ** (-self.w[12])
        s_f = (s + 1.0) ** self.w[13] - 1.0
        r_f = math.exp(self.w[14] * (1.0 - r))
        return min(d_f * s_f * r_f * self.w[11], s)

    def update_stability(
        self, d: float, s: float, r: float, grade: Grade
    ) -> float:
        if grade is Grade.Forgot:
            return self.stability_after_failure(d, s, r)
        return self.stability_after_success(d, s, r, grade)

    def update_difficulty(self, d: float, grade: Grade) -> float:
        """
        D' = D + dD * (10 - D) / 9 with dD = -w6 * (G - 3), then mean
        reversion towards D0(Easy). Always within [1, 10].
        """
        delta = -self.w[6] * (int(grade) - 3.0)
        d_prime = d + delta * ((10.0 - d) / 9.0)
        return clamp_difficulty(
            self.w[7] * self.initial_difficulty(Grade.Easy)
            + (1.0 - self.w[7]) * d_prime
        )

    def next_interval_days(self, s: float) -> int:
        """
        max(round(interval), 1) whole days, further capped at the configured
        ``maximum_interval`` (36500 days unless set lower).
        """
        days = round_half_up(interval(self.config.desired_retention, s))
        return min(max(days, MIN_INTERVAL_DAYS), self.config.maximum_interval)

    # --- Public API ---

    def elapsed_days(
        self, card: Flashcard, now: datetime.datetime
    ) -> float:
        """Fractional days since the card's last review (0 if never)."""
        if card.last_reviewed is None:
            return 0.0
        delta = now - self._ensure_utc(card.last_reviewed)
        return max(0.0, delta.total_seconds() / SECONDS_PER_DAY)

    def schedule(
        self,
        card: Flashcard,
        grade: Union[Grade, int],
        now: Optional[datetime.datetime] = None,
    ) -> MemoryState:
        """
        Computes the memory state after grading ``card`` at ``now``.
        """
        grade = self._validate_grade(grade)
        now = self._ensure_utc(now or datetime.datetime.now(datetime.timezone.utc))

        if not card.has_memory_state:
            stability = self.initial_stability(grade)
            difficulty = self.initial_difficulty(grade)
            lapses = 1 if grade.is_lapse else 0
            reps = 1
        else:
            assert card.stability is not None and card.difficulty is not None
            t = self.elapsed_days(card, now)
            r = retrievability(t, card.stability)
            stability = self.update_stability(
                card.difficulty, card.stability, r, grade
            )
            difficulty = self.update_difficulty(card.difficulty, grade)
            lapses = card.lapses + (1 if grade.is_lapse else 0)
            reps = card.reps + 1
            logger.debug(
                f"Card {card.id}: t={t:.3f}d r={r:.4f} "
                f"s {card.stability:.3f}->{stability:.3f} "
                f"d {card.difficulty:.3f}->{difficulty:.3f}"
            )

        interval_days = self.next_interval_days(stability)
        return MemoryState(
            stability=stability,
            difficulty=difficulty,
            review_date=now + datetime.timedelta(days=interval_days),
            last_reviewed=now,
            lapses=lapses,
            reps=reps,
            interval_days=interval_days,
            last_grade=grade,
        )

    def is_card_due(
        self, card: Flashcard, now: Optional[datetime.datetime] = None
    ) -> bool:
        """A card without memory state or due date is always due."""
        if not card.has_memory_state or card.next_review_date is None:
            return True
        now = self._ensure_utc(now or datetime.datetime.now(datetime.timezone.utc))
        return self._ensure_utc(card.next_review_date) <= now

    def current_retrievability(
        self, card: Flashcard, now: Optional[datetime.datetime] = None
    ) -> float:
        """Recall probability right now; 1.0 for cards never reviewed."""
        if card.stability is None or card.last_reviewed is None:
            return 1.0
        now = self._ensure_utc(now or datetime.datetime.now(datetime.timezone.utc))
        return retrievability(self.elapsed_days(card, now), card.stability)
