"""Linguaflow - spaced repetition study sessions for language flashcards."""

from .models import (
    Flashcard,
    FlashcardSet,
    Grade,
    MemoryState,
    QuestionFormat,
    QuestionType,
    StudyQueueEntry,
)
from .config import StudyConfig, apply_defaults
from .constants import DEFAULT_PARAMETERS, DEFAULT_DESIRED_RETENTION
from .scheduler import FSRS_Scheduler
from .session_composer import build_study_queue
from .study_session import StudySession
from .review_processor import ReviewProcessor
from .db import FlashcardDatabase

__all__ = [
    "Flashcard",
    "FlashcardSet",
    "Grade",
    "MemoryState",
    "QuestionFormat",
    "QuestionType",
    "StudyQueueEntry",
    "StudyConfig",
    "apply_defaults",
    "DEFAULT_PARAMETERS",
    "DEFAULT_DESIRED_RETENTION",
    "FSRS_Scheduler",
    "build_study_queue",
    "StudySession",
    "ReviewProcessor",
    "FlashcardDatabase",
]
