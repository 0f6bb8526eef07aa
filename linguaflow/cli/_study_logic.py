from pathlib import Path

from linguaflow.cli.study_ui import start_study_flow
from linguaflow.config import Settings
from linguaflow.db.database import FlashcardDatabase
from linguaflow.exceptions import SetNotFoundError
from linguaflow.models import FlashcardSet
from linguaflow.review_processor import ReviewProcessor
from linguaflow.scheduler import FSRS_Scheduler, FSRSSchedulerConfig
from linguaflow.study_session import StudySession


def resolve_set(db: FlashcardDatabase, set_ref: str) -> FlashcardSet:
    """
    Find a set by id, falling back to its title.

    Raises:
        SetNotFoundError: If neither matches.
    """
    try:
        return db.get_set(set_ref)
    except SetNotFoundError:
        found = db.find_set_by_title(set_ref)
        if found is None:
            raise
        return found


def study_logic(set_ref: str, db_path: Path, settings: Settings) -> int:
    """
    Set up and run an interactive study session for one set.

    Loads the set and its study options, wires a scheduler and review
    processor to the database and hands over to the study UI.

    Returns:
        int: Number of gradings made.
    """
    with FlashcardDatabase(db_path=db_path) as db:
        db.initialize_schema()
        flashcard_set = resolve_set(db, set_ref)
        config = db.get_study_options(flashcard_set.id)

        scheduler = FSRS_Scheduler(
            FSRSSchedulerConfig(desired_retention=settings.desired_retention)
        )
        processor = ReviewProcessor(
            store=db,
            scheduler=scheduler,
            retry_delay=settings.retry_delay_seconds,
            max_attempts=settings.max_review_attempts,
        )
        session = StudySession(processor, flashcard_set.id, config=config)
        return start_study_flow(
            session, flashcard_set.flashcards, title=flashcard_set.title
        )
