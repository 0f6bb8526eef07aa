import pytest
from pathlib import Path
from typing import Generator, List, Sequence
from datetime import datetime, timedelta, timezone

from linguaflow.models import Flashcard, Grade
from linguaflow.db import FlashcardDatabase


# each test runs on cwd to its temp dir
@pytest.fixture(autouse=True)
def go_to_tmpdir(request, monkeypatch):
    """
    Run each test inside its tmpdir with no LINGUAFLOW_* variables leaking in
    from the environment, so Settings only sees what the test sets.
    """
    for name in (
        "LINGUAFLOW_DB",
        "LINGUAFLOW_DB_PATH",
        "LINGUAFLOW_LOG_LEVEL",
        "LINGUAFLOW_RETRY_DELAY_SECONDS",
        "LINGUAFLOW_MAX_REVIEW_ATTEMPTS",
        "LINGUAFLOW_DESIRED_RETENTION",
    ):
        monkeypatch.delenv(name, raising=False)
    tmpdir = request.getfixturevalue("tmpdir")
    with tmpdir.as_cwd():
        yield


class SequenceRandom:
    """
    Deterministic stand-in for random.Random: returns the given values in
    order, cycling when they run out.
    """

    def __init__(self, values: Sequence[float] = (0.0,)):
        self.values = list(values)
        self.calls = 0

    def random(self) -> float:
        value = self.values[self.calls % len(self.values)]
        self.calls += 1
        return value


@pytest.fixture
def fixed_rng() -> SequenceRandom:
    """Always returns 0.0: first choice, true/false statements true."""
    return SequenceRandom([0.0])


# --- Time Fixtures ---
@pytest.fixture
def now() -> datetime:
    return datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


def make_card(term: str, definition: str, **kwargs) -> Flashcard:
    return Flashcard(term=term, definition=definition, **kwargs)


def make_seen_card(
    term: str,
    definition: str,
    last_reviewed: datetime,
    due: datetime,
    reps: int = 1,
    **kwargs,
) -> Flashcard:
    """A card that has already been reviewed at least once."""
    return Flashcard(
        term=term,
        definition=definition,
        stability=3.0,
        difficulty=5.0,
        reps=reps,
        lapses=0,
        last_reviewed=last_reviewed,
        next_review_date=due,
        interval=max(1, (due - last_reviewed).days),
        last_grade=Grade.Good,
        **kwargs,
    )


@pytest.fixture
def sample_cards() -> List[Flashcard]:
    """Five new Spanish cards in set order."""
    return [
        make_card("hola", "hello"),
        make_card("adiós", "goodbye"),
        make_card("gato", "cat"),
        make_card("perro", "dog"),
        make_card("casa", "house"),
    ]


@pytest.fixture
def mixed_cards(now: datetime) -> List[Flashcard]:
    """
    Set order: new, due review, new, review not yet due, due review.
    The review cards were last studied days ago so they do not count as new today.
    """
    long_ago = now - timedelta(days=10)
    return [
        make_card("uno", "one"),
        make_seen_card("dos", "two", long_ago, now - timedelta(days=1), reps=3),
        make_card("tres", "three"),
        make_seen_card("cuatro", "four", long_ago, now + timedelta(days=5), reps=2),
        make_seen_card("cinco", "five", long_ago, now - timedelta(hours=1), reps=4),
    ]


# --- Database Fixtures ---
@pytest.fixture
def db_path_memory() -> str:
    return ":memory:"


@pytest.fixture
def db_path_file(tmp_path: Path) -> Path:
    return tmp_path / "test_linguaflow.db"


@pytest.fixture(params=["memory", "file"])
def db_manager(
    request, db_path_memory: str, db_path_file: Path
) -> Generator[FlashcardDatabase, None, None]:
    """
    A FlashcardDatabase, either in-memory or file-backed, closed on teardown.
    """
    if request.param == "memory":
        db_man = FlashcardDatabase(db_path_memory)
    else:
        db_man = FlashcardDatabase(db_path_file)
    try:
        yield db_man
    finally:
        db_man.close_connection()


@pytest.fixture
def initialized_db_manager(
    db_manager: FlashcardDatabase,
) -> FlashcardDatabase:
    db_manager.initialize_schema()
    return db_manager


@pytest.fixture
def in_memory_db() -> Generator[FlashcardDatabase, None, None]:
    db = FlashcardDatabase(":memory:")
    db.initialize_schema()
    try:
        yield db
    finally:
        db.close_connection()
