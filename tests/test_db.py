"""
Test suite for linguaflow.db (FlashcardDatabase), covering connection, schema,
set and card CRUD, study options, review logging and error handling.
"""

import pytest

from datetime import datetime, timedelta, timezone
from pathlib import Path

import duckdb

from linguaflow.config import StudyConfig, apply_defaults
from linguaflow.db import FlashcardDatabase
from linguaflow.db import db_utils
from linguaflow.db.connection import ConnectionHandler
from linguaflow.exceptions import (
    CardNotFoundError,
    CardOperationError,
    DatabaseConnectionError,
    MarshallingError,
    ReviewOperationError,
    SchemaInitializationError,
    SetNotFoundError,
)
from linguaflow.models import Flashcard, FlashcardSet, Grade, MemoryState

REVIEW_TS = datetime(2024, 2, 1, 8, 0, tzinfo=timezone.utc)


def _cards(*terms):
    return [Flashcard(term=t, definition=t.upper()) for t in terms]


def _state(grade=Grade.Good, days=3, reps=1, lapses=0):
    return MemoryState(
        stability=3.17,
        difficulty=5.28,
        review_date=REVIEW_TS + timedelta(days=days),
        last_reviewed=REVIEW_TS,
        lapses=lapses,
        reps=reps,
        interval_days=days,
        last_grade=grade,
    )


@pytest.fixture
def spanish_set(initialized_db_manager: FlashcardDatabase) -> FlashcardSet:
    return initialized_db_manager.create_set(
        FlashcardSet(
            title="Spanish 101",
            description="Basics",
            flashcards=_cards("uno", "dos", "tres"),
        )
    )


# --- Connection & Schema ---

class TestConnectionAndSchema:
    def test_schema_creates_tables(self, initialized_db_manager):
        conn = initialized_db_manager.get_connection()
        tables = {
            row[0]
            for row in conn.execute(
                "SELECT table_name FROM information_schema.tables;"
            ).fetchall()
        }
        assert {"flashcard_sets", "flashcards", "reviews"} <= tables

    def test_initialize_schema_is_idempotent(self, initialized_db_manager):
        initialized_db_manager.initialize_schema()

    def test_context_manager_initializes_new_database(self, tmp_path: Path):
        path = tmp_path / "fresh.db"
        with FlashcardDatabase(path) as db:
            assert db.list_sets() == []
        assert path.exists()

    def test_memory_path_is_recognised(self, db_path_memory):
        db = FlashcardDatabase(db_path_memory)
        assert str(db.db_path_resolved) == ":memory:"

    def test_read_only_database_rejects_writes(self, tmp_path: Path):
        path = tmp_path / "ro.db"
        with FlashcardDatabase(path) as db:
            created = db.create_set(FlashcardSet(title="RO", flashcards=_cards("a")))

        with FlashcardDatabase(path, read_only=True) as ro_db:
            assert ro_db.read_only
            flashcard_set = ro_db.get_set(created.id)
            assert len(flashcard_set.flashcards) == 1
            with pytest.raises(DatabaseConnectionError):
                ro_db.record_review(
                    created.id, flashcard_set.flashcards[0].id, Grade.Good, _state()
                )
            with pytest.raises(DatabaseConnectionError):
                ro_db.initialize_schema(force_recreate_tables=True)

    def test_force_recreate_refuses_to_drop_file_data(self, db_path_file: Path):
        with FlashcardDatabase(db_path_file) as db:
            db.create_set(FlashcardSet(title="Keep", flashcards=_cards("a")))
            with pytest.raises(SchemaInitializationError):
                db.initialize_schema(force_recreate_tables=True)

    def test_force_recreate_on_memory_database(self, db_path_memory):
        with FlashcardDatabase(db_path_memory) as db:
            db.create_set(FlashcardSet(title="Gone", flashcards=_cards("a")))
            db.initialize_schema(force_recreate_tables=True)
            assert db.list_sets() == []

    def test_missing_database_cannot_be_opened_read_only(self, tmp_path: Path):
        missing = tmp_path / "missing.db"
        db = FlashcardDatabase(missing, read_only=True)
        with pytest.raises(DatabaseConnectionError, match="does not exist"):
            db.get_connection()
        assert not missing.exists()

    def test_memory_database_cannot_be_read_only(self, db_path_memory):
        handler = ConnectionHandler(db_path_memory, read_only=True)
        with pytest.raises(DatabaseConnectionError, match="in-memory"):
            handler.get_connection()

    def test_connection_error_is_wrapped(self, tmp_path: Path):
        directory = tmp_path / "not_a_file"
        directory.mkdir()
        db = FlashcardDatabase(directory)
        with pytest.raises(DatabaseConnectionError) as exc_info:
            db.get_connection()
        assert isinstance(exc_info.value.original_exception, (duckdb.Error, OSError))

    def test_home_directory_is_expanded(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        handler = ConnectionHandler("~/decks/cards.db")
        assert handler.db_path_resolved == (tmp_path / "decks" / "cards.db").resolve()

    def test_handler_tracks_new_and_open_state(self, tmp_path: Path):
        path = tmp_path / "nested" / "cards.db"
        handler = ConnectionHandler(path)
        assert not handler.is_open

        handler.get_connection()
        assert handler.is_open
        assert handler.is_new_db
        assert path.parent.is_dir()
        handler.close_connection()
        assert not handler.is_open

        reopened = ConnectionHandler(path)
        reopened.get_connection()
        assert not reopened.is_new_db
        reopened.close_connection()


# --- Sets ---

class TestSets:
    def test_create_and_get_set(self, initialized_db_manager, spanish_set):
        fetched = initialized_db_manager.get_set(spanish_set.id)

        assert fetched.title == "Spanish 101"
        assert fetched.description == "Basics"
        assert [c.term for c in fetched.flashcards] == ["uno", "dos", "tres"]
        assert fetched.created_at.tzinfo == timezone.utc
        assert all(card.is_new for card in fetched.flashcards)

    def test_get_missing_set_raises(self, initialized_db_manager):
        with pytest.raises(SetNotFoundError):
            initialized_db_manager.get_set("nope")

    def test_duplicate_set_id_is_rejected(self, initialized_db_manager, spanish_set):
        with pytest.raises(CardOperationError):
            initialized_db_manager.create_set(
                FlashcardSet(id=spanish_set.id, title="Copy")
            )

    def test_failed_create_leaves_no_partial_set(self, initialized_db_manager):
        card = Flashcard(term="x", definition="y")
        with pytest.raises(CardOperationError):
            initialized_db_manager.create_set(
                FlashcardSet(title="Broken", flashcards=[card, card])
            )
        assert initialized_db_manager.find_set_by_title("Broken") is None

    def test_find_set_by_title(self, initialized_db_manager, spanish_set):
        found = initialized_db_manager.find_set_by_title("Spanish 101")
        assert found is not None and found.id == spanish_set.id
        assert initialized_db_manager.find_set_by_title("French") is None

    def test_list_sets(self, initialized_db_manager, spanish_set):
        initialized_db_manager.create_set(FlashcardSet(title="Empty"))
        initialized_db_manager.record_review(
            spanish_set.id, spanish_set.flashcards[0].id, Grade.Good, _state()
        )

        rows = initialized_db_manager.list_sets()

        assert [r["title"] for r in rows] == ["Empty", "Spanish 101"]
        spanish = rows[1]
        assert spanish["card_count"] == 3
        assert spanish["new_count"] == 2
        assert rows[0]["card_count"] == 0


# --- Cards ---

class TestCards:
    def test_add_cards_appends_positions(self, initialized_db_manager, spanish_set):
        added = initialized_db_manager.add_cards(spanish_set.id, _cards("cuatro", "cinco"))

        assert added == 2
        cards = initialized_db_manager.get_cards(spanish_set.id)
        assert [c.term for c in cards] == ["uno", "dos", "tres", "cuatro", "cinco"]

    def test_add_no_cards(self, initialized_db_manager, spanish_set):
        assert initialized_db_manager.add_cards(spanish_set.id, []) == 0

    def test_add_cards_to_missing_set(self, initialized_db_manager):
        with pytest.raises(SetNotFoundError):
            initialized_db_manager.add_cards("nope", _cards("a"))

    def test_update_card_content_keeps_schedule(self, initialized_db_manager, spanish_set):
        card = spanish_set.flashcards[1]
        initialized_db_manager.record_review(spanish_set.id, card.id, Grade.Good, _state())
        edited = card.model_copy(update={"definition": "two", "starred": True})

        updated = initialized_db_manager.update_card_content(edited)

        assert updated.definition == "two"
        assert updated.starred is True
        assert updated.last_reviewed == REVIEW_TS
        assert updated.stability == pytest.approx(3.17)

    def test_update_missing_card(self, initialized_db_manager):
        with pytest.raises(CardOperationError):
            initialized_db_manager.update_card_content(Flashcard(term="x", definition="y"))

    def test_delete_card_closes_position_gap(self, initialized_db_manager, spanish_set):
        initialized_db_manager.delete_card(spanish_set.id, spanish_set.flashcards[0].id)
        initialized_db_manager.add_cards(spanish_set.id, _cards("cuatro"))

        cards = initialized_db_manager.get_cards(spanish_set.id)
        assert [c.term for c in cards] == ["dos", "tres", "cuatro"]
        conn = initialized_db_manager.get_connection()
        positions = [
            row[0]
            for row in conn.execute(
                "SELECT position FROM flashcards WHERE set_id = $1 ORDER BY position;",
                (spanish_set.id,),
            ).fetchall()
        ]
        assert positions == [1, 2, 3]

    def test_delete_missing_card(self, initialized_db_manager, spanish_set):
        with pytest.raises(CardOperationError):
            initialized_db_manager.delete_card(spanish_set.id, "nope")

    def test_get_card(self, initialized_db_manager, spanish_set):
        card = initialized_db_manager.get_card(spanish_set.flashcards[2].id)
        assert card.term == "tres"
        assert initialized_db_manager.get_card("nope") is None


# --- Study Options ---

class TestStudyOptions:
    def test_new_set_has_default_options(self, initialized_db_manager, spanish_set):
        assert initialized_db_manager.get_study_options(spanish_set.id) == StudyConfig()

    def test_create_set_with_options(self, initialized_db_manager):
        options = apply_defaults({"cardsPerRound": 4})
        created = initialized_db_manager.create_set(FlashcardSet(title="Opt"), options)
        assert initialized_db_manager.get_study_options(created.id).cards_per_round == 4

    def test_save_and_load(self, initialized_db_manager, spanish_set):
        options = apply_defaults(
            {"newCardsPerDay": 3, "learningOptions": {"excludeRange": {"start": "1", "end": "2"}}}
        )
        initialized_db_manager.save_study_options(spanish_set.id, options)

        loaded = initialized_db_manager.get_study_options(spanish_set.id)
        assert loaded == options
        assert loaded.learning_options.exclude_range.bounds() == (1, 2)

    def test_partial_stored_options_get_defaults(self, initialized_db_manager, spanish_set):
        conn = initialized_db_manager.get_connection()
        conn.execute(
            "UPDATE flashcard_sets SET study_options = $1 WHERE id = $2;",
            ('{"cardsPerRound": 0, "newCardsPerDay": 2}', spanish_set.id),
        )
        loaded = initialized_db_manager.get_study_options(spanish_set.id)
        assert loaded.cards_per_round == 10
        assert loaded.new_cards_per_day == 2

    def test_corrupt_stored_options(self, initialized_db_manager, spanish_set):
        conn = initialized_db_manager.get_connection()
        conn.execute(
            "UPDATE flashcard_sets SET study_options = $1 WHERE id = $2;",
            ("{not json", spanish_set.id),
        )
        with pytest.raises(CardOperationError):
            initialized_db_manager.get_study_options(spanish_set.id)

    def test_save_options_for_missing_set(self, initialized_db_manager):
        with pytest.raises(SetNotFoundError):
            initialized_db_manager.save_study_options("nope", StudyConfig())


# --- Reviews ---

class TestReviews:
    def test_record_review_updates_card(self, initialized_db_manager, spanish_set):
        card = spanish_set.flashcards[0]

        updated = initialized_db_manager.record_review(
            spanish_set.id, card.id, Grade.Hard, _state(Grade.Hard, days=1)
        )

        assert updated.id == card.id
        assert not updated.is_new
        assert updated.last_grade is Grade.Hard
        assert updated.interval == 1
        assert updated.reps == 1
        assert updated.next_review_date == REVIEW_TS + timedelta(days=1)
        assert updated.status_label == "Studied: Hard"

    def test_reviews_are_logged_in_order(self, initialized_db_manager, spanish_set):
        card = spanish_set.flashcards[0]
        initialized_db_manager.record_review(spanish_set.id, card.id, Grade.Forgot, _state(Grade.Forgot, days=1, lapses=1))
        initialized_db_manager.record_review(spanish_set.id, card.id, Grade.Good, _state(Grade.Good, reps=2, lapses=1))

        reviews = initialized_db_manager.get_reviews_for_card(card.id)

        assert [r["grade"] for r in reviews] == [Grade.Forgot, Grade.Good]
        assert reviews[0]["ts"] == REVIEW_TS
        assert reviews[1]["interval_days"] == 3
        assert initialized_db_manager.get_card(card.id).lapses == 1

    def test_record_review_for_missing_card(self, initialized_db_manager, spanish_set):
        with pytest.raises(CardNotFoundError):
            initialized_db_manager.record_review(spanish_set.id, "nope", Grade.Good, _state())
        assert initialized_db_manager.get_reviews_for_card("nope") == []

    def test_record_review_for_card_of_other_set(self, initialized_db_manager, spanish_set):
        other = initialized_db_manager.create_set(FlashcardSet(title="Other"))
        with pytest.raises(ReviewOperationError):
            initialized_db_manager.record_review(
                other.id, spanish_set.flashcards[0].id, Grade.Good, _state()
            )


# --- Marshalling ---

class TestDbUtils:
    def test_timestamps_are_stored_as_naive_utc(self):
        plus_one = timezone(timedelta(hours=1))
        ts = datetime(2024, 1, 1, 13, 0, tzinfo=plus_one)
        stored = db_utils.to_db_timestamp(ts)
        assert stored == datetime(2024, 1, 1, 12, 0)
        assert db_utils.from_db_timestamp(stored) == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert db_utils.to_db_timestamp(None) is None

    def test_invalid_row_raises_marshalling_error(self):
        with pytest.raises(MarshallingError):
            db_utils.db_row_to_card({"id": "x", "term": "", "definition": "y"})

    def test_invalid_options_json(self):
        with pytest.raises(MarshallingError):
            db_utils.json_to_study_options("[1, 2")
