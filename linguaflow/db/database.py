"""
DuckDB database interactions for linguaflow.

FlashcardDatabase stores flashcard sets, the scheduling state of their cards,
the per-set study options and a log of every review. It implements the
CardStore contract used by ReviewProcessor.
"""

import duckdb
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union, cast

from ..config import StudyConfig
from ..exceptions import (
    CardNotFoundError,
    CardOperationError,
    DatabaseConnectionError,
    DatabaseError,
    MarshallingError,
    ReviewOperationError,
    SetNotFoundError,
)
from ..models import Flashcard, FlashcardSet, Grade, MemoryState
from . import db_utils
from .connection import ConnectionHandler
from .schema_manager import SchemaManager

# --- Logging Setup ---
logger = logging.getLogger(__name__)


def _rows_to_dicts(cursor: duckdb.DuckDBPyConnection) -> List[Dict[str, Any]]:
    """Convert cursor results to list of dictionaries using column names."""
    rows = cursor.fetchall()
    if not rows:
        return []
    description = cursor.description
    if description is None:
        return []
    columns = [desc[0] for desc in description]
    return [dict(zip(columns, row, strict=True)) for row in rows]


class FlashcardDatabase:
    """
    Facade over the DuckDB subsystem: coordinates the ConnectionHandler,
    SchemaManager and marshalling helpers. Intended for use as a context
    manager.
    """

    def __init__(self, db_path: Union[str, Path], read_only: bool = False):
        """
        Args:
            db_path (str | Path): Database file, or ':memory:' for an in-memory database.
            read_only (bool): If True, open the database in read-only mode.
        """
        self._handler = ConnectionHandler(db_path=db_path, read_only=read_only)
        self._schema_manager = SchemaManager(self._handler)
        logger.info(
            f"FlashcardDatabase initialized for DB at: {self._handler.db_path_resolved}"
        )

    @property
    def db_path_resolved(self) -> Path:
        return self._handler.db_path_resolved

    @property
    def read_only(self) -> bool:
        return self._handler.read_only

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        return self._handler.get_connection()

    def close_connection(self) -> None:
        self._handler.close_connection()

    def __enter__(self) -> "FlashcardDatabase":
        """Open the connection, creating the schema for a new writable database."""
        self.get_connection()
        if self._handler.is_new_db and not self._handler.read_only:
            self.initialize_schema()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close_connection()

    def initialize_schema(self, force_recreate_tables: bool = False) -> None:
        self._schema_manager.initialize_schema(
            force_recreate_tables=force_recreate_tables
        )

    def _ensure_writable(self, action: str) -> None:
        if self.read_only:
            raise DatabaseConnectionError(f"Cannot {action} in read-only mode.")

    def _run_transaction(self, work, error_cls, message: str) -> Any:
        """
        Run ``work(cursor)`` inside a transaction and return its result.

        DatabaseError subclasses raised by ``work`` propagate unchanged; any
        other failure is wrapped in ``error_cls``.
        """
        conn = self.get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.begin()
                try:
                    result = work(cursor)
                    cursor.commit()
                except Exception:
                    cursor.rollback()
                    raise
            return result
        except DatabaseError:
            raise
        except Exception as e:
            logger.error(f"{message}: {e}")
            raise error_cls(f"{message}: {e}", original_exception=e) from e

    # --- Set Operations ---

    _INSERT_CARD_SQL = """
        INSERT INTO flashcards (id, set_id, position, term, definition, term_language,
                                definition_language, starred, stability, difficulty, reps,
                                lapses, last_reviewed, next_review_date, interval_days, last_grade)
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16);
        """

    def create_set(
        self,
        flashcard_set: FlashcardSet,
        study_options: Optional[StudyConfig] = None,
    ) -> FlashcardSet:
        """
        Insert a set together with its cards (in order) and study options.

        Raises:
            CardOperationError: If the insert fails (e.g. duplicate id).
        """
        self._ensure_writable("create a set")
        options_json = db_utils.study_options_to_json(
            study_options or StudyConfig()
        )

        def work(cursor):
            cursor.execute(
                """
                INSERT INTO flashcard_sets (id, title, description, is_public,
                                            study_options, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7);
                """,
                (
                    flashcard_set.id,
                    flashcard_set.title,
                    flashcard_set.description,
                    flashcard_set.is_public,
                    options_json,
                    db_utils.to_db_timestamp(flashcard_set.created_at),
                    db_utils.to_db_timestamp(flashcard_set.updated_at),
                ),
            )
            params = [
                db_utils.card_to_db_params(card, flashcard_set.id, position)
                for position, card in enumerate(flashcard_set.flashcards, start=1)
            ]
            if params:
                cursor.executemany(self._INSERT_CARD_SQL, params)

        self._run_transaction(
            work, CardOperationError, f"Failed to create set '{flashcard_set.title}'"
        )
        logger.info(
            f"Created set '{flashcard_set.title}' with {len(flashcard_set.flashcards)} cards."
        )
        return self.get_set(flashcard_set.id)

    def _fetch_set_row(self, set_id: str) -> Dict[str, Any]:
        conn = self.get_connection()
        try:
            cursor = conn.execute(
                "SELECT * FROM flashcard_sets WHERE id = $1;", (set_id,)
            )
            rows = _rows_to_dicts(cursor)
        except duckdb.Error as e:
            logger.error(f"Error fetching set {set_id}: {e}")
            raise CardOperationError(
                f"Failed to fetch set: {e}", original_exception=e
            ) from e
        if not rows:
            raise SetNotFoundError(f"Flashcard set '{set_id}' not found.")
        return rows[0]

    def get_set(self, set_id: str) -> FlashcardSet:
        """
        Raises:
            SetNotFoundError: If no set has this id.
            CardOperationError: On database or parsing failure.
        """
        row = self._fetch_set_row(set_id)
        return db_utils.db_row_to_set(row, self.get_cards(set_id))

    def find_set_by_title(self, title: str) -> Optional[FlashcardSet]:
        conn = self.get_connection()
        try:
            cursor = conn.execute(
                "SELECT id FROM flashcard_sets WHERE title = $1 ORDER BY created_at LIMIT 1;",
                (title,),
            )
            rows = _rows_to_dicts(cursor)
        except duckdb.Error as e:
            raise CardOperationError(
                f"Failed to look up set '{title}': {e}", original_exception=e
            ) from e
        if not rows:
            return None
        return self.get_set(rows[0]["id"])

    def list_sets(self) -> List[Dict[str, Any]]:
        """
        Summaries of all sets: id, title, description, card_count, new_count,
        ordered by title.
        """
        conn = self.get_connection()
        sql = """
            SELECT s.id, s.title, s.description,
                   COUNT(c.id) AS card_count,
                   COUNT(c.id) FILTER (WHERE c.last_reviewed IS NULL) AS new_count
            FROM flashcard_sets s
            LEFT JOIN flashcards c ON c.set_id = s.id
            GROUP BY s.id, s.title, s.description
            ORDER BY s.title;
        """
        try:
            return _rows_to_dicts(conn.execute(sql))
        except duckdb.Error as e:
            logger.error(f"Could not list sets: {e}")
            raise CardOperationError(
                "Could not list flashcard sets.", original_exception=e
            ) from e

    # --- Card Operations ---

    def get_cards(self, set_id: str) -> List[Flashcard]:
        """Cards of a set in position order."""
        conn = self.get_connection()
        try:
            cursor = conn.execute(
                "SELECT * FROM flashcards WHERE set_id = $1 ORDER BY position;",
                (set_id,),
            )
            rows = _rows_to_dicts(cursor)
        except duckdb.Error as e:
            logger.error(f"Error fetching cards for set {set_id}: {e}")
            raise CardOperationError(
                f"Failed to fetch cards: {e}", original_exception=e
            ) from e
        try:
            return [db_utils.db_row_to_card(cast(Dict[str, Any], row)) for row in rows]
        except MarshallingError as e:
            raise CardOperationError(
                f"Failed to parse cards of set {set_id} from database.",
                original_exception=e,
            ) from e

    def get_card(self, card_id: str) -> Optional[Flashcard]:
        conn = self.get_connection()
        try:
            cursor = conn.execute(
                "SELECT * FROM flashcards WHERE id = $1;", (card_id,)
            )
            rows = _rows_to_dicts(cursor)
        except duckdb.Error as e:
            raise CardOperationError(
                f"Failed to fetch card {card_id}: {e}", original_exception=e
            ) from e
        if not rows:
            return None
        try:
            return db_utils.db_row_to_card(rows[0])
        except MarshallingError as e:
            raise CardOperationError(
                f"Failed to parse card {card_id} from database.",
                original_exception=e,
            ) from e

    def add_cards(self, set_id: str, cards: Sequence[Flashcard]) -> int:
        """
        Append cards to the end of a set. Returns the number added.

        Raises:
            SetNotFoundError: If the set does not exist.
        """
        if not cards:
            return 0
        self._ensure_writable("add cards")
        self._fetch_set_row(set_id)

        def work(cursor):
            result = cursor.execute(
                "SELECT COALESCE(MAX(position), 0) FROM flashcards WHERE set_id = $1;",
                (set_id,),
            ).fetchone()
            last_position = result[0] if result else 0
            cursor.executemany(
                self._INSERT_CARD_SQL,
                [
                    db_utils.card_to_db_params(card, set_id, last_position + offset)
                    for offset, card in enumerate(cards, start=1)
                ],
            )
            self._touch_set(cursor, set_id)

        self._run_transaction(
            work, CardOperationError, f"Failed to add cards to set {set_id}"
        )
        logger.info(f"Added {len(cards)} cards to set {set_id}.")
        return len(cards)

    def update_card_content(self, card: Flashcard) -> Flashcard:
        """
        Save edited content fields (term, definition, languages, starred).
        Scheduling state is left alone.
        """
        self._ensure_writable("update a card")

        def work(cursor):
            result = cursor.execute(
                """
                UPDATE flashcards
                SET term = $1, definition = $2, term_language = $3,
                    definition_language = $4, starred = $5
                WHERE id = $6
                RETURNING id;
                """,
                (
                    card.term,
                    card.definition,
                    card.term_language,
                    card.definition_language,
                    card.starred,
                    card.id,
                ),
            ).fetchone()
            if not result:
                raise CardOperationError(f"Card {card.id} not found.")

        self._run_transaction(
            work, CardOperationError, f"Failed to update card {card.id}"
        )
        updated = self.get_card(card.id)
        assert updated is not None
        return updated

    def delete_card(self, set_id: str, card_id: str) -> None:
        """Remove a card and close the gap in positions after it."""
        self._ensure_writable("delete a card")

        def work(cursor):
            result = cursor.execute(
                "DELETE FROM flashcards WHERE id = $1 AND set_id = $2 RETURNING position;",
                (card_id, set_id),
            ).fetchone()
            if not result:
                raise CardOperationError(
                    f"Card {card_id} not found in set {set_id}."
                )
            cursor.execute(
                "UPDATE flashcards SET position = position - 1 WHERE set_id = $1 AND position > $2;",
                (set_id, result[0]),
            )
            self._touch_set(cursor, set_id)

        self._run_transaction(
            work, CardOperationError, f"Failed to delete card {card_id}"
        )

    def _touch_set(self, cursor, set_id: str) -> None:
        cursor.execute(
            "UPDATE flashcard_sets SET updated_at = $1 WHERE id = $2;",
            (db_utils.to_db_timestamp(datetime.now(timezone.utc)), set_id),
        )

    # --- Study Options ---

    def get_study_options(self, set_id: str) -> StudyConfig:
        row = self._fetch_set_row(set_id)
        try:
            return db_utils.json_to_study_options(row.get("study_options"))
        except MarshallingError as e:
            raise CardOperationError(
                f"Stored study options of set {set_id} are invalid.",
                original_exception=e,
            ) from e

    def save_study_options(self, set_id: str, config: StudyConfig) -> None:
        self._ensure_writable("save study options")
        self._fetch_set_row(set_id)

        def work(cursor):
            cursor.execute(
                "UPDATE flashcard_sets SET study_options = $1 WHERE id = $2;",
                (db_utils.study_options_to_json(config), set_id),
            )
            self._touch_set(cursor, set_id)

        self._run_transaction(
            work, CardOperationError, f"Failed to save study options of set {set_id}"
        )

    # --- Review Operations ---

    def record_review(
        self, set_id: str, card_id: str, grade: Grade, state: MemoryState
    ) -> Flashcard:
        """
        Log a review and store the card's new scheduling state atomically.

        Returns:
            Flashcard: The card after the update.

        Raises:
            DatabaseConnectionError: If the database is read-only.
            CardNotFoundError: If the card is not in the set.
            ReviewOperationError: If the transaction fails.
        """
        self._ensure_writable("record a review")

        def work(cursor):
            updated = cursor.execute(
                """
                UPDATE flashcards
                SET stability = $1, difficulty = $2, reps = $3, lapses = $4,
                    last_reviewed = $5, next_review_date = $6, interval_days = $7,
                    last_grade = $8
                WHERE id = $9 AND set_id = $10
                RETURNING id;
                """,
                (
                    state.stability,
                    state.difficulty,
                    state.reps,
                    state.lapses,
                    db_utils.to_db_timestamp(state.last_reviewed),
                    db_utils.to_db_timestamp(state.review_date),
                    state.interval_days,
                    int(grade),
                    card_id,
                    set_id,
                ),
            ).fetchone()
            if not updated:
                raise CardNotFoundError(
                    f"Card {card_id} not found in set {set_id}."
                )
            cursor.execute(
                """
                INSERT INTO reviews (card_id, set_id, ts, grade, stability, difficulty,
                                     review_date, interval_days)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8);
                """,
                db_utils.review_to_db_params(set_id, card_id, grade, state),
            )

        self._run_transaction(
            work, ReviewOperationError, f"Failed to record review for card {card_id}"
        )

        card = self.get_card(card_id)
        if card is None:
            raise ReviewOperationError(
                f"Failed to retrieve card '{card_id}' after a successful review update."
            )
        return card

    def get_reviews_for_card(self, card_id: str) -> List[Dict[str, Any]]:
        """Review log entries of a card, oldest first."""
        conn = self.get_connection()
        try:
            cursor = conn.execute(
                "SELECT * FROM reviews WHERE card_id = $1 ORDER BY ts, review_id;",
                (card_id,),
            )
            rows = _rows_to_dicts(cursor)
        except duckdb.Error as e:
            raise ReviewOperationError(
                f"Failed to fetch reviews for card {card_id}: {e}",
                original_exception=e,
            ) from e
        for row in rows:
            row["ts"] = db_utils.from_db_timestamp(row["ts"])
            row["review_date"] = db_utils.from_db_timestamp(row["review_date"])
            row["grade"] = Grade(row["grade"])
        return rows
