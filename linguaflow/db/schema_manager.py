import duckdb
import logging

from .connection import ConnectionHandler
from . import schema
from ..exceptions import DatabaseConnectionError, SchemaInitializationError

logger = logging.getLogger(__name__)

TABLES = ("reviews", "flashcards", "flashcard_sets")


class SchemaManager:
    """Creates and, on request, recreates the database schema."""

    def __init__(self, handler: ConnectionHandler):
        self._handler = handler

    def initialize_schema(self, force_recreate_tables: bool = False) -> None:
        """
        Create the schema inside a transaction. Skipped for read-only file
        databases. ``force_recreate_tables`` drops existing tables first and
        refuses to do so when a file database still holds cards or reviews.

        Raises:
            SchemaInitializationError: If DuckDB fails while creating the schema.
            DatabaseConnectionError: If recreation is requested in read-only mode.
        """
        if self._handler.read_only:
            if force_recreate_tables:
                raise DatabaseConnectionError(
                    "Cannot force_recreate_tables in read-only mode."
                )
            if not self._handler.is_memory:
                logger.warning(
                    "Attempting to initialize schema in read-only mode. Skipping."
                )
                return

        conn = self._handler.get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.begin()
                if force_recreate_tables:
                    self._recreate_tables(cursor)
                cursor.execute(schema.DB_SCHEMA_SQL)
                cursor.commit()
            logger.info(
                f"Database schema at {self._handler.db_path_resolved} initialized."
            )
        except duckdb.Error as e:
            logger.error(
                f"Error initializing database schema at {self._handler.db_path_resolved}: {e}"
            )
            raise SchemaInitializationError(
                f"Failed to initialize schema: {e}", original_exception=e
            ) from e

    def _perform_safety_check(self, cursor: duckdb.DuckDBPyConnection) -> None:
        """Refuse to drop a file database that still holds data."""
        if self._handler.is_memory:
            return
        counts = {}
        for table in ("flashcards", "reviews"):
            try:
                result = cursor.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
            except duckdb.CatalogException:
                continue
            counts[table] = result[0] if result else 0
        if any(counts.values()):
            raise SchemaInitializationError(
                f"Refusing to drop tables holding data: {counts}."
            )

    def _recreate_tables(self, cursor: duckdb.DuckDBPyConnection) -> None:
        self._perform_safety_check(cursor)
        logger.warning(
            f"Forcing table recreation for {self._handler.db_path_resolved}."
        )
        for table in TABLES:
            cursor.execute(f"DROP TABLE IF EXISTS {table} CASCADE;")
        cursor.execute("DROP SEQUENCE IF EXISTS review_seq;")
