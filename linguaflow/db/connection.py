"""
Ownership of the single DuckDB connection behind a FlashcardDatabase.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import duckdb

from ..exceptions import DatabaseConnectionError

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


def resolve_db_location(db_path: Union[str, Path]) -> Path:
    """Absolute database path with ``~`` expanded; ":memory:" is kept as is."""
    if str(db_path).strip().lower() == MEMORY_PATH:
        return Path(MEMORY_PATH)
    return Path(db_path).expanduser().resolve()


class ConnectionHandler:
    """
    Opens the database on first use and keeps the connection until closed.

    ``is_new_db`` is set when the connection is opened: True for in-memory
    databases and for files that did not exist yet, so the caller knows the
    schema still has to be created.
    """

    def __init__(self, db_path: Union[str, Path], read_only: bool = False):
        self.db_path_resolved = resolve_db_location(db_path)
        self.read_only: bool = read_only
        self.is_new_db: bool = False
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        logger.debug(f"Database location: {self.db_path_resolved}")

    @property
    def is_memory(self) -> bool:
        return str(self.db_path_resolved) == MEMORY_PATH

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    def _open(self) -> duckdb.DuckDBPyConnection:
        if self.is_memory:
            if self.read_only:
                raise DatabaseConnectionError(
                    "An in-memory database cannot be opened read-only."
                )
            is_new = True
        else:
            is_new = not self.db_path_resolved.exists()
            if is_new and self.read_only:
                raise DatabaseConnectionError(
                    f"Database {self.db_path_resolved} does not exist, "
                    "so it cannot be opened read-only."
                )

        try:
            if is_new and not self.is_memory:
                self.db_path_resolved.parent.mkdir(parents=True, exist_ok=True)
            connection = duckdb.connect(
                database=str(self.db_path_resolved), read_only=self.read_only
            )
        except (duckdb.Error, OSError) as e:
            raise DatabaseConnectionError(
                f"Could not open database {self.db_path_resolved}: {e}",
                original_exception=e,
            ) from e

        self.is_new_db = is_new
        mode = "read-only" if self.read_only else "read-write"
        logger.info(
            f"Opened {'new ' if is_new else ''}database {self.db_path_resolved} ({mode})."
        )
        return connection

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        """
        The open connection, opening the database first if needed.

        Raises:
            DatabaseConnectionError: If the database cannot be opened.
        """
        if self._connection is None:
            self._connection = self._open()
        return self._connection

    def close_connection(self) -> None:
        """Close the connection if open; a later get_connection() reopens it."""
        connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            connection.close()
        except duckdb.Error as e:
            logger.error(f"Error closing database {self.db_path_resolved}: {e}")
        else:
            logger.info(f"Closed database {self.db_path_resolved}.")
