"""Database package for linguaflow.

DuckDB-backed storage for flashcard sets, their cards' scheduling state and
study options. Only FlashcardDatabase is exported as the public API.
"""

from .database import FlashcardDatabase

__all__ = ["FlashcardDatabase"]
