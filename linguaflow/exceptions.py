from typing import Optional


class LinguaflowError(Exception):
    """Base exception for all linguaflow errors."""

    pass


class StudyConfigurationError(LinguaflowError):
    """Raised when the study options cannot produce a study round.

    The message is meant to be shown to the user as-is.
    """

    pass


class ImportParseError(LinguaflowError):
    """Raised when bulk import text yields no flashcards."""

    pass


class DatabaseError(LinguaflowError):
    """Base exception for database-related errors."""

    def __init__(
        self, message: str, original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.original_exception = original_exception


class DatabaseConnectionError(DatabaseError):
    """Raised for errors connecting to the database."""

    pass


class SchemaInitializationError(DatabaseError):
    """Raised for errors during schema setup."""

    pass


class CardOperationError(DatabaseError):
    """Raised for errors during card operations (CRUD)."""

    pass


class ReviewOperationError(DatabaseError):
    """Indicates an error during a review-related database operation."""

    pass


class CardNotFoundError(ReviewOperationError):
    """Raised when a reviewed card no longer exists in its set.

    Permanent: retrying the same review cannot succeed.
    """

    pass


class MarshallingError(DatabaseError):
    """Indicates an error during data conversion between application models
    and DB format."""

    pass


class SetNotFoundError(DatabaseError):
    """Raised when a specified flashcard set is not found."""

    pass
