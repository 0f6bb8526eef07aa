"""
Defines the database schema for linguaflow using a SQL string constant.

Timestamps are stored as naive UTC TIMESTAMP values; db_utils converts them
at the boundary.
"""

DB_SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS flashcard_sets (
        id VARCHAR PRIMARY KEY,
        title VARCHAR NOT NULL,
        description VARCHAR DEFAULT '',
        is_public BOOLEAN DEFAULT TRUE,
        study_options VARCHAR,
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL
    );

    CREATE TABLE IF NOT EXISTS flashcards (
        id VARCHAR PRIMARY KEY,
        set_id VARCHAR NOT NULL,
        position INTEGER NOT NULL,
        term VARCHAR NOT NULL,
        definition VARCHAR NOT NULL,
        term_language VARCHAR,
        definition_language VARCHAR,
        starred BOOLEAN DEFAULT FALSE,
        stability DOUBLE,
        difficulty DOUBLE,
        reps INTEGER DEFAULT 0,
        lapses INTEGER DEFAULT 0,
        last_reviewed TIMESTAMP,
        next_review_date TIMESTAMP,
        interval_days INTEGER,
        last_grade INTEGER
    );

    CREATE SEQUENCE IF NOT EXISTS review_seq;

    CREATE TABLE IF NOT EXISTS reviews (
        review_id INTEGER PRIMARY KEY DEFAULT nextval('review_seq'),
        card_id VARCHAR NOT NULL,
        set_id VARCHAR NOT NULL,
        ts TIMESTAMP NOT NULL,
        grade INTEGER NOT NULL CHECK (grade >= 1 AND grade <= 4),
        stability DOUBLE NOT NULL,
        difficulty DOUBLE NOT NULL,
        review_date TIMESTAMP NOT NULL,
        interval_days INTEGER NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_flashcards_set_id ON flashcards (set_id);
    CREATE INDEX IF NOT EXISTS idx_reviews_card_id ON reviews (card_id);
"""
