"""
Bulk import of term/definition pairs from pasted or exported text.
"""

import logging
from typing import List, Optional

from .exceptions import ImportParseError
from .models import Flashcard

logger = logging.getLogger(__name__)

TERM_SEPARATORS = {"tab": "\t", "comma": ","}
ROW_SEPARATORS = {"newline": "\n", "semicolon": ";"}


def _resolve_separator(
    name: str, known: dict, custom: str, fallback: str
) -> str:
    if name in known:
        return known[name]
    if name != "custom":
        raise ValueError(
            f"Unknown separator '{name}'. Use one of {sorted(known)} or 'custom'."
        )
    return custom or fallback


def parse_import_text(
    text: str,
    term_separator: str = "tab",
    row_separator: str = "newline",
    custom_term_separator: str = "",
    custom_row_separator: str = "",
    term_language: Optional[str] = None,
    definition_language: Optional[str] = None,
) -> List[Flashcard]:
    """
    Parse rows of "term<sep>definition" into new flashcards.

    The definition keeps any further separators found on the row. Rows
    without both a term and a definition are skipped.

    Raises:
        ImportParseError: If no row could be parsed.
        ValueError: If a separator name is unknown.
    """
    row_sep = _resolve_separator(
        row_separator, ROW_SEPARATORS, custom_row_separator, "\n"
    )
    term_sep = _resolve_separator(
        term_separator, TERM_SEPARATORS, custom_term_separator, "\t"
    )

    cards: List[Flashcard] = []
    skipped = 0
    for row in text.split(row_sep):
        row = row.strip()
        if not row:
            continue
        parts = row.split(term_sep)
        if len(parts) < 2:
            skipped += 1
            continue
        term = parts[0].strip()
        definition = term_sep.join(parts[1:]).strip()
        if not term or not definition:
            skipped += 1
            continue
        cards.append(
            Flashcard(
                term=term,
                definition=definition,
                term_language=term_language,
                definition_language=definition_language,
            )
        )

    if not cards:
        raise ImportParseError(
            "Could not parse any flashcards from the text. "
            "Check the term and row separators."
        )
    if skipped:
        logger.info(f"Skipped {skipped} rows without a term and definition.")
    return cards
