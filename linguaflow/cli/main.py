"""
CLI entry point for linguaflow.
"""

# Standard library imports
import logging
from pathlib import Path
from typing import Optional

# Third-party imports
import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

# Local application imports
from linguaflow.cli._study_logic import resolve_set, study_logic
from linguaflow.config import Settings, StudyConfig, apply_defaults, get_settings
from linguaflow.db.database import FlashcardDatabase
from linguaflow.exceptions import DatabaseError, LinguaflowError, SetNotFoundError
from linguaflow.importer import parse_import_text
from linguaflow.models import FlashcardSet


console = Console()

app = typer.Typer(
    name="linguaflow",
    help="Linguaflow: spaced repetition study for language flashcards.",
    add_completion=False,
    rich_markup_mode="markdown",
)


@app.callback()
def main_callback() -> None:
    """Configure logging from LINGUAFLOW_LOG_LEVEL."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Helpers for resolving the --db path (LINGUAFLOW_DB envvar)
# ---------------------------------------------------------------------------


def _resolve_db_path(db: Optional[Path]) -> Path:
    """Resolve db path from CLI flag, LINGUAFLOW_DB or settings. Exits on missing."""
    if db is not None:
        return db
    settings_path = get_settings().db_path
    if settings_path is not None:
        return settings_path
    console.print(
        "[bold red]Error: --db is required "
        "(or set the LINGUAFLOW_DB environment variable).[/bold red]"
    )
    raise typer.Exit(code=1)


# Common typer options reused across commands
_db_option = typer.Option(  # noqa: B008
    None,
    "--db",
    help="Path to the DuckDB database file. "
    "Falls back to LINGUAFLOW_DB env var.",
    envvar="LINGUAFLOW_DB",
)

_set_argument = typer.Argument(  # noqa: B008
    ..., help="Id or title of the flashcard set."
)


def _fail(e: Exception) -> typer.Exit:
    if isinstance(e, DatabaseError):
        console.print(f"[bold red]A database error occurred:[/bold red] {e}")
    else:
        console.print(f"[bold red]Error:[/bold red] {e}")
    return typer.Exit(code=1)


# ---------------------------------------------------------------------------
# Set commands
# ---------------------------------------------------------------------------


@app.command("create-set")
def create_set(
    title: str = typer.Argument(..., help="Title of the new set."),  # noqa: B008
    description: str = typer.Option(  # noqa: B008
        "", "--description", "-d", help="Optional description."
    ),
    db: Optional[Path] = _db_option,
):
    """Create an empty flashcard set with default study options."""
    db_path = _resolve_db_path(db)
    try:
        with FlashcardDatabase(db_path=db_path) as db_inst:
            db_inst.initialize_schema()
            created = db_inst.create_set(
                FlashcardSet(title=title, description=description)
            )
    except LinguaflowError as e:
        raise _fail(e) from e

    console.print(
        f"[green]Created set[/green] [bold cyan]{created.title}[/bold cyan] "
        f"[dim]({created.id})[/dim]"
    )


@app.command("list-sets")
def list_sets(db: Optional[Path] = _db_option):
    """List all flashcard sets."""
    db_path = _resolve_db_path(db)
    try:
        with FlashcardDatabase(db_path=db_path) as db_inst:
            db_inst.initialize_schema()
            sets = db_inst.list_sets()
    except LinguaflowError as e:
        raise _fail(e) from e

    if not sets:
        console.print("[yellow]No flashcard sets found.[/yellow]")
        return

    table = Table(title="Flashcard Sets")
    table.add_column("Title", style="cyan")
    table.add_column("Cards", style="magenta")
    table.add_column("New", style="yellow")
    table.add_column("Id", style="dim")
    for row in sets:
        table.add_row(
            row["title"], str(row["card_count"]), str(row["new_count"]), row["id"]
        )
    console.print(table)


@app.command("show-set")
def show_set(set_ref: str = _set_argument, db: Optional[Path] = _db_option):
    """Show the cards of a set with their study status."""
    db_path = _resolve_db_path(db)
    try:
        with FlashcardDatabase(db_path=db_path) as db_inst:
            db_inst.initialize_schema()
            flashcard_set = resolve_set(db_inst, set_ref)
    except LinguaflowError as e:
        raise _fail(e) from e

    table = Table(title=flashcard_set.title)
    table.add_column("#", style="dim")
    table.add_column("Term", style="cyan")
    table.add_column("Definition")
    table.add_column("Status", style="magenta")
    table.add_column("Due", style="yellow")
    for position, card in enumerate(flashcard_set.flashcards, start=1):
        due = (
            card.next_review_date.strftime("%Y-%m-%d")
            if card.next_review_date
            else "-"
        )
        term = f"* {card.term}" if card.starred else card.term
        table.add_row(str(position), term, card.definition, card.status_label, due)
    console.print(table)
    if not flashcard_set.flashcards:
        console.print("[yellow]This set has no cards yet.[/yellow]")


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


@app.command("import")
def import_cards(
    set_ref: str = _set_argument,
    file: Path = typer.Argument(  # noqa: B008
        ..., exists=True, dir_okay=False, help="Text file with one card per row."
    ),
    term_separator: str = typer.Option(  # noqa: B008
        "tab", "--term-sep", help="tab, comma or custom."
    ),
    row_separator: str = typer.Option(  # noqa: B008
        "newline", "--row-sep", help="newline, semicolon or custom."
    ),
    custom_term_separator: str = typer.Option(  # noqa: B008
        "", "--custom-term-sep", help="Separator used with --term-sep custom."
    ),
    custom_row_separator: str = typer.Option(  # noqa: B008
        "", "--custom-row-sep", help="Separator used with --row-sep custom."
    ),
    term_language: Optional[str] = typer.Option(  # noqa: B008
        None, "--term-lang", help="Language code of the terms."
    ),
    definition_language: Optional[str] = typer.Option(  # noqa: B008
        None, "--definition-lang", help="Language code of the definitions."
    ),
    create: bool = typer.Option(  # noqa: B008
        False, "--create", help="Create the set if it does not exist."
    ),
    db: Optional[Path] = _db_option,
):
    """Import term/definition rows from a text file into a set."""
    db_path = _resolve_db_path(db)
    try:
        cards = parse_import_text(
            file.read_text(encoding="utf-8"),
            term_separator=term_separator,
            row_separator=row_separator,
            custom_term_separator=custom_term_separator,
            custom_row_separator=custom_row_separator,
            term_language=term_language,
            definition_language=definition_language,
        )
        with FlashcardDatabase(db_path=db_path) as db_inst:
            db_inst.initialize_schema()
            existing = _find_set(db_inst, set_ref)
            if existing is None:
                if not create:
                    console.print(
                        f"[bold red]Error: set '{set_ref}' not found. "
                        "Use --create to create it.[/bold red]"
                    )
                    raise typer.Exit(code=1)
                db_inst.create_set(FlashcardSet(title=set_ref, flashcards=cards))
                title = set_ref
            else:
                db_inst.add_cards(existing.id, cards)
                title = existing.title
    except typer.Exit:
        raise
    except (LinguaflowError, ValueError) as e:
        raise _fail(e) from e

    console.print(
        f"[bold green]Imported {len(cards)} cards into[/bold green] "
        f"[bold cyan]{title}[/bold cyan]."
    )


def _find_set(db_inst: FlashcardDatabase, set_ref: str) -> Optional[FlashcardSet]:
    try:
        return resolve_set(db_inst, set_ref)
    except SetNotFoundError:
        return None


# ---------------------------------------------------------------------------
# Study options
# ---------------------------------------------------------------------------


def _display_options(config: StudyConfig) -> None:
    table = Table(title="Study Options", show_header=False)
    table.add_column("Option", style="cyan")
    table.add_column("Value", style="magenta")
    options = config.learning_options
    table.add_row("New cards per day", str(config.new_cards_per_day))
    table.add_row("Cards per round", str(config.cards_per_round))
    table.add_row(
        "New card types",
        ", ".join(t.value for t in config.enabled_types(is_new=True)) or "-",
    )
    table.add_row(
        "Seen card types",
        ", ".join(t.value for t in config.enabled_types(is_new=False)) or "-",
    )
    table.add_row("Question format", config.question_format.value)
    table.add_row("Starred only", str(options.study_starred_only))
    table.add_row("Shuffle", str(options.shuffle))
    study_range = options.study_range_only.bounds()
    exclude_range = options.exclude_range.bounds()
    table.add_row(
        "Study range", f"{study_range[0]}-{study_range[1]}" if study_range else "-"
    )
    table.add_row(
        "Exclude range",
        f"{exclude_range[0]}-{exclude_range[1]}" if exclude_range else "-",
    )
    table.add_row("Retype answer", str(options.retype_answer))
    console.print(table)


@app.command()
def options(
    set_ref: str = _set_argument,
    load: Optional[Path] = typer.Option(  # noqa: B008
        None,
        "--load",
        exists=True,
        dir_okay=False,
        help="YAML file of study options to store for the set. "
        "Missing options take their defaults.",
    ),
    db: Optional[Path] = _db_option,
):
    """Show the study options of a set, or replace them from a YAML file."""
    db_path = _resolve_db_path(db)
    try:
        with FlashcardDatabase(db_path=db_path) as db_inst:
            db_inst.initialize_schema()
            flashcard_set = resolve_set(db_inst, set_ref)
            if load is not None:
                with load.open("r", encoding="utf-8") as f:
                    raw = yaml.safe_load(f)
                if raw is not None and not isinstance(raw, dict):
                    console.print(
                        "[bold red]Error: the options file must contain a mapping.[/bold red]"
                    )
                    raise typer.Exit(code=1)
                db_inst.save_study_options(flashcard_set.id, apply_defaults(raw))
                console.print(
                    f"[green]Study options of[/green] [bold cyan]{flashcard_set.title}[/bold cyan] "
                    "[green]updated.[/green]"
                )
            config = db_inst.get_study_options(flashcard_set.id)
    except typer.Exit:
        raise
    except yaml.YAMLError as e:
        console.print(f"[bold red]Invalid YAML in {load}:[/bold red] {e}")
        raise typer.Exit(code=1) from e
    except ValidationError as e:
        console.print(f"[bold red]Invalid study options:[/bold red] {e}")
        raise typer.Exit(code=1) from e
    except LinguaflowError as e:
        raise _fail(e) from e

    _display_options(config)


# ---------------------------------------------------------------------------
# Study
# ---------------------------------------------------------------------------


@app.command()
def study(set_ref: str = _set_argument, db: Optional[Path] = _db_option):
    """Start an interactive study session for a set."""
    db_path = _resolve_db_path(db)
    settings: Settings = get_settings()
    try:
        study_logic(set_ref, db_path, settings)
    except LinguaflowError as e:
        raise _fail(e) from e


if __name__ == "__main__":
    app()
