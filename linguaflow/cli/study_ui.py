"""
Command-line interface for studying a flashcard set.
"""

import logging
from typing import Optional, Sequence

from rich.console import Console
from rich.panel import Panel

from linguaflow.models import Flashcard, Grade, QuestionType, StudyQueueEntry
from linguaflow.session_composer import (
    build_multiple_choice_options,
    check_multiple_choice_answer,
    check_true_false_answer,
    check_written_answer,
    prompt_and_answer,
    true_false_statement,
)
from linguaflow.study_session import SessionState, StudySession

logger = logging.getLogger(__name__)
console = Console()

SKIP_KEY = "s"
QUIT_KEY = "q"

GRADE_PROMPT = "[bold]Grade (1:Forgot, 2:Hard, 3:Good, 4:Easy): [/bold]"


class _QuitStudy(Exception):
    pass


def _read(prompt: str) -> str:
    answer = console.input(prompt).strip()
    if answer.lower() == QUIT_KEY:
        raise _QuitStudy()
    return answer


def _get_user_grade() -> Grade:
    """
    Prompt until the user enters a grade between 1 and 4.
    """
    while True:
        grade_str = _read(GRADE_PROMPT)
        try:
            value = int(grade_str)
        except ValueError:
            console.print(
                "[bold red]Invalid input. Please enter a number.[/bold red]"
            )
            continue
        if 1 <= value <= 4:
            return Grade(value)
        console.print(
            "[bold red]Invalid grade. Please enter a number between 1 and 4.[/bold red]"
        )


def _show_feedback(is_correct: bool, answer: str) -> None:
    if is_correct:
        console.print("[bold green]Correct![/bold green]")
    else:
        console.print(f"[bold red]Incorrect.[/bold red] The answer is: {answer}")


def _ask_flashcard(session: StudySession, entry: StudyQueueEntry) -> bool:
    """Show the prompt, reveal on Enter. Returns False when skipped."""
    prompt, answer = prompt_and_answer(entry.card, session.config.question_format)
    console.print(Panel(prompt, title="Flashcard", border_style="green"))
    if _read("[italic]Press Enter to reveal (s to skip)...[/italic]").lower() == SKIP_KEY:
        return False
    console.print(Panel(answer, title="Answer", border_style="blue"))
    return True


def _ask_multiple_choice(session: StudySession, entry: StudyQueueEntry) -> bool:
    prompt, answer = prompt_and_answer(entry.card, session.config.question_format)
    options = build_multiple_choice_options(
        entry, session.all_cards, session.config.question_format, session.rng
    )
    console.print(Panel(prompt, title="Multiple choice", border_style="green"))
    for number, option in enumerate(options, start=1):
        console.print(f"  [cyan]{number}[/cyan]. {option}")

    while True:
        choice = _read("[bold]Your choice (s to skip): [/bold]")
        if choice.lower() == SKIP_KEY:
            return False
        if choice.isdigit() and 1 <= int(choice) <= len(options):
            break
        console.print(
            f"[bold red]Please enter a number between 1 and {len(options)}.[/bold red]"
        )
    _show_feedback(
        check_multiple_choice_answer(options[int(choice) - 1], answer), answer
    )
    return True


def _ask_written(session: StudySession, entry: StudyQueueEntry) -> Optional[bool]:
    """
    Written answers are never skipped: ``s`` reveals the answer, which must
    be retyped, and the card is graded Forgot.
    """
    prompt, answer = prompt_and_answer(entry.card, session.config.question_format)
    console.print(Panel(prompt, title="Written", border_style="green"))
    given = _read("[bold]Your answer (s if you don't know): [/bold]")

    if given.lower() == SKIP_KEY:
        session.skip()
        console.print(f"The answer is: [bold]{answer}[/bold]")
        _retype(answer)
        session.complete_dont_know()
        return None

    is_correct = check_written_answer(given, answer)
    _show_feedback(is_correct, answer)
    if not is_correct and session.config.learning_options.retype_answer:
        _retype(answer)
    return True


def _retype(answer: str) -> None:
    while not check_written_answer(_read("[italic]Type the answer to continue: [/italic]"), answer):
        console.print("[bold red]Not quite, try again.[/bold red]")


def _ask_true_false(session: StudySession, entry: StudyQueueEntry) -> bool:
    prompt, proposed = true_false_statement(entry, session.config.question_format)
    _, answer = prompt_and_answer(entry.card, session.config.question_format)
    console.print(
        Panel(f"{prompt}\n\n= {proposed}", title="True or false?", border_style="green")
    )
    while True:
        reply = _read("[bold]t/f (s to skip): [/bold]").lower()
        if reply == SKIP_KEY:
            return False
        if reply in ("t", "f"):
            break
        console.print("[bold red]Please answer t or f.[/bold red]")
    _show_feedback(check_true_false_answer(entry, reply == "t"), answer)
    return True


def _ask(session: StudySession, entry: StudyQueueEntry) -> Optional[bool]:
    """
    Present one entry. Returns True when the user should grade it, False
    when it was skipped and None when it has already been graded.
    """
    if entry.question_type is QuestionType.FLASHCARDS:
        return _ask_flashcard(session, entry)
    elif entry.question_type is QuestionType.MULTIPLE_CHOICE:
        return _ask_multiple_choice(session, entry)
    elif entry.question_type is QuestionType.WRITTEN:
        return _ask_written(session, entry)
    elif entry.question_type is QuestionType.TRUE_FALSE:
        return _ask_true_false(session, entry)
    raise ValueError(f"Unknown question type: {entry.question_type!r}")


def _run_round(session: StudySession) -> None:
    while (entry := session.current_entry) is not None:
        console.rule(
            f"[bold]{entry.card.status_label}[/bold] - {session.remaining} left in round"
        )
        outcome = _ask(session, entry)
        if outcome is None:
            console.print("")
            continue
        if outcome is False:
            session.skip()
            continue

        state = session.grade(_get_user_grade())
        if state is not None:
            due_str = state.review_date.strftime("%Y-%m-%d")
            console.print(
                f"[green]Graded {state.last_grade.label}.[/green] Next due in "
                f"[bold]{state.interval_days} days[/bold] on {due_str}."
            )
        console.print("")  # Add a blank line for spacing


def start_study_flow(
    session: StudySession, cards: Sequence[Flashcard], title: Optional[str] = None
) -> int:
    """
    Run study rounds until the user stops. Returns the number of gradings.

    Args:
        session: The StudySession for the set.
        cards: Every card of the set in set order.
        title: Set title for the header.
    """
    console.print(
        f"[bold cyan]Studying {title or session.set_id}... (q to quit)[/bold cyan]"
    )
    if not session.start(cards):
        console.print(f"[bold yellow]{session.error}[/bold yellow]")
        return 0

    try:
        while True:
            _run_round(session)
            if session.state is not SessionState.ROUND_COMPLETE:
                break
            console.print(
                f"[bold green]Round complete![/bold green] {session.reviewed_count} gradings so far."
            )
            again = _read("[bold]Keep studying? (y/n): [/bold]").lower()
            if again != "y":
                break
            if not session.keep_studying():
                console.print(f"[bold yellow]{session.error}[/bold yellow]")
                break
    except _QuitStudy:
        logger.info(f"User quit study of set {session.set_id}.")

    session.stop()
    console.print("[bold cyan]Study session finished. Well done![/bold cyan]")
    return session.reviewed_count
