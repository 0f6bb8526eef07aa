"""
Tests for the StudySession round life cycle: grading, requeueing, skipping
and configuration errors.
"""

import pytest
from unittest.mock import MagicMock

from linguaflow.config import QuestionTypeToggles, StudyConfig
from linguaflow.db.database import FlashcardDatabase
from linguaflow.exceptions import ReviewOperationError
from linguaflow.models import Grade, QuestionType
from linguaflow.review_processor import ReviewProcessor
from linguaflow.scheduler import FSRS_Scheduler
from linguaflow.session_composer import NO_CARDS_MESSAGE
from linguaflow.study_session import SessionState, StudySession


WRITTEN_ONLY = StudyConfig(new_card_question_types=QuestionTypeToggles(written=True))


@pytest.fixture
def mock_store():
    return MagicMock(spec=FlashcardDatabase)


@pytest.fixture
def mock_sleep():
    return MagicMock()


@pytest.fixture
def processor(mock_store, mock_sleep):
    return ReviewProcessor(
        store=mock_store,
        scheduler=FSRS_Scheduler(),
        retry_delay=2.0,
        max_attempts=3,
        sleep=mock_sleep,
    )


@pytest.fixture
def session(processor, fixed_rng, now):
    return StudySession(processor, "set-1", rng=fixed_rng, clock=lambda: now)


def _queue_terms(session):
    return [entry.card.term for entry in session.queue]


class TestStart:
    def test_start_builds_the_queue(self, session, sample_cards):
        assert session.state is SessionState.IDLE
        assert session.start(sample_cards) is True

        assert session.state is SessionState.IN_ROUND
        assert _queue_terms(session) == ["hola", "adiós", "gato", "perro", "casa"]
        assert session.current_entry.card.term == "hola"
        assert session.error is None

    def test_start_with_no_cards_reports_error(self, session):
        assert session.start([]) is False

        assert session.state is SessionState.IDLE
        assert session.error == NO_CARDS_MESSAGE
        assert session.queue == []

    def test_failed_restart_leaves_running_round_untouched(self, session, sample_cards):
        session.start(sample_cards)
        queue_before = list(session.queue)

        assert session.start([]) is False

        assert session.state is SessionState.IN_ROUND
        assert session.queue == queue_before
        assert session.error == NO_CARDS_MESSAGE

    def test_start_with_new_config(self, session, sample_cards):
        session.start(sample_cards, config=WRITTEN_ONLY)
        assert all(e.question_type is QuestionType.WRITTEN for e in session.queue)
        assert session.config is WRITTEN_ONLY


class TestGrade:
    def test_good_removes_the_card(self, session, sample_cards, mock_store, now):
        session.start(sample_cards)

        state = session.grade(Grade.Good)

        assert state.last_grade is Grade.Good
        assert state.last_reviewed == now
        assert _queue_terms(session) == ["adiós", "gato", "perro", "casa"]
        mock_store.record_review.assert_called_once_with(
            "set-1", sample_cards[0].id, Grade.Good, state
        )
        assert session.all_cards[0].last_reviewed == now
        assert session.reviewed_count == 1

    @pytest.mark.parametrize("grade", [Grade.Forgot, Grade.Hard])
    def test_forgot_and_hard_requeue_at_the_end(self, session, sample_cards, grade):
        session.start(sample_cards)

        session.grade(grade)

        assert _queue_terms(session) == ["adiós", "gato", "perro", "casa", "hola"]
        assert session.current_entry.card.term == "adiós"

    def test_easy_does_not_requeue(self, session, sample_cards):
        session.start(sample_cards)
        session.grade(4)
        assert "hola" not in _queue_terms(session)

    def test_requeued_card_is_graded_from_its_latest_state(
        self, session, sample_cards, mock_store
    ):
        session.start(sample_cards[:2])

        first = session.grade(Grade.Forgot)   # hola, requeued
        session.grade(Grade.Good)             # adiós
        second = session.grade(Grade.Good)    # hola again

        assert first.reps == 1
        assert second.reps == 2
        assert second.lapses == 1
        assert mock_store.record_review.call_count == 3
        assert session.state is SessionState.ROUND_COMPLETE

    def test_grading_the_last_card_completes_the_round(self, session, sample_cards):
        session.start(sample_cards[:1])

        session.grade(Grade.Good)

        assert session.state is SessionState.ROUND_COMPLETE
        assert session.is_round_complete
        assert session.current_entry is None
        assert session.remaining == 0

    def test_index_wraps_to_start_after_removing_the_last_entry(
        self, session, sample_cards
    ):
        session.start(sample_cards)
        session.current_index = 4

        session.grade(Grade.Good)

        assert session.current_index == 0
        assert session.current_entry.card.term == "hola"

    def test_requeued_last_entry_comes_straight_back(self, session, sample_cards):
        session.start(sample_cards)
        session.current_index = 4

        session.grade(Grade.Forgot)

        assert session.current_index == 4
        assert session.current_entry.card.term == "casa"
        assert session.remaining == 5

    def test_persistence_failure_leaves_queue_untouched(
        self, session, sample_cards, mock_store, mock_sleep
    ):
        mock_store.record_review.side_effect = ReviewOperationError("db down")
        session.start(sample_cards)
        queue_before = list(session.queue)

        with pytest.raises(ReviewOperationError):
            session.grade(Grade.Good)

        assert session.queue == queue_before
        assert session.is_processing_review is False
        assert session.all_cards[0].is_new
        assert mock_store.record_review.call_count == 3
        assert mock_sleep.call_count == 2

    def test_transient_persistence_failure_is_retried(
        self, session, sample_cards, mock_store, mock_sleep
    ):
        mock_store.record_review.side_effect = [ReviewOperationError("busy"), None]
        session.start(sample_cards)

        session.grade(Grade.Good)

        mock_sleep.assert_called_once_with(2.0)
        assert session.remaining == 4

    def test_nested_grade_is_ignored(self, session, sample_cards, mock_store):
        session.start(sample_cards)
        session.is_processing_review = True

        assert session.grade(Grade.Good) is None

        mock_store.record_review.assert_not_called()
        assert session.remaining == 5

    def test_invalid_grade_raises_and_clears_guard(self, session, sample_cards, mock_store):
        session.start(sample_cards)

        with pytest.raises(ValueError):
            session.grade(0)

        assert session.is_processing_review is False
        assert session.remaining == 5
        mock_store.record_review.assert_not_called()

    def test_grade_without_round_raises(self, session):
        with pytest.raises(ValueError, match="No card to study"):
            session.grade(Grade.Good)


class TestSkip:
    def test_skip_removes_flashcard_without_grading(self, session, sample_cards, mock_store):
        session.start(sample_cards)

        session.skip()

        assert _queue_terms(session) == ["adiós", "gato", "perro", "casa"]
        mock_store.record_review.assert_not_called()
        assert session.all_cards[0].is_new

    def test_skip_written_starts_dont_know_flow(self, session, sample_cards, mock_store):
        session.start(sample_cards, config=WRITTEN_ONLY)

        session.skip()

        assert session.awaiting_retype is True
        assert session.current_entry.card.term == "hola"
        mock_store.record_review.assert_not_called()

        state = session.complete_dont_know()

        assert state.last_grade is Grade.Forgot
        assert session.awaiting_retype is False
        assert _queue_terms(session)[-1] == "hola"

    def test_complete_dont_know_requires_pending_answer(self, session, sample_cards):
        session.start(sample_cards, config=WRITTEN_ONLY)
        with pytest.raises(ValueError):
            session.complete_dont_know()

    def test_skipping_everything_completes_the_round(self, session, sample_cards):
        session.start(sample_cards[:2])
        session.skip()
        session.skip()
        assert session.state is SessionState.ROUND_COMPLETE


class TestRoundLifecycle:
    def test_keep_studying_uses_updated_cards(self, session, sample_cards):
        config = StudyConfig(cards_per_round=1)
        session.start(sample_cards[:2], config=config)
        session.grade(Grade.Good)
        assert session.is_round_complete

        assert session.keep_studying() is True

        # hola is not due any more; adiós is the next new card.
        assert _queue_terms(session) == ["adiós"]
        assert session.state is SessionState.IN_ROUND

    def test_keep_studying_with_nothing_left(self, session, sample_cards):
        session.start(sample_cards[:1])
        session.grade(Grade.Good)

        assert session.keep_studying() is False
        assert session.error == NO_CARDS_MESSAGE
        assert session.state is SessionState.IDLE

    def test_stop_returns_to_idle(self, session, sample_cards):
        session.start(sample_cards)
        session.stop()
        assert session.state is SessionState.IDLE
        assert session.queue == []
        assert session.current_entry is None


class TestCardEdits:
    def test_edit_updates_every_queued_copy(self, session, sample_cards, now):
        session.start(sample_cards)
        session.grade(Grade.Forgot)  # hola requeued at the end
        edited = session.all_cards[0].model_copy(
            update={"definition": "hi", "starred": True}
        )

        session.apply_card_edit(edited)

        assert session.queue[-1].card.definition == "hi"
        assert session.queue[-1].card.starred is True
        assert session.all_cards[0].definition == "hi"
        # Scheduling state is kept.
        assert session.all_cards[0].last_reviewed == now

    def test_edit_of_card_outside_round(self, session, sample_cards):
        session.start(sample_cards[:1])
        edited = sample_cards[3].model_copy(update={"term": "perrito"})

        session.apply_card_edit(edited)

        assert _queue_terms(session) == ["hola"]
