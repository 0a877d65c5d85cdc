"""
Unit tests for QuizController session flow, timer handling and persistence.
"""
import unittest
from datetime import datetime
from unittest.mock import Mock

from timed_quiz.history_store import HistoryStore, HistoryStoreError, InMemoryHistoryStore
from timed_quiz.models import AttemptRecord, QuizSettings
from timed_quiz.quiz_controller import QuizController
from tests.test_fixtures import FakeTimerFactory, TestFixtures


FIXED_TIME = datetime(2024, 6, 1, 9, 0, 0)


class ControllerTestCase(unittest.TestCase):
    """Shared setup: scenario bank, in-memory history and manual timers."""

    def setUp(self):
        self.timers = FakeTimerFactory()
        self.store = InMemoryHistoryStore()
        self.states = []
        self.notices = []
        self.controller = self._make_controller(self.store)

    def _make_controller(self, store, questions=None, settings=None):
        controller = QuizController(
            questions or TestFixtures.create_scenario_questions(),
            store,
            timer_factory=self.timers,
            settings=settings,
            clock=lambda: FIXED_TIME,
            name="scenario"
        )
        controller.add_listener(self.states.append)
        controller.add_notice_listener(self.notices.append)
        return controller


class TestQuizControllerScenario(ControllerTestCase):
    """End-to-end runs through the three-question scenario."""

    def test_scenario_scores_two_of_three(self):
        self.controller.start()

        self.controller.select_option(2)
        self.controller.advance()
        self.controller.submit_typed_answer("42")
        self.controller.advance()
        self.timers.current.fire(30)

        state = self.controller.state
        self.assertTrue(state.is_complete)
        self.assertEqual(state.total_score, 2)
        self.assertEqual(state.outcomes, (True, True, False))

        history = self.store.list_all()
        self.assertEqual(history, [AttemptRecord(final_score=2, max_score=3, timestamp=FIXED_TIME)])
        self.assertEqual(self.controller.history, history)
        self.assertEqual(self.controller.last_record.attempt_id, 1)

    def test_attempt_recorded_exactly_once(self):
        self.controller.start()
        self.controller.select_option(2)
        self.controller.advance()
        self.controller.submit_typed_answer("42")
        self.controller.advance()
        self.controller.select_option(0)
        self.controller.advance()

        for _ in range(3):
            self.controller.advance()
            self.controller.on_timer_tick()

        self.assertEqual(len(self.store.list_all()), 1)
        self.assertEqual(self.controller.state.total_score, 3)

    def test_summary_after_completion(self):
        self.controller.start()
        for _ in range(3):
            self.timers.current.fire(30)

        summary = self.controller.summary()
        self.assertEqual(summary.score, 0)
        self.assertEqual(summary.max_score, 3)
        self.assertEqual(summary.outcomes, (False, False, False))


class TestQuizControllerRedundantEvents(ControllerTestCase):
    """Duplicate and out-of-order UI events must be harmless."""

    def setUp(self):
        super().setUp()
        self.controller.start()
        self.states.clear()

    def test_advance_before_lock_is_ignored(self):
        self.controller.advance()

        self.assertEqual(self.controller.state.current_index, 0)
        self.assertEqual(self.states, [])

    def test_repeated_advance_after_scoring(self):
        self.controller.select_option(2)
        self.controller.advance()
        for _ in range(4):
            self.controller.advance()

        self.assertEqual(self.controller.state.current_index, 1)
        self.assertEqual(self.controller.state.total_score, 1)

    def test_double_selection_keeps_first(self):
        self.controller.select_option(1)
        self.controller.select_option(2)

        self.assertEqual(self.controller.state.selected_option, 1)
        self.assertFalse(self.controller.answer_feedback())

    def test_blank_typed_answer_keeps_question_open(self):
        self.controller.select_option(2)
        self.controller.advance()
        self.controller.submit_typed_answer("   ")

        self.assertFalse(self.controller.state.is_answer_locked)
        self.assertIsNone(self.controller.answer_feedback())

    def test_unparseable_typed_answer_scored_incorrect(self):
        self.controller.select_option(2)
        self.controller.advance()
        self.controller.submit_typed_answer("forty-two")

        self.assertTrue(self.controller.state.is_answer_locked)
        self.assertFalse(self.controller.answer_feedback())
        self.controller.advance()
        self.assertEqual(self.controller.state.total_score, 1)


class TestQuizControllerTimer(ControllerTestCase):
    """Countdown registration, timeouts and stale ticks."""

    def test_start_registers_one_timer(self):
        self.controller.start()

        self.assertEqual(len(self.timers.active), 1)
        self.assertTrue(self.controller.is_timer_running)

    def test_ticks_count_down(self):
        self.controller.start()
        self.timers.current.fire(4)

        self.assertEqual(self.controller.state.remaining_seconds, 26)
        self.assertEqual(self.controller.get_progress()['remaining_seconds'], 26)

    def test_timeout_without_answer_advances_once(self):
        self.controller.start()
        first_timer = self.timers.current
        first_timer.fire(30)

        state = self.controller.state
        self.assertEqual(state.current_index, 1)
        self.assertEqual(state.total_score, 0)
        self.assertEqual(state.remaining_seconds, 30)
        self.assertTrue(first_timer.is_cancelled)
        self.assertEqual(len(self.timers.active), 1)

    def test_manual_advance_replaces_timer(self):
        self.controller.start()
        first_timer = self.timers.current
        first_timer.fire(10)
        self.controller.select_option(2)
        self.controller.advance()

        self.assertTrue(first_timer.is_cancelled)
        self.assertIsNot(self.timers.current, first_timer)
        self.assertEqual(self.controller.state.remaining_seconds, 30)

    def test_stale_tick_is_ignored(self):
        self.controller.start()
        first_timer = self.timers.current
        first_timer.fire(29)
        self.controller.select_option(2)
        self.controller.advance()

        # A tick already scheduled by the disposed timer arrives late
        first_timer.fire(force=True)

        self.assertEqual(self.controller.state.current_index, 1)
        self.assertEqual(self.controller.state.remaining_seconds, 30)

    def test_completion_cancels_timer(self):
        self.controller.start()
        for _ in range(3):
            self.timers.current.fire(30)

        self.assertTrue(self.controller.state.is_complete)
        self.assertEqual(self.timers.active, [])
        self.assertFalse(self.controller.is_timer_running)

    def test_stop_cancels_timer(self):
        self.controller.start()
        self.controller.stop()

        self.assertEqual(self.timers.active, [])

    def test_custom_timer_duration(self):
        controller = self._make_controller(self.store, settings=QuizSettings(timer_duration=5))
        controller.start()
        self.timers.current.fire(5)

        self.assertEqual(controller.state.current_index, 1)
        self.assertEqual(controller.state.remaining_seconds, 5)


class TestQuizControllerReset(ControllerTestCase):

    def test_reset_restores_initial_state(self):
        self.controller.start()
        self.controller.select_option(2)
        self.controller.advance()
        self.controller.submit_typed_answer("42")

        self.controller.reset()

        state = self.controller.state
        self.assertEqual(state.total_score, 0)
        self.assertEqual(state.current_index, 0)
        self.assertFalse(state.is_complete)
        self.assertFalse(state.is_answer_locked)
        self.assertEqual(state.remaining_seconds, 30)
        self.assertEqual(len(self.timers.active), 1)

    def test_reset_after_completion(self):
        self.controller.start()
        for _ in range(3):
            self.timers.current.fire(30)
        self.controller.reset()

        self.assertFalse(self.controller.state.is_complete)
        self.assertEqual(self.controller.state.total_score, 0)
        self.assertIsNone(self.controller.last_record)

    def test_start_reads_history(self):
        self.store.append(TestFixtures.create_attempt())
        self.controller.start()

        self.assertEqual(len(self.controller.history), 1)

    def test_clear_history(self):
        self.store.append(TestFixtures.create_attempt())
        self.controller.start()
        self.controller.clear_history()

        self.assertEqual(self.controller.history, [])
        self.assertEqual(self.store.list_all(), [])


class TestQuizControllerListeners(ControllerTestCase):

    def test_listener_receives_each_transition(self):
        self.controller.start()
        self.controller.select_option(2)
        self.controller.advance()

        self.assertEqual(len(self.states), 3)
        self.assertEqual(self.states[-1].current_index, 1)

    def test_event_from_listener_is_queued(self):
        seen = []

        def advance_once_locked(state):
            seen.append((state.current_index, state.is_answer_locked))
            if state.is_answer_locked and not state.is_complete:
                self.controller.advance()

        self.controller.add_listener(advance_once_locked)
        self.controller.start()
        self.controller.select_option(2)

        self.assertEqual(seen, [(0, False), (0, True), (1, False)])
        self.assertEqual(self.controller.state.total_score, 1)

    def test_failing_listener_does_not_break_session(self):
        self.controller.add_listener(Mock(side_effect=RuntimeError("display gone")))
        self.controller.start()
        self.controller.select_option(2)

        self.assertTrue(self.controller.state.is_answer_locked)


class TestQuizControllerPersistenceFailures(ControllerTestCase):
    """History store failures must not disturb the session."""

    def setUp(self):
        super().setUp()
        self.failing_store = Mock(spec=HistoryStore)
        self.failing_store.list_all.side_effect = HistoryStoreError("disk unavailable")
        self.failing_store.append.side_effect = HistoryStoreError("disk unavailable")
        self.failing_store.clear_all.side_effect = HistoryStoreError("disk unavailable")
        self.controller = self._make_controller(self.failing_store)

    def test_failed_history_read_is_a_notice(self):
        self.controller.start()

        self.assertEqual(self.controller.history, [])
        self.assertEqual(self.notices, ["Past attempts could not be loaded."])
        self.assertEqual(self.controller.state.current_index, 0)

    def test_failed_append_keeps_score(self):
        self.controller.start()
        self.controller.select_option(2)
        self.controller.advance()
        self.controller.submit_typed_answer("42")
        self.controller.advance()
        self.controller.select_option(0)
        self.controller.advance()

        self.assertTrue(self.controller.state.is_complete)
        self.assertEqual(self.controller.state.total_score, 3)
        self.assertIn("Your score could not be saved to the attempt history.", self.notices)
        self.assertEqual(self.controller.last_record.final_score, 3)
        self.failing_store.append.assert_called_once()

    def test_failed_clear_is_a_notice(self):
        self.controller.start()
        self.notices.clear()
        self.controller.clear_history()

        self.assertEqual(self.notices, ["Past attempts could not be cleared."])


class TestQuizControllerSetup(unittest.TestCase):

    def test_empty_bank_rejected(self):
        with self.assertRaises(ValueError):
            QuizController([], InMemoryHistoryStore(), timer_factory=FakeTimerFactory())


if __name__ == '__main__':
    unittest.main()
