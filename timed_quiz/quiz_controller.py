"""
Quiz session controller for the timed quiz.
Owns the running session, its countdown timer and the hand-off of finished
attempts to the history store.
"""
import logging
import time
from collections import deque
from datetime import datetime
from functools import partial
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Tuple

from .history_store import HistoryStore, HistoryStoreError
from .models import AttemptRecord, Question, QuizSettings, ResultSummary, SessionState
from .quiz_engine import QuizEngine, QuizTimer, TimerLifecycleLogger


StateListener = Callable[[SessionState], Any]
NoticeListener = Callable[[str], Any]


class QuizController:
    """
    Drives one quiz from the first question to the saved attempt.

    All input arrives as events (user actions and timer ticks). Events are
    applied one at a time in arrival order; an event raised while another is
    being applied, for example from a listener, waits in the queue. Events
    that do not apply to the current state are ignored.
    """

    def __init__(
        self,
        questions: Sequence[Question],
        history_store: HistoryStore,
        timer_factory: Optional[Callable[[str], QuizTimer]] = None,
        settings: Optional[QuizSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        name: str = "quiz"
    ):
        """
        Initialize the quiz controller.

        Args:
            questions: Ordered question bank for the session
            history_store: Store receiving finished attempts
            timer_factory: Builds a countdown timer from a name, QuizTimer by default
            settings: Quiz settings, defaults used if None
            clock: Source of attempt timestamps
            name: Label used in logs and timer names

        Raises:
            ValueError: If the question bank is empty
        """
        self.logger = logging.getLogger(__name__)
        self.settings = settings or QuizSettings()
        self.engine = QuizEngine(questions, self.settings.timer_duration)
        self.history_store = history_store
        self.name = name

        self._timer_factory = timer_factory or (lambda timer_name: QuizTimer(timer_name))
        self._clock = clock or datetime.now

        self._state: SessionState = self.engine.initial_state()
        self._history: List[AttemptRecord] = []
        self._history_error: Optional[str] = None
        self._last_record: Optional[AttemptRecord] = None
        self._timer: Optional[QuizTimer] = None
        self._timer_generation = 0

        self._listeners: List[StateListener] = []
        self._notice_listeners: List[NoticeListener] = []
        self._pending: Deque[Tuple[str, Callable[[], None]]] = deque()
        self._dispatching = False

        self.logger.info(
            f"QuizController '{name}' initialized with {self.engine.question_count} questions",
            extra={
                'event_type': 'controller_initialized',
                'quiz': name,
                'question_count': self.engine.question_count,
                'timer_duration': self.settings.timer_duration,
                'timestamp': time.time()
            }
        )

    # Listeners

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback receiving the state after every transition."""
        self._listeners.append(listener)

    def add_notice_listener(self, listener: NoticeListener) -> None:
        """Register a callback receiving non-blocking notices."""
        self._notice_listeners.append(listener)

    # Read access

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def current_question(self) -> Question:
        return self.engine.current_question(self._state)

    @property
    def history(self) -> List[AttemptRecord]:
        """Attempts as last read from the history store."""
        return list(self._history)

    @property
    def history_error(self) -> Optional[str]:
        """Notice from the last failed history operation, None after a success."""
        return self._history_error

    @property
    def last_record(self) -> Optional[AttemptRecord]:
        return self._last_record

    @property
    def is_timer_running(self) -> bool:
        return self._timer is not None

    def answer_feedback(self) -> Optional[bool]:
        """
        Correctness of the locked answer.

        Returns:
            None while no answer is locked, otherwise whether it is correct
        """
        if not self._state.is_answer_locked:
            return None
        return self.engine.is_correct(self._state)

    def summary(self) -> ResultSummary:
        return self.engine.summarize(self._state)

    def get_progress(self) -> Dict[str, Any]:
        """
        Get progress information for display.

        Returns:
            Dictionary with question position, score and timer info
        """
        state = self._state
        return {
            'quiz_name': self.name,
            'current_question': state.current_index + 1,
            'total_questions': self.engine.question_count,
            'score': state.total_score,
            'remaining_seconds': state.remaining_seconds,
            'is_answer_locked': state.is_answer_locked,
            'is_complete': state.is_complete,
            'timer_duration': self.settings.timer_duration
        }

    # Events

    def start(self) -> None:
        """Begin a fresh session on the first question and reload the attempt list."""
        self._dispatch("start", self._apply_start)

    def reset(self) -> None:
        """Discard the current session and start over."""
        self._dispatch("reset", self._apply_start)

    def stop(self) -> None:
        """Tear down the countdown, e.g. when the display goes away."""
        self._dispatch("stop", partial(self._cancel_timer, "controller stopped"))

    def select_option(self, index: int) -> None:
        """Lock in a multiple-choice option. Ignored once an answer is locked."""
        transition = partial(self.engine.select_option, index=index)
        self._dispatch("select_option", partial(self._transition, "select_option", transition))

    def submit_typed_answer(self, text: str) -> None:
        """Lock in a typed answer. Blank text leaves the question open."""
        transition = partial(self.engine.submit_typed_answer, text=text)
        self._dispatch("submit_typed_answer", partial(self._transition, "submit_typed_answer", transition))

    def advance(self) -> None:
        self._dispatch("advance", partial(self._transition, "advance", self.engine.advance))

    def on_timer_tick(self) -> None:
        """Apply one elapsed second to the current question."""
        self._dispatch("timer_tick", partial(self._apply_tick, self._timer_generation))

    def clear_history(self) -> None:
        """Remove every stored attempt."""
        self._dispatch("clear_history", self._apply_clear_history)

    # Event processing

    def _dispatch(self, event: str, apply: Callable[[], None]) -> None:
        self._pending.append((event, apply))
        if self._dispatching:
            self.logger.debug(f"Queued {event} for quiz '{self.name}' behind a running transition")
            return

        self._dispatching = True
        try:
            while self._pending:
                _, queued = self._pending.popleft()
                queued()
        except Exception:
            self._pending.clear()
            raise
        finally:
            self._dispatching = False

    def _transition(self, event: str, transition: Callable[[SessionState], SessionState]) -> None:
        previous = self._state
        state = transition(previous)

        if state is previous:
            self.logger.debug(
                f"Ignored {event} for quiz '{self.name}'",
                extra={
                    'event_type': 'transition_ignored',
                    'quiz': self.name,
                    'event': event,
                    'question': previous.current_index + 1,
                    'timestamp': time.time()
                }
            )
            return

        self._state = state

        if state.is_complete and not previous.is_complete:
            self._cancel_timer("quiz complete")
            self.logger.info(
                f"Quiz '{self.name}' completed with score {state.total_score}/{self.engine.question_count}",
                extra={
                    'event_type': 'quiz_completed',
                    'quiz': self.name,
                    'score': state.total_score,
                    'max_score': self.engine.question_count,
                    'timestamp': time.time()
                }
            )
            self._record_attempt(state)
        elif state.current_index != previous.current_index:
            self.logger.debug(
                f"Quiz '{self.name}' advanced to question {state.current_index + 1} via {event}",
                extra={
                    'event_type': 'question_advanced',
                    'quiz': self.name,
                    'event': event,
                    'question': state.current_index + 1,
                    'score': state.total_score,
                    'timestamp': time.time()
                }
            )
            self._restart_timer(f"question {state.current_index + 1} via {event}")

        self._notify(state)

    def _apply_start(self) -> None:
        self._cancel_timer("session restarted")
        self._state = self.engine.initial_state()
        self._last_record = None
        self._refresh_history()
        self._restart_timer("session started")
        self.logger.info(f"Started quiz '{self.name}'")
        self._notify(self._state)

    def _apply_tick(self, generation: int) -> None:
        if generation != self._timer_generation:
            TimerLifecycleLogger.log_race_condition_detected(
                self._timer.name if self._timer else self.name,
                f"Ignored tick from timer generation {generation}, current is {self._timer_generation}"
            )
            return

        self._transition("timer_tick", self.engine.timer_tick)
        TimerLifecycleLogger.log_timer_tick(
            self._timer.name if self._timer else self.name,
            self._state.remaining_seconds,
            self.settings.timer_duration
        )

    def _apply_clear_history(self) -> None:
        try:
            self.history_store.clear_all()
        except HistoryStoreError as e:
            self.logger.error(f"Failed to clear history for quiz '{self.name}': {e}")
            self._history_failed("Past attempts could not be cleared.")
            return

        self._history = []
        self._history_error = None
        self.logger.info(f"Cleared attempt history for quiz '{self.name}'")
        self._notify(self._state)

    # Timer management

    def _restart_timer(self, reason: str) -> None:
        self._cancel_timer(reason)

        self._timer_generation += 1
        generation = self._timer_generation
        timer = self._timer_factory(f"{self.name}-g{generation}")
        self._timer = timer
        timer.start(partial(self._on_timer_fired, generation))

        TimerLifecycleLogger.log_timer_state_transition(timer.name, "created", "running", reason)

    def _cancel_timer(self, reason: str) -> None:
        timer = self._timer
        if timer is None:
            return

        self._timer = None
        # Ticks already queued for the old registration are dropped.
        self._timer_generation += 1
        timer.cancel()
        TimerLifecycleLogger.log_timer_state_transition(timer.name, "running", "disposed", reason)

    def _on_timer_fired(self, generation: int) -> None:
        self._dispatch("timer_tick", partial(self._apply_tick, generation))

    # Persistence

    def _record_attempt(self, state: SessionState) -> None:
        record = AttemptRecord(
            final_score=state.total_score,
            max_score=self.engine.question_count,
            timestamp=self._clock()
        )
        self._last_record = record

        try:
            self._last_record = self.history_store.append(record)
        except HistoryStoreError as e:
            self.logger.error(
                f"Failed to save attempt for quiz '{self.name}': {e}",
                extra={
                    'event_type': 'attempt_save_failed',
                    'quiz': self.name,
                    'score': record.final_score,
                    'timestamp': time.time()
                }
            )
            self._history_failed("Your score could not be saved to the attempt history.")
            return

        self._refresh_history()

    def _refresh_history(self) -> None:
        try:
            self._history = self.history_store.list_all()
            self._history_error = None
        except HistoryStoreError as e:
            self.logger.error(f"Failed to load attempt history for quiz '{self.name}': {e}")
            self._history_failed("Past attempts could not be loaded.")

    def _history_failed(self, message: str) -> None:
        self._history_error = message
        self._notice(message)

    # Outbound

    def _notify(self, state: SessionState) -> None:
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                self.logger.error(f"State listener failed for quiz '{self.name}': {e}", exc_info=True)

    def _notice(self, message: str) -> None:
        for listener in list(self._notice_listeners):
            try:
                listener(message)
            except Exception as e:
                self.logger.error(f"Notice listener failed for quiz '{self.name}': {e}", exc_info=True)
