"""
Quiz engine core logic for the timed quiz.
Holds the session transition rules and the per-question countdown timer.
"""
import asyncio
import logging
import re
import time
from dataclasses import replace
from typing import Any, Callable, Optional, Sequence, Tuple

from .models import (
    DEFAULT_TIMER_DURATION,
    Question,
    ResultSummary,
    SessionState,
)

# Set up logger for timer operations
logger = logging.getLogger(__name__)

_INTEGER_PATTERN = re.compile(r'[+-]?[0-9]+')


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_start(timer_name: str, interval: float) -> None:
        """Log timer countdown start."""
        logger.debug(
            f"Timer lifecycle: COUNTDOWN_START - Timer {timer_name}, Interval {interval}s",
            extra={
                'event_type': 'timer_countdown_start',
                'timer_name': timer_name,
                'interval': interval,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_tick(timer_name: str, remaining_time: int, total_duration: int) -> None:
        """Log countdown ticks (throttled to avoid spam)."""
        if remaining_time % 10 == 0 or remaining_time <= 5:
            progress_percent = ((total_duration - remaining_time) / total_duration) * 100 if total_duration else 100.0
            logger.debug(
                f"Timer lifecycle: TICK - Timer {timer_name}, Remaining {remaining_time}s ({progress_percent:.1f}% complete)",
                extra={
                    'event_type': 'timer_tick',
                    'timer_name': timer_name,
                    'remaining_time': remaining_time,
                    'total_duration': total_duration,
                    'progress_percent': progress_percent,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_timer_completion(timer_name: str, completion_type: str, tick_count: int) -> None:
        """Log timer completion (cancellation or task teardown)."""
        logger.debug(
            f"Timer lifecycle: COMPLETED - Timer {timer_name}, Type {completion_type}, Ticks {tick_count}",
            extra={
                'event_type': 'timer_completed',
                'timer_name': timer_name,
                'completion_type': completion_type,
                'tick_count': tick_count,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_state_transition(timer_name: str, from_state: str, to_state: str, reason: str = None) -> None:
        """Log timer state transitions."""
        logger.debug(
            f"Timer lifecycle: STATE_TRANSITION - Timer {timer_name}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_state_transition',
                'timer_name': timer_name,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(timer_name: str, error_type: str, error_message: str, operation: str) -> None:
        """Log timer-related errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - Timer {timer_name}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'timer_name': timer_name,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_race_condition_detected(timer_name: str, details: str) -> None:
        """Log a tick arriving from a registration that was already replaced."""
        logger.warning(
            f"Timer lifecycle: RACE_CONDITION - Timer {timer_name}: {details}",
            extra={
                'event_type': 'timer_race_condition',
                'timer_name': timer_name,
                'details': details,
                'timestamp': time.time()
            }
        )


class QuizTimer:
    """
    Periodic ticker driving a question countdown.

    The timer only emits ticks; counting down and deciding what a timeout
    means is left to whoever receives them.
    """

    def __init__(self, name: str = None, interval: float = 1.0):
        """
        Initialize the timer.

        Args:
            name: Label used in lifecycle logs
            interval: Seconds between ticks
        """
        self._task: Optional[asyncio.Task] = None
        self._is_cancelled = False
        self._name = name or f"timer-{id(self):x}"
        self._interval = interval
        self._tick_count = 0

    def start(self, on_tick: Callable[[], Any]) -> None:
        """
        Schedule the ticker on the running event loop.

        Args:
            on_tick: Called once per interval until the timer is cancelled

        Raises:
            RuntimeError: If the timer was already started or cancelled
        """
        if self._is_cancelled:
            raise RuntimeError(f"Timer {self._name} was cancelled and cannot be restarted")
        if self._task is not None:
            raise RuntimeError(f"Timer {self._name} is already running")

        self._task = asyncio.get_running_loop().create_task(self._run(on_tick))
        TimerLifecycleLogger.log_timer_state_transition(self._name, "idle", "running", "start requested")

    async def _run(self, on_tick: Callable[[], Any]) -> None:
        TimerLifecycleLogger.log_timer_start(self._name, self._interval)
        try:
            while not self._is_cancelled:
                await asyncio.sleep(self._interval)
                if self._is_cancelled:
                    break
                self._tick_count += 1
                on_tick()
        except asyncio.CancelledError:
            TimerLifecycleLogger.log_timer_completion(self._name, "asyncio_cancelled", self._tick_count)
            raise
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(self._name, "tick_execution_error", str(e), "run")
            raise
        TimerLifecycleLogger.log_timer_completion(self._name, "cancelled", self._tick_count)

    def cancel(self) -> None:
        """Cancel the ticker. No further ticks are delivered afterwards."""
        if self._is_cancelled:
            return
        self._is_cancelled = True

        if self._task is None or self._task.done():
            TimerLifecycleLogger.log_timer_state_transition(self._name, "running", "cancelled", "no active task")
            return

        # A tick handler cancelling its own timer must not interrupt itself;
        # the loop exits on the flag instead.
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None

        if current is not self._task:
            self._task.cancel()
        TimerLifecycleLogger.log_timer_state_transition(self._name, "running", "cancelled", "cancel requested")

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_cancelled(self) -> bool:
        """Check if timer is cancelled."""
        return self._is_cancelled

    @property
    def tick_count(self) -> int:
        return self._tick_count


class QuizEngine:
    """
    Transition rules for a quiz over a fixed question bank.

    Every transition takes a SessionState and returns the next one. When an
    event does not apply to the current state the same object is returned.
    """

    def __init__(self, questions: Sequence[Question], timer_duration: int = DEFAULT_TIMER_DURATION):
        """
        Initialize the quiz engine.

        Args:
            questions: Ordered question bank
            timer_duration: Seconds allowed per question

        Raises:
            ValueError: If questions list is empty or the duration is not positive
        """
        if not questions:
            raise ValueError("Cannot run a quiz with an empty question bank")
        if timer_duration < 1:
            raise ValueError(f"Timer duration must be positive, got {timer_duration}")

        self._questions: Tuple[Question, ...] = tuple(questions)
        self.timer_duration = timer_duration

    @property
    def questions(self) -> Tuple[Question, ...]:
        return self._questions

    @property
    def question_count(self) -> int:
        return len(self._questions)

    def current_question(self, state: SessionState) -> Question:
        return self._questions[state.current_index]

    def initial_state(self) -> SessionState:
        """Fresh state positioned on the first question."""
        return SessionState(remaining_seconds=self.timer_duration)

    def select_option(self, state: SessionState, index: int) -> SessionState:
        """Lock in a multiple-choice option."""
        if state.is_complete or state.is_answer_locked:
            return state

        question = self.current_question(state)
        if not question.is_multiple_choice:
            return state
        if isinstance(index, bool) or not isinstance(index, int):
            return state
        if not 0 <= index < len(question.options):
            return state

        return replace(state, selected_option=index, is_answer_locked=True)

    def submit_typed_answer(self, state: SessionState, text: str) -> SessionState:
        """Lock in a typed answer for an integer question. Blank input is rejected."""
        if state.is_complete or state.is_answer_locked:
            return state
        if self.current_question(state).is_multiple_choice:
            return state
        if not isinstance(text, str) or not text.strip():
            return state

        return replace(state, typed_answer=text.strip(), is_answer_locked=True)

    def advance(self, state: SessionState) -> SessionState:
        """Score the locked answer if needed, then move on or complete."""
        if state.is_complete or not state.is_answer_locked:
            return state
        return self._resolve(state)

    def timer_tick(self, state: SessionState) -> SessionState:
        """
        Count one second down and force resolution when time runs out.

        A question that times out without a locked answer is scored as
        incorrect and the quiz still moves on.
        """
        if state.is_complete:
            return state

        remaining = state.remaining_seconds - 1 if state.remaining_seconds > 0 else 0
        state = replace(state, remaining_seconds=remaining)
        if remaining > 0:
            return state

        return self._resolve(replace(state, is_answer_locked=True))

    def is_correct(self, state: SessionState) -> bool:
        """Check the current question's answer held in state."""
        question = self.current_question(state)

        if question.is_multiple_choice:
            return state.selected_option is not None and state.selected_option == question.correct_answer

        text = (state.typed_answer or "").strip()
        if not _INTEGER_PATTERN.fullmatch(text):
            return False
        return int(text) == question.correct_answer

    def summarize(self, state: SessionState) -> ResultSummary:
        """Build the result shown at the end of a quiz."""
        return ResultSummary(
            score=state.total_score,
            max_score=self.question_count,
            outcomes=state.outcomes,
        )

    def _resolve(self, state: SessionState) -> SessionState:
        if not state.is_scored:
            correct = self.is_correct(state)
            state = replace(
                state,
                total_score=state.total_score + (1 if correct else 0),
                is_scored=True,
                outcomes=state.outcomes + (correct,),
            )

        if state.current_index >= self.question_count - 1:
            return replace(state, is_complete=True)

        return replace(
            state,
            current_index=state.current_index + 1,
            selected_option=None,
            typed_answer=None,
            remaining_seconds=self.timer_duration,
            is_answer_locked=False,
            is_scored=False,
        )
