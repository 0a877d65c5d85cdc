"""
Core data models for the timed quiz.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


DEFAULT_TIMER_DURATION = 30


class QuestionKind(Enum):
    """Kinds of question a quiz can contain."""
    MULTIPLE_CHOICE = "mcq"
    INTEGER = "integer"


@dataclass(frozen=True)
class Question:
    """Represents a single quiz question."""
    kind: QuestionKind
    prompt: str
    correct_answer: int
    options: Tuple[str, ...] = ()

    @property
    def is_multiple_choice(self) -> bool:
        return self.kind is QuestionKind.MULTIPLE_CHOICE


@dataclass
class QuizSettings:
    """Configuration settings for a quiz session."""
    timer_duration: int = DEFAULT_TIMER_DURATION
    quiz_name: Optional[str] = None


@dataclass(frozen=True)
class SessionState:
    """
    Snapshot of a running quiz.

    A new instance is produced by every transition; the controller keeps
    only the latest one.
    """
    current_index: int = 0
    selected_option: Optional[int] = None
    typed_answer: Optional[str] = None
    remaining_seconds: int = DEFAULT_TIMER_DURATION
    is_answer_locked: bool = False
    is_scored: bool = False
    total_score: int = 0
    is_complete: bool = False
    outcomes: Tuple[bool, ...] = ()


@dataclass(frozen=True)
class AttemptRecord:
    """Summary of one completed quiz run, as kept in the history store."""
    final_score: int
    max_score: int
    timestamp: datetime
    attempt_id: Optional[int] = field(default=None, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.attempt_id,
            'final_score': self.final_score,
            'max_score': self.max_score,
            'timestamp': self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AttemptRecord":
        return cls(
            final_score=int(data['final_score']),
            max_score=int(data['max_score']),
            timestamp=datetime.fromisoformat(data['timestamp']),
            attempt_id=data.get('id'),
        )


@dataclass(frozen=True)
class ResultSummary:
    """Final result shown once a quiz is complete."""
    score: int
    max_score: int
    outcomes: Tuple[bool, ...]

    @property
    def percentage(self) -> float:
        if self.max_score == 0:
            return 0.0
        return (self.score / self.max_score) * 100

    @property
    def message(self) -> str:
        if self.score == self.max_score:
            return "Perfect score!"
        if self.percentage >= 50:
            return "Well done!"
        return "Keep practising!"
