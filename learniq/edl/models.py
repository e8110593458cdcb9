"""
Adaptive Difficulty Models

Value types shared by the difficulty calculator, adjuster, question selector
and assessment scorer.
"""

import enum
import datetime
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

from learniq.common.error_handling import ValidationError
from learniq.common.serialization import SerializableMixin


class Subject(enum.Enum):
    MATH = "math"
    ENGLISH = "english"
    SCIENCE = "science"


class Difficulty(enum.Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    ADAPTIVE = "adaptive"


class SelectionMode(enum.Enum):
    MANUAL = "manual"
    ADAPTIVE = "adaptive"


class EDLStatus(enum.Enum):
    """Where a learner's rolling accuracy sits relative to the flow zone."""
    EXCEPTIONAL = "exceptional"
    APPROACHING_MASTERY = "approaching_mastery"
    FLOW_ZONE = "flow_zone"
    CHALLENGING = "challenging"
    STRUGGLING = "struggling"


class AdjustmentType(enum.Enum):
    LEVEL_UP = "level_up"
    LEVEL_DOWN = "level_down"


@dataclass
class PerformanceState(SerializableMixin):
    """
    Difficulty state for one learner and subject.

    ``effective_age`` and ``recent_accuracy`` are derived from the other
    fields and kept in sync by the calculator.
    """

    __serializable_fields__ = [
        "subject", "chronological_age", "performance_adjustment", "effective_age",
        "recent_accuracy", "last_3_quiz_scores", "total_quizzes_completed",
        "has_completed_assessment", "last_quiz_at"
    ]

    subject: Subject
    chronological_age: int
    performance_adjustment: int
    effective_age: int
    recent_accuracy: Optional[float] = None
    last_3_quiz_scores: List[float] = field(default_factory=list)
    total_quizzes_completed: int = 0
    has_completed_assessment: bool = True
    last_quiz_at: Optional[datetime.datetime] = None
    version: int = 1

    @classmethod
    def from_row(cls, row: Any) -> "PerformanceState":
        return cls(
            subject=Subject(row.subject),
            chronological_age=row.chronological_age,
            performance_adjustment=row.performance_adjustment,
            effective_age=row.effective_age,
            recent_accuracy=row.recent_accuracy,
            last_3_quiz_scores=list(row.last_3_quiz_scores or []),
            total_quizzes_completed=row.total_quizzes_completed,
            has_completed_assessment=row.has_completed_assessment,
            last_quiz_at=row.last_quiz_at,
            version=row.version,
        )


@dataclass
class EDLUpdate(SerializableMixin):
    """Outcome of feeding one practice score into the difficulty state."""

    previous_effective_age: int
    new_effective_age: int
    adjustment_occurred: bool
    adjustment_type: Optional[AdjustmentType]
    recent_accuracy: Optional[float]
    status: EDLStatus
    message: str
    next_adjustment_in: int
    performance_adjustment: int


@dataclass
class SubjectStatus(SerializableMixin):
    """Status bundle entry for one subject."""

    subject: Subject
    chronological_age: int
    effective_age: int
    performance_adjustment: int
    recent_accuracy: Optional[float]
    last_3_quiz_scores: List[float]
    total_quizzes_completed: int
    status: EDLStatus
    message: str
    next_adjustment_in: int


@dataclass
class OverallStatus(SerializableMixin):
    average_accuracy: Optional[float]
    subjects_in_flow_zone: int
    subjects_advanced: int
    subjects_needing_support: int


@dataclass
class AssessmentAnswer:
    """One answered diagnostic question; ``points`` is its weight."""
    is_correct: bool
    points: int = 1


@dataclass
class AssessmentScore(SerializableMixin):
    score_percentage: float
    skill_level: int
    earned_points: int
    total_points: int


@dataclass
class Distribution(SerializableMixin):
    """Question counts per difficulty bucket."""
    easy: int = 0
    medium: int = 0
    hard: int = 0

    @property
    def total(self) -> int:
        return self.easy + self.medium + self.hard

    def as_buckets(self) -> Dict[Difficulty, int]:
        return {
            Difficulty.EASY: self.easy,
            Difficulty.MEDIUM: self.medium,
            Difficulty.HARD: self.hard,
        }


@dataclass
class QuestionSet(SerializableMixin):
    """Result of a question selection."""

    questions: List[Dict[str, Any]]
    target_age: int
    mode: SelectionMode
    distribution: Distribution
    excluded_count: int
    recently_seen_count: int = 0
    effective_age: Optional[int] = None
    performance_adjustment: Optional[int] = None
    recent_accuracy: Optional[float] = None


def parse_subject(value: str) -> Subject:
    try:
        return Subject(value)
    except ValueError:
        raise ValidationError(
            "Invalid subject",
            details={"subject": value, "allowed": [s.value for s in Subject]}
        )


def parse_difficulty(value: str) -> Difficulty:
    try:
        return Difficulty(value)
    except ValueError:
        raise ValidationError(
            "Invalid difficulty",
            details={"difficulty": value, "allowed": [d.value for d in Difficulty]}
        )
