"""
Gamification System Models

This module defines the value types of the scoring engine:
1. Point transaction types and award results
2. Streak updates and milestone payouts
3. Achievements with rarity tiers and a closed set of unlock criteria
"""

import enum
import datetime
from typing import Any, Dict, List, Mapping, Optional, Union
from dataclasses import dataclass, field

from learniq.common.error_handling import ValidationError
from learniq.common.serialization import SerializableMixin
from learniq.edl.models import Subject


class TransactionType(enum.Enum):
    """Reasons points are awarded."""
    QUIZ_COMPLETION = "quiz_completion"
    ASSESSMENT_COMPLETION = "assessment_completion"
    STREAK_BONUS = "streak_bonus"
    LEVEL_UP = "level_up"
    ACHIEVEMENT_UNLOCK = "achievement_unlock"
    PERFECT_SCORE = "perfect_score"
    DAILY_GOAL = "daily_goal"


class AchievementRarity(enum.Enum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class AchievementCategory(enum.Enum):
    MASTERY = "mastery"
    PERSISTENCE = "persistence"
    MILESTONE = "milestone"
    EXPLORATION = "exploration"


# Unlock criteria. Each variant is stored as {"type": <tag>, ...} in the catalog.

@dataclass(frozen=True)
class QuizCount:
    count: int


@dataclass(frozen=True)
class StreakDays:
    days: int


@dataclass(frozen=True)
class SubjectLevel:
    subject: Subject
    level: int


@dataclass(frozen=True)
class SubjectsCompleted:
    count: int


@dataclass(frozen=True)
class PerfectScore:
    pass


@dataclass(frozen=True)
class AssessmentComplete:
    pass


UnlockCriteria = Union[QuizCount, StreakDays, SubjectLevel, SubjectsCompleted, PerfectScore, AssessmentComplete]


def _positive_int(raw: Mapping[str, Any], key: str) -> int:
    value = raw.get(key)
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ValidationError(f"Unlock criteria field '{key}' must be a positive integer", details=dict(raw))
    return value


def parse_criteria(raw: Mapping[str, Any]) -> UnlockCriteria:
    """
    Parse catalog JSON into a criteria variant.

    Raises:
        ValidationError: Unknown tag or malformed fields.
    """
    if not isinstance(raw, Mapping):
        raise ValidationError("Unlock criteria must be an object")

    tag = raw.get("type")
    if tag == "quiz_count":
        return QuizCount(_positive_int(raw, "count"))
    if tag == "streak":
        return StreakDays(_positive_int(raw, "days"))
    if tag == "level":
        try:
            subject = Subject(raw.get("subject"))
        except ValueError:
            raise ValidationError("Unlock criteria has an unknown subject", details=dict(raw))
        return SubjectLevel(subject, _positive_int(raw, "level"))
    if tag == "subjects_completed":
        return SubjectsCompleted(_positive_int(raw, "count"))
    if tag == "perfect_score":
        return PerfectScore()
    if tag == "assessment_complete":
        return AssessmentComplete()
    raise ValidationError("Unknown unlock criteria type", details={"type": tag})


def criteria_to_dict(criteria: UnlockCriteria) -> Dict[str, Any]:
    if isinstance(criteria, QuizCount):
        return {"type": "quiz_count", "count": criteria.count}
    if isinstance(criteria, StreakDays):
        return {"type": "streak", "days": criteria.days}
    if isinstance(criteria, SubjectLevel):
        return {"type": "level", "subject": criteria.subject.value, "level": criteria.level}
    if isinstance(criteria, SubjectsCompleted):
        return {"type": "subjects_completed", "count": criteria.count}
    if isinstance(criteria, PerfectScore):
        return {"type": "perfect_score"}
    if isinstance(criteria, AssessmentComplete):
        return {"type": "assessment_complete"}
    raise TypeError(f"Unsupported criteria {criteria!r}")


@dataclass
class UserStats(SerializableMixin):
    """Aggregates the achievement rules are evaluated against."""

    quiz_count: int = 0
    streak_days: int = 0
    subject_levels: Dict[Subject, int] = field(default_factory=dict)
    subjects_completed: int = 0
    has_completed_assessment: bool = False
    has_perfect_score: bool = False

    def level_for(self, subject: Subject) -> int:
        return self.subject_levels.get(subject, 1)


@dataclass
class Multipliers(SerializableMixin):
    streak: float
    level: float
    total: float


@dataclass
class SubjectLevelUp(SerializableMixin):
    subject: Subject
    old_level: int
    new_level: int
    bonus_points: int


@dataclass
class PointsAward(SerializableMixin):
    """Result of a points award."""

    transaction_id: str
    base_points: int
    points_awarded: int
    multipliers: Multipliers
    new_total: int
    new_level: int
    previous_level: int
    points_to_next_level: int
    level_up: Optional[SubjectLevelUp] = None
    duplicate: bool = False

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.previous_level


@dataclass
class MilestoneAward(SerializableMixin):
    days: int
    bonus_points: int


@dataclass
class StreakUpdate(SerializableMixin):
    streak_days: int
    highest_streak: int
    changed: bool
    message: str
    milestone_reached: Optional[MilestoneAward] = None


@dataclass
class StreakJobResult(SerializableMixin):
    processed: int
    freezes_used: int = 0
    streaks_reset: int = 0
    run_date: Optional[datetime.date] = None


@dataclass
class UnlockedAchievement(SerializableMixin):
    id: str
    key: str
    name: str
    description: str
    category: AchievementCategory
    rarity: AchievementRarity
    points_reward: int
    icon: Optional[str] = None


@dataclass
class AchievementCheckResult(SerializableMixin):
    newly_unlocked: List[UnlockedAchievement]
    total_unlocked: int
