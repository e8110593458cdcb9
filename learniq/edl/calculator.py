"""
Effective Difficulty Level calculator.

Pure functions only. Everything that decides an effective age, a skill
level, a status band or a checkpoint adjustment lives here so the adjuster,
the assessment scorer and the selector share one set of thresholds.
"""

import datetime
from typing import List, Optional, Sequence, Tuple

from learniq.edl.models import (
    AdjustmentType, EDLStatus, EDLUpdate, PerformanceState, Subject, SubjectStatus
)

MIN_AGE = 7
MAX_AGE = 18
MIN_ADJUSTMENT = -2
MAX_ADJUSTMENT = 2

SCORE_WINDOW = 3
CHECKPOINT_INTERVAL = 3
LEVEL_UP_THRESHOLD = 85.0
LEVEL_DOWN_THRESHOLD = 50.0

# (minimum percentage, skill level), highest first
SKILL_BANDS: Tuple[Tuple[float, int], ...] = (
    (85.0, 5),
    (70.0, 4),
    (55.0, 3),
    (40.0, 2),
)
NEUTRAL_SKILL_LEVEL = 3

# (minimum accuracy, status), highest first
STATUS_BANDS: Tuple[Tuple[float, EDLStatus], ...] = (
    (90.0, EDLStatus.EXCEPTIONAL),
    (85.0, EDLStatus.APPROACHING_MASTERY),
    (60.0, EDLStatus.FLOW_ZONE),
    (50.0, EDLStatus.CHALLENGING),
)

STATUS_MESSAGES = {
    EDLStatus.EXCEPTIONAL: "Student is excelling! Ready for more challenging content.",
    EDLStatus.APPROACHING_MASTERY: "Student is approaching mastery at this level.",
    EDLStatus.FLOW_ZONE: "Student is in optimal flow zone. Maintaining current difficulty.",
    EDLStatus.CHALLENGING: "Content is challenging. Monitoring closely.",
    EDLStatus.STRUGGLING: "Student is struggling. Providing additional support.",
}

ADJUSTMENT_MESSAGES = {
    AdjustmentType.LEVEL_UP: "Student is excelling! Increasing challenge level.",
    AdjustmentType.LEVEL_DOWN: "Student needs more support. Decreasing challenge level.",
}


def skill_level_for(percentage: float) -> int:
    """Map a score percentage to a skill level in 1..5."""
    for minimum, level in SKILL_BANDS:
        if percentage >= minimum:
            return level
    return 1


def initial_adjustment(percentage: float) -> int:
    """Assessment score to starting adjustment: level 5 is +2, level 1 is -2."""
    return skill_level_for(percentage) - NEUTRAL_SKILL_LEVEL


def clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(upper, value))


def clamp_age(age: int) -> int:
    return clamp(age, MIN_AGE, MAX_AGE)


def effective_age(chronological_age: int, adjustment: int) -> int:
    return clamp_age(chronological_age + clamp(adjustment, MIN_ADJUSTMENT, MAX_ADJUSTMENT))


def push_score(scores: Sequence[float], score: float, window: int = SCORE_WINDOW) -> List[float]:
    """Append ``score`` and keep only the most recent ``window`` entries."""
    updated = list(scores) + [float(score)]
    return updated[-window:]


def rolling_accuracy(scores: Sequence[float]) -> Optional[float]:
    if not scores:
        return None
    return sum(scores) / len(scores)


def is_checkpoint(total_quizzes: int) -> bool:
    return total_quizzes > 0 and total_quizzes % CHECKPOINT_INTERVAL == 0


def next_adjustment_in(total_quizzes: int) -> int:
    """Quizzes remaining until the next checkpoint (1..3)."""
    return CHECKPOINT_INTERVAL - (total_quizzes % CHECKPOINT_INTERVAL)


def checkpoint_adjustment(
    adjustment: int,
    accuracy: Optional[float]
) -> Tuple[int, Optional[AdjustmentType]]:
    """
    Move the adjustment one step at a checkpoint.

    Returns the new adjustment and the direction, or ``None`` when the
    learner is in the flow zone or already at the bound.
    """
    if accuracy is None:
        return adjustment, None
    if accuracy >= LEVEL_UP_THRESHOLD and adjustment < MAX_ADJUSTMENT:
        return adjustment + 1, AdjustmentType.LEVEL_UP
    if accuracy < LEVEL_DOWN_THRESHOLD and adjustment > MIN_ADJUSTMENT:
        return adjustment - 1, AdjustmentType.LEVEL_DOWN
    return adjustment, None


def classify(accuracy: Optional[float]) -> EDLStatus:
    if accuracy is None:
        return EDLStatus.FLOW_ZONE
    for minimum, status in STATUS_BANDS:
        if accuracy >= minimum:
            return status
    return EDLStatus.STRUGGLING


def initial_state(
    subject: Subject,
    assessment_percentage: float,
    chronological_age: int
) -> PerformanceState:
    adjustment = initial_adjustment(assessment_percentage)
    return PerformanceState(
        subject=subject,
        chronological_age=chronological_age,
        performance_adjustment=adjustment,
        effective_age=effective_age(chronological_age, adjustment),
        recent_accuracy=None,
        last_3_quiz_scores=[],
        total_quizzes_completed=0,
        has_completed_assessment=True,
    )


def apply_quiz_score(
    state: PerformanceState,
    score_percentage: float,
    completed_at: datetime.datetime
) -> Tuple[PerformanceState, EDLUpdate]:
    """
    Feed one practice score into ``state``.

    Returns the next state (``version`` unchanged; the store bumps it) and
    a summary of what changed.
    """
    scores = push_score(state.last_3_quiz_scores, score_percentage)
    accuracy = rolling_accuracy(scores)
    total = state.total_quizzes_completed + 1

    adjustment, direction = state.performance_adjustment, None
    if is_checkpoint(total):
        adjustment, direction = checkpoint_adjustment(adjustment, accuracy)

    new_age = effective_age(state.chronological_age, adjustment)
    status = classify(accuracy)

    new_state = PerformanceState(
        subject=state.subject,
        chronological_age=state.chronological_age,
        performance_adjustment=adjustment,
        effective_age=new_age,
        recent_accuracy=accuracy,
        last_3_quiz_scores=scores,
        total_quizzes_completed=total,
        has_completed_assessment=state.has_completed_assessment,
        last_quiz_at=completed_at,
        version=state.version,
    )
    update = EDLUpdate(
        previous_effective_age=state.effective_age,
        new_effective_age=new_age,
        adjustment_occurred=direction is not None,
        adjustment_type=direction,
        recent_accuracy=accuracy,
        status=status,
        message=ADJUSTMENT_MESSAGES[direction] if direction else STATUS_MESSAGES[status],
        next_adjustment_in=next_adjustment_in(total),
        performance_adjustment=adjustment,
    )
    return new_state, update


def subject_status(state: PerformanceState) -> SubjectStatus:
    status = classify(state.recent_accuracy)
    return SubjectStatus(
        subject=state.subject,
        chronological_age=state.chronological_age,
        effective_age=state.effective_age,
        performance_adjustment=state.performance_adjustment,
        recent_accuracy=state.recent_accuracy,
        last_3_quiz_scores=list(state.last_3_quiz_scores),
        total_quizzes_completed=state.total_quizzes_completed,
        status=status,
        message=STATUS_MESSAGES[status],
        next_adjustment_in=next_adjustment_in(state.total_quizzes_completed),
    )
