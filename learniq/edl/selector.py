"""
Question Selector

Turns a learner's difficulty state into a concrete easy/medium/hard mix,
pulls that many questions from the bank at the target age, and returns them
in an unbiased random order.
"""

import datetime
import random
from typing import Any, Dict, List, MutableSequence, Optional, Sequence, Tuple, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from learniq.common.dates import Clock, utc_now
from learniq.common.error_handling import AssessmentNotCompletedError, ValidationError
from learniq.common.logger import app_logger
from learniq.database.models import Question
from learniq.edl.adjuster import validate_age
from learniq.edl.models import Difficulty, Distribution, QuestionSet, SelectionMode, Subject
from learniq.edl.repository import PerformanceMetricsRepository, QuestionRepository

logger = app_logger.getChild("edl.selector")

T = TypeVar("T")

MIN_LIMIT = 1
MAX_LIMIT = 50
DEFAULT_EXCLUSION_DAYS = 7

# Percent of the set per bucket as (easy, medium, hard)
BALANCED_MIX = (30, 40, 30)
STRONG_MIX = (20, 30, 50)
SUPPORT_MIX = (50, 30, 20)
STRONG_ACCURACY = 75.0
SUPPORT_ACCURACY = 60.0


def mix_for_accuracy(accuracy: Optional[float]) -> Tuple[int, int, int]:
    if accuracy is None:
        return BALANCED_MIX
    if accuracy >= STRONG_ACCURACY:
        return STRONG_MIX
    if accuracy < SUPPORT_ACCURACY:
        return SUPPORT_MIX
    return BALANCED_MIX


def distribute(limit: int, mix: Tuple[int, int, int]) -> Distribution:
    """
    Split ``limit`` by percentage mix.

    Easy and hard are rounded down; medium takes the remainder so the three
    counts always sum to ``limit``.
    """
    easy_pct, _, hard_pct = mix
    easy = limit * easy_pct // 100
    hard = limit * hard_pct // 100
    return Distribution(easy=easy, medium=limit - easy - hard, hard=hard)


def adaptive_distribution(limit: int, accuracy: Optional[float]) -> Distribution:
    return distribute(limit, mix_for_accuracy(accuracy))


def manual_distribution(limit: int, difficulty: Difficulty) -> Distribution:
    if difficulty == Difficulty.EASY:
        return Distribution(easy=limit)
    if difficulty == Difficulty.MEDIUM:
        return Distribution(medium=limit)
    if difficulty == Difficulty.HARD:
        return Distribution(hard=limit)
    raise ValidationError(
        "Manual selection needs a fixed difficulty",
        details={"difficulty": difficulty.value}
    )


def fisher_yates_shuffle(items: Sequence[T], rng: Any = None) -> List[T]:
    """Return a uniformly random permutation of ``items``; the input is untouched."""
    rng = rng or random
    shuffled: MutableSequence[T] = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randrange(i + 1)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return list(shuffled)


def validate_limit(limit: int) -> int:
    if not isinstance(limit, int) or isinstance(limit, bool) or not MIN_LIMIT <= limit <= MAX_LIMIT:
        raise ValidationError(
            f"limit must be between {MIN_LIMIT} and {MAX_LIMIT}",
            details={"limit": limit}
        )
    return limit


def question_payload(question: Question) -> Dict[str, Any]:
    return {
        "id": question.id,
        "subject": question.subject,
        "age_group": question.age_group,
        "difficulty": question.difficulty,
        "question_text": question.question_text,
        "options": question.options,
        "correct_answer": question.correct_answer,
        "explanation": question.explanation,
        "hint": question.hint,
    }


class QuestionSelector:
    """
    Args:
        session: Request-scoped session.
        clock: UTC clock for the recently-seen window.
        rng: Object with ``randrange``; defaults to the ``random`` module.
        exclusion_days: Questions seen within this many days are skipped.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock = utc_now,
        rng: Any = None,
        exclusion_days: int = DEFAULT_EXCLUSION_DAYS
    ):
        self.metrics = PerformanceMetricsRepository(session)
        self.questions = QuestionRepository(session)
        self.clock = clock
        self.rng = rng
        self.exclusion_days = exclusion_days

    async def select(
        self,
        user_id: str,
        subject: Subject,
        mode: SelectionMode,
        limit: int,
        age: Optional[int] = None,
        difficulty: Optional[Difficulty] = None
    ) -> QuestionSet:
        validate_limit(limit)
        state = await self.metrics.get(user_id, subject)

        if mode == SelectionMode.ADAPTIVE:
            if state is None:
                raise AssessmentNotCompletedError(subject.value)
            target_age = state.effective_age
            distribution = adaptive_distribution(limit, state.recent_accuracy)
        else:
            if age is None:
                raise ValidationError("Manual selection needs the learner's age")
            target_age = validate_age(age)
            if difficulty is None:
                raise ValidationError("Manual selection needs a difficulty")
            distribution = manual_distribution(limit, difficulty)

        seen_since = self.clock() - datetime.timedelta(days=self.exclusion_days)
        selected: List[Question] = []
        shortfall = 0
        requested_buckets = []

        for bucket, count in distribution.as_buckets().items():
            if count <= 0:
                continue
            requested_buckets.append(bucket)
            fetched = await self.questions.fetch_bucket(
                subject, target_age, bucket, count, user_id=user_id, seen_since=seen_since
            )
            selected.extend(fetched)
            if len(fetched) < count:
                shortfall += count - len(fetched)
                logger.info(
                    f"Question bank short for {subject.value}/{target_age}/{bucket.value}: "
                    f"wanted {count}, found {len(fetched)}"
                )

        recently_seen = await self.questions.count_recently_seen(
            user_id, subject, target_age, requested_buckets, seen_since
        )

        return QuestionSet(
            questions=[question_payload(q) for q in fisher_yates_shuffle(selected, self.rng)],
            target_age=target_age,
            mode=mode,
            distribution=distribution,
            excluded_count=shortfall,
            recently_seen_count=recently_seen,
            effective_age=state.effective_age if state else None,
            performance_adjustment=state.performance_adjustment if state else None,
            recent_accuracy=state.recent_accuracy if state else None,
        )
