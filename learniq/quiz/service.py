"""
Quiz Service

Entry point for finished quizzes. The attempt itself is saved in one
transaction; difficulty, points, streak and achievements are then applied
one after another, each in its own transaction with bounded retry. A failed
follow-up is logged and left out of the response, it never undoes the save.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar, Union

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from learniq.common.dates import Clock, utc_now
from learniq.common.db.session import get_session_factory
from learniq.common.error_handling import (
    AssessmentNotCompletedError, NotFoundError, ValidationError, log_error, retry
)
from learniq.common.logger import app_logger, with_context
from learniq.common.serialization import SerializableMixin
from learniq.config import settings
from learniq.database.models import QuizAttempt
from learniq.edl.adjuster import DifficultyAdjuster, validate_age
from learniq.edl.assessment import AssessmentScorer, validate_counts
from learniq.edl.models import Difficulty, EDLUpdate, PerformanceState, Subject
from learniq.edl.repository import QuestionRepository
from learniq.gamification.achievements import AchievementEvaluator
from learniq.gamification.models import (
    AchievementCheckResult, PointsAward, StreakUpdate, TransactionType
)
from learniq.gamification.points import PointsEngine
from learniq.gamification.streaks import StreakTracker
from learniq.quiz.repository import QuizAttemptRepository

logger = app_logger.getChild("quiz.service")

T = TypeVar("T")

POINTS_PER_CORRECT = 10
COMPLETION_BONUS = 20
PERFECT_SCORE_BONUS = 50

ATTEMPT_PRACTICE = "practice"
ATTEMPT_ASSESSMENT = "assessment"


def quiz_base_points(correct: int, total: int) -> int:
    points = correct * POINTS_PER_CORRECT + COMPLETION_BONUS
    if correct == total:
        points += PERFECT_SCORE_BONUS
    return points


def score_percentage(correct: int, total: int) -> float:
    return correct / total * 100


def answered_question_ids(question_attempts: Sequence[Dict[str, Any]]) -> List[str]:
    ids = []
    for answer in question_attempts:
        question_id = answer.get("question_id") or answer.get("id")
        if question_id:
            ids.append(str(question_id))
    return ids


@dataclass
class QuizOutcome(SerializableMixin):
    attempt_id: str
    score_percentage: float
    points_earned: int
    edl_update: Optional[EDLUpdate] = None
    streak_update: Optional[StreakUpdate] = None
    level_update: Optional[Dict[str, Any]] = None
    achievements: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class AssessmentOutcome(SerializableMixin):
    attempt_id: str
    score_percentage: float
    skill_level: int
    edl_init: PerformanceState
    achievements: List[Dict[str, Any]] = field(default_factory=list)


class QuizService:
    """
    Args:
        session_factory: Factory for the independent sessions of the primary
            save and each follow-up; defaults to the application factory.
        clock: UTC clock shared by every step of one submission.
        retries: Retries per follow-up after its first failure.
        retry_delay: Initial backoff between follow-up retries, in seconds.
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        clock: Clock = utc_now,
        retries: Optional[int] = None,
        retry_delay: Optional[float] = None
    ):
        self.session_factory = session_factory or get_session_factory()
        self.clock = clock
        self.retries = settings.SECONDARY_EFFECT_RETRIES if retries is None else retries
        self.retry_delay = settings.SECONDARY_EFFECT_RETRY_DELAY if retry_delay is None else retry_delay
        self.scorer = AssessmentScorer()

    async def submit_assessment(
        self,
        user_id: str,
        subject: Subject,
        correct: int,
        total: int,
        chronological_age: int
    ) -> AssessmentOutcome:
        """
        Score a diagnostic assessment and (re)initialize the subject's difficulty.

        Raises:
            ValidationError: Counts or age out of range.
        """
        validate_age(chronological_age)
        result = self.scorer.score_counts(correct, total)
        now = self.clock()

        async with self.session_factory() as session:
            async with session.begin():
                attempt = await QuizAttemptRepository(session).add(
                    user_id=user_id,
                    subject=subject.value,
                    difficulty=Difficulty.ADAPTIVE.value,
                    attempt_type=ATTEMPT_ASSESSMENT,
                    total_questions=total,
                    correct_answers=correct,
                    score_percentage=result.score_percentage,
                    points_earned=0,
                    completed_at=now,
                )
                state = await DifficultyAdjuster(session, self.clock).initialize(
                    user_id, subject, result.score_percentage, chronological_age
                )
                attempt_id = attempt.id

        achievements = await self._run_effect(
            "achievements", user_id, attempt_id,
            lambda session: AchievementEvaluator(session).check(user_id)
        )

        return AssessmentOutcome(
            attempt_id=attempt_id,
            score_percentage=result.score_percentage,
            skill_level=result.skill_level,
            edl_init=state,
            achievements=_unlocked(achievements),
        )

    async def record_quiz_attempt(
        self,
        user_id: str,
        subject: Subject,
        difficulty: Difficulty,
        total: int,
        correct: int,
        time_spent_seconds: Optional[int] = None,
        question_attempts: Sequence[Dict[str, Any]] = ()
    ) -> QuizOutcome:
        """
        Save a practice quiz and apply its follow-ups.

        Raises:
            ValidationError: Counts or time out of range.
        """
        validate_counts(correct, total)
        if time_spent_seconds is not None and time_spent_seconds < 0:
            raise ValidationError("time_spent_seconds cannot be negative")

        percentage = score_percentage(correct, total)
        base_points = quiz_base_points(correct, total)
        now = self.clock()
        log = with_context(logger, user_id=user_id, subject=subject.value)

        async with self.session_factory() as session:
            async with session.begin():
                attempt = await QuizAttemptRepository(session).add(
                    user_id=user_id,
                    subject=subject.value,
                    difficulty=difficulty.value,
                    attempt_type=ATTEMPT_PRACTICE,
                    total_questions=total,
                    correct_answers=correct,
                    score_percentage=percentage,
                    points_earned=base_points,
                    time_spent_seconds=time_spent_seconds,
                    answered_questions=list(question_attempts),
                    completed_at=now,
                )
                await QuestionRepository(session).record_seen(
                    user_id, answered_question_ids(question_attempts), now
                )
                attempt_id = attempt.id

        log.info(f"Saved quiz attempt {attempt_id}: {correct}/{total}")

        async def update_difficulty(session: AsyncSession) -> Optional[EDLUpdate]:
            try:
                _, summary = await DifficultyAdjuster(session, self.clock).update(user_id, subject, percentage)
            except AssessmentNotCompletedError:
                log.info("No difficulty state yet; skipping adjustment")
                return None
            return summary

        async def award_points(session: AsyncSession) -> PointsAward:
            award = await PointsEngine(session).award(
                user_id,
                base_points,
                TransactionType.QUIZ_COMPLETION,
                related_entity_type="quiz_attempt",
                related_entity_id=attempt_id,
                metadata={"correct": correct, "total": total, "difficulty": difficulty.value},
                dedup_key=f"quiz_attempt:{attempt_id}",
                subject=subject,
            )
            await QuizAttemptRepository(session).set_points_earned(attempt_id, award.points_awarded)
            return award

        edl_update = await self._run_effect("difficulty", user_id, attempt_id, update_difficulty)
        award = await self._run_effect("points", user_id, attempt_id, award_points)
        streak = await self._run_effect(
            "streak", user_id, attempt_id,
            lambda session: StreakTracker(session, clock=self.clock).record_activity(user_id)
        )
        achievements = await self._run_effect(
            "achievements", user_id, attempt_id,
            lambda session: AchievementEvaluator(session).check(user_id)
        )

        return QuizOutcome(
            attempt_id=attempt_id,
            score_percentage=percentage,
            points_earned=award.points_awarded if award else base_points,
            edl_update=edl_update,
            streak_update=streak,
            level_update=_level_update(award),
            achievements=_unlocked(achievements),
        )

    async def list_attempts(
        self,
        user_id: str,
        subject: Optional[Subject] = None,
        limit: int = 20,
        offset: int = 0
    ) -> List[QuizAttempt]:
        async with self.session_factory() as session:
            return await QuizAttemptRepository(session).list_for_user(user_id, subject, limit, offset)

    async def _run_effect(
        self,
        name: str,
        user_id: str,
        attempt_id: str,
        effect: Callable[[AsyncSession], Awaitable[T]]
    ) -> Optional[T]:
        """Run one follow-up in its own transaction; failures are logged and yield None."""

        @retry(
            max_retries=self.retries,
            retry_delay=self.retry_delay,
            ignore_exceptions=(ValidationError, NotFoundError),
        )
        async def attempt() -> T:
            async with self.session_factory() as session:
                async with session.begin():
                    return await effect(session)

        try:
            return await attempt()
        except Exception as e:
            log_error(
                e,
                context={"user_id": user_id, "attempt_id": attempt_id, "effect": name},
                target=logger,
            )
            return None


def _level_update(award: Optional[PointsAward]) -> Optional[Dict[str, Any]]:
    if award is None:
        return None
    return {
        "new_total": award.new_total,
        "new_level": award.new_level,
        "previous_level": award.previous_level,
        "leveled_up": award.leveled_up,
        "points_to_next_level": award.points_to_next_level,
        "subject_level_up": award.level_up.to_dict() if award.level_up else None,
    }


def _unlocked(result: Union[AchievementCheckResult, None]) -> List[Dict[str, Any]]:
    if result is None:
        return []
    return [achievement.to_dict() for achievement in result.newly_unlocked]
