"""
Achievement Evaluator

Checks the catalog against a user's stats and unlocks what is newly earned.
An unlock and its reward happen exactly once per user and achievement.
"""

from functools import singledispatch
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from learniq.common.error_handling import ValidationError
from learniq.common.logger import app_logger
from learniq.database.models import Achievement
from learniq.gamification.models import (
    AchievementCategory, AchievementCheckResult, AchievementRarity, AssessmentComplete,
    PerfectScore, QuizCount, StreakDays, SubjectLevel, SubjectsCompleted, TransactionType,
    UnlockedAchievement, UserStats, parse_criteria
)
from learniq.gamification.points import PointsEngine
from learniq.gamification.repository import GamificationRepository

logger = app_logger.getChild("gamification.achievements")


@singledispatch
def criteria_met(criteria, stats: UserStats) -> bool:
    raise TypeError(f"No rule for unlock criteria {criteria!r}")


@criteria_met.register
def _(criteria: QuizCount, stats: UserStats) -> bool:
    return stats.quiz_count >= criteria.count


@criteria_met.register
def _(criteria: StreakDays, stats: UserStats) -> bool:
    return stats.streak_days >= criteria.days


@criteria_met.register
def _(criteria: SubjectLevel, stats: UserStats) -> bool:
    return stats.level_for(criteria.subject) >= criteria.level


@criteria_met.register
def _(criteria: SubjectsCompleted, stats: UserStats) -> bool:
    return stats.subjects_completed >= criteria.count


@criteria_met.register
def _(criteria: PerfectScore, stats: UserStats) -> bool:
    return stats.has_perfect_score


@criteria_met.register
def _(criteria: AssessmentComplete, stats: UserStats) -> bool:
    return stats.has_completed_assessment


def unlocked_view(achievement: Achievement) -> UnlockedAchievement:
    return UnlockedAchievement(
        id=achievement.id,
        key=achievement.key,
        name=achievement.name,
        description=achievement.description,
        category=AchievementCategory(achievement.category),
        rarity=AchievementRarity(achievement.rarity),
        points_reward=achievement.points_reward,
        icon=achievement.icon,
    )


class AchievementEvaluator:

    def __init__(self, session: AsyncSession, points: Optional[PointsEngine] = None):
        self.repository = GamificationRepository(session)
        self.points = points or PointsEngine(session)

    async def check(self, user_id: str, stats: Optional[UserStats] = None) -> AchievementCheckResult:
        """
        Unlock every catalog achievement whose criteria ``stats`` now meets.

        Stats are gathered from the store when not supplied. Catalog rows
        with malformed criteria are skipped and logged.
        """
        if stats is None:
            stats = await self.repository.gather_stats(user_id)

        await self.repository.ensure_state(user_id)
        unlocked_ids = await self.repository.unlocked_achievement_ids(user_id)
        newly_unlocked: List[UnlockedAchievement] = []

        for achievement in await self.repository.list_achievements():
            if achievement.id in unlocked_ids:
                continue
            try:
                criteria = parse_criteria(achievement.unlock_criteria)
            except ValidationError as e:
                logger.warning(f"Skipping achievement {achievement.key}: {e.message}")
                continue
            if not criteria_met(criteria, stats):
                continue

            if not await self.repository.insert_user_achievement(user_id, achievement.id):
                continue
            await self.repository.increment_achievements(user_id)

            if achievement.points_reward > 0:
                await self.points.award(
                    user_id,
                    achievement.points_reward,
                    TransactionType.ACHIEVEMENT_UNLOCK,
                    related_entity_type="achievement",
                    related_entity_id=achievement.id,
                    metadata={"achievement_key": achievement.key},
                    dedup_key=f"achievement:{user_id}:{achievement.id}",
                )

            logger.info(f"{user_id} unlocked achievement {achievement.key}")
            newly_unlocked.append(unlocked_view(achievement))

        return AchievementCheckResult(
            newly_unlocked=newly_unlocked,
            total_unlocked=await self.repository.count_unlocked(user_id),
        )
