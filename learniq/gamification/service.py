"""
Gamification Service

Facade over the points engine, streak tracker and achievement evaluator for
one session, plus the profile read model.
"""

from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from learniq.common.dates import Clock, utc_now
from learniq.common.logger import app_logger
from learniq.gamification.achievements import AchievementEvaluator
from learniq.gamification.models import (
    AchievementCheckResult, PointsAward, StreakJobResult, StreakUpdate, TransactionType, UserStats
)
from learniq.gamification.multipliers import level_for_points, points_for_level, points_to_next_level, MAX_LEVEL
from learniq.gamification.points import PointsEngine
from learniq.gamification.repository import GamificationRepository
from learniq.gamification.streaks import StreakTracker

logger = app_logger.getChild("gamification.service")


def level_progress(total_points: int) -> Dict[str, Any]:
    level = level_for_points(total_points)
    floor_points = points_for_level(level)
    if level >= MAX_LEVEL:
        return {
            "current_level": level,
            "next_level": None,
            "points_into_level": total_points - floor_points,
            "points_to_next_level": 0,
            "progress_percent": 100.0,
        }

    span = points_for_level(level + 1) - floor_points
    into = total_points - floor_points
    return {
        "current_level": level,
        "next_level": level + 1,
        "points_into_level": into,
        "points_to_next_level": points_to_next_level(total_points),
        "progress_percent": round(into / span * 100, 1),
    }


class GamificationService:
    """All gamification operations for one session; the caller commits."""

    def __init__(self, session: AsyncSession, clock: Clock = utc_now):
        self.repository = GamificationRepository(session)
        self.points = PointsEngine(session)
        self.streaks = StreakTracker(session, clock=clock, points=self.points)
        self.achievements = AchievementEvaluator(session, points=self.points)

    async def award_points(
        self,
        user_id: str,
        base_points: int,
        transaction_type: TransactionType,
        **kwargs: Any
    ) -> PointsAward:
        return await self.points.award(user_id, base_points, transaction_type, **kwargs)

    async def update_streak(self, user_id: str) -> StreakUpdate:
        return await self.streaks.record_activity(user_id)

    async def check_achievements(self, user_id: str, stats: Optional[UserStats] = None) -> AchievementCheckResult:
        return await self.achievements.check(user_id, stats)

    async def run_daily_streak_check(self) -> StreakJobResult:
        return await self.streaks.run_daily_check()

    async def run_weekly_freeze_reset(self) -> StreakJobResult:
        return await self.streaks.run_weekly_freeze_reset()

    async def profile(self, user_id: str) -> Dict[str, Any]:
        """Totals, level progress, streak state, subject progress and unlocked achievements."""
        await self.repository.ensure_state(user_id)
        state = await self.repository.get_state(user_id)

        subjects = [
            {
                "subject": progress.subject,
                "points": progress.points,
                "level": progress.level,
                "points_to_next_level": points_to_next_level(progress.points),
            }
            for progress in await self.repository.subject_progress(user_id)
        ]

        achievements = [
            {
                "id": achievement.id,
                "key": achievement.key,
                "name": achievement.name,
                "description": achievement.description,
                "category": achievement.category,
                "rarity": achievement.rarity,
                "icon": achievement.icon,
                "points_reward": achievement.points_reward,
                "unlocked_at": unlocked_at.isoformat() if unlocked_at else None,
            }
            for achievement, unlocked_at in await self.repository.unlocked_achievements(user_id)
        ]

        recent = [
            {
                "id": tx.id,
                "transaction_type": tx.transaction_type,
                "points_change": tx.points_change,
                "multiplier": tx.multiplier,
                "subject": tx.subject,
                "created_at": tx.created_at.isoformat() if tx.created_at else None,
            }
            for tx in await self.repository.recent_transactions(user_id)
        ]

        return {
            "user_id": user_id,
            "total_points": state.total_points,
            "level": state.current_level,
            "level_progress": level_progress(state.total_points),
            "streak": {
                "streak_days": state.streak_days,
                "highest_streak": state.highest_streak,
                "streak_freeze_available": state.streak_freeze_available,
                "last_activity_date": (
                    state.last_activity_date.isoformat() if state.last_activity_date else None
                ),
            },
            "subjects": subjects,
            "achievements": {
                "total_unlocked": len(achievements),
                "unlocked": achievements,
            },
            "recent_transactions": recent,
        }
