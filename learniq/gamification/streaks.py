"""
Streak Tracker

Daily activity streaks on UTC calendar days, the one-day freeze that can
bridge a missed day, and the milestone bonuses paid at fixed lengths.
"""

import datetime
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from learniq.common.dates import Clock, utc_now, utc_today
from learniq.common.error_handling import ConflictError, retry
from learniq.common.logger import app_logger, log_execution_time
from learniq.gamification.models import MilestoneAward, StreakJobResult, StreakUpdate, TransactionType
from learniq.gamification.points import PointsEngine
from learniq.gamification.repository import GamificationRepository

logger = app_logger.getChild("gamification.streaks")

MILESTONE_BONUSES = {
    3: 75,
    7: 150,
    14: 300,
    30: 500,
    60: 750,
    100: 1500,
}
FREEZE_REPLENISH_DAYS = 6
CAS_RETRIES = 4


class StaleStreakError(Exception):
    """The state row changed between read and conditional write."""


def next_streak(
    streak_days: int,
    last_activity: Optional[datetime.date],
    today: datetime.date
) -> Tuple[int, bool]:
    """
    Streak after activity on ``today``.

    Returns:
        (streak_days, changed)
    """
    if last_activity == today and streak_days > 0:
        return streak_days, False
    if last_activity == today - datetime.timedelta(days=1):
        return streak_days + 1, True
    return 1, True


def streak_message(previous: int, current: int, changed: bool) -> str:
    if not changed:
        return f"Already active today. Streak is {current} days."
    if current == 1:
        return "Streak started!" if previous == 0 else "Streak restarted. Welcome back!"
    return f"Streak extended to {current} days!"


class StreakTracker:
    """
    Args:
        session: Request-scoped session; the caller commits.
        clock: UTC clock; ``today`` is read from it once per call.
        points: Engine used for milestone bonuses.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock = utc_now,
        points: Optional[PointsEngine] = None
    ):
        self.repository = GamificationRepository(session)
        self.points = points or PointsEngine(session)
        self.clock = clock

    async def record_activity(self, user_id: str) -> StreakUpdate:
        """
        Count today as active for ``user_id``.

        Raises:
            ConflictError: Concurrent writers kept winning the row.
        """
        today = utc_today(self.clock)
        await self.repository.ensure_state(user_id)

        @retry(max_retries=CAS_RETRIES, retry_delay=0.01, retry_exceptions=(StaleStreakError,))
        async def attempt() -> Tuple[int, int, int, bool]:
            state = await self.repository.get_state(user_id)
            current, changed = next_streak(state.streak_days, state.last_activity_date, today)
            highest = max(state.highest_streak, current)
            if not changed:
                return state.streak_days, current, highest, False
            if not await self.repository.compare_and_set_streak(
                user_id, state.version, current, highest, today
            ):
                raise StaleStreakError(f"{user_id} at version {state.version}")
            return state.streak_days, current, highest, True

        try:
            previous, current, highest, changed = await attempt()
        except StaleStreakError as e:
            raise ConflictError("Streak is being updated concurrently", cause=e)

        milestone = None
        if changed and current in MILESTONE_BONUSES:
            milestone = await self._award_milestone(user_id, current)

        return StreakUpdate(
            streak_days=current,
            highest_streak=highest,
            changed=changed,
            message=streak_message(previous, current, changed),
            milestone_reached=milestone,
        )

    async def _award_milestone(self, user_id: str, days: int) -> Optional[MilestoneAward]:
        bonus = MILESTONE_BONUSES[days]
        if not await self.repository.insert_milestone(user_id, days, bonus):
            return None

        await self.points.award(
            user_id,
            bonus,
            TransactionType.STREAK_BONUS,
            related_entity_type="streak_milestone",
            related_entity_id=str(days),
            metadata={"milestone_days": days},
            dedup_key=f"streak_milestone:{user_id}:{days}",
        )
        logger.info(f"{user_id} reached the {days}-day streak milestone, bonus {bonus}")
        return MilestoneAward(days=days, bonus_points=bonus)

    @log_execution_time(logger)
    async def run_daily_check(self, today: Optional[datetime.date] = None) -> StreakJobResult:
        """
        Settle streaks for users who missed yesterday.

        Freezes are spent before resets, so a user with a freeze keeps the
        streak and a user without one drops to zero. Running twice on the
        same day changes nothing the second time.
        """
        today = today or utc_today(self.clock)
        yesterday = today - datetime.timedelta(days=1)

        freezes_used = await self.repository.consume_freezes(yesterday)
        streaks_reset = await self.repository.reset_lapsed_streaks(yesterday)

        logger.info(
            f"Daily streak check for {today.isoformat()}: "
            f"{freezes_used} freezes used, {streaks_reset} streaks reset"
        )
        return StreakJobResult(
            processed=freezes_used + streaks_reset,
            freezes_used=freezes_used,
            streaks_reset=streaks_reset,
            run_date=today,
        )

    @log_execution_time(logger)
    async def run_weekly_freeze_reset(self, today: Optional[datetime.date] = None) -> StreakJobResult:
        """Give back the freeze to every user whose last refill is at least six days old."""
        today = today or utc_today(self.clock)
        cutoff = today - datetime.timedelta(days=FREEZE_REPLENISH_DAYS)

        replenished = await self.repository.replenish_freezes(today, cutoff)
        logger.info(f"Weekly freeze reset for {today.isoformat()}: {replenished} users")
        return StreakJobResult(processed=replenished, run_date=today)
