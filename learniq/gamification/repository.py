"""
Gamification persistence.

Every counter change here is a single SQL statement evaluated against the
current row (``x = x + delta``, conditional ``WHERE``), so concurrent
requests cannot lose each other's updates. Methods never commit.
"""

import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

from sqlalchemy import and_, case, distinct, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from learniq.common.db.statements import insert_if_absent
from learniq.database.models import (
    Achievement, GamificationState, LevelHistory, PerformanceMetrics, PointTransaction,
    QuizAttempt, StreakMilestone, SubjectProgress, UserAchievement
)
from learniq.edl.models import Subject
from learniq.gamification.models import UserStats


class GamificationRepository:

    def __init__(self, session: AsyncSession):
        self.session = session

    # State row

    async def ensure_state(self, user_id: str) -> bool:
        """Create the user's state row if missing. Returns True if created."""
        return await insert_if_absent(self.session, GamificationState, {"user_id": user_id})

    async def get_state(self, user_id: str) -> Optional[GamificationState]:
        result = await self.session.execute(
            select(GamificationState)
            .where(GamificationState.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def add_points(self, user_id: str, delta: int) -> int:
        """Atomically add ``delta`` and return the new total."""
        await self.session.execute(
            update(GamificationState)
            .where(GamificationState.user_id == user_id)
            .values(total_points=GamificationState.total_points + delta)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(
            select(GamificationState.total_points).where(GamificationState.user_id == user_id)
        )
        return int(result.scalar_one())

    async def raise_level(self, user_id: str, level: int) -> bool:
        """Set the overall level if it is higher than the stored one."""
        result = await self.session.execute(
            update(GamificationState)
            .where(GamificationState.user_id == user_id, GamificationState.current_level < level)
            .values(current_level=level)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def increment_achievements(self, user_id: str) -> None:
        await self.session.execute(
            update(GamificationState)
            .where(GamificationState.user_id == user_id)
            .values(total_achievements=GamificationState.total_achievements + 1)
            .execution_options(synchronize_session=False)
        )

    # Subject progress

    async def add_subject_points(self, user_id: str, subject: Subject, delta: int) -> Tuple[int, int]:
        """Atomically add ``delta`` to the subject; returns (points, stored level)."""
        await insert_if_absent(
            self.session, SubjectProgress, {"user_id": user_id, "subject": subject.value}
        )
        await self.session.execute(
            update(SubjectProgress)
            .where(SubjectProgress.user_id == user_id, SubjectProgress.subject == subject.value)
            .values(points=SubjectProgress.points + delta)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(
            select(SubjectProgress.points, SubjectProgress.level).where(
                SubjectProgress.user_id == user_id, SubjectProgress.subject == subject.value
            )
        )
        points, level = result.one()
        return int(points), int(level)

    async def raise_subject_level(self, user_id: str, subject: Subject, level: int) -> bool:
        result = await self.session.execute(
            update(SubjectProgress)
            .where(
                SubjectProgress.user_id == user_id,
                SubjectProgress.subject == subject.value,
                SubjectProgress.level < level,
            )
            .values(level=level)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def record_level_up(
        self, user_id: str, subject: Subject, old_level: int, new_level: int, points: int
    ) -> None:
        self.session.add(LevelHistory(
            user_id=user_id,
            subject=subject.value,
            old_level=old_level,
            new_level=new_level,
            points_at_level_up=points,
        ))
        await self.session.flush()

    async def subject_progress(self, user_id: str) -> List[SubjectProgress]:
        result = await self.session.execute(
            select(SubjectProgress)
            .where(SubjectProgress.user_id == user_id)
            .order_by(SubjectProgress.subject)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars())

    # Point ledger

    async def insert_transaction(self, values: Dict[str, Any]) -> bool:
        """Append a ledger row. False means the user already used the dedup key."""
        if values.get("dedup_key") is None:
            self.session.add(PointTransaction(**values))
            await self.session.flush()
            return True
        return await insert_if_absent(self.session, PointTransaction, values)

    async def get_transaction_by_dedup(self, user_id: str, dedup_key: str) -> Optional[PointTransaction]:
        result = await self.session.execute(
            select(PointTransaction).where(
                PointTransaction.user_id == user_id,
                PointTransaction.dedup_key == dedup_key
            )
        )
        return result.scalar_one_or_none()

    async def recent_transactions(self, user_id: str, limit: int = 20) -> List[PointTransaction]:
        result = await self.session.execute(
            select(PointTransaction)
            .where(PointTransaction.user_id == user_id)
            .order_by(PointTransaction.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars())

    # Streaks

    async def compare_and_set_streak(
        self,
        user_id: str,
        expected_version: int,
        streak_days: int,
        highest_streak: int,
        last_activity_date: datetime.date
    ) -> bool:
        result = await self.session.execute(
            update(GamificationState)
            .where(
                GamificationState.user_id == user_id,
                GamificationState.version == expected_version,
            )
            .values(
                streak_days=streak_days,
                highest_streak=highest_streak,
                last_activity_date=last_activity_date,
                version=GamificationState.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _lapsed(self, yesterday: datetime.date):
        return and_(
            GamificationState.last_activity_date < yesterday,
            GamificationState.streak_days > 0,
        )

    async def consume_freezes(self, yesterday: datetime.date) -> int:
        """Spend a freeze for every lapsed streak that has one; the missed day counts as active."""
        result = await self.session.execute(
            update(GamificationState)
            .where(self._lapsed(yesterday), GamificationState.streak_freeze_available.is_(True))
            .values(
                streak_freeze_available=False,
                last_activity_date=yesterday,
                version=GamificationState.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def reset_lapsed_streaks(self, yesterday: datetime.date) -> int:
        """Zero every lapsed streak without a freeze, keeping its best in highest_streak."""
        result = await self.session.execute(
            update(GamificationState)
            .where(self._lapsed(yesterday), GamificationState.streak_freeze_available.is_(False))
            .values(
                highest_streak=case(
                    (GamificationState.streak_days > GamificationState.highest_streak,
                     GamificationState.streak_days),
                    else_=GamificationState.highest_streak,
                ),
                streak_days=0,
                version=GamificationState.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def replenish_freezes(self, today: datetime.date, cutoff: datetime.date) -> int:
        result = await self.session.execute(
            update(GamificationState)
            .where(or_(
                GamificationState.streak_freeze_last_reset.is_(None),
                GamificationState.streak_freeze_last_reset <= cutoff,
            ))
            .values(streak_freeze_available=True, streak_freeze_last_reset=today)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def insert_milestone(self, user_id: str, days: int, bonus_points: int) -> bool:
        return await insert_if_absent(
            self.session,
            StreakMilestone,
            {"user_id": user_id, "milestone_days": days, "bonus_points": bonus_points},
        )

    # Achievements

    async def list_achievements(self) -> List[Achievement]:
        result = await self.session.execute(select(Achievement).order_by(Achievement.key))
        return list(result.scalars())

    async def unlocked_achievement_ids(self, user_id: str) -> Set[str]:
        result = await self.session.execute(
            select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
        )
        return set(result.scalars())

    async def insert_user_achievement(self, user_id: str, achievement_id: str) -> bool:
        return await insert_if_absent(
            self.session,
            UserAchievement,
            {"user_id": user_id, "achievement_id": achievement_id},
        )

    async def unlocked_achievements(self, user_id: str) -> List[Tuple[Achievement, datetime.datetime]]:
        result = await self.session.execute(
            select(Achievement, UserAchievement.unlocked_at)
            .join(UserAchievement, UserAchievement.achievement_id == Achievement.id)
            .where(UserAchievement.user_id == user_id)
            .order_by(UserAchievement.unlocked_at.desc())
        )
        return [(achievement, unlocked_at) for achievement, unlocked_at in result.all()]

    async def count_unlocked(self, user_id: str) -> int:
        result = await self.session.execute(
            select(func.count(UserAchievement.id)).where(UserAchievement.user_id == user_id)
        )
        return int(result.scalar_one())

    async def gather_stats(self, user_id: str) -> UserStats:
        practice = and_(QuizAttempt.user_id == user_id, QuizAttempt.attempt_type == "practice")

        quiz_count = (await self.session.execute(
            select(func.count(QuizAttempt.id)).where(practice)
        )).scalar_one()

        subjects_completed = (await self.session.execute(
            select(func.count(distinct(QuizAttempt.subject))).where(practice)
        )).scalar_one()

        perfect = (await self.session.execute(
            select(QuizAttempt.id).where(
                practice,
                QuizAttempt.total_questions > 0,
                QuizAttempt.correct_answers == QuizAttempt.total_questions,
            ).limit(1)
        )).first()

        assessed = (await self.session.execute(
            select(PerformanceMetrics.subject).where(
                PerformanceMetrics.user_id == user_id,
                PerformanceMetrics.has_completed_assessment.is_(True),
            ).limit(1)
        )).first()

        streak = (await self.session.execute(
            select(GamificationState.streak_days).where(GamificationState.user_id == user_id)
        )).scalar_one_or_none()

        levels = {
            Subject(progress.subject): progress.level
            for progress in await self.subject_progress(user_id)
        }

        return UserStats(
            quiz_count=int(quiz_count),
            streak_days=int(streak or 0),
            subject_levels=levels,
            subjects_completed=int(subjects_completed),
            has_completed_assessment=assessed is not None,
            has_perfect_score=perfect is not None,
        )
