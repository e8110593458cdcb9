"""
Points Engine

Applies streak and level multipliers to a base award, appends the ledger
row and moves the user's total, overall level and subject level.
"""

import uuid
from typing import Any, Dict, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from learniq.common.error_handling import ValidationError
from learniq.common.logger import app_logger
from learniq.database.models import PointTransaction
from learniq.edl.models import Subject
from learniq.gamification.models import Multipliers, PointsAward, SubjectLevelUp, TransactionType
from learniq.gamification.multipliers import (
    DEFAULT_LEVEL_MULTIPLIERS, DEFAULT_STREAK_MULTIPLIERS, StepTable,
    award_amount, level_for_points, points_to_next_level
)
from learniq.gamification.repository import GamificationRepository

logger = app_logger.getChild("gamification.points")

MAX_BASE_POINTS = 10000
LEVEL_UP_BONUS_PER_LEVEL = 50


def validate_base_points(base_points: int) -> int:
    if (
        not isinstance(base_points, int)
        or isinstance(base_points, bool)
        or not 0 < base_points <= MAX_BASE_POINTS
    ):
        raise ValidationError(
            f"base_points must be an integer between 1 and {MAX_BASE_POINTS}",
            details={"base_points": base_points}
        )
    return base_points


def parse_transaction_type(value: Union[str, TransactionType]) -> TransactionType:
    if isinstance(value, TransactionType):
        return value
    try:
        return TransactionType(value)
    except ValueError:
        raise ValidationError("Unknown transaction type", details={"transaction_type": value})


class PointsEngine:
    """
    Args:
        session: Request-scoped session; the caller commits.
        streak_table: Streak days -> multiplier.
        level_table: Overall level -> multiplier.
    """

    def __init__(
        self,
        session: AsyncSession,
        streak_table: StepTable = DEFAULT_STREAK_MULTIPLIERS,
        level_table: StepTable = DEFAULT_LEVEL_MULTIPLIERS
    ):
        self.repository = GamificationRepository(session)
        self.streak_table = streak_table
        self.level_table = level_table

    def multipliers(self, streak_days: int, level: int) -> Multipliers:
        streak = self.streak_table.lookup(streak_days)
        level_multiplier = self.level_table.lookup(level)
        return Multipliers(streak=streak, level=level_multiplier, total=round(streak * level_multiplier, 4))

    async def award(
        self,
        user_id: str,
        base_points: int,
        transaction_type: Union[str, TransactionType],
        related_entity_type: Optional[str] = None,
        related_entity_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        dedup_key: Optional[str] = None,
        subject: Optional[Subject] = None
    ) -> PointsAward:
        """
        Award ``base_points`` scaled by the user's current multipliers.

        With a ``dedup_key`` the award happens at most once per user; repeated
        calls return the original transaction with ``duplicate=True``.

        Raises:
            ValidationError: base_points or transaction_type is invalid.
        """
        validate_base_points(base_points)
        transaction_type = parse_transaction_type(transaction_type)

        if dedup_key is not None:
            existing = await self.repository.get_transaction_by_dedup(user_id, dedup_key)
            if existing is not None:
                return await self._replay(user_id, existing)

        await self.repository.ensure_state(user_id)
        state = await self.repository.get_state(user_id)
        multipliers = self.multipliers(state.streak_days, state.current_level)
        amount = award_amount(base_points, multipliers.streak, multipliers.level)

        transaction_id = str(uuid.uuid4())
        inserted = await self.repository.insert_transaction({
            "id": transaction_id,
            "user_id": user_id,
            "transaction_type": transaction_type.value,
            "base_points": base_points,
            "streak_multiplier": multipliers.streak,
            "level_multiplier": multipliers.level,
            "multiplier": multipliers.total,
            "points_change": amount,
            "subject": subject.value if subject else None,
            "related_entity_type": related_entity_type,
            "related_entity_id": related_entity_id,
            "details": metadata,
            "dedup_key": dedup_key,
        })
        if not inserted:
            # Lost the race on dedup_key to a concurrent award
            return await self._replay(user_id, await self.repository.get_transaction_by_dedup(user_id, dedup_key))

        new_total = await self.repository.add_points(user_id, amount)
        new_level = level_for_points(new_total)
        await self.repository.raise_level(user_id, new_level)

        level_up = None
        if subject is not None:
            level_up = await self._credit_subject(user_id, subject, amount)

        logger.info(
            f"Awarded {amount} points to {user_id} for {transaction_type.value} "
            f"(base={base_points} x{multipliers.total}), total={new_total}"
        )

        return PointsAward(
            transaction_id=transaction_id,
            base_points=base_points,
            points_awarded=amount,
            multipliers=multipliers,
            new_total=new_total,
            new_level=new_level,
            previous_level=level_for_points(new_total - amount),
            points_to_next_level=points_to_next_level(new_total),
            level_up=level_up,
        )

    async def _credit_subject(self, user_id: str, subject: Subject, amount: int) -> Optional[SubjectLevelUp]:
        points, stored_level = await self.repository.add_subject_points(user_id, subject, amount)
        new_level = level_for_points(points)
        if new_level <= stored_level:
            return None
        if not await self.repository.raise_subject_level(user_id, subject, new_level):
            return None

        await self.repository.record_level_up(user_id, subject, stored_level, new_level, points)
        bonus = LEVEL_UP_BONUS_PER_LEVEL * new_level
        await self.award(
            user_id,
            bonus,
            TransactionType.LEVEL_UP,
            related_entity_type="subject",
            related_entity_id=subject.value,
            metadata={"subject": subject.value, "old_level": stored_level, "new_level": new_level},
            dedup_key=f"level_up:{user_id}:{subject.value}:{new_level}",
        )
        logger.info(f"{user_id} reached {subject.value} level {new_level}, bonus {bonus}")
        return SubjectLevelUp(subject=subject, old_level=stored_level, new_level=new_level, bonus_points=bonus)

    async def _replay(self, user_id: str, transaction: PointTransaction) -> PointsAward:
        state = await self.repository.get_state(user_id)
        total = state.total_points if state else transaction.points_change
        return PointsAward(
            transaction_id=transaction.id,
            base_points=transaction.base_points,
            points_awarded=transaction.points_change,
            multipliers=Multipliers(
                streak=transaction.streak_multiplier,
                level=transaction.level_multiplier,
                total=transaction.multiplier,
            ),
            new_total=total,
            new_level=level_for_points(total),
            previous_level=level_for_points(total),
            points_to_next_level=points_to_next_level(total),
            duplicate=True,
        )
