"""
Tests for the points engine: multipliers, level curve, ledger and
deduplicated awards.
"""

import pytest
from sqlalchemy import func, select

from learniq.common.error_handling import ValidationError
from learniq.database.models import GamificationState, LevelHistory, PointTransaction
from learniq.edl.models import Subject
from learniq.gamification.multipliers import (
    DEFAULT_LEVEL_MULTIPLIERS, DEFAULT_STREAK_MULTIPLIERS, StepTable,
    award_amount, level_for_points, points_for_level, points_to_next_level
)
from learniq.gamification.models import TransactionType
from learniq.gamification.points import PointsEngine
from learniq.gamification.repository import GamificationRepository


@pytest.mark.parametrize("streak,multiplier", [
    (0, 1.0), (2, 1.0), (3, 1.1), (6, 1.1), (7, 1.2), (13, 1.2), (14, 1.3), (29, 1.3), (30, 1.5), (365, 1.5),
])
def test_streak_multiplier_steps(streak, multiplier):
    assert DEFAULT_STREAK_MULTIPLIERS.lookup(streak) == multiplier


@pytest.mark.parametrize("level,multiplier", [
    (1, 1.0), (4, 1.0), (5, 1.05), (9, 1.05), (10, 1.1), (19, 1.1), (20, 1.2), (100, 1.2),
])
def test_level_multiplier_steps(level, multiplier):
    assert DEFAULT_LEVEL_MULTIPLIERS.lookup(level) == multiplier


def test_step_table_rejects_decreasing_values():
    with pytest.raises(ValueError):
        StepTable([(0, 1.5), (3, 1.0)])


def test_award_amount_floors_product():
    assert award_amount(50, 1.2, 1.1) == 66
    assert award_amount(10, 1.1, 1.0) == 11
    assert award_amount(7, 1.5, 1.05) == 11


def test_level_curve():
    assert level_for_points(0) == 1
    assert level_for_points(99) == 1
    assert level_for_points(100) == 2
    assert level_for_points(399) == 2
    assert level_for_points(400) == 3
    assert level_for_points(8100) == 10
    assert level_for_points(10 ** 9) == 100
    assert points_for_level(3) == 400
    assert points_to_next_level(250) == 150
    assert points_to_next_level(10 ** 9) == 0


def test_level_is_monotonic_in_points():
    levels = [level_for_points(points) for points in range(0, 20000, 37)]
    assert levels == sorted(levels)


@pytest.mark.asyncio
async def test_award_applies_streak_and_level_multipliers(session):
    session.add(GamificationState(user_id="u1", streak_days=7, current_level=10, total_points=8100))
    await session.flush()

    award = await PointsEngine(session).award("u1", 50, TransactionType.QUIZ_COMPLETION)

    assert award.points_awarded == 66
    assert award.multipliers.streak == 1.2
    assert award.multipliers.level == 1.1
    assert award.multipliers.total == 1.32
    assert award.new_total == 8166
    assert award.new_level == 10
    assert not award.duplicate

    state = await GamificationRepository(session).get_state("u1")
    assert state.total_points == 8166


@pytest.mark.asyncio
async def test_first_award_creates_state(session):
    award = await PointsEngine(session).award("new-user", 120, "quiz_completion")

    assert award.points_awarded == 120
    assert award.new_total == 120
    assert award.previous_level == 1
    assert award.new_level == 2
    assert award.leveled_up
    assert award.points_to_next_level == 280


@pytest.mark.asyncio
async def test_dedup_key_awards_once(session):
    engine = PointsEngine(session)
    first = await engine.award("u1", 40, TransactionType.QUIZ_COMPLETION, dedup_key="quiz_attempt:a1")
    second = await engine.award("u1", 40, TransactionType.QUIZ_COMPLETION, dedup_key="quiz_attempt:a1")

    assert not first.duplicate
    assert second.duplicate
    assert second.transaction_id == first.transaction_id
    assert second.new_total == 40

    count = (await session.execute(select(func.count(PointTransaction.id)))).scalar_one()
    assert count == 1


@pytest.mark.asyncio
async def test_dedup_keys_are_scoped_per_user(session):
    engine = PointsEngine(session)
    alice = await engine.award("alice", 40, TransactionType.DAILY_GOAL, dedup_key="daily_bonus")
    bob = await engine.award("bob", 40, TransactionType.DAILY_GOAL, dedup_key="daily_bonus")

    assert not bob.duplicate
    assert bob.transaction_id != alice.transaction_id
    assert bob.new_total == 40

    repository = GamificationRepository(session)
    assert (await repository.get_state("alice")).total_points == 40
    assert (await repository.get_state("bob")).total_points == 40
    assert (await repository.get_transaction_by_dedup("bob", "daily_bonus")).user_id == "bob"


@pytest.mark.asyncio
async def test_awards_without_dedup_key_all_count(session):
    engine = PointsEngine(session)
    for _ in range(3):
        await engine.award("u1", 10, TransactionType.DAILY_GOAL)

    state = await GamificationRepository(session).get_state("u1")
    assert state.total_points == 30


@pytest.mark.asyncio
@pytest.mark.parametrize("base_points", [0, -5, 10001, 2.5, True])
async def test_invalid_base_points(session, base_points):
    with pytest.raises(ValidationError):
        await PointsEngine(session).award("u1", base_points, TransactionType.QUIZ_COMPLETION)


@pytest.mark.asyncio
async def test_unknown_transaction_type(session):
    with pytest.raises(ValidationError):
        await PointsEngine(session).award("u1", 10, "bribe")


@pytest.mark.asyncio
async def test_subject_level_up_pays_bonus_once(session):
    engine = PointsEngine(session)

    award = await engine.award("u1", 100, TransactionType.QUIZ_COMPLETION, subject=Subject.MATH)

    assert award.level_up is not None
    assert award.level_up.old_level == 1
    assert award.level_up.new_level == 2
    assert award.level_up.bonus_points == 100

    state = await GamificationRepository(session).get_state("u1")
    assert state.total_points == 200

    history = (await session.execute(select(LevelHistory))).scalars().all()
    assert [(h.subject, h.old_level, h.new_level) for h in history] == [("math", 1, 2)]

    bonus = (await session.execute(
        select(PointTransaction).where(PointTransaction.transaction_type == TransactionType.LEVEL_UP.value)
    )).scalar_one()
    assert bonus.dedup_key == "level_up:u1:math:2"

    again = await engine.award("u1", 10, TransactionType.QUIZ_COMPLETION, subject=Subject.MATH)
    assert again.level_up is None


@pytest.mark.asyncio
async def test_stored_level_never_decreases(session):
    session.add(GamificationState(user_id="u1", current_level=5, total_points=0))
    await session.flush()
    repository = GamificationRepository(session)

    assert await repository.raise_level("u1", 3) is False
    assert await repository.raise_level("u1", 6) is True
    state = await repository.get_state("u1")
    assert state.current_level == 6
