"""
Tests for daily streaks, freezes and milestone bonuses.
"""

import datetime

import pytest
from sqlalchemy import func, select

from learniq.database.models import GamificationState, PointTransaction, StreakMilestone
from learniq.gamification.models import TransactionType
from learniq.gamification.points import PointsEngine
from learniq.gamification.repository import GamificationRepository
from learniq.gamification.streaks import StreakTracker, next_streak

TODAY = datetime.date(2026, 3, 10)


def test_next_streak_rules():
    yesterday = TODAY - datetime.timedelta(days=1)
    assert next_streak(0, None, TODAY) == (1, True)
    assert next_streak(4, TODAY, TODAY) == (4, False)
    assert next_streak(4, yesterday, TODAY) == (5, True)
    assert next_streak(4, TODAY - datetime.timedelta(days=2), TODAY) == (1, True)
    assert next_streak(0, TODAY, TODAY) == (1, True)


async def _state(session, user_id):
    return await GamificationRepository(session).get_state(user_id)


@pytest.mark.asyncio
async def test_consecutive_days_extend_streak(session, clock):
    tracker = StreakTracker(session, clock=clock)

    first = await tracker.record_activity("u1")
    again = await tracker.record_activity("u1")
    clock.advance(days=1)
    second = await tracker.record_activity("u1")

    assert (first.streak_days, first.changed, first.message) == (1, True, "Streak started!")
    assert (again.streak_days, again.changed) == (1, False)
    assert (second.streak_days, second.changed) == (2, True)
    assert second.highest_streak == 2


@pytest.mark.asyncio
async def test_missed_day_restarts_streak(session, clock):
    tracker = StreakTracker(session, clock=clock)
    for _ in range(2):
        await tracker.record_activity("u1")
        clock.advance(days=1)
    clock.advance(days=1)

    update = await tracker.record_activity("u1")

    assert update.streak_days == 1
    assert update.highest_streak == 2
    assert update.message == "Streak restarted. Welcome back!"


@pytest.mark.asyncio
async def test_three_day_milestone_pays_once(session, clock):
    tracker = StreakTracker(session, clock=clock)
    updates = []
    for _ in range(3):
        updates.append(await tracker.record_activity("u1"))
        clock.advance(days=1)

    assert updates[-1].milestone_reached is not None
    assert updates[-1].milestone_reached.days == 3
    assert updates[-1].milestone_reached.bonus_points == 75

    bonus = (await session.execute(select(PointTransaction))).scalar_one()
    assert bonus.dedup_key == "streak_milestone:u1:3"
    assert bonus.base_points == 75
    assert bonus.points_change == 82

    # Lose the streak, then reach three days again
    clock.advance(days=2)
    for _ in range(3):
        update = await tracker.record_activity("u1")
        clock.advance(days=1)

    assert update.streak_days == 3
    assert update.milestone_reached is None
    milestones = (await session.execute(select(func.count()).select_from(StreakMilestone))).scalar_one()
    assert milestones == 1
    transactions = (await session.execute(select(func.count(PointTransaction.id)))).scalar_one()
    assert transactions == 1


@pytest.mark.asyncio
async def test_daily_check_spends_freeze(session):
    session.add(GamificationState(
        user_id="frozen",
        streak_days=4,
        highest_streak=4,
        streak_freeze_available=True,
        last_activity_date=TODAY - datetime.timedelta(days=2),
    ))
    await session.flush()

    result = await StreakTracker(session).run_daily_check(TODAY)

    assert result.freezes_used == 1
    assert result.streaks_reset == 0
    state = await _state(session, "frozen")
    assert state.streak_days == 4
    assert state.streak_freeze_available is False
    assert state.last_activity_date == TODAY - datetime.timedelta(days=1)


@pytest.mark.asyncio
async def test_daily_check_resets_without_freeze(session):
    session.add_all([
        GamificationState(
            user_id="lapsed",
            streak_days=5,
            highest_streak=3,
            streak_freeze_available=False,
            last_activity_date=TODAY - datetime.timedelta(days=3),
        ),
        GamificationState(
            user_id="veteran",
            streak_days=5,
            highest_streak=9,
            streak_freeze_available=False,
            last_activity_date=TODAY - datetime.timedelta(days=3),
        ),
        GamificationState(
            user_id="active",
            streak_days=5,
            highest_streak=5,
            streak_freeze_available=False,
            last_activity_date=TODAY - datetime.timedelta(days=1),
        ),
    ])
    await session.flush()

    result = await StreakTracker(session).run_daily_check(TODAY)

    assert result.streaks_reset == 2
    assert result.processed == 2
    lapsed = await _state(session, "lapsed")
    assert (lapsed.streak_days, lapsed.highest_streak) == (0, 5)
    veteran = await _state(session, "veteran")
    assert (veteran.streak_days, veteran.highest_streak) == (0, 9)
    active = await _state(session, "active")
    assert active.streak_days == 5


@pytest.mark.asyncio
async def test_daily_check_is_idempotent(session):
    session.add_all([
        GamificationState(
            user_id="frozen",
            streak_days=4,
            streak_freeze_available=True,
            last_activity_date=TODAY - datetime.timedelta(days=2),
        ),
        GamificationState(
            user_id="lapsed",
            streak_days=2,
            streak_freeze_available=False,
            last_activity_date=TODAY - datetime.timedelta(days=4),
        ),
    ])
    await session.flush()
    tracker = StreakTracker(session)

    first = await tracker.run_daily_check(TODAY)
    second = await tracker.run_daily_check(TODAY)

    assert first.processed == 2
    assert second.processed == 0
    assert (await _state(session, "frozen")).streak_days == 4
    assert (await _state(session, "lapsed")).streak_days == 0


@pytest.mark.asyncio
async def test_weekly_reset_replenishes_old_freezes(session):
    session.add_all([
        GamificationState(
            user_id="stale",
            streak_freeze_available=False,
            streak_freeze_last_reset=TODAY - datetime.timedelta(days=7),
        ),
        GamificationState(
            user_id="recent",
            streak_freeze_available=False,
            streak_freeze_last_reset=TODAY - datetime.timedelta(days=2),
        ),
        GamificationState(user_id="never", streak_freeze_available=False),
    ])
    await session.flush()
    tracker = StreakTracker(session)

    result = await tracker.run_weekly_freeze_reset(TODAY)

    assert result.processed == 2
    assert (await _state(session, "stale")).streak_freeze_available is True
    assert (await _state(session, "never")).streak_freeze_last_reset == TODAY
    assert (await _state(session, "recent")).streak_freeze_available is False
    assert (await tracker.run_weekly_freeze_reset(TODAY)).processed == 0


@pytest.mark.asyncio
async def test_another_users_key_cannot_claim_a_milestone(session, clock):
    await PointsEngine(session).award(
        "mallory", 1, TransactionType.DAILY_GOAL, dedup_key="streak_milestone:victim:3"
    )
    tracker = StreakTracker(session, clock=clock)
    for _ in range(3):
        update = await tracker.record_activity("victim")
        clock.advance(days=1)

    assert update.milestone_reached.bonus_points == 75
    assert (await _state(session, "victim")).total_points == 82
    assert (await _state(session, "mallory")).total_points == 1
