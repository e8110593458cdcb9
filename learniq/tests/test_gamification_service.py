import datetime

import pytest

from learniq.common.serialization import serialize
from learniq.edl.models import Subject
from learniq.gamification.catalog import seed_achievements
from learniq.gamification.models import TransactionType, UserStats
from learniq.gamification.service import GamificationService, level_progress


def test_level_progress():
    progress = level_progress(250)
    assert progress["current_level"] == 2
    assert progress["next_level"] == 3
    assert progress["points_into_level"] == 150
    assert progress["points_to_next_level"] == 150
    assert progress["progress_percent"] == 50.0


def test_level_progress_at_cap():
    progress = level_progress(10 ** 7)
    assert progress["current_level"] == 100
    assert progress["next_level"] is None
    assert progress["points_to_next_level"] == 0


def test_serialize_uses_enum_values_and_iso_dates():
    stats = UserStats(subject_levels={Subject.MATH: 3})
    assert serialize(stats)["subject_levels"] == {"math": 3}
    assert serialize({"day": datetime.date(2026, 3, 10)}) == {"day": "2026-03-10"}


@pytest.mark.asyncio
async def test_profile_for_new_user(session, clock):
    profile = await GamificationService(session, clock).profile("fresh")

    assert profile["total_points"] == 0
    assert profile["level"] == 1
    assert profile["streak"]["streak_days"] == 0
    assert profile["streak"]["streak_freeze_available"] is True
    assert profile["subjects"] == []
    assert profile["achievements"] == {"total_unlocked": 0, "unlocked": []}


@pytest.mark.asyncio
async def test_profile_reflects_activity(session, clock):
    await seed_achievements(session)
    service = GamificationService(session, clock)

    await service.update_streak("u1")
    await service.award_points("u1", 60, TransactionType.QUIZ_COMPLETION, subject=Subject.SCIENCE)
    await service.check_achievements("u1", UserStats(has_completed_assessment=True))

    profile = await service.profile("u1")

    assert profile["streak"]["streak_days"] == 1
    assert profile["streak"]["last_activity_date"] == "2026-03-10"
    assert profile["subjects"][0]["subject"] == "science"
    assert profile["subjects"][0]["points"] == 60
    assert [a["key"] for a in profile["achievements"]["unlocked"]] == ["assessment_complete"]
    assert profile["total_points"] == 110
    assert {tx["transaction_type"] for tx in profile["recent_transactions"]} == {
        "quiz_completion", "achievement_unlock"
    }
