"""
Tests for the achievement catalog and evaluator.
"""

import pytest
from sqlalchemy import select

from learniq.common.error_handling import ValidationError
from learniq.database.models import Achievement, PointTransaction, QuizAttempt
from learniq.edl.models import Subject
from learniq.gamification.achievements import AchievementEvaluator, criteria_met
from learniq.gamification.catalog import load_catalog, seed_achievements
from learniq.gamification.models import (
    AssessmentComplete, PerfectScore, QuizCount, StreakDays, SubjectLevel, SubjectsCompleted,
    UserStats, parse_criteria
)
from learniq.gamification.repository import GamificationRepository


def test_criteria_rules():
    stats = UserStats(
        quiz_count=10,
        streak_days=6,
        subject_levels={Subject.MATH: 5},
        subjects_completed=2,
        has_completed_assessment=True,
    )

    assert criteria_met(QuizCount(10), stats)
    assert not criteria_met(QuizCount(11), stats)
    assert not criteria_met(StreakDays(7), stats)
    assert criteria_met(SubjectLevel(Subject.MATH, 5), stats)
    assert not criteria_met(SubjectLevel(Subject.SCIENCE, 2), stats)
    assert not criteria_met(SubjectsCompleted(3), stats)
    assert not criteria_met(PerfectScore(), stats)
    assert criteria_met(AssessmentComplete(), stats)


def test_criteria_without_rule():
    with pytest.raises(TypeError):
        criteria_met({"type": "quiz_count", "count": 1}, UserStats())


@pytest.mark.parametrize("raw", [
    {"type": "login_count", "count": 3},
    {"type": "quiz_count"},
    {"type": "quiz_count", "count": 0},
    {"type": "level", "subject": "history", "level": 3},
    "quiz_count",
])
def test_malformed_criteria(raw):
    with pytest.raises(ValidationError):
        parse_criteria(raw)


def test_bundled_catalog_loads():
    catalog = load_catalog()
    keys = [entry["key"] for entry in catalog]

    assert len(keys) == len(set(keys))
    assert "quiz_10" in keys
    quiz_10 = next(entry for entry in catalog if entry["key"] == "quiz_10")
    assert quiz_10["unlock_criteria"] == {"type": "quiz_count", "count": 10}


def test_catalog_rejects_duplicate_keys(tmp_path):
    path = tmp_path / "achievements.yaml"
    path.write_text(
        "- {key: a, name: A, category: milestone, unlock_criteria: {type: perfect_score}}\n"
        "- {key: a, name: B, category: milestone, unlock_criteria: {type: perfect_score}}\n"
    )
    with pytest.raises(ValidationError):
        load_catalog(str(path))


def test_catalog_rejects_unknown_category(tmp_path):
    path = tmp_path / "achievements.yaml"
    path.write_text("- {key: a, name: A, category: social, unlock_criteria: {type: perfect_score}}\n")
    with pytest.raises(ValidationError):
        load_catalog(str(path))


@pytest.mark.asyncio
async def test_seeding_is_repeatable(session):
    added = await seed_achievements(session)
    again = await seed_achievements(session)

    assert added == len(load_catalog())
    assert again == 0


async def _add_practice_quizzes(session, user_id, count, subject=Subject.MATH, correct=5, total=10):
    for _ in range(count):
        session.add(QuizAttempt(
            user_id=user_id,
            subject=subject.value,
            difficulty="medium",
            attempt_type="practice",
            total_questions=total,
            correct_answers=correct,
            score_percentage=correct / total * 100,
        ))
    await session.flush()


@pytest.mark.asyncio
async def test_quiz_count_achievement_unlocks_once(session):
    await seed_achievements(session)
    await _add_practice_quizzes(session, "u1", 10)
    evaluator = AchievementEvaluator(session)

    first = await evaluator.check("u1")
    second = await evaluator.check("u1")

    assert {a.key for a in first.newly_unlocked} == {"first_quiz", "quiz_10"}
    assert first.total_unlocked == 2
    assert second.newly_unlocked == []
    assert second.total_unlocked == 2

    state = await GamificationRepository(session).get_state("u1")
    assert state.total_achievements == 2
    assert state.total_points == 75

    rewards = (await session.execute(select(PointTransaction.dedup_key))).scalars().all()
    assert len(rewards) == 2
    assert all(key.startswith("achievement:u1:") for key in rewards)


@pytest.mark.asyncio
async def test_perfect_score_and_subject_breadth(session):
    await seed_achievements(session)
    await _add_practice_quizzes(session, "u1", 1, Subject.MATH, correct=10, total=10)
    await _add_practice_quizzes(session, "u1", 1, Subject.ENGLISH)
    await _add_practice_quizzes(session, "u1", 1, Subject.SCIENCE)

    result = await AchievementEvaluator(session).check("u1")

    assert {"perfect_quiz", "all_subjects", "first_quiz"} <= {a.key for a in result.newly_unlocked}


@pytest.mark.asyncio
async def test_explicit_stats_are_used(session):
    await seed_achievements(session)

    result = await AchievementEvaluator(session).check(
        "u1", UserStats(streak_days=7, subject_levels={Subject.SCIENCE: 5})
    )

    assert {a.key for a in result.newly_unlocked} == {"streak_3", "streak_7", "science_level_5"}


@pytest.mark.asyncio
async def test_catalog_row_with_unknown_criteria_is_skipped(session):
    session.add(Achievement(
        key="mystery",
        name="Mystery",
        category="exploration",
        unlock_criteria={"type": "login_count", "count": 1},
    ))
    session.add(Achievement(
        key="assessed",
        name="Assessed",
        category="milestone",
        unlock_criteria={"type": "assessment_complete"},
    ))
    await session.flush()

    result = await AchievementEvaluator(session).check("u1", UserStats(has_completed_assessment=True))

    assert [a.key for a in result.newly_unlocked] == ["assessed"]
