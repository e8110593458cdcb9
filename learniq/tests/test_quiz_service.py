"""
Tests for quiz submission: the attempt is saved first, follow-ups run
afterwards and a failing follow-up never loses the attempt.
"""

from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from sqlalchemy import select

from learniq.common.error_handling import ValidationError
from learniq.database.models import QuestionHistory, QuizAttempt
from learniq.edl.models import Difficulty, Subject
from learniq.gamification.catalog import seed_achievements
from learniq.gamification.repository import GamificationRepository
from learniq.gamification.streaks import StreakTracker
from learniq.quiz.service import QuizService, quiz_base_points


@pytest_asyncio.fixture
async def service(session_factory, clock):
    async with session_factory() as session:
        async with session.begin():
            await seed_achievements(session)
    return QuizService(session_factory, clock=clock, retries=1, retry_delay=0)


def test_quiz_base_points():
    assert quiz_base_points(8, 10) == 100
    assert quiz_base_points(10, 10) == 170
    assert quiz_base_points(0, 5) == 20


@pytest.mark.asyncio
async def test_submit_assessment_initializes_difficulty(service):
    outcome = await service.submit_assessment("u1", Subject.MATH, 6, 7, 10)

    assert outcome.skill_level == 5
    assert outcome.edl_init.performance_adjustment == 2
    assert outcome.edl_init.effective_age == 12
    assert [a["key"] for a in outcome.achievements] == ["assessment_complete"]

    attempts = await service.list_attempts("u1")
    assert [(a.attempt_type, a.difficulty) for a in attempts] == [("assessment", "adaptive")]


@pytest.mark.asyncio
async def test_submit_assessment_validates_age(service):
    with pytest.raises(ValidationError):
        await service.submit_assessment("u1", Subject.MATH, 3, 7, 21)
    assert await service.list_attempts("u1") == []


@pytest.mark.asyncio
async def test_practice_quiz_applies_every_follow_up(service, session_factory):
    await service.submit_assessment("u1", Subject.MATH, 4, 7, 10)

    outcome = await service.record_quiz_attempt(
        "u1", Subject.MATH, Difficulty.MEDIUM, 10, 8,
        time_spent_seconds=240,
        question_attempts=[{"question_id": "q1", "is_correct": True}, {"question_id": "q2"}],
    )

    assert outcome.score_percentage == pytest.approx(80.0)
    assert outcome.points_earned == 100
    assert outcome.edl_update is not None
    assert outcome.edl_update.next_adjustment_in == 2
    assert outcome.streak_update.streak_days == 1
    assert outcome.level_update["subject_level_up"]["new_level"] == 2
    assert "first_quiz" in [a["key"] for a in outcome.achievements]

    async with session_factory() as session:
        attempt = await session.get(QuizAttempt, outcome.attempt_id)
        assert attempt.points_earned == 100
        history = (await session.execute(select(QuestionHistory.question_id))).scalars().all()
        assert sorted(history) == ["q1", "q2"]


@pytest.mark.asyncio
async def test_practice_quiz_without_assessment_skips_difficulty(service):
    outcome = await service.record_quiz_attempt("u2", Subject.SCIENCE, Difficulty.EASY, 5, 5)

    assert outcome.edl_update is None
    assert outcome.points_earned == 120
    assert outcome.streak_update.streak_days == 1
    assert "perfect_quiz" in [a["key"] for a in outcome.achievements]


@pytest.mark.asyncio
async def test_failed_follow_up_keeps_the_attempt(service, session_factory):
    failing = AsyncMock(side_effect=RuntimeError("streak store unavailable"))

    with patch.object(StreakTracker, "record_activity", failing):
        outcome = await service.record_quiz_attempt("u1", Subject.ENGLISH, Difficulty.HARD, 4, 2)

    assert failing.await_count == 2
    assert outcome.streak_update is None
    assert outcome.points_earned == 40

    attempts = await service.list_attempts("u1")
    assert [a.id for a in attempts] == [outcome.attempt_id]

    async with session_factory() as session:
        state = await GamificationRepository(session).get_state("u1")
        assert state.total_points >= 40
        assert state.streak_days == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("total,correct", [(5, 6), (0, 0), (5, -1)])
async def test_invalid_counts_save_nothing(service, total, correct):
    with pytest.raises(ValidationError):
        await service.record_quiz_attempt("u1", Subject.MATH, Difficulty.EASY, total, correct)
    assert await service.list_attempts("u1") == []


@pytest.mark.asyncio
async def test_list_attempts_filters_and_pages(service, clock):
    for subject in (Subject.MATH, Subject.ENGLISH, Subject.MATH):
        await service.record_quiz_attempt("u1", subject, Difficulty.EASY, 4, 3)
        clock.advance(minutes=5)

    math = await service.list_attempts("u1", Subject.MATH)
    assert len(math) == 2
    assert math[0].completed_at >= math[1].completed_at

    page = await service.list_attempts("u1", limit=1, offset=1)
    assert len(page) == 1
    assert page[0].subject == "english"
