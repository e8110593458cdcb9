"""
Database tests for the difficulty adjuster.
"""

import pytest

from learniq.common.error_handling import AssessmentNotCompletedError, ValidationError
from learniq.edl.adjuster import DifficultyAdjuster
from learniq.edl.models import AdjustmentType, EDLStatus, Subject
from learniq.edl.repository import PerformanceMetricsRepository


@pytest.mark.asyncio
async def test_initialize_creates_state(session, clock):
    adjuster = DifficultyAdjuster(session, clock)

    state = await adjuster.initialize("u1", Subject.MATH, 6 / 7 * 100, 10)
    await session.commit()

    stored = await PerformanceMetricsRepository(session).get("u1", Subject.MATH)
    assert state.effective_age == 12
    assert stored.performance_adjustment == 2
    assert stored.effective_age == 12
    assert stored.has_completed_assessment
    assert stored.version == 1


@pytest.mark.asyncio
async def test_retaking_assessment_resets_state(session, clock):
    adjuster = DifficultyAdjuster(session, clock)
    await adjuster.initialize("u1", Subject.MATH, 90.0, 10)
    await adjuster.update("u1", Subject.MATH, 80.0)

    await adjuster.initialize("u1", Subject.MATH, 20.0, 10)

    stored = await PerformanceMetricsRepository(session).get("u1", Subject.MATH)
    assert stored.performance_adjustment == -2
    assert stored.effective_age == 8
    assert stored.total_quizzes_completed == 0
    assert stored.last_3_quiz_scores == []
    assert stored.last_quiz_at is None
    assert stored.version == 3


@pytest.mark.asyncio
async def test_update_without_assessment_is_rejected(session, clock):
    with pytest.raises(AssessmentNotCompletedError):
        await DifficultyAdjuster(session, clock).update("nobody", Subject.SCIENCE, 70.0)


@pytest.mark.asyncio
async def test_initialize_validates_inputs(session, clock):
    adjuster = DifficultyAdjuster(session, clock)
    with pytest.raises(ValidationError):
        await adjuster.initialize("u1", Subject.MATH, 120.0, 10)
    with pytest.raises(ValidationError):
        await adjuster.initialize("u1", Subject.MATH, 50.0, 6)
    with pytest.raises(ValidationError):
        await adjuster.initialize("u1", Subject.MATH, 50.0, 19)


@pytest.mark.asyncio
async def test_checkpoint_adjusts_stored_state(session, clock):
    adjuster = DifficultyAdjuster(session, clock)
    await adjuster.initialize("u1", Subject.ENGLISH, 60.0, 11)

    summaries = []
    for score in (90.0, 92.0, 88.0):
        state, summary = await adjuster.update("u1", Subject.ENGLISH, score)
        summaries.append(summary)

    assert [s.adjustment_occurred for s in summaries] == [False, False, True]
    assert summaries[-1].adjustment_type == AdjustmentType.LEVEL_UP
    assert state.effective_age == 12
    assert state.version == 4

    stored = await PerformanceMetricsRepository(session).get("u1", Subject.ENGLISH)
    assert stored.effective_age == 12
    assert stored.last_3_quiz_scores == [90.0, 92.0, 88.0]
    assert stored.recent_accuracy == pytest.approx(90.0)
    assert stored.total_quizzes_completed == 3


@pytest.mark.asyncio
async def test_stale_version_is_not_written(session, clock):
    adjuster = DifficultyAdjuster(session, clock)
    state = await adjuster.initialize("u1", Subject.MATH, 60.0, 10)
    repository = PerformanceMetricsRepository(session)

    state.version = 1
    assert await repository.compare_and_set("u1", state) is True
    assert await repository.compare_and_set("u1", state) is False


@pytest.mark.asyncio
async def test_status_bundle_for_all_subjects(session, clock):
    adjuster = DifficultyAdjuster(session, clock)
    await adjuster.initialize("u1", Subject.MATH, 95.0, 10)
    await adjuster.initialize("u1", Subject.SCIENCE, 30.0, 10)
    await adjuster.update("u1", Subject.SCIENCE, 40.0)

    bundle = await adjuster.status_bundle("u1")

    assert set(bundle["subjects"]) == {"math", "science"}
    assert bundle["subjects"]["science"]["status"] == "struggling"
    overall = bundle["overall_status"]
    assert overall["subjects_advanced"] == 1
    assert overall["subjects_needing_support"] == 1
    assert overall["subjects_in_flow_zone"] == 1
    assert overall["average_accuracy"] == pytest.approx(40.0)


@pytest.mark.asyncio
async def test_status_bundle_requires_an_assessment(session, clock):
    adjuster = DifficultyAdjuster(session, clock)
    with pytest.raises(AssessmentNotCompletedError):
        await adjuster.status_bundle("u1")
    with pytest.raises(AssessmentNotCompletedError):
        await adjuster.status_bundle("u1", Subject.MATH)


@pytest.mark.asyncio
async def test_status_follows_recent_accuracy(session, clock):
    adjuster = DifficultyAdjuster(session, clock)
    state = await adjuster.initialize("u1", Subject.ENGLISH, 70.0, 11)
    assert adjuster.status(state) == EDLStatus.FLOW_ZONE

    for score, expected in [
        (95.0, EDLStatus.EXCEPTIONAL),
        (75.0, EDLStatus.APPROACHING_MASTERY),
        (20.0, EDLStatus.FLOW_ZONE),
    ]:
        state, summary = await adjuster.update("u1", Subject.ENGLISH, score)
        assert adjuster.status(state) == expected
        assert summary.status == expected
