"""
HTTP tests for the LearnIQ API against an in-memory database.
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select

from learniq.common.db.session import get_session
from learniq.config import settings
from learniq.database.models import PointTransaction
from learniq.main import create_app
from learniq.quiz.router import get_quiz_service
from learniq.quiz.service import QuizService
from learniq.tutoring.router import INSIGHTS_LIMIT, get_tutoring_service

AUTH = {"Authorization": "Bearer learner-1"}


@pytest.fixture
def app(session_factory, clock):
    application = create_app(use_lifespan=False)

    async def override_session():
        async with session_factory() as session:
            yield session
            await session.commit()

    application.dependency_overrides[get_session] = override_session
    application.dependency_overrides[get_quiz_service] = lambda: QuizService(
        session_factory, clock=clock, retries=0, retry_delay=0
    )
    return application


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


@pytest.mark.asyncio
async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert "LearnIQ" in response.json()["message"]


@pytest.mark.asyncio
async def test_missing_session_is_unauthorized(client):
    response = await client.get("/api/edl/status")

    assert response.status_code == 401
    assert response.json()["code"] == "authentication_error"


@pytest.mark.asyncio
async def test_status_before_assessment_is_not_found(client):
    response = await client.get("/api/edl/status", headers=AUTH)

    assert response.status_code == 404
    assert response.json()["code"] == "assessment_not_completed"


@pytest.mark.asyncio
async def test_unknown_subject_is_a_validation_error(client):
    response = await client.get("/api/questions", params={"subject": "history"}, headers=AUTH)

    body = response.json()
    assert response.status_code == 400
    assert body["code"] == "validation_error"
    assert "allowed" in body["details"]


@pytest.mark.asyncio
async def test_malformed_query_is_400(client):
    response = await client.get("/api/questions", params={"subject": "math", "limit": "many"}, headers=AUTH)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_assessment_then_status(client):
    submitted = await client.post(
        "/api/assessment/submit",
        json={"subject": "math", "correct": 6, "total": 7, "chronological_age": 10},
        headers=AUTH,
    )
    assert submitted.status_code == 200
    data = submitted.json()["data"]
    assert data["skill_level"] == 5
    assert data["edl_init"]["effective_age"] == 12

    status = await client.get("/api/edl/status", params={"subject": "math"}, headers=AUTH)
    math = status.json()["data"]["subjects"]["math"]
    assert math["effective_age"] == 12
    assert math["status"] == "flow_zone"


@pytest.mark.asyncio
async def test_assessment_rejects_out_of_range_age(client):
    response = await client.post(
        "/api/assessment/submit",
        json={"subject": "math", "correct": 6, "total": 7, "chronological_age": 30},
        headers=AUTH,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_quiz_attempt_round_trip(client):
    recorded = await client.post(
        "/api/quiz-attempts",
        json={
            "subject": "english",
            "difficulty": "medium",
            "total": 5,
            "correct": 4,
            "question_attempts": [{"question_id": "q-1", "is_correct": True}],
        },
        headers=AUTH,
    )
    assert recorded.status_code == 200
    outcome = recorded.json()["data"]
    assert outcome["points_earned"] == 60
    assert outcome["edl_update"] is None
    assert outcome["streak_update"]["streak_days"] == 1

    listed = await client.get("/api/quiz-attempts", headers=AUTH)
    attempts = listed.json()["data"]
    assert [a["id"] for a in attempts] == [outcome["attempt_id"]]
    assert attempts[0]["points_earned"] == 60


@pytest.mark.asyncio
async def test_award_points_and_profile(client):
    awarded = await client.post(
        "/api/gamification/award-points",
        json={"base_points": 150, "transaction_type": "daily_goal", "dedup_key": "daily:learner-1:2026-03-10"},
        headers=AUTH,
    )
    assert awarded.status_code == 200
    assert awarded.json()["data"]["points_awarded"] == 150

    repeat = await client.post(
        "/api/gamification/award-points",
        json={"base_points": 150, "transaction_type": "daily_goal", "dedup_key": "daily:learner-1:2026-03-10"},
        headers=AUTH,
    )
    assert repeat.json()["data"]["duplicate"] is True

    profile = (await client.get("/api/gamification/profile", headers=AUTH)).json()["data"]
    assert profile["total_points"] == 150
    assert profile["level"] == 2
    assert profile["level_progress"]["points_to_next_level"] == 250
    assert len(profile["recent_transactions"]) == 1


@pytest.mark.asyncio
async def test_client_dedup_keys_are_namespaced(client, session_factory):
    awarded = await client.post(
        "/api/gamification/award-points",
        json={"base_points": 5, "transaction_type": "daily_goal", "dedup_key": "streak_milestone:learner-1:3"},
        headers=AUTH,
    )
    assert awarded.status_code == 200

    async with session_factory() as session:
        keys = (await session.execute(select(PointTransaction.dedup_key))).scalars().all()
    assert keys == ["client:streak_milestone:learner-1:3"]


@pytest.mark.asyncio
async def test_award_points_validates_body(client):
    response = await client.post(
        "/api/gamification/award-points",
        json={"base_points": 0, "transaction_type": "daily_goal"},
        headers=AUTH,
    )
    assert response.status_code == 400

    response = await client.post(
        "/api/gamification/award-points",
        json={"base_points": 10, "transaction_type": "gift"},
        headers=AUTH,
    )
    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"


@pytest.mark.asyncio
async def test_update_streak_twice_same_day(client):
    first = (await client.post("/api/gamification/update-streak", headers=AUTH)).json()["data"]
    second = (await client.post("/api/gamification/update-streak", headers=AUTH)).json()["data"]

    assert first["streak_days"] == 1
    assert second["streak_days"] == 1
    assert second["changed"] is False


@pytest.mark.asyncio
async def test_cron_routes_require_secret(client, monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", "test-cron-secret")
    rejected = await client.post("/api/cron/check-streaks", headers={"Authorization": "Bearer wrong"})
    assert rejected.status_code == 401

    for path in ("/api/cron/check-streaks", "/api/cron/reset-freezes"):
        response = await client.post(path, headers={"Authorization": f"Bearer {settings.CRON_SECRET}"})
        assert response.status_code == 200
        assert response.json()["data"]["processed"] == 0


@pytest.mark.asyncio
async def test_cron_routes_reject_everything_without_a_configured_secret(client, monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", None)

    for token in ("change-me", "None", ""):
        response = await client.post("/api/cron/check-streaks", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["code"] == "authentication_error"


@pytest.mark.asyncio
async def test_tutoring_is_rate_limited(app, client):
    tutoring = MagicMock()
    tutoring.insights = AsyncMock(return_value={"summary": "ok", "goals": []})
    app.dependency_overrides[get_tutoring_service] = lambda: tutoring
    headers = dict(AUTH, **{"X-Forwarded-For": "198.51.100.77"})
    body = {"average_score": 70, "quizzes": 4}

    statuses = [
        (await client.post("/api/ai/insights", json=body, headers=headers)).status_code
        for _ in range(INSIGHTS_LIMIT + 1)
    ]

    assert statuses[:-1] == [200] * INSIGHTS_LIMIT
    assert statuses[-1] == 429
    last = await client.post("/api/ai/insights", json=body, headers=headers)
    assert "Retry-After" in last.headers
    assert last.json()["code"] == "rate_limit_error"
