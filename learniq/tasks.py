"""
Scheduled Jobs

Celery app and beat schedule for the streak maintenance jobs. The tasks run
the same service calls as the cron HTTP routes, so either trigger is safe to
use and repeating a run on the same day changes nothing.

Usage:
    celery -A learniq.tasks worker --beat
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict

from celery import Celery
from celery.schedules import crontab

from learniq.config import settings
from learniq.common.db.session import dispose_engine, get_session_factory, init_engine
from learniq.common.logger import app_logger
from learniq.gamification.service import GamificationService

logger = app_logger.getChild("tasks")

DAILY_STREAK_CHECK = "learniq.tasks.check_streaks"
WEEKLY_FREEZE_RESET = "learniq.tasks.reset_freezes"

celery_app = Celery(
    "learniq",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        "daily-streak-check": {
            "task": DAILY_STREAK_CHECK,
            "schedule": crontab(hour=1, minute=0),
        },
        "weekly-freeze-reset": {
            "task": WEEKLY_FREEZE_RESET,
            "schedule": crontab(hour=0, minute=1, day_of_week="mon"),
        },
    },
)


async def _run_job(job: Callable[[GamificationService], Awaitable[Any]]) -> Dict[str, Any]:
    init_engine()
    try:
        async with get_session_factory()() as session:
            async with session.begin():
                result = await job(GamificationService(session))
        return result.to_dict()
    finally:
        await dispose_engine()


@celery_app.task(name=DAILY_STREAK_CHECK)
def check_streaks() -> Dict[str, Any]:
    result = asyncio.run(_run_job(lambda service: service.run_daily_streak_check()))
    logger.info(f"Daily streak check finished: {result}")
    return result


@celery_app.task(name=WEEKLY_FREEZE_RESET)
def reset_freezes() -> Dict[str, Any]:
    result = asyncio.run(_run_job(lambda service: service.run_weekly_freeze_reset()))
    logger.info(f"Weekly freeze reset finished: {result}")
    return result
