"""
Gamification Routes

Points, streak and achievement endpoints for the signed-in learner, plus
the secret-protected endpoints the scheduler calls.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from learniq.api import APIResponse
from learniq.common.auth import get_current_user_id, verify_cron_secret
from learniq.common.db.session import get_session
from learniq.common.logger import app_logger
from learniq.edl.models import Subject, parse_subject
from learniq.gamification.points import MAX_BASE_POINTS
from learniq.gamification.service import GamificationService

logger = app_logger.getChild("gamification.router")

router = APIRouter(prefix="/gamification", tags=["Gamification"])
cron_router = APIRouter(prefix="/cron", tags=["Scheduled jobs"])

# Client keys live in their own namespace so they never match engine keys
CLIENT_DEDUP_PREFIX = "client:"


class AwardPointsRequest(BaseModel):
    base_points: int = Field(..., gt=0, le=MAX_BASE_POINTS, description="Points before multipliers")
    transaction_type: str = Field(..., description="Reason for the award")
    related_entity_type: Optional[str] = Field(None, max_length=32)
    related_entity_id: Optional[str] = Field(None, max_length=64)
    metadata: Optional[Dict[str, Any]] = None
    dedup_key: Optional[str] = Field(None, max_length=160, description="Award at most once per key")
    subject: Optional[str] = Field(None, description="Also credit this subject's progress")


@router.post("/award-points")
async def award_points(
    request: AwardPointsRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session)
) -> Dict[str, Any]:
    subject: Optional[Subject] = parse_subject(request.subject) if request.subject else None
    award = await GamificationService(session).award_points(
        user_id,
        request.base_points,
        request.transaction_type,
        related_entity_type=request.related_entity_type,
        related_entity_id=request.related_entity_id,
        metadata=request.metadata,
        dedup_key=f"{CLIENT_DEDUP_PREFIX}{request.dedup_key}" if request.dedup_key else None,
        subject=subject,
    )
    return APIResponse.success(award.to_dict(), "Points awarded")


@router.post("/update-streak")
async def update_streak(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session)
) -> Dict[str, Any]:
    update = await GamificationService(session).update_streak(user_id)
    return APIResponse.success(update.to_dict(), update.message)


@router.post("/check-achievements")
async def check_achievements(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session)
) -> Dict[str, Any]:
    result = await GamificationService(session).check_achievements(user_id)
    return APIResponse.success(result.to_dict())


@router.get("/profile")
async def get_profile(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session)
) -> Dict[str, Any]:
    return APIResponse.success(await GamificationService(session).profile(user_id))


@cron_router.post("/check-streaks")
async def check_streaks(
    _: bool = Depends(verify_cron_secret),
    session: AsyncSession = Depends(get_session)
) -> Dict[str, Any]:
    result = await GamificationService(session).run_daily_streak_check()
    return APIResponse.success(result.to_dict(), "Streak check complete")


@cron_router.post("/reset-freezes")
async def reset_freezes(
    _: bool = Depends(verify_cron_secret),
    session: AsyncSession = Depends(get_session)
) -> Dict[str, Any]:
    result = await GamificationService(session).run_weekly_freeze_reset()
    return APIResponse.success(result.to_dict(), "Streak freezes replenished")
