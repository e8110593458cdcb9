"""
Adaptive Difficulty Routes

Question selection and difficulty status for the signed-in learner.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from learniq.api import APIResponse
from learniq.common.auth import get_current_user_id
from learniq.common.db.session import get_session
from learniq.edl.adjuster import DifficultyAdjuster
from learniq.edl.models import Difficulty, SelectionMode, parse_difficulty, parse_subject
from learniq.edl.selector import QuestionSelector

router = APIRouter(tags=["Adaptive difficulty"])


@router.get("/questions")
async def get_questions(
    subject: str = Query(..., description="math, english or science"),
    difficulty: str = Query("adaptive", description="easy, medium, hard or adaptive"),
    limit: int = Query(10, description="Number of questions (1-50)"),
    age: Optional[int] = Query(None, description="Learner age; required unless adaptive"),
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session)
) -> Dict[str, Any]:
    parsed_subject = parse_subject(subject)
    parsed_difficulty = parse_difficulty(difficulty)
    mode = SelectionMode.ADAPTIVE if parsed_difficulty == Difficulty.ADAPTIVE else SelectionMode.MANUAL

    result = await QuestionSelector(session).select(
        user_id,
        parsed_subject,
        mode,
        limit,
        age=age,
        difficulty=None if mode == SelectionMode.ADAPTIVE else parsed_difficulty,
    )
    return APIResponse.success(result.to_dict())


@router.get("/edl/status")
async def get_edl_status(
    subject: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session)
) -> Dict[str, Any]:
    bundle = await DifficultyAdjuster(session).status_bundle(
        user_id, parse_subject(subject) if subject else None
    )
    return APIResponse.success(bundle)
