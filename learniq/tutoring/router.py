"""
Tutoring Routes

Rate limited per client; limits are per minute.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from learniq.api import APIResponse
from learniq.common.auth import get_current_user_id
from learniq.common.rate_limiter import RateLimiter
from learniq.tutoring.service import TutoringService

router = APIRouter(prefix="/ai", tags=["Tutoring"])

RATE_PERIOD = 60
HINT_LIMIT = 30
EXPLAIN_LIMIT = 20
INSIGHTS_LIMIT = 8
RECOMMENDATIONS_LIMIT = 10

limiter = RateLimiter()
_service: Optional[TutoringService] = None


def get_tutoring_service() -> TutoringService:
    global _service
    if _service is None:
        _service = TutoringService()
    return _service


class HintRequest(BaseModel):
    subject: str
    question: str = Field(..., min_length=1)
    options: List[str] = Field(default_factory=list)
    difficulty: str = "medium"
    age: Optional[int] = Field(None, ge=7, le=18)


class ExplainRequest(BaseModel):
    subject: str
    question: str = Field(..., min_length=1)
    options: List[str] = Field(default_factory=list)
    correct_answer: str
    user_answer: Optional[str] = None
    age: Optional[int] = Field(None, ge=7, le=18)


class RecentScore(BaseModel):
    subject: str
    difficulty: str
    score: float
    when: Optional[str] = None


class RecommendationsRequest(BaseModel):
    age: Optional[int] = Field(None, ge=7, le=18)
    skill_levels: Dict[str, int] = Field(default_factory=dict)
    recent: List[RecentScore] = Field(default_factory=list)


class InsightsRequest(BaseModel):
    age: Optional[int] = Field(None, ge=7, le=18)
    average_score: float = Field(..., ge=0, le=100)
    quizzes: int = Field(..., ge=0)
    by_subject: Dict[str, float] = Field(default_factory=dict)
    trend: str = ""


@router.post("/hint", dependencies=[Depends(limiter.rate_limit_dependency("hint", HINT_LIMIT, RATE_PERIOD))])
async def hint(
    request: HintRequest,
    _: str = Depends(get_current_user_id),
    service: TutoringService = Depends(get_tutoring_service)
) -> Dict[str, Any]:
    result = await service.hint(request.subject, request.question, request.options, request.difficulty, request.age)
    return APIResponse.success(result)


@router.post("/explain", dependencies=[Depends(limiter.rate_limit_dependency("explain", EXPLAIN_LIMIT, RATE_PERIOD))])
async def explain(
    request: ExplainRequest,
    _: str = Depends(get_current_user_id),
    service: TutoringService = Depends(get_tutoring_service)
) -> Dict[str, Any]:
    result = await service.explain(
        request.subject,
        request.question,
        request.options,
        request.correct_answer,
        request.user_answer,
        request.age,
    )
    return APIResponse.success(result)


@router.post(
    "/insights",
    dependencies=[Depends(limiter.rate_limit_dependency("insights", INSIGHTS_LIMIT, RATE_PERIOD))]
)
async def insights(
    request: InsightsRequest,
    _: str = Depends(get_current_user_id),
    service: TutoringService = Depends(get_tutoring_service)
) -> Dict[str, Any]:
    result = await service.insights(
        request.age, request.average_score, request.quizzes, request.by_subject, request.trend
    )
    return APIResponse.success(result)


@router.post(
    "/recommendations",
    dependencies=[Depends(limiter.rate_limit_dependency("recommendations", RECOMMENDATIONS_LIMIT, RATE_PERIOD))]
)
async def recommendations(
    request: RecommendationsRequest,
    user_id: str = Depends(get_current_user_id),
    service: TutoringService = Depends(get_tutoring_service)
) -> Dict[str, Any]:
    result = await service.recommendations(
        user_id,
        request.age,
        request.skill_levels,
        [score.model_dump() for score in request.recent],
    )
    return APIResponse.success(result)
