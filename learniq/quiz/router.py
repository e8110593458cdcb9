"""
Quiz Routes

Diagnostic assessment submission and practice quiz attempts.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from learniq.api import APIResponse
from learniq.common.auth import get_current_user_id
from learniq.edl.models import parse_difficulty, parse_subject
from learniq.quiz.repository import attempt_payload
from learniq.quiz.service import QuizService

router = APIRouter(tags=["Quizzes"])


def get_quiz_service() -> QuizService:
    return QuizService()


class AssessmentSubmitRequest(BaseModel):
    subject: str = Field(..., description="math, english or science")
    correct: int = Field(..., ge=0, description="Correctly answered questions")
    total: int = Field(..., ge=1, description="Questions in the assessment")
    chronological_age: int = Field(..., description="Learner's age in years (7-18)")


class QuestionAttempt(BaseModel):
    question_id: str
    selected_answer: Optional[str] = None
    is_correct: Optional[bool] = None
    time_spent_seconds: Optional[int] = Field(None, ge=0)


class QuizAttemptRequest(BaseModel):
    subject: str
    difficulty: str = Field(..., description="easy, medium, hard or adaptive")
    total: int = Field(..., ge=1)
    correct: int = Field(..., ge=0)
    time_spent_seconds: Optional[int] = Field(None, ge=0)
    question_attempts: List[QuestionAttempt] = Field(default_factory=list)


@router.post("/assessment/submit")
async def submit_assessment(
    request: AssessmentSubmitRequest,
    user_id: str = Depends(get_current_user_id),
    service: QuizService = Depends(get_quiz_service)
) -> Dict[str, Any]:
    outcome = await service.submit_assessment(
        user_id,
        parse_subject(request.subject),
        request.correct,
        request.total,
        request.chronological_age,
    )
    return APIResponse.success(outcome.to_dict(), "Assessment recorded")


@router.post("/quiz-attempts")
async def record_quiz_attempt(
    request: QuizAttemptRequest,
    user_id: str = Depends(get_current_user_id),
    service: QuizService = Depends(get_quiz_service)
) -> Dict[str, Any]:
    outcome = await service.record_quiz_attempt(
        user_id,
        parse_subject(request.subject),
        parse_difficulty(request.difficulty),
        request.total,
        request.correct,
        time_spent_seconds=request.time_spent_seconds,
        question_attempts=[attempt.model_dump() for attempt in request.question_attempts],
    )
    return APIResponse.success(outcome.to_dict(), "Quiz recorded")


@router.get("/quiz-attempts")
async def list_quiz_attempts(
    subject: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    service: QuizService = Depends(get_quiz_service)
) -> Dict[str, Any]:
    attempts = await service.list_attempts(
        user_id, parse_subject(subject) if subject else None, limit, offset
    )
    return APIResponse.success([attempt_payload(attempt) for attempt in attempts])
