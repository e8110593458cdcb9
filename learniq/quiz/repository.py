"""Quiz attempt ledger."""

from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from learniq.database.models import QuizAttempt
from learniq.edl.models import Subject


class QuizAttemptRepository:

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, **values: Any) -> QuizAttempt:
        attempt = QuizAttempt(**values)
        self.session.add(attempt)
        await self.session.flush()
        return attempt

    async def set_points_earned(self, attempt_id: str, points: int) -> None:
        await self.session.execute(
            update(QuizAttempt)
            .where(QuizAttempt.id == attempt_id)
            .values(points_earned=points)
            .execution_options(synchronize_session=False)
        )

    async def list_for_user(
        self,
        user_id: str,
        subject: Optional[Subject] = None,
        limit: int = 20,
        offset: int = 0
    ) -> List[QuizAttempt]:
        query = select(QuizAttempt).where(QuizAttempt.user_id == user_id)
        if subject is not None:
            query = query.where(QuizAttempt.subject == subject.value)
        result = await self.session.execute(
            query.order_by(QuizAttempt.completed_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars())


def attempt_payload(attempt: QuizAttempt) -> Dict[str, Any]:
    return {
        "id": attempt.id,
        "subject": attempt.subject,
        "difficulty": attempt.difficulty,
        "attempt_type": attempt.attempt_type,
        "total_questions": attempt.total_questions,
        "correct_answers": attempt.correct_answers,
        "score_percentage": attempt.score_percentage,
        "points_earned": attempt.points_earned,
        "time_spent_seconds": attempt.time_spent_seconds,
        "completed_at": attempt.completed_at.isoformat() if attempt.completed_at else None,
    }
