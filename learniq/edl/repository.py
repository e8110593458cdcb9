"""
Adaptive difficulty persistence.

Repositories wrap an ``AsyncSession`` owned by the caller; they never commit.
Updates to difficulty state are compare-and-set on the row ``version``.
"""

import datetime
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from learniq.common.db.statements import insert_if_absent
from learniq.common.logger import app_logger
from learniq.database.models import PerformanceMetrics, Question, QuestionHistory
from learniq.edl.models import Difficulty, PerformanceState, Subject

logger = app_logger.getChild("edl.repository")


class PerformanceMetricsRepository:
    """Reads and conditional writes of per-subject difficulty state."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: str, subject: Subject) -> Optional[PerformanceState]:
        result = await self.session.execute(
            select(PerformanceMetrics)
            .where(
                PerformanceMetrics.user_id == user_id,
                PerformanceMetrics.subject == subject.value,
            )
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return PerformanceState.from_row(row) if row is not None else None

    async def list_for_user(self, user_id: str) -> List[PerformanceState]:
        result = await self.session.execute(
            select(PerformanceMetrics)
            .where(PerformanceMetrics.user_id == user_id)
            .order_by(PerformanceMetrics.subject)
            .execution_options(populate_existing=True)
        )
        return [PerformanceState.from_row(row) for row in result.scalars()]

    async def upsert(
        self,
        user_id: str,
        state: PerformanceState,
        assessment_score: Optional[float] = None
    ) -> None:
        """Create the row, or overwrite it when the assessment is retaken."""
        now = datetime.datetime.now(datetime.timezone.utc)
        values = dict(
            chronological_age=state.chronological_age,
            performance_adjustment=state.performance_adjustment,
            effective_age=state.effective_age,
            recent_accuracy=state.recent_accuracy,
            last_3_quiz_scores=list(state.last_3_quiz_scores),
            total_quizzes_completed=state.total_quizzes_completed,
            has_completed_assessment=True,
            last_quiz_at=None,
            assessment_score=assessment_score,
            updated_at=now,
        )

        inserted = await insert_if_absent(
            self.session,
            PerformanceMetrics,
            dict(values, user_id=user_id, subject=state.subject.value, version=1, created_at=now),
        )
        if inserted:
            return

        await self.session.execute(
            update(PerformanceMetrics)
            .where(
                PerformanceMetrics.user_id == user_id,
                PerformanceMetrics.subject == state.subject.value,
            )
            .values(version=PerformanceMetrics.version + 1, **values)
            .execution_options(synchronize_session=False)
        )

    async def compare_and_set(self, user_id: str, state: PerformanceState) -> bool:
        """
        Write ``state`` only if the stored version still equals ``state.version``.

        Returns:
            True if the row was updated, False if another writer got there first.
        """
        result = await self.session.execute(
            update(PerformanceMetrics)
            .where(
                PerformanceMetrics.user_id == user_id,
                PerformanceMetrics.subject == state.subject.value,
                PerformanceMetrics.version == state.version,
            )
            .values(
                performance_adjustment=state.performance_adjustment,
                effective_age=state.effective_age,
                recent_accuracy=state.recent_accuracy,
                last_3_quiz_scores=list(state.last_3_quiz_scores),
                total_quizzes_completed=state.total_quizzes_completed,
                last_quiz_at=state.last_quiz_at,
                updated_at=datetime.datetime.now(datetime.timezone.utc),
                version=PerformanceMetrics.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class QuestionRepository:
    """Question bank lookups and per-learner question history."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _recent_ids(self, user_id: str, since: datetime.datetime):
        return select(QuestionHistory.question_id).where(
            QuestionHistory.user_id == user_id,
            QuestionHistory.last_seen_at >= since,
        )

    async def fetch_bucket(
        self,
        subject: Subject,
        age: int,
        difficulty: Difficulty,
        limit: int,
        user_id: Optional[str] = None,
        seen_since: Optional[datetime.datetime] = None
    ) -> List[Question]:
        """Up to ``limit`` random questions, skipping recently seen ones."""
        if limit <= 0:
            return []

        query = select(Question).where(
            Question.subject == subject.value,
            Question.age_group == age,
            Question.difficulty == difficulty.value,
        )
        if user_id is not None and seen_since is not None:
            query = query.where(Question.id.not_in(self._recent_ids(user_id, seen_since)))

        result = await self.session.execute(query.order_by(func.random()).limit(limit))
        return list(result.scalars())

    async def count_recently_seen(
        self,
        user_id: str,
        subject: Subject,
        age: int,
        difficulties: Sequence[Difficulty],
        seen_since: datetime.datetime
    ) -> int:
        result = await self.session.execute(
            select(func.count(Question.id)).where(
                Question.subject == subject.value,
                Question.age_group == age,
                Question.difficulty.in_([d.value for d in difficulties]),
                Question.id.in_(self._recent_ids(user_id, seen_since)),
            )
        )
        return int(result.scalar_one())

    async def record_seen(
        self,
        user_id: str,
        question_ids: Iterable[str],
        seen_at: datetime.datetime
    ) -> int:
        """Upsert history rows; returns how many distinct questions were recorded."""
        recorded = 0
        for question_id in dict.fromkeys(q for q in question_ids if q):
            bumped = await self._touch(user_id, question_id, seen_at)
            if not bumped:
                inserted = await insert_if_absent(
                    self.session,
                    QuestionHistory,
                    dict(user_id=user_id, question_id=question_id, last_seen_at=seen_at, times_seen=1),
                )
                if not inserted:
                    await self._touch(user_id, question_id, seen_at)
            recorded += 1
        return recorded

    async def _touch(self, user_id: str, question_id: str, seen_at: datetime.datetime) -> bool:
        result = await self.session.execute(
            update(QuestionHistory)
            .where(
                QuestionHistory.user_id == user_id,
                QuestionHistory.question_id == question_id,
            )
            .values(last_seen_at=seen_at, times_seen=QuestionHistory.times_seen + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
