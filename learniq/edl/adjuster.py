"""
Difficulty Adjuster

Maintains each learner's effective age per subject: bootstraps it from the
diagnostic assessment, moves it at quiz checkpoints, and reports status.
"""

from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from learniq.common.dates import Clock, utc_now
from learniq.common.error_handling import (
    AssessmentNotCompletedError, ConflictError, ValidationError, retry
)
from learniq.common.logger import app_logger
from learniq.edl import calculator
from learniq.edl.models import (
    EDLStatus, EDLUpdate, OverallStatus, PerformanceState, Subject, SubjectStatus
)
from learniq.edl.repository import PerformanceMetricsRepository

logger = app_logger.getChild("edl.adjuster")

CAS_RETRIES = 4


class StaleStateError(Exception):
    """The difficulty row changed between read and conditional write."""


def validate_percentage(value: float, field_name: str = "score_percentage") -> float:
    if value is None or not 0 <= value <= 100:
        raise ValidationError(f"{field_name} must be between 0 and 100", details={field_name: value})
    return float(value)


def validate_age(age: int) -> int:
    if not isinstance(age, int) or isinstance(age, bool) or not calculator.MIN_AGE <= age <= calculator.MAX_AGE:
        raise ValidationError(
            f"Age must be between {calculator.MIN_AGE} and {calculator.MAX_AGE}",
            details={"age": age}
        )
    return age


class DifficultyAdjuster:
    """
    Service object for one request's difficulty reads and writes.

    Args:
        session: Request-scoped session; the caller commits.
        clock: UTC clock used to stamp ``last_quiz_at``.
    """

    def __init__(self, session: AsyncSession, clock: Clock = utc_now):
        self.repository = PerformanceMetricsRepository(session)
        self.clock = clock

    async def initialize(
        self,
        user_id: str,
        subject: Subject,
        assessment_percentage: float,
        chronological_age: int
    ) -> PerformanceState:
        """Create or reset the subject's state from a diagnostic score."""
        validate_percentage(assessment_percentage, "assessment_percentage")
        validate_age(chronological_age)

        state = calculator.initial_state(subject, assessment_percentage, chronological_age)
        await self.repository.upsert(user_id, state, assessment_score=assessment_percentage)

        logger.info(
            f"Initialized {subject.value} difficulty for {user_id}: "
            f"adjustment={state.performance_adjustment} effective_age={state.effective_age}"
        )
        return state

    async def update(
        self,
        user_id: str,
        subject: Subject,
        score_percentage: float
    ) -> Tuple[PerformanceState, EDLUpdate]:
        """
        Record one practice score.

        Raises:
            AssessmentNotCompletedError: No state exists for the subject.
            ConflictError: Concurrent writers kept winning the row.
        """
        validate_percentage(score_percentage)

        @retry(max_retries=CAS_RETRIES, retry_delay=0.01, retry_exceptions=(StaleStateError,))
        async def attempt() -> Tuple[PerformanceState, EDLUpdate]:
            current = await self._require(user_id, subject)
            new_state, summary = calculator.apply_quiz_score(current, score_percentage, self.clock())
            if not await self.repository.compare_and_set(user_id, new_state):
                raise StaleStateError(f"{user_id}/{subject.value} at version {current.version}")
            new_state.version = current.version + 1
            return new_state, summary

        try:
            new_state, summary = await attempt()
        except StaleStateError as e:
            raise ConflictError(
                "Difficulty state is being updated concurrently",
                details={"subject": subject.value},
                cause=e
            )

        if summary.adjustment_occurred:
            logger.info(
                f"Difficulty {summary.adjustment_type.value} for {user_id}/{subject.value}: "
                f"{summary.previous_effective_age} -> {summary.new_effective_age}"
            )
        return new_state, summary

    def status(self, state: PerformanceState) -> EDLStatus:
        return calculator.classify(state.recent_accuracy)

    async def subject_status(self, user_id: str, subject: Subject) -> SubjectStatus:
        return calculator.subject_status(await self._require(user_id, subject))

    async def status_bundle(self, user_id: str, subject: Optional[Subject] = None) -> Dict[str, Any]:
        """
        Status for one subject, or for every initialized subject plus an
        overall summary.
        """
        if subject is not None:
            return {"subjects": {subject.value: (await self.subject_status(user_id, subject)).to_dict()}}

        states = await self.repository.list_for_user(user_id)
        if not states:
            raise AssessmentNotCompletedError()

        statuses = [calculator.subject_status(state) for state in states]
        return {
            "subjects": {s.subject.value: s.to_dict() for s in statuses},
            "overall_status": summarize(statuses).to_dict(),
        }

    async def _require(self, user_id: str, subject: Subject) -> PerformanceState:
        state = await self.repository.get(user_id, subject)
        if state is None or not state.has_completed_assessment:
            raise AssessmentNotCompletedError(subject.value)
        return state


def summarize(statuses: List[SubjectStatus]) -> OverallStatus:
    accuracies = [s.recent_accuracy for s in statuses if s.recent_accuracy is not None]
    return OverallStatus(
        average_accuracy=sum(accuracies) / len(accuracies) if accuracies else None,
        subjects_in_flow_zone=sum(1 for s in statuses if s.status == EDLStatus.FLOW_ZONE),
        subjects_advanced=sum(1 for s in statuses if s.performance_adjustment > 0),
        subjects_needing_support=sum(
            1 for s in statuses if s.status in (EDLStatus.CHALLENGING, EDLStatus.STRUGGLING)
        ),
    )
