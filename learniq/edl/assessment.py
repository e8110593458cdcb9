"""Diagnostic assessment scoring."""

from typing import Sequence

from learniq.common.error_handling import ValidationError
from learniq.edl.calculator import skill_level_for
from learniq.edl.models import AssessmentAnswer, AssessmentScore


class AssessmentScorer:
    """
    Turns diagnostic answers into a percentage and a 1..5 skill level.

    Each answer carries a point weight (1 unless the question says otherwise).
    """

    def score(self, answers: Sequence[AssessmentAnswer]) -> AssessmentScore:
        total_points = 0
        earned_points = 0
        for answer in answers:
            if answer.points < 0:
                raise ValidationError("Answer weight cannot be negative", details={"points": answer.points})
            total_points += answer.points
            if answer.is_correct:
                earned_points += answer.points

        percentage = earned_points / total_points * 100 if total_points > 0 else 0.0
        return AssessmentScore(
            score_percentage=percentage,
            skill_level=skill_level_for(percentage),
            earned_points=earned_points,
            total_points=total_points,
        )

    def score_counts(self, correct: int, total: int) -> AssessmentScore:
        """Score an unweighted assessment from its counts."""
        validate_counts(correct, total)
        return self.score(
            [AssessmentAnswer(is_correct=True)] * correct
            + [AssessmentAnswer(is_correct=False)] * (total - correct)
        )


def validate_counts(correct: int, total: int) -> None:
    for name, value in (("correct", correct), ("total", total)):
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValidationError("Invalid question counts", details={name: value})
    if total < 1 or correct < 0 or correct > total:
        raise ValidationError(
            "Invalid question counts",
            details={"correct": correct, "total": total}
        )
