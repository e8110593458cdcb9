"""
Adaptive Difficulty Engine

Maps each learner's chronological age to an effective age per subject and
uses it to choose the difficulty mix of practice questions.
"""

from learniq.edl.models import (
    Subject, Difficulty, SelectionMode, EDLStatus, AdjustmentType,
    PerformanceState, EDLUpdate, AssessmentAnswer, AssessmentScore, Distribution, QuestionSet
)
from learniq.edl.adjuster import DifficultyAdjuster
from learniq.edl.assessment import AssessmentScorer
from learniq.edl.selector import QuestionSelector, fisher_yates_shuffle
