"""Quiz submission: diagnostic assessments and practice attempts."""

from learniq.quiz.service import QuizService, QuizOutcome, AssessmentOutcome, quiz_base_points
