"""
Gamification Scoring Engine

Points with streak and level multipliers, daily streaks with freezes and
milestones, and a catalog of one-time achievements.
"""

from learniq.gamification.models import (
    TransactionType, AchievementRarity, AchievementCategory, UserStats,
    PointsAward, StreakUpdate, StreakJobResult, AchievementCheckResult
)
from learniq.gamification.points import PointsEngine
from learniq.gamification.streaks import StreakTracker
from learniq.gamification.achievements import AchievementEvaluator
from learniq.gamification.service import GamificationService
