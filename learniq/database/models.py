"""
Database Models

ORM tables for the adaptive difficulty engine and the gamification ledger.
Rows that must exist at most once (unlocks, milestones, deduplicated point
transactions) are protected by unique keys, not by application checks.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON, Boolean, CheckConstraint, Column, Date, DateTime, Float, ForeignKey,
    Index, Integer, String, Text, UniqueConstraint
)

from learniq.database.base import ModelBase


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PerformanceMetrics(ModelBase):
    """Per user and subject difficulty state."""

    __tablename__ = "performance_metrics"

    user_id = Column(String(64), primary_key=True)
    subject = Column(String(16), primary_key=True)
    chronological_age = Column(Integer, nullable=False)
    performance_adjustment = Column(Integer, nullable=False, default=0)
    effective_age = Column(Integer, nullable=False)
    recent_accuracy = Column(Float, nullable=True)
    last_3_quiz_scores = Column(JSON, nullable=False, default=list)
    total_quizzes_completed = Column(Integer, nullable=False, default=0)
    has_completed_assessment = Column(Boolean, nullable=False, default=True)
    assessment_score = Column(Float, nullable=True)
    last_quiz_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        CheckConstraint(
            "performance_adjustment >= -2 AND performance_adjustment <= 2",
            name="adjustment_range"
        ),
    )


class QuizAttempt(ModelBase):
    """Append-only ledger of assessment and practice submissions."""

    __tablename__ = "quiz_attempts"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    subject = Column(String(16), nullable=False)
    difficulty = Column(String(16), nullable=False)
    attempt_type = Column(String(16), nullable=False, default="practice")
    total_questions = Column(Integer, nullable=False)
    correct_answers = Column(Integer, nullable=False)
    score_percentage = Column(Float, nullable=False)
    points_earned = Column(Integer, nullable=False, default=0)
    time_spent_seconds = Column(Integer, nullable=True)
    answered_questions = Column(JSON, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)


class GamificationState(ModelBase):
    """Per user points, level and streak counters."""

    __tablename__ = "gamification_state"

    user_id = Column(String(64), primary_key=True)
    total_points = Column(Integer, nullable=False, default=0)
    current_level = Column(Integer, nullable=False, default=1)
    streak_days = Column(Integer, nullable=False, default=0)
    highest_streak = Column(Integer, nullable=False, default=0)
    streak_freeze_available = Column(Boolean, nullable=False, default=True)
    streak_freeze_last_reset = Column(Date, nullable=True)
    last_activity_date = Column(Date, nullable=True, index=True)
    total_achievements = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        CheckConstraint("streak_days >= 0", name="streak_non_negative"),
        CheckConstraint("total_points >= 0", name="points_non_negative"),
    )


class SubjectProgress(ModelBase):
    """Per user and subject points and level."""

    __tablename__ = "subject_progress"

    user_id = Column(String(64), primary_key=True)
    subject = Column(String(16), primary_key=True)
    points = Column(Integer, nullable=False, default=0)
    level = Column(Integer, nullable=False, default=1)


class PointTransaction(ModelBase):
    """Immutable record of one points award."""

    __tablename__ = "point_transactions"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    transaction_type = Column(String(32), nullable=False)
    base_points = Column(Integer, nullable=False)
    streak_multiplier = Column(Float, nullable=False)
    level_multiplier = Column(Float, nullable=False)
    multiplier = Column(Float, nullable=False)
    points_change = Column(Integer, nullable=False)
    subject = Column(String(16), nullable=True)
    related_entity_type = Column(String(32), nullable=True)
    related_entity_id = Column(String(64), nullable=True)
    details = Column(JSON, nullable=True)
    dedup_key = Column(String(160), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "dedup_key"),
    )


class Achievement(ModelBase):
    """Achievement catalog entry."""

    __tablename__ = "achievements"

    id = Column(String(36), primary_key=True, default=_uuid)
    key = Column(String(64), nullable=False, unique=True)
    name = Column(String(128), nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(String(32), nullable=False)
    icon = Column(String(64), nullable=True)
    rarity = Column(String(16), nullable=False, default="common")
    points_reward = Column(Integer, nullable=False, default=0)
    unlock_criteria = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class UserAchievement(ModelBase):
    """An unlocked achievement; at most one row per user and achievement."""

    __tablename__ = "user_achievements"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    achievement_id = Column(String(36), ForeignKey("achievements.id"), nullable=False)
    unlocked_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id"),
    )


class StreakMilestone(ModelBase):
    """A streak milestone bonus that has been paid out."""

    __tablename__ = "streak_milestones"

    user_id = Column(String(64), primary_key=True)
    milestone_days = Column(Integer, primary_key=True)
    bonus_points = Column(Integer, nullable=False)
    achieved_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class Question(ModelBase):
    """Question bank entry."""

    __tablename__ = "questions"

    id = Column(String(36), primary_key=True, default=_uuid)
    subject = Column(String(16), nullable=False)
    age_group = Column(Integer, nullable=False)
    difficulty = Column(String(16), nullable=False)
    question_text = Column(Text, nullable=False)
    options = Column(JSON, nullable=True)
    correct_answer = Column(Text, nullable=False)
    explanation = Column(Text, nullable=True)
    hint = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_questions_lookup", "subject", "age_group", "difficulty"),
    )


class QuestionHistory(ModelBase):
    """Which questions a learner has seen, and when last."""

    __tablename__ = "question_history"

    user_id = Column(String(64), primary_key=True)
    question_id = Column(String(36), primary_key=True)
    last_seen_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    times_seen = Column(Integer, nullable=False, default=1)


class LevelHistory(ModelBase):
    """Subject level-ups."""

    __tablename__ = "level_history"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    subject = Column(String(16), nullable=False)
    old_level = Column(Integer, nullable=False)
    new_level = Column(Integer, nullable=False)
    points_at_level_up = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
