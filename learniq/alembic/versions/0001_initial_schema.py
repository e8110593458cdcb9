"""Initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'performance_metrics',
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('subject', sa.String(16), nullable=False),
        sa.Column('chronological_age', sa.Integer(), nullable=False),
        sa.Column('performance_adjustment', sa.Integer(), nullable=False),
        sa.Column('effective_age', sa.Integer(), nullable=False),
        sa.Column('recent_accuracy', sa.Float(), nullable=True),
        sa.Column('last_3_quiz_scores', sa.JSON(), nullable=False),
        sa.Column('total_quizzes_completed', sa.Integer(), nullable=False),
        sa.Column('has_completed_assessment', sa.Boolean(), nullable=False),
        sa.Column('assessment_score', sa.Float(), nullable=True),
        sa.Column('last_quiz_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('user_id', 'subject', name='pk_performance_metrics'),
        sa.CheckConstraint(
            'performance_adjustment >= -2 AND performance_adjustment <= 2',
            name='ck_performance_metrics_adjustment_range'
        ),
    )

    # Quiz ledger
    op.create_table(
        'quiz_attempts',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('subject', sa.String(16), nullable=False),
        sa.Column('difficulty', sa.String(16), nullable=False),
        sa.Column('attempt_type', sa.String(16), nullable=False),
        sa.Column('total_questions', sa.Integer(), nullable=False),
        sa.Column('correct_answers', sa.Integer(), nullable=False),
        sa.Column('score_percentage', sa.Float(), nullable=False),
        sa.Column('points_earned', sa.Integer(), nullable=False),
        sa.Column('time_spent_seconds', sa.Integer(), nullable=True),
        sa.Column('answered_questions', sa.JSON(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_quiz_attempts'),
    )
    op.create_index('ix_quiz_attempts_user_id', 'quiz_attempts', ['user_id'])
    op.create_index('ix_quiz_attempts_completed_at', 'quiz_attempts', ['completed_at'])

    # Gamification state
    op.create_table(
        'gamification_state',
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('total_points', sa.Integer(), nullable=False),
        sa.Column('current_level', sa.Integer(), nullable=False),
        sa.Column('streak_days', sa.Integer(), nullable=False),
        sa.Column('highest_streak', sa.Integer(), nullable=False),
        sa.Column('streak_freeze_available', sa.Boolean(), nullable=False),
        sa.Column('streak_freeze_last_reset', sa.Date(), nullable=True),
        sa.Column('last_activity_date', sa.Date(), nullable=True),
        sa.Column('total_achievements', sa.Integer(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('user_id', name='pk_gamification_state'),
        sa.CheckConstraint('streak_days >= 0', name='ck_gamification_state_streak_non_negative'),
        sa.CheckConstraint('total_points >= 0', name='ck_gamification_state_points_non_negative'),
    )
    op.create_index('ix_gamification_state_last_activity_date', 'gamification_state', ['last_activity_date'])

    op.create_table(
        'subject_progress',
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('subject', sa.String(16), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('user_id', 'subject', name='pk_subject_progress'),
    )

    op.create_table(
        'point_transactions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('transaction_type', sa.String(32), nullable=False),
        sa.Column('base_points', sa.Integer(), nullable=False),
        sa.Column('streak_multiplier', sa.Float(), nullable=False),
        sa.Column('level_multiplier', sa.Float(), nullable=False),
        sa.Column('multiplier', sa.Float(), nullable=False),
        sa.Column('points_change', sa.Integer(), nullable=False),
        sa.Column('subject', sa.String(16), nullable=True),
        sa.Column('related_entity_type', sa.String(32), nullable=True),
        sa.Column('related_entity_id', sa.String(64), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('dedup_key', sa.String(160), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_point_transactions'),
        sa.UniqueConstraint('user_id', 'dedup_key', name='uq_point_transactions_user_id_dedup_key'),
    )
    op.create_index('ix_point_transactions_user_id', 'point_transactions', ['user_id'])

    # Achievements
    op.create_table(
        'achievements',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('key', sa.String(64), nullable=False),
        sa.Column('name', sa.String(128), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('category', sa.String(32), nullable=False),
        sa.Column('icon', sa.String(64), nullable=True),
        sa.Column('rarity', sa.String(16), nullable=False),
        sa.Column('points_reward', sa.Integer(), nullable=False),
        sa.Column('unlock_criteria', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_achievements'),
        sa.UniqueConstraint('key', name='uq_achievements_key'),
    )

    op.create_table(
        'user_achievements',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('achievement_id', sa.String(36), nullable=False),
        sa.Column('unlocked_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_user_achievements'),
        sa.ForeignKeyConstraint(
            ['achievement_id'], ['achievements.id'],
            name='fk_user_achievements_achievement_id_achievements'
        ),
        sa.UniqueConstraint('user_id', 'achievement_id', name='uq_user_achievements_user_id_achievement_id'),
    )
    op.create_index('ix_user_achievements_user_id', 'user_achievements', ['user_id'])

    op.create_table(
        'streak_milestones',
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('milestone_days', sa.Integer(), nullable=False),
        sa.Column('bonus_points', sa.Integer(), nullable=False),
        sa.Column('achieved_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('user_id', 'milestone_days', name='pk_streak_milestones'),
    )

    # Question bank and history
    op.create_table(
        'questions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('subject', sa.String(16), nullable=False),
        sa.Column('age_group', sa.Integer(), nullable=False),
        sa.Column('difficulty', sa.String(16), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('options', sa.JSON(), nullable=True),
        sa.Column('correct_answer', sa.Text(), nullable=False),
        sa.Column('explanation', sa.Text(), nullable=True),
        sa.Column('hint', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_questions'),
    )
    op.create_index('ix_questions_lookup', 'questions', ['subject', 'age_group', 'difficulty'])

    op.create_table(
        'question_history',
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('question_id', sa.String(36), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('times_seen', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('user_id', 'question_id', name='pk_question_history'),
    )

    op.create_table(
        'level_history',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('subject', sa.String(16), nullable=False),
        sa.Column('old_level', sa.Integer(), nullable=False),
        sa.Column('new_level', sa.Integer(), nullable=False),
        sa.Column('points_at_level_up', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_level_history'),
    )
    op.create_index('ix_level_history_user_id', 'level_history', ['user_id'])


def downgrade():
    op.drop_table('level_history')
    op.drop_table('question_history')
    op.drop_table('questions')
    op.drop_table('streak_milestones')
    op.drop_table('user_achievements')
    op.drop_table('achievements')
    op.drop_table('point_transactions')
    op.drop_table('subject_progress')
    op.drop_table('gamification_state')
    op.drop_table('quiz_attempts')
    op.drop_table('performance_metrics')
