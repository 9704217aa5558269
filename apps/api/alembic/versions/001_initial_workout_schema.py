"""initial workout schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create user_profile table
    op.create_table(
        'user_profile',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('first_name', sa.Text(), nullable=True),
        sa.Column('age', sa.Integer(), nullable=True),
        sa.Column('weight', sa.Float(), nullable=True),
        sa.Column('height', sa.Float(), nullable=True),
        sa.Column('gender', sa.Text(), nullable=True),
        sa.Column('experience_years', sa.Float(), nullable=True),
        sa.Column('approach_id', sa.Text(), nullable=True),
        sa.Column('preferred_split', sa.Text(), server_default='push_pull_legs', nullable=False),
        sa.Column('preferred_language', sa.Text(), server_default='en', nullable=False),
        sa.Column('training_focus', sa.Text(), nullable=True),
        sa.Column('body_type', sa.Text(), nullable=True),
        sa.Column('weak_points', postgresql.JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('available_equipment', postgresql.JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('custom_equipment', postgresql.JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('strength_baseline', postgresql.JSONB(), nullable=True),
        sa.Column('active_split_plan_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('current_cycle_day', sa.Integer(), server_default='1', nullable=False),
        sa.Column('current_cycle_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('current_mesocycle_week', sa.Integer(), nullable=True),
        sa.Column('mesocycle_phase', sa.Text(), nullable=True),
        sa.Column('caloric_phase', sa.Text(), nullable=True),
        sa.Column('caloric_intake_kcal', sa.Integer(), nullable=True),
    )

    # Create split_plan table
    op.create_table(
        'split_plan',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('split_type', sa.Text(), server_default='custom', nullable=False),
        sa.Column('cycle_days', sa.Integer(), nullable=False),
        sa.Column('sessions', postgresql.JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('active', sa.Boolean(), server_default=sa.text('false'), nullable=False),
    )
    op.create_index('ix_split_plan_user_active', 'split_plan', ['user_id', 'active'])

    # Create workout table
    op.create_table(
        'workout',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('approach_id', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('split_plan_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('split_plan.id', ondelete='SET NULL'), nullable=True),
        sa.Column('cycle_day', sa.Integer(), nullable=True),
        sa.Column('variation', sa.Text(), nullable=True),
        sa.Column('split_type', sa.Text(), nullable=True),
        sa.Column('workout_type', sa.Text(), nullable=False),
        sa.Column('workout_name', sa.Text(), nullable=True),
        sa.Column('target_muscle_groups', postgresql.JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('exercises', postgresql.JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('status', sa.Text(), server_default='ready', nullable=False),
        sa.Column('planned_at', sa.Date(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('total_volume', sa.Float(), nullable=True),
        sa.Column('total_sets', sa.Integer(), nullable=True),
        sa.Column('duration_seconds', sa.Integer(), nullable=True),
        sa.Column('mental_readiness_overall', sa.Float(), nullable=True),
        sa.Column('learned_target_weights', postgresql.JSONB(), nullable=True),
        sa.Column('ai_response_id', sa.Text(), nullable=True),
        sa.Column('workout_rationale', sa.Text(), nullable=True),
        sa.Column('insight_influenced_changes', postgresql.JSONB(), nullable=True),
        sa.Column('audio_scripts', postgresql.JSONB(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
    )
    op.create_index('ix_workout_user_status', 'workout', ['user_id', 'status'])
    op.create_index('ix_workout_plan_day', 'workout', ['split_plan_id', 'cycle_day'])
    op.create_index('ix_workout_completed_at', 'workout', ['completed_at'])

    # Create set_log table
    op.create_table(
        'set_log',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('workout_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('workout.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('exercise_index', sa.Integer(), nullable=False),
        sa.Column('exercise_name', sa.Text(), nullable=False),
        sa.Column('set_number', sa.Integer(), nullable=False),
        sa.Column('set_type', sa.Text(), server_default='working', nullable=False),
        sa.Column('weight_target', sa.Float(), nullable=True),
        sa.Column('weight_actual', sa.Float(), nullable=True),
        sa.Column('reps_target', sa.Integer(), nullable=True),
        sa.Column('reps_actual', sa.Integer(), nullable=True),
        sa.Column('rir_actual', sa.Integer(), nullable=True),
        sa.Column('mental_readiness', sa.Integer(), nullable=True),
        sa.Column('skipped', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
    )
    op.create_index('ix_set_log_workout', 'set_log', ['workout_id'])
    op.create_index('ix_set_log_exercise_name', 'set_log', ['exercise_name'])
    op.create_index('ix_set_log_created_at', 'set_log', ['created_at'])

    # Create user_insight table
    op.create_table(
        'user_insight',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('insight_type', sa.Text(), nullable=False),
        sa.Column('severity', sa.Text(), nullable=True),
        sa.Column('exercise_name', sa.Text(), nullable=True),
        sa.Column('user_note', sa.Text(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('relevance_score', sa.Float(), server_default='1.0', nullable=False),
        sa.Column('status', sa.Text(), server_default='active', nullable=False),
    )
    op.create_index('ix_user_insight_user_status', 'user_insight', ['user_id', 'status'])

    # Create user_memory table
    op.create_table(
        'user_memory',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('memory_category', sa.Text(), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('confidence_score', sa.Float(), server_default='0.5', nullable=False),
        sa.Column('related_exercises', postgresql.JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('related_muscles', postgresql.JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('status', sa.Text(), server_default='active', nullable=False),
    )
    op.create_index('ix_user_memory_user_status', 'user_memory', ['user_id', 'status'])


def downgrade() -> None:
    op.drop_index('ix_user_memory_user_status', table_name='user_memory')
    op.drop_table('user_memory')
    op.drop_index('ix_user_insight_user_status', table_name='user_insight')
    op.drop_table('user_insight')
    op.drop_index('ix_set_log_created_at', table_name='set_log')
    op.drop_index('ix_set_log_exercise_name', table_name='set_log')
    op.drop_index('ix_set_log_workout', table_name='set_log')
    op.drop_table('set_log')
    op.drop_index('ix_workout_completed_at', table_name='workout')
    op.drop_index('ix_workout_plan_day', table_name='workout')
    op.drop_index('ix_workout_user_status', table_name='workout')
    op.drop_table('workout')
    op.drop_index('ix_split_plan_user_active', table_name='split_plan')
    op.drop_table('split_plan')
    op.drop_table('user_profile')
