"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Trick analyses table
    op.create_table(
        'trick_analyses',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(128), nullable=False),
        sa.Column('video_filename', sa.String(500), nullable=False),
        sa.Column('video_path', sa.String(1000), nullable=False),
        sa.Column('video_mime_type', sa.String(100), nullable=False, server_default='video/mp4'),
        sa.Column('video_duration_seconds', sa.Float(), nullable=True),
        sa.Column('trim_start', sa.Float(), nullable=False, server_default='0'),
        sa.Column('trim_end', sa.Float(), nullable=False),
        sa.Column('trick_hint', sa.String(200), nullable=True),
        # Bumped on re-trim/discard; stale workers compare against it
        sa.Column('run_generation', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('processing_status', sa.String(50), nullable=False, server_default='pending'),
        sa.Column('processing_progress', sa.Integer(), server_default='0'),
        sa.Column('processing_error', sa.Text(), nullable=True),
        sa.Column('processing_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processing_completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('frames_sampled', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('frames_with_pose', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('trace_csv', sa.Text(), nullable=True),
        sa.Column('trace_data', sa.Text(), nullable=True),
        sa.Column('trick_name', sa.String(200), nullable=True),
        sa.Column('confidence', sa.Float(), nullable=True),
        sa.Column('board_physics', sa.Text(), nullable=True),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column('is_landed', sa.Boolean(), nullable=True),
        sa.Column('height_meters', sa.Float(), nullable=True),
        sa.Column('feedback_text', sa.Text(), nullable=True),
        sa.Column('improvement_tip', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_trick_analyses_user_id', 'trick_analyses', ['user_id'])
    op.create_index('ix_trick_analyses_processing_status', 'trick_analyses', ['processing_status'])

    # Coach feedback table
    op.create_table(
        'coach_feedback',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(128), nullable=False),
        sa.Column('analysis_id', sa.String(36), nullable=True),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['analysis_id'], ['trick_analyses.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_coach_feedback_user_id', 'coach_feedback', ['user_id'])


def downgrade() -> None:
    op.drop_table('coach_feedback')
    op.drop_table('trick_analyses')
