"""initial schema: conversations, media history, runner profile, running events

Revision ID: 001
Revises:
Create Date: 2025-06-01 00:00:00.000000

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


def _timestamps(updated: bool = True):
    columns = [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)
        )
    return columns


def upgrade() -> None:
    op.create_table(
        'conversations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('title', sa.Text(), nullable=False, server_default='Nueva conversación'),
        sa.Column('model', sa.Text(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'messages',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('conversation_id', sa.Uuid(), nullable=False),
        sa.Column('role', sa.Text(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_messages_conversation_id', 'messages', ['conversation_id'])

    op.create_table(
        'generated_images',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('prompt', sa.Text(), nullable=False),
        sa.Column('model', sa.Text(), nullable=False),
        sa.Column('image_url', sa.Text(), nullable=False),
        *_timestamps(updated=False),
    )

    op.create_table(
        'vision_analyses',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('image_url', sa.Text(), nullable=False),
        sa.Column('prompt', sa.Text(), nullable=True),
        sa.Column('model', sa.Text(), nullable=False),
        sa.Column('response', sa.Text(), nullable=False),
        *_timestamps(updated=False),
    )

    op.create_table(
        'runner_profile',
        sa.Column('id', sa.Uuid(), primary_key=True),
        # Always 1; the unique constraint is what keeps the table to one row.
        sa.Column('singleton_key', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('age', sa.Integer(), nullable=True),
        sa.Column('weight', sa.Float(), nullable=True),
        sa.Column('height', sa.Float(), nullable=True),
        sa.Column('years_running', sa.Integer(), nullable=True),
        sa.Column('weekly_km', sa.Float(), nullable=True),
        sa.Column('pb5k', sa.Text(), nullable=True),
        sa.Column('pb10k', sa.Text(), nullable=True),
        sa.Column('pb_half_marathon', sa.Text(), nullable=True),
        sa.Column('pb_marathon', sa.Text(), nullable=True),
        sa.Column('current_goal', sa.Text(), nullable=True),
        sa.Column('target_race', sa.Text(), nullable=True),
        sa.Column('target_date', sa.Text(), nullable=True),
        sa.Column('target_time', sa.Text(), nullable=True),
        sa.Column('injuries', sa.Text(), nullable=True),
        sa.Column('health_notes', sa.Text(), nullable=True),
        sa.Column('preferred_terrain', sa.Text(), nullable=True),
        sa.Column('available_days', sa.Text(), nullable=True),
        sa.Column('max_time_per_session', sa.Integer(), nullable=True),
        sa.Column('coach_notes', sa.Text(), nullable=True),
        sa.Column('additional_info', sa.JSON().with_variant(postgresql.JSONB(), 'postgresql'), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('singleton_key', name='uq_runner_profile_singleton_key'),
    )

    op.create_table(
        'running_events',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('category', sa.Text(), nullable=False, server_default='running'),
        sa.Column('type', sa.Text(), nullable=False),
        sa.Column('title', sa.Text(), nullable=True),
        sa.Column('time', sa.Text(), nullable=True),
        sa.Column('distance', sa.Float(), nullable=True),
        sa.Column('duration', sa.Text(), nullable=True),
        sa.Column('pace', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('heart_rate', sa.Integer(), nullable=True),
        sa.Column('feeling', sa.Text(), nullable=True),
        sa.Column('completed', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
    )
    op.create_index('ix_running_events_date', 'running_events', ['date'])


def downgrade() -> None:
    op.drop_index('ix_running_events_date', table_name='running_events')
    op.drop_table('running_events')
    op.drop_table('runner_profile')
    op.drop_table('vision_analyses')
    op.drop_table('generated_images')
    op.drop_index('ix_messages_conversation_id', table_name='messages')
    op.drop_table('messages')
    op.drop_table('conversations')
