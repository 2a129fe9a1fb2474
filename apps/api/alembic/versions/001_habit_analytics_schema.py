"""habit analytics schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

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

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        'habit',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('type', sa.Text(), nullable=False),
        sa.Column('frequency', JSON_TYPE, nullable=False),
        sa.Column('goal_value', sa.Float(), nullable=True),
        sa.Column('goal_direction', sa.Text(), nullable=True),
        sa.Column('unit', sa.Text(), nullable=True),
        sa.Column('goal_time', sa.Text(), nullable=True),
        sa.Column('order', sa.Integer(), nullable=True),
        sa.Column('archived', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "type IN ('simple', 'quantity', 'duration', 'schedule', 'avoidance')",
            name='ck_habit_type',
        ),
    )
    op.create_index('ix_habit_user_id', 'habit', ['user_id'])
    op.create_index('ix_habit_user_archived', 'habit', ['user_id', 'archived'])

    op.create_table(
        'habit_event',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('habit_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('value', sa.Float(), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['habit_id'], ['habit.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('habit_id', 'date', name='uq_habit_event_habit_date'),
        sa.CheckConstraint(
            "status IN ('completed', 'skipped', 'failed', 'not_marked')",
            name='ck_habit_event_status',
        ),
    )
    op.create_index('ix_habit_event_habit_id', 'habit_event', ['habit_id'])
    op.create_index('ix_habit_event_user_id', 'habit_event', ['user_id'])
    op.create_index('ix_habit_event_user_date', 'habit_event', ['user_id', 'date'])
    op.create_index('ix_habit_event_user_created', 'habit_event', ['user_id', 'created_at'])

    op.create_table(
        'journal_entry',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_journal_entry_user_id', 'journal_entry', ['user_id'])
    op.create_index('ix_journal_entry_user_date', 'journal_entry', ['user_id', 'date'])

    op.create_table(
        'daily_plan',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('user_id', 'date', name='uq_daily_plan_user_date'),
    )

    op.create_table(
        'daily_plan_item',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('daily_plan_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('time', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['daily_plan_id'], ['daily_plan.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_daily_plan_item_daily_plan_id', 'daily_plan_item', ['daily_plan_id'])

    op.create_table(
        'correlation_cache',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('user_id', sa.Text(), nullable=False, unique=True),
        sa.Column('correlations', JSON_TYPE, nullable=False),
        sa.Column('calculated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'correlation_trigger_tracker',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('user_id', sa.Text(), nullable=False, unique=True),
        sa.Column('last_update_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('events_since_update', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_events', sa.Integer(), nullable=False, server_default='0'),
    )


def downgrade() -> None:
    op.drop_table('correlation_trigger_tracker')
    op.drop_table('correlation_cache')
    op.drop_index('ix_daily_plan_item_daily_plan_id', table_name='daily_plan_item')
    op.drop_table('daily_plan_item')
    op.drop_table('daily_plan')
    op.drop_index('ix_journal_entry_user_date', table_name='journal_entry')
    op.drop_index('ix_journal_entry_user_id', table_name='journal_entry')
    op.drop_table('journal_entry')
    op.drop_index('ix_habit_event_user_created', table_name='habit_event')
    op.drop_index('ix_habit_event_user_date', table_name='habit_event')
    op.drop_index('ix_habit_event_user_id', table_name='habit_event')
    op.drop_index('ix_habit_event_habit_id', table_name='habit_event')
    op.drop_table('habit_event')
    op.drop_index('ix_habit_user_archived', table_name='habit')
    op.drop_index('ix_habit_user_id', table_name='habit')
    op.drop_table('habit')
