"""Create calendar integration, event and sync log tables

Revision ID: 3f7a1c2e9b04
Revises:
Create Date: 2026-10-19

Creates calendar_integrations (one per user and provider, encrypted
credentials, run lock), calendar_events (canonical events, unique per
integration and provider event id) and calendar_sync_logs.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from calendar_sync.models.base import GUID, UTCDateTime


# revision identifiers, used by Alembic.
revision: str = '3f7a1c2e9b04'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _json():
    return sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade() -> None:
    op.create_table('calendar_integrations',
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False),
        sa.Column('provider_account_id', sa.String(length=255), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('token_expiry', UTCDateTime(), nullable=True),
        sa.Column('calendar_id', sa.String(length=1024), nullable=False),
        sa.Column('calendar_name', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('sync_enabled', sa.Boolean(), nullable=False),
        sa.Column('last_sync_at', UTCDateTime(), nullable=True),
        sa.Column('sync_errors', _json(), nullable=True),
        sa.Column('settings', _json(), nullable=True),
        sa.Column('sync_in_progress', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('sync_lock_acquired_at', UTCDateTime(), nullable=True),
        sa.Column('id', GUID(), nullable=False),
        sa.Column('created_at', UTCDateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', UTCDateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'provider', name='uq_calendar_integration_user_provider')
    )
    with op.batch_alter_table('calendar_integrations', schema=None) as batch_op:
        batch_op.create_index('ix_calendar_integrations_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_calendar_integrations_provider', ['provider'], unique=False)
        batch_op.create_index('ix_calendar_integrations_active', ['is_active', 'sync_enabled'], unique=False)

    op.create_table('calendar_events',
        sa.Column('integration_id', GUID(), nullable=False),
        sa.Column('provider_event_id', sa.String(length=1024), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_time', UTCDateTime(), nullable=False),
        sa.Column('end_time', UTCDateTime(), nullable=False),
        sa.Column('timezone', sa.String(length=100), nullable=False),
        sa.Column('is_all_day', sa.Boolean(), nullable=False),
        sa.Column('location', sa.String(length=1000), nullable=True),
        sa.Column('attendees', _json(), nullable=False),
        sa.Column('recurrence_rule', sa.String(length=500), nullable=True),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('visibility', sa.String(length=50), nullable=True),
        sa.Column('session_id', sa.String(length=255), nullable=True),
        sa.Column('is_coaching_session', sa.Boolean(), nullable=False),
        sa.Column('is_blocked', sa.Boolean(), nullable=False),
        sa.Column('last_sync_at', UTCDateTime(), nullable=True),
        sa.Column('sync_status', sa.String(length=50), nullable=False),
        sa.Column('sync_errors', _json(), nullable=True),
        sa.Column('id', GUID(), nullable=False),
        sa.Column('created_at', UTCDateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', UTCDateTime(), nullable=True),
        sa.ForeignKeyConstraint(['integration_id'], ['calendar_integrations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('integration_id', 'provider_event_id', name='uq_calendar_event_integration_provider_event')
    )
    with op.batch_alter_table('calendar_events', schema=None) as batch_op:
        batch_op.create_index('ix_calendar_events_integration', ['integration_id'], unique=False)
        batch_op.create_index('ix_calendar_events_time_range', ['integration_id', 'start_time', 'end_time'], unique=False)
        batch_op.create_index('ix_calendar_events_session', ['session_id'], unique=False)
        batch_op.create_index('ix_calendar_events_sync_status', ['sync_status'], unique=False)

    op.create_table('calendar_sync_logs',
        sa.Column('integration_id', GUID(), nullable=False),
        sa.Column('sync_type', sa.String(length=50), nullable=False),
        sa.Column('direction', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('phase', sa.String(length=50), nullable=False),
        sa.Column('events_processed', sa.Integer(), nullable=False),
        sa.Column('events_created', sa.Integer(), nullable=False),
        sa.Column('events_updated', sa.Integer(), nullable=False),
        sa.Column('events_deleted', sa.Integer(), nullable=False),
        sa.Column('errors', _json(), nullable=False),
        sa.Column('started_at', UTCDateTime(), nullable=False),
        sa.Column('completed_at', UTCDateTime(), nullable=True),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.Column('id', GUID(), nullable=False),
        sa.Column('created_at', UTCDateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', UTCDateTime(), nullable=True),
        sa.ForeignKeyConstraint(['integration_id'], ['calendar_integrations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('calendar_sync_logs', schema=None) as batch_op:
        batch_op.create_index('ix_calendar_sync_logs_integration', ['integration_id'], unique=False)
        batch_op.create_index('ix_calendar_sync_logs_status', ['status'], unique=False)
        batch_op.create_index('ix_calendar_sync_logs_started_at', ['started_at'], unique=False)


def downgrade() -> None:
    with op.batch_alter_table('calendar_sync_logs', schema=None) as batch_op:
        batch_op.drop_index('ix_calendar_sync_logs_started_at')
        batch_op.drop_index('ix_calendar_sync_logs_status')
        batch_op.drop_index('ix_calendar_sync_logs_integration')
    op.drop_table('calendar_sync_logs')

    with op.batch_alter_table('calendar_events', schema=None) as batch_op:
        batch_op.drop_index('ix_calendar_events_sync_status')
        batch_op.drop_index('ix_calendar_events_session')
        batch_op.drop_index('ix_calendar_events_time_range')
        batch_op.drop_index('ix_calendar_events_integration')
    op.drop_table('calendar_events')

    with op.batch_alter_table('calendar_integrations', schema=None) as batch_op:
        batch_op.drop_index('ix_calendar_integrations_active')
        batch_op.drop_index('ix_calendar_integrations_provider')
        batch_op.drop_index('ix_calendar_integrations_user_id')
    op.drop_table('calendar_integrations')
