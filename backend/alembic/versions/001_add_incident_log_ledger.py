"""Add users, incident_logs and incident_log_revisions tables

Revision ID: 001_add_incident_log_ledger
Revises:
Create Date: 2026-10-12 09:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_add_incident_log_ledger'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the ledger tables."""
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('username', sa.String(length=100), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=50), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('callsign', sa.String(length=50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table(
        'incident_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('log_number', sa.String(length=50), nullable=False),
        sa.Column('event_id', sa.String(length=36), nullable=True),
        sa.Column('occurrence', sa.Text(), nullable=False),
        sa.Column('action_taken', sa.Text(), nullable=True),
        sa.Column('incident_type', sa.String(length=100), nullable=False),
        sa.Column('priority', sa.String(length=20), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('callsign_from', sa.String(length=50), nullable=True),
        sa.Column('callsign_to', sa.String(length=50), nullable=True),
        sa.Column('status', sa.String(length=30), nullable=False),
        sa.Column('time_of_occurrence', sa.DateTime(timezone=True), nullable=False),
        sa.Column('time_logged', sa.DateTime(timezone=True), nullable=False),
        sa.Column('entry_type', sa.String(length=20), nullable=False),
        sa.Column('retrospective_justification', sa.Text(), nullable=True),
        sa.Column('logged_by_user_id', sa.String(length=36), nullable=False),
        sa.Column('logged_by_role', sa.String(length=50), nullable=True),
        sa.Column('logged_by_callsign', sa.String(length=50), nullable=True),
        sa.Column('is_amended', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revision_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_incident_logs_log_number', 'incident_logs', ['log_number'], unique=True)
    op.create_index('ix_incident_logs_event_id', 'incident_logs', ['event_id'], unique=False)
    op.create_index('ix_incident_logs_incident_type', 'incident_logs', ['incident_type'], unique=False)
    op.create_index('ix_incident_logs_logged_by_user_id', 'incident_logs', ['logged_by_user_id'], unique=False)

    op.create_table(
        'incident_log_revisions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('incident_log_id', sa.Integer(), nullable=False),
        sa.Column('revision_number', sa.Integer(), nullable=False),
        sa.Column('field_changed', sa.String(length=50), nullable=False),
        sa.Column('old_value', sa.JSON(), nullable=True),
        sa.Column('new_value', sa.JSON(), nullable=True),
        sa.Column('change_type', sa.String(length=30), nullable=False),
        sa.Column('change_reason', sa.Text(), nullable=False),
        sa.Column('changed_by_user_id', sa.String(length=36), nullable=False),
        sa.Column('changed_by_callsign', sa.String(length=50), nullable=True),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['incident_log_id'], ['incident_logs.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('incident_log_id', 'revision_number', name='uq_incident_log_revision_number')
    )
    op.create_index('ix_incident_log_revisions_incident_log_id', 'incident_log_revisions', ['incident_log_id'], unique=False)
    op.create_index('ix_incident_log_revisions_changed_by_user_id', 'incident_log_revisions', ['changed_by_user_id'], unique=False)


def downgrade() -> None:
    """Drop the ledger tables."""
    op.drop_index('ix_incident_log_revisions_changed_by_user_id', table_name='incident_log_revisions')
    op.drop_index('ix_incident_log_revisions_incident_log_id', table_name='incident_log_revisions')
    op.drop_table('incident_log_revisions')
    op.drop_index('ix_incident_logs_logged_by_user_id', table_name='incident_logs')
    op.drop_index('ix_incident_logs_incident_type', table_name='incident_logs')
    op.drop_index('ix_incident_logs_event_id', table_name='incident_logs')
    op.drop_index('ix_incident_logs_log_number', table_name='incident_logs')
    op.drop_table('incident_logs')
    op.drop_index('ix_users_username', table_name='users')
    op.drop_table('users')
