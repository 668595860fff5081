"""create users, credentials and transfer tables

Revision ID: a1f4c2d7e9b3
Revises:
Create Date: 2025-12-10 09:00:00.000000

Initial schema for Drive Handoff:
1. users               - Google accounts that have signed in
2. oauth_credentials   - per-user Google tokens (one row per provider)
3. transfer_sessions   - sender/receiver pairing with a frozen file manifest
4. file_transfers      - one row per manifest entry, per-file status
5. audit_logs          - who did what to which session
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSON


# revision identifiers, used by Alembic.
revision: str = 'a1f4c2d7e9b3'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


SESSION_STATUSES = (
    'pending', 'authenticated', 'file_selected', 'transferring',
    'completed', 'failed', 'cancelled',
)
FILE_STATUSES = ('pending', 'transferring', 'completed', 'failed', 'skipped')


def _in_list(column: str, values: Sequence[str]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


def upgrade() -> None:
    """Create all tables."""
    # -------------------------------------------------------------------------
    # users
    # -------------------------------------------------------------------------
    op.create_table(
        'users',
        sa.Column('id', UUID(), nullable=False),
        sa.Column('google_id', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=True),
        sa.Column('avatar_url', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_users_google_id'), 'users', ['google_id'], unique=True)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    # -------------------------------------------------------------------------
    # oauth_credentials
    # -------------------------------------------------------------------------
    op.create_table(
        'oauth_credentials',
        sa.Column('id', UUID(), nullable=False),
        sa.Column('user_id', UUID(), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('token_type', sa.String(length=50), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scopes', JSON(), nullable=True),
        sa.Column('extra_data', JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('user_id', 'provider', name='uq_oauth_credentials_user_provider'),
    )
    op.create_index(op.f('ix_oauth_credentials_user_id'), 'oauth_credentials', ['user_id'], unique=False)
    op.create_index(op.f('ix_oauth_credentials_provider'), 'oauth_credentials', ['provider'], unique=False)

    # -------------------------------------------------------------------------
    # transfer_sessions
    # -------------------------------------------------------------------------
    op.create_table(
        'transfer_sessions',
        sa.Column('id', UUID(), nullable=False),
        sa.Column('session_token', sa.String(length=255), nullable=False),
        sa.Column('sender_id', UUID(), nullable=False),
        sa.Column('receiver_id', UUID(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('file_manifest', JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['receiver_id'], ['users.id'], ondelete='CASCADE'),
        sa.CheckConstraint(_in_list('status', SESSION_STATUSES), name='transfer_session_status'),
        sa.CheckConstraint('sender_id <> receiver_id', name='ck_transfer_sessions_distinct_participants'),
    )
    op.create_index(op.f('ix_transfer_sessions_session_token'), 'transfer_sessions', ['session_token'], unique=True)
    op.create_index(op.f('ix_transfer_sessions_sender_id'), 'transfer_sessions', ['sender_id'], unique=False)
    op.create_index(op.f('ix_transfer_sessions_receiver_id'), 'transfer_sessions', ['receiver_id'], unique=False)
    op.create_index(op.f('ix_transfer_sessions_status'), 'transfer_sessions', ['status'], unique=False)
    op.create_index(op.f('ix_transfer_sessions_expires_at'), 'transfer_sessions', ['expires_at'], unique=False)

    # -------------------------------------------------------------------------
    # file_transfers
    # -------------------------------------------------------------------------
    op.create_table(
        'file_transfers',
        sa.Column('id', UUID(), nullable=False),
        sa.Column('session_id', UUID(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('source_file_id', sa.String(length=255), nullable=False),
        sa.Column('file_name', sa.String(length=500), nullable=False),
        sa.Column('file_type', sa.String(length=255), nullable=True),
        sa.Column('file_size', sa.BigInteger(), nullable=True),
        sa.Column('original_owner_id', UUID(), nullable=False),
        sa.Column('new_owner_id', UUID(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('transfer_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('transfer_completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['session_id'], ['transfer_sessions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['original_owner_id'], ['users.id']),
        sa.ForeignKeyConstraint(['new_owner_id'], ['users.id']),
        sa.UniqueConstraint('session_id', 'position', name='uq_file_transfers_session_position'),
        sa.CheckConstraint(_in_list('status', FILE_STATUSES), name='file_transfer_status'),
    )
    op.create_index(op.f('ix_file_transfers_session_id'), 'file_transfers', ['session_id'], unique=False)
    op.create_index(op.f('ix_file_transfers_source_file_id'), 'file_transfers', ['source_file_id'], unique=False)
    op.create_index(op.f('ix_file_transfers_status'), 'file_transfers', ['status'], unique=False)

    # -------------------------------------------------------------------------
    # audit_logs
    # -------------------------------------------------------------------------
    op.create_table(
        'audit_logs',
        sa.Column('id', UUID(), nullable=False),
        sa.Column('user_id', UUID(), nullable=True),
        sa.Column('session_id', UUID(), nullable=True),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('resource_type', sa.String(length=50), nullable=True),
        sa.Column('resource_id', sa.String(length=255), nullable=True),
        sa.Column('details', JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['session_id'], ['transfer_sessions.id'], ondelete='SET NULL'),
    )
    op.create_index(op.f('ix_audit_logs_user_id'), 'audit_logs', ['user_id'], unique=False)
    op.create_index(op.f('ix_audit_logs_session_id'), 'audit_logs', ['session_id'], unique=False)
    op.create_index(op.f('ix_audit_logs_action'), 'audit_logs', ['action'], unique=False)
    op.create_index(op.f('ix_audit_logs_created_at'), 'audit_logs', ['created_at'], unique=False)


def downgrade() -> None:
    """Drop all tables (reverse dependency order)."""
    op.drop_table('audit_logs')
    op.drop_table('file_transfers')
    op.drop_table('transfer_sessions')
    op.drop_table('oauth_credentials')
    op.drop_table('users')
