"""add_pre_registration_tables

Revision ID: 3f9c2a7d1b04
Revises:
Create Date: 2026-10-19 09:12:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '3f9c2a7d1b04'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


delivery_channel_enum = postgresql.ENUM(
    'direct-message', 'text-message',
    name='delivery_channel_enum',
    create_type=False,
)
credential_audit_action_enum = postgresql.ENUM(
    'created', 'resent', 'regenerated', 'notes_updated', 'first_access', 'locked',
    name='credential_audit_action_enum',
    create_type=False,
)


def upgrade() -> None:
    """Upgrade schema - Add member directory and pre-registration tables."""

    # Member directory (read by the pre-registration service)
    op.create_table(
        'members',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column('auth_id', sa.String(), nullable=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('first_name', sa.String(), nullable=False),
        sa.Column('last_name', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('registration_complete', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_members_auth_id', 'members', ['auth_id'], unique=True)
    op.create_index('ix_members_email', 'members', ['email'], unique=True)

    op.create_table(
        'member_profiles',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column('member_id', UUID(as_uuid=True), nullable=False),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('city', sa.String(), nullable=True),
        sa.Column('company_name', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('member_id')
    )
    op.create_index('ix_member_profiles_phone', 'member_profiles', ['phone'])

    delivery_channel_enum.create(op.get_bind(), checkfirst=True)
    credential_audit_action_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        'pre_registration_credentials',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column('member_id', UUID(as_uuid=True), nullable=False),
        sa.Column('issued_by_id', sa.String(), nullable=False),
        sa.Column('secret_hash', sa.String(length=128), nullable=False),
        sa.Column('delivery_channel', delivery_channel_enum, nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('send_count', sa.Integer(), nullable=False),
        sa.Column('last_sent_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('first_accessed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('first_access_ip', sa.String(length=45), nullable=True),
        sa.Column('failed_attempts', sa.Integer(), nullable=False),
        sa.Column('max_attempts', sa.Integer(), nullable=False),
        sa.Column('locked_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('send_count >= 1', name='ck_prereg_send_count_positive'),
        sa.CheckConstraint('failed_attempts >= 0', name='ck_prereg_failed_non_negative'),
        sa.CheckConstraint('max_attempts >= 1', name='ck_prereg_max_attempts_positive'),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_pre_registration_credentials_member_id', 'pre_registration_credentials', ['member_id'])
    op.create_index('ix_pre_registration_credentials_expires_at', 'pre_registration_credentials', ['expires_at'])
    op.create_index(
        'ix_prereg_pending',
        'pre_registration_credentials',
        ['first_accessed_at', 'expires_at', 'created_at'],
    )

    op.create_table(
        'credential_audit_logs',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column('credential_id', UUID(as_uuid=True), nullable=False),
        sa.Column('action', credential_audit_action_enum, nullable=False),
        sa.Column('performed_by', sa.String(), nullable=False),
        sa.Column('masked_secret', sa.String(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('details', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_credential_audit_logs_credential_id', 'credential_audit_logs', ['credential_id'])


def downgrade() -> None:
    """Downgrade schema - Remove pre-registration and member directory tables."""

    op.drop_index('ix_credential_audit_logs_credential_id', table_name='credential_audit_logs')
    op.drop_table('credential_audit_logs')

    op.drop_index('ix_prereg_pending', table_name='pre_registration_credentials')
    op.drop_index('ix_pre_registration_credentials_expires_at', table_name='pre_registration_credentials')
    op.drop_index('ix_pre_registration_credentials_member_id', table_name='pre_registration_credentials')
    op.drop_table('pre_registration_credentials')

    credential_audit_action_enum.drop(op.get_bind(), checkfirst=True)
    delivery_channel_enum.drop(op.get_bind(), checkfirst=True)

    op.drop_index('ix_member_profiles_phone', table_name='member_profiles')
    op.drop_table('member_profiles')

    op.drop_index('ix_members_email', table_name='members')
    op.drop_index('ix_members_auth_id', table_name='members')
    op.drop_table('members')
