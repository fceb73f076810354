"""create_tenancy_tables

Revision ID: 3f1a9c2d7b10
Revises: 
Create Date: 2026-10-17 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers, used by Alembic.
revision: str = '3f1a9c2d7b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create organizations, user_profiles, memberships and invites."""
    op.create_table(
        'organizations',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('subscription_tier', sa.Enum('Free', 'Pro', 'Enterprise', name='subscription_tier'), nullable=False, server_default='Free'),
        sa.Column('status', sa.Enum('Active', 'Suspended', name='organization_status'), nullable=False, server_default='Active'),
        sa.Column('default_owner_sub', sa.String(length=255), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    # One default organization per principal; the onboarding idempotency key.
    op.create_index('idx_organizations_default_owner_sub', 'organizations', ['default_owner_sub'], unique=True)

    op.create_table(
        'user_profiles',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_sub', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=100), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('idx_user_profiles_user_sub', 'user_profiles', ['user_sub'], unique=True)
    op.create_index('idx_user_profiles_email', 'user_profiles', ['email'])

    op.create_table(
        'memberships',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('org_id', UUID(as_uuid=True), nullable=False),
        sa.Column('user_sub', sa.String(length=255), nullable=False),
        sa.Column('role', sa.Enum('Owner', 'Admin', 'Member', 'BillingAdmin', name='member_role'), nullable=False),
        sa.Column('status', sa.Enum('Active', 'Suspended', name='membership_status'), nullable=False, server_default='Active'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_foreign_key(
        'memberships_org_id_fkey',
        'memberships', 'organizations',
        ['org_id'], ['id'],
        ondelete='CASCADE'
    )
    op.create_unique_constraint('uq_memberships_org_user', 'memberships', ['org_id', 'user_sub'])
    op.create_index('idx_memberships_org_id', 'memberships', ['org_id'])
    op.create_index('idx_memberships_user_sub', 'memberships', ['user_sub'])

    op.create_table(
        'invites',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('org_id', UUID(as_uuid=True), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column(
            'role',
            sa.Enum('Owner', 'Admin', 'Member', 'BillingAdmin', name='member_role', create_type=False),
            nullable=False,
        ),
        sa.Column('token', sa.String(length=255), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('invited_by_sub', sa.String(length=255), nullable=False),
        sa.Column('status', sa.Enum('Pending', 'Accepted', 'Expired', name='invite_status'), nullable=False, server_default='Pending'),
        sa.Column('accepted_by_sub', sa.String(length=255), nullable=True),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_foreign_key(
        'invites_org_id_fkey',
        'invites', 'organizations',
        ['org_id'], ['id'],
        ondelete='CASCADE'
    )
    op.create_index('idx_invites_org_id', 'invites', ['org_id'])
    op.create_index('idx_invites_email', 'invites', ['email'])
    # Redemption looks invites up by token only.
    op.create_index('idx_invites_token', 'invites', ['token'], unique=True)


def downgrade() -> None:
    """Drop tenancy tables and their enums."""
    op.drop_index('idx_invites_token', table_name='invites')
    op.drop_index('idx_invites_email', table_name='invites')
    op.drop_index('idx_invites_org_id', table_name='invites')
    op.drop_constraint('invites_org_id_fkey', 'invites', type_='foreignkey')
    op.drop_table('invites')

    op.drop_index('idx_memberships_user_sub', table_name='memberships')
    op.drop_index('idx_memberships_org_id', table_name='memberships')
    op.drop_constraint('uq_memberships_org_user', 'memberships', type_='unique')
    op.drop_constraint('memberships_org_id_fkey', 'memberships', type_='foreignkey')
    op.drop_table('memberships')

    op.drop_index('idx_user_profiles_email', table_name='user_profiles')
    op.drop_index('idx_user_profiles_user_sub', table_name='user_profiles')
    op.drop_table('user_profiles')

    op.drop_index('idx_organizations_default_owner_sub', table_name='organizations')
    op.drop_table('organizations')

    for enum_name in ('invite_status', 'membership_status', 'member_role', 'organization_status', 'subscription_tier'):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
