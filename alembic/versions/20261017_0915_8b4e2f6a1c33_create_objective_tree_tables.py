"""create_objective_tree_tables

Revision ID: 8b4e2f6a1c33
Revises: 3f1a9c2d7b10
Create Date: 2026-10-17 09:15:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = '8b4e2f6a1c33'
down_revision: Union[str, None] = '3f1a9c2d7b10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

HEALTH = ('Red', 'Amber', 'Green')
TRENDS = ('Improving', 'Stable', 'Declining')
LIFECYCLE = ('Draft', 'Active', 'Paused', 'Completed', 'Cancelled')


def _derived_columns(first: bool) -> list[sa.Column]:
    """Roll-up output shared by every tree level; enum types are created once."""
    return [
        sa.Column('current_health', sa.Enum(*HEALTH, name='health', create_type=first), nullable=False, server_default='Green'),
        sa.Column('risk_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('confidence_trend', sa.Enum(*TRENDS, name='confidence_trend', create_type=first), nullable=False, server_default='Stable'),
        sa.Column('last_heartbeat_on', sa.Date(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _org_column() -> sa.Column:
    return sa.Column('org_id', UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False)


def upgrade() -> None:
    """Create objectives, outcomes, key_results and initiatives."""
    op.create_table(
        'objectives',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        _org_column(),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('owner_id', sa.String(length=255), nullable=False),
        sa.Column('strategic_value', sa.Enum('High', 'Medium', 'Low', name='strategic_value'), nullable=False),
        sa.Column('target_date', sa.Date(), nullable=False),
        sa.Column('status', sa.Enum(*LIFECYCLE, name='lifecycle_status'), nullable=False, server_default='Draft'),
        *_derived_columns(first=True),
        sa.CheckConstraint('risk_score >= 0 AND risk_score <= 100', name='ck_objectives_risk_range'),
    )
    op.create_index('idx_objectives_org_id', 'objectives', ['org_id'])
    op.create_index('idx_objectives_org_status', 'objectives', ['org_id', 'status'])

    op.create_table(
        'outcomes',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        _org_column(),
        sa.Column('objective_id', UUID(as_uuid=True), sa.ForeignKey('objectives.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('goal', sa.String(length=500), nullable=False),
        sa.Column('benefit', sa.Text(), nullable=True),
        sa.Column('owner_id', sa.String(length=255), nullable=False),
        sa.Column('heartbeat_cadence', sa.JSON(), nullable=True),
        *_derived_columns(first=False),
    )
    op.create_index('idx_outcomes_org_id', 'outcomes', ['org_id'])
    op.create_index('idx_outcomes_objective_id', 'outcomes', ['objective_id'])

    op.create_table(
        'key_results',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        _org_column(),
        sa.Column('outcome_id', UUID(as_uuid=True), sa.ForeignKey('outcomes.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.Column('owner_id', sa.String(length=255), nullable=False),
        sa.Column('heartbeat_cadence', sa.JSON(), nullable=True),
        *_derived_columns(first=False),
    )
    op.create_index('idx_key_results_org_id', 'key_results', ['org_id'])
    op.create_index('idx_key_results_outcome_id', 'key_results', ['outcome_id'])

    op.create_table(
        'initiatives',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        _org_column(),
        sa.Column('key_result_id', UUID(as_uuid=True), sa.ForeignKey('key_results.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('owner_id', sa.String(length=255), nullable=False),
        sa.Column('link', sa.String(length=1000), nullable=True),
        sa.Column('status', sa.Enum(*LIFECYCLE, name='lifecycle_status', create_type=False), nullable=False, server_default='Active'),
        sa.Column('heartbeat_cadence', sa.JSON(), nullable=True),
        *_derived_columns(first=False),
    )
    op.create_index('idx_initiatives_org_id', 'initiatives', ['org_id'])
    op.create_index('idx_initiatives_key_result_id', 'initiatives', ['key_result_id'])


def downgrade() -> None:
    """Drop the objective tree, leaves first."""
    op.drop_index('idx_initiatives_key_result_id', table_name='initiatives')
    op.drop_index('idx_initiatives_org_id', table_name='initiatives')
    op.drop_table('initiatives')
    op.drop_index('idx_key_results_outcome_id', table_name='key_results')
    op.drop_index('idx_key_results_org_id', table_name='key_results')
    op.drop_table('key_results')
    op.drop_index('idx_outcomes_objective_id', table_name='outcomes')
    op.drop_index('idx_outcomes_org_id', table_name='outcomes')
    op.drop_table('outcomes')
    op.drop_index('idx_objectives_org_status', table_name='objectives')
    op.drop_index('idx_objectives_org_id', table_name='objectives')
    op.drop_table('objectives')

    for enum_name in ('lifecycle_status', 'strategic_value', 'confidence_trend', 'health'):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
