"""create_heartbeats_table

Revision ID: c7d5a3e9f2b4
Revises: 8b4e2f6a1c33
Create Date: 2026-10-17 09:30:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = 'c7d5a3e9f2b4'
down_revision: Union[str, None] = '8b4e2f6a1c33'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the append-only heartbeats table."""
    op.create_table(
        'heartbeats',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('org_id', UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('objective_id', UUID(as_uuid=True), sa.ForeignKey('objectives.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('key_result_id', UUID(as_uuid=True), sa.ForeignKey('key_results.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('initiative_id', UUID(as_uuid=True), sa.ForeignKey('initiatives.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('health_signal', sa.Enum('green', 'yellow', 'red', name='health_signal'), nullable=False),
        sa.Column('confidence', sa.Enum('High', 'Medium', 'Low', name='confidence'), nullable=False),
        sa.Column('narrative', sa.Text(), nullable=False),
        sa.Column('confidence_to_expected_impact', sa.Float(), nullable=True),
        sa.Column('leading_indicators', sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column('evidence', sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column('risks', sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column('owner_attestation', sa.JSON(), nullable=True),
        sa.Column('confidence_assessment', sa.JSON(), nullable=True),
        sa.Column('author_sub', sa.String(length=255), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "(CASE WHEN objective_id IS NULL THEN 0 ELSE 1 END)"
            " + (CASE WHEN key_result_id IS NULL THEN 0 ELSE 1 END)"
            " + (CASE WHEN initiative_id IS NULL THEN 0 ELSE 1 END) = 1",
            name='ck_heartbeats_single_target',
        ),
        sa.CheckConstraint('period_start <= period_end', name='ck_heartbeats_period'),
        sa.CheckConstraint(
            'confidence_to_expected_impact IS NULL'
            ' OR (confidence_to_expected_impact >= 0 AND confidence_to_expected_impact <= 1)',
            name='ck_heartbeats_impact_range',
        ),
    )
    op.create_index('idx_heartbeats_org_id', 'heartbeats', ['org_id'])
    op.create_index('idx_heartbeats_objective_id', 'heartbeats', ['objective_id'])
    op.create_index('idx_heartbeats_key_result_id', 'heartbeats', ['key_result_id'])
    op.create_index('idx_heartbeats_initiative_id', 'heartbeats', ['initiative_id'])


def downgrade() -> None:
    """Drop heartbeats table and its enums."""
    op.drop_index('idx_heartbeats_initiative_id', table_name='heartbeats')
    op.drop_index('idx_heartbeats_key_result_id', table_name='heartbeats')
    op.drop_index('idx_heartbeats_objective_id', table_name='heartbeats')
    op.drop_index('idx_heartbeats_org_id', table_name='heartbeats')
    op.drop_table('heartbeats')
    sa.Enum(name='confidence').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='health_signal').drop(op.get_bind(), checkfirst=True)
