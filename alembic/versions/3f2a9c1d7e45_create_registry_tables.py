"""create registry tables

Revision ID: 3f2a9c1d7e45
Revises:
Create Date: 2024-05-02 10:12:41.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7e45'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create entity documents, referral claims and the audit log."""
    op.create_table(
        'entity_records',
        sa.Column('id', sa.CHAR(36), nullable=False),
        sa.Column('kind', sa.String(32), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('referral_code', sa.String(64), nullable=True),
        sa.Column('owner_user_id', sa.CHAR(36), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('document', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', 'kind'),
        sa.UniqueConstraint('kind', 'referral_code', name='uq_entity_referral_code'),
    )
    op.create_index(
        'ix_entity_kind_status_created', 'entity_records', ['kind', 'status', 'created_at']
    )
    op.create_index('ix_entity_owner', 'entity_records', ['owner_user_id'])

    op.create_table(
        'referral_links',
        sa.Column('referred_id', sa.CHAR(36), nullable=False),
        sa.Column('referrer_id', sa.CHAR(36), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('referred_id'),
    )
    op.create_index('ix_referral_links_referrer', 'referral_links', ['referrer_id'])

    op.create_table(
        'audit_events',
        sa.Column('id', sa.CHAR(36), nullable=False),
        sa.Column('entity_id', sa.CHAR(36), nullable=False),
        sa.Column('seq', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(64), nullable=False),
        sa.Column('payload_json', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('entity_id', 'seq', name='uq_audit_entity_seq'),
    )
    op.create_index('ix_audit_entity_type', 'audit_events', ['entity_id', 'type'])


def downgrade() -> None:
    """Drop all registry tables."""
    op.drop_index('ix_audit_entity_type', table_name='audit_events')
    op.drop_table('audit_events')
    op.drop_index('ix_referral_links_referrer', table_name='referral_links')
    op.drop_table('referral_links')
    op.drop_index('ix_entity_owner', table_name='entity_records')
    op.drop_index('ix_entity_kind_status_created', table_name='entity_records')
    op.drop_table('entity_records')
