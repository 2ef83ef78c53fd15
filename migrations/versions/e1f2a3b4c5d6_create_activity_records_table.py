"""Create activity_records table for tier tracking

Revision ID: e1f2a3b4c5d6
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'e1f2a3b4c5d6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create activity_records table, one row per member per community."""
    op.create_table(
        'activity_records',
        sa.Column('member_id', sa.String(32), nullable=False),
        sa.Column('community_id', sa.String(32), nullable=False),
        sa.Column('last_activity_at', sa.DateTime(), nullable=False),
        sa.Column('tier', sa.String(20), nullable=False),
        sa.Column('warned_at', sa.DateTime(), nullable=True),
        sa.Column('pending_transition', sa.String(20), nullable=True),
        sa.Column('origin', sa.String(30), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('member_id', 'community_id')
    )

    # Sweep candidate lookup and per-community listings
    op.create_index('ix_activity_records_tier_last_activity', 'activity_records', ['tier', 'last_activity_at'])
    op.create_index('ix_activity_records_community_id', 'activity_records', ['community_id'])


def downgrade():
    """Drop activity_records table."""
    op.drop_index('ix_activity_records_community_id', table_name='activity_records')
    op.drop_index('ix_activity_records_tier_last_activity', table_name='activity_records')
    op.drop_table('activity_records')
