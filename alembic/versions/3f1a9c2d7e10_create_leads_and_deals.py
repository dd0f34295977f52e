"""Create leads and deals with embedded score columns

Revision ID: 3f1a9c2d7e10
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2d7e10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('leads',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('company', sa.Text(), nullable=True),
        sa.Column('job_title', sa.Text(), nullable=True),
        sa.Column('source', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('priority', sa.Text(), nullable=False),
        sa.Column('assigned_to', sa.Text(), nullable=True),
        sa.Column('converted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('engagement', sa.JSON(), nullable=True),
        sa.Column('ai_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('ai_grade', sa.Text(), nullable=False, server_default='cold'),
        sa.Column('ai_prediction', sa.JSON(), nullable=True),
        sa.Column('ai_factors', sa.JSON(), nullable=True),
        sa.Column('ai_analyzed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('score_history', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_leads_status', 'leads', ['status'])
    op.create_index('ix_leads_ai_score', 'leads', ['ai_score'])

    op.create_table('deals',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('company', sa.Text(), nullable=True),
        sa.Column('value', sa.Float(), nullable=False),
        sa.Column('currency', sa.Text(), nullable=False, server_default='USD'),
        sa.Column('stage', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('probability', sa.Integer(), nullable=False),
        sa.Column('expected_close_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('assigned_to', sa.Text(), nullable=True),
        sa.Column('engagement', sa.JSON(), nullable=True),
        sa.Column('activities', sa.JSON(), nullable=True),
        sa.Column('deal_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('ai_prediction', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_deals_stage', 'deals', ['stage'])
    op.create_index('ix_deals_status', 'deals', ['status'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_deals_status', table_name='deals')
    op.drop_index('ix_deals_stage', table_name='deals')
    op.drop_table('deals')
    op.drop_index('ix_leads_ai_score', table_name='leads')
    op.drop_index('ix_leads_status', table_name='leads')
    op.drop_table('leads')
