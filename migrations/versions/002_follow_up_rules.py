"""Add inactivity follow-up rules

Revision ID: 002_follow_up_rules
Revises: 001_engagement_tables
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '002_follow_up_rules'
down_revision = '001_engagement_tables'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('follow_up_rule',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('trigger_condition', sa.String(length=30), nullable=False),
        sa.Column('inactivity_hours', sa.Integer(), nullable=False),
        sa.Column('message_template', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )


def downgrade():
    op.drop_table('follow_up_rule')
