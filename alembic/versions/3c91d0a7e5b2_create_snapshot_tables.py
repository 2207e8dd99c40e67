"""create snapshot tables

Revision ID: 3c91d0a7e5b2
Revises:
Create Date: 2026-10-19 10:40:00.000000

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c91d0a7e5b2'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'content_items',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('creator_id', sa.String(), nullable=False),
        sa.Column('duration_seconds', sa.Float(), nullable=True),
        sa.Column('upload_time', sa.BigInteger(), nullable=False),
        sa.Column('video_url', sa.Text(), nullable=True),
        sa.Column('views', sa.Integer(), nullable=True),
        sa.Column('likes', sa.Integer(), nullable=True),
        sa.Column('comments', sa.Integer(), nullable=True),
        sa.Column('shares', sa.Integer(), nullable=True),
        sa.Column('quality_score', sa.Float(), nullable=True),
        sa.Column('is_private', sa.Boolean(), nullable=True),
    )
    op.create_index('ix_content_items_id', 'content_items', ['id'])
    op.create_index('ix_content_items_category', 'content_items', ['category'])
    op.create_index('ix_content_items_creator_id', 'content_items', ['creator_id'])

    op.create_table(
        'behavior_events',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('video_id', sa.String(), nullable=False),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('watch_time_seconds', sa.Float(), nullable=True),
        sa.Column('timestamp', sa.BigInteger(), nullable=False),
        sa.Column('category', sa.String(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=True),
    )
    op.create_index('ix_behavior_events_user_id', 'behavior_events', ['user_id'])
    op.create_index('ix_behavior_events_video_id', 'behavior_events', ['video_id'])

    op.create_table(
        'user_exclusions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('item_id', sa.String(), nullable=False),
        sa.Column('kind', sa.String(), nullable=False),
    )
    op.create_index('ix_user_exclusions_user_id', 'user_exclusions', ['user_id'])

    op.create_table(
        'user_preferences',
        sa.Column('user_id', sa.String(), primary_key=True),
        sa.Column('payload', sa.JSON(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('user_preferences')
    op.drop_index('ix_user_exclusions_user_id', table_name='user_exclusions')
    op.drop_table('user_exclusions')
    op.drop_index('ix_behavior_events_video_id', table_name='behavior_events')
    op.drop_index('ix_behavior_events_user_id', table_name='behavior_events')
    op.drop_table('behavior_events')
    op.drop_index('ix_content_items_creator_id', table_name='content_items')
    op.drop_index('ix_content_items_category', table_name='content_items')
    op.drop_index('ix_content_items_id', table_name='content_items')
    op.drop_table('content_items')
