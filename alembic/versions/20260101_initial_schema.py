"""Initial OpenRevenue schema

Revision ID: 20260101_initial_schema
Revises:
Create Date: 2026-01-01
"""
from alembic import op
import sqlalchemy as sa
from typing import Union


# revision identifiers, used by Alembic.
revision: str = '20260101_initial_schema'
down_revision: Union[str, None] = None
branch_labels = None
depends_on = None

# Enum columns store member names
trust_level = sa.Enum('PLATFORM_VERIFIED', 'SELF_REPORTED', name='trustlevel')
connection_type = sa.Enum('DIRECT', 'STANDALONE', name='connectiontype')
verified_by = sa.Enum('PLATFORM', 'SELF', name='verifiedby')
sync_status = sa.Enum('SUCCESS', 'ERROR', name='syncstatus')
startup_tier = sa.Enum('BRONZE', 'SILVER', 'GOLD', name='startuptier')


def upgrade() -> None:
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('slug', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_categories_slug', 'categories', ['slug'], unique=True)

    op.create_table(
        'startups',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('slug', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('logo', sa.String(), nullable=True),
        sa.Column('website', sa.String(), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('is_published', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('published_at', sa.DateTime(), nullable=True),
        sa.Column('tier', startup_tier, nullable=True),
        sa.Column('feature_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_featured', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('featured_at', sa.DateTime(), nullable=True),
        sa.Column('featured_until', sa.DateTime(), nullable=True),
        sa.Column('feature_impressions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('feature_clicks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_startups_slug', 'startups', ['slug'], unique=True)
    op.create_index('ix_startups_is_published', 'startups', ['is_published'], unique=False)
    op.create_index('ix_startups_is_featured', 'startups', ['is_featured'], unique=False)

    op.create_table(
        'privacy_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('startup_id', sa.Integer(), nullable=False),
        sa.Column('show_revenue', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('show_mrr', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('show_customers', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('show_growth', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.ForeignKeyConstraint(['startup_id'], ['startups.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('startup_id')
    )

    op.create_table(
        'milestones',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('startup_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('target_value', sa.Float(), nullable=True),
        sa.Column('achieved_at', sa.DateTime(), nullable=True),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['startup_id'], ['startups.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_milestones_startup_id', 'milestones', ['startup_id'], unique=False)

    op.create_table(
        'stories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('startup_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('slug', sa.String(), nullable=False),
        sa.Column('is_published', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('published_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['startup_id'], ['startups.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_stories_startup_id', 'stories', ['startup_id'], unique=False)

    op.create_table(
        'data_connections',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('startup_id', sa.Integer(), nullable=False),
        sa.Column('type', connection_type, nullable=False),
        sa.Column('provider', sa.String(), nullable=True),
        sa.Column('api_key_encrypted', sa.String(), nullable=True),
        sa.Column('api_secret_encrypted', sa.String(), nullable=True),
        sa.Column('endpoint', sa.String(), nullable=True),
        sa.Column('standalone_key_encrypted', sa.String(), nullable=True),
        sa.Column('public_key', sa.String(), nullable=True),
        sa.Column('trust_level', trust_level, nullable=False),
        sa.Column('verification_method', sa.String(), nullable=True),
        sa.Column('last_verified_at', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        sa.Column('last_sync_status', sync_status, nullable=True),
        sa.Column('last_sync_error', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['startup_id'], ['startups.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_data_connections_startup_id', 'data_connections', ['startup_id'], unique=False)
    op.create_index('ix_data_connections_is_active', 'data_connections', ['is_active'], unique=False)

    op.create_table(
        'revenue_snapshots',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('startup_id', sa.Integer(), nullable=False),
        sa.Column('source_id', sa.Integer(), nullable=False),
        sa.Column('source_type', connection_type, nullable=False),
        sa.Column('snapshot_date', sa.Date(), nullable=False),
        sa.Column('revenue', sa.Float(), nullable=False, server_default='0'),
        sa.Column('mrr', sa.Float(), nullable=True),
        sa.Column('arr', sa.Float(), nullable=True),
        sa.Column('customer_count', sa.Integer(), nullable=True),
        sa.Column('currency', sa.String(), nullable=False, server_default='USD'),
        sa.Column('trust_level', trust_level, nullable=False),
        sa.Column('verified_by', verified_by, nullable=False),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['startup_id'], ['startups.id']),
        sa.ForeignKeyConstraint(['source_id'], ['data_connections.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('startup_id', 'snapshot_date', 'source_id', name='uq_snapshot_startup_date_source')
    )
    op.create_index('ix_revenue_snapshots_startup_id', 'revenue_snapshots', ['startup_id'], unique=False)
    op.create_index('ix_revenue_snapshots_source_id', 'revenue_snapshots', ['source_id'], unique=False)
    op.create_index('ix_revenue_snapshots_snapshot_date', 'revenue_snapshots', ['snapshot_date'], unique=False)

    op.create_table(
        'leaderboard_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('startup_id', sa.Integer(), nullable=False),
        sa.Column('rank', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('mrr', sa.Float(), nullable=False, server_default='0'),
        sa.Column('arr', sa.Float(), nullable=False, server_default='0'),
        sa.Column('total_revenue', sa.Float(), nullable=False, server_default='0'),
        sa.Column('customer_count', sa.Integer(), nullable=True),
        sa.Column('growth_rate', sa.Float(), nullable=True),
        sa.Column('currency', sa.String(), nullable=False, server_default='USD'),
        sa.Column('last_updated', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['startup_id'], ['startups.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('startup_id')
    )
    op.create_index('ix_leaderboard_entries_rank', 'leaderboard_entries', ['rank'], unique=False)

    op.create_table(
        'sync_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('connection_id', sa.Integer(), nullable=False),
        sa.Column('status', sync_status, nullable=False),
        sa.Column('records_processed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error', sa.String(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['connection_id'], ['data_connections.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_sync_logs_connection_id', 'sync_logs', ['connection_id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_sync_logs_connection_id', table_name='sync_logs')
    op.drop_table('sync_logs')
    op.drop_index('ix_leaderboard_entries_rank', table_name='leaderboard_entries')
    op.drop_table('leaderboard_entries')
    op.drop_index('ix_revenue_snapshots_snapshot_date', table_name='revenue_snapshots')
    op.drop_index('ix_revenue_snapshots_source_id', table_name='revenue_snapshots')
    op.drop_index('ix_revenue_snapshots_startup_id', table_name='revenue_snapshots')
    op.drop_table('revenue_snapshots')
    op.drop_index('ix_data_connections_is_active', table_name='data_connections')
    op.drop_index('ix_data_connections_startup_id', table_name='data_connections')
    op.drop_table('data_connections')
    op.drop_index('ix_stories_startup_id', table_name='stories')
    op.drop_table('stories')
    op.drop_index('ix_milestones_startup_id', table_name='milestones')
    op.drop_table('milestones')
    op.drop_table('privacy_settings')
    op.drop_index('ix_startups_is_featured', table_name='startups')
    op.drop_index('ix_startups_is_published', table_name='startups')
    op.drop_index('ix_startups_slug', table_name='startups')
    op.drop_table('startups')
    op.drop_index('ix_categories_slug', table_name='categories')
    op.drop_table('categories')

    bind = op.get_bind()
    for enum in (startup_tier, sync_status, verified_by, connection_type, trust_level):
        enum.drop(bind, checkfirst=True)
