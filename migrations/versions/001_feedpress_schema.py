"""FeedPress schema

Revision ID: 001_feedpress_schema
Revises:
Create Date: 2026-10-19

Feed sources and items, generation attempts, articles and their images,
WordPress sites, publications, automation rules and scheduler locks.

feed_items carries unique indexes on (source_id, url) and (source_id, guid).
Run POST /v1/admin/dedup/reconcile before applying them to a database that
already holds duplicate rows.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_feedpress_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    print("  Creating sources table...")
    op.create_table(
        'sources',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('url', sa.Text, nullable=True),
        sa.Column('type', sa.String(32), nullable=False, server_default='rss'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('configuration', postgresql.JSONB, nullable=False, server_default='{}'),
        sa.Column('last_fetch_at', sa.DateTime, nullable=True),
        sa.Column('last_error', sa.Text, nullable=True),
        sa.Column('last_error_at', sa.DateTime, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=True),
    )

    print("  Creating articles table...")
    op.create_table(
        'articles',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('source_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('sources.id', ondelete='SET NULL'), nullable=True),
        sa.Column('feed_item_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('title', sa.Text, nullable=False),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('excerpt', sa.Text, nullable=True),
        sa.Column('slug', sa.String(255), nullable=True),
        sa.Column('meta_description', sa.Text, nullable=True),
        sa.Column('tags', postgresql.JSONB, nullable=False, server_default='[]'),
        sa.Column('categories', postgresql.JSONB, nullable=False, server_default='[]'),
        sa.Column('status', sa.String(32), nullable=False, server_default='draft'),
        sa.Column('generation_config', postgresql.JSONB, nullable=True),
        sa.Column('featured_media_id', sa.Integer, nullable=True),
        sa.Column('featured_media_url', sa.Text, nullable=True),
        sa.Column('wordpress_post_id', sa.String(64), nullable=True),
        sa.Column('wordpress_url', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('published_at', sa.DateTime, nullable=True),
    )
    op.create_index('ix_articles_status_created', 'articles', ['status', 'created_at'])
    op.create_index('ix_articles_source', 'articles', ['source_id'])

    print("  Creating feed_items table...")
    op.create_table(
        'feed_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('source_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('sources.id', ondelete='CASCADE'), nullable=False),
        sa.Column('guid', sa.String(1024), nullable=True),
        sa.Column('url', sa.Text, nullable=True),
        sa.Column('title', sa.Text, nullable=False),
        sa.Column('content', sa.Text, nullable=False, server_default=''),
        sa.Column('published_at', sa.DateTime, nullable=False),
        sa.Column('fetched_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('processed', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('article_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('articles.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('uq_feed_items_source_url', 'feed_items', ['source_id', 'url'], unique=True)
    op.create_index('uq_feed_items_source_guid', 'feed_items', ['source_id', 'guid'], unique=True)
    op.create_index('ix_feed_items_processed', 'feed_items', ['source_id', 'processed'])
    op.create_index('ix_feed_items_created_at', 'feed_items', ['created_at'])

    print("  Creating monitor_generations table...")
    op.create_table(
        'monitor_generations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('feed_item_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('feed_items.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('source_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('sources.id', ondelete='CASCADE'), nullable=False),
        sa.Column('source_name', sa.String(255), nullable=False),
        sa.Column('title', sa.Text, nullable=False),
        sa.Column('content', sa.Text, nullable=False, server_default=''),
        sa.Column('url', sa.Text, nullable=True),
        sa.Column('published_at', sa.DateTime, nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('priority', sa.String(10), nullable=False, server_default='normal'),
        sa.Column('article_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('articles.id', ondelete='SET NULL'), nullable=True),
        sa.Column('retry_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('error', sa.Text, nullable=True),
        sa.Column('raw_response', sa.Text, nullable=True),
        sa.Column('metadata', postgresql.JSONB, nullable=False, server_default='{}'),
        sa.Column('generated_at', sa.DateTime, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_monitor_generations_status', 'monitor_generations', ['status'])
    op.create_index('ix_monitor_generations_source', 'monitor_generations', ['source_id'])
    op.create_index('ix_monitor_generations_created_at', 'monitor_generations', ['created_at'])

    print("  Creating featured_images table...")
    op.create_table(
        'featured_images',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('article_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('articles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('ai_prompt', sa.Text, nullable=True),
        sa.Column('filename', sa.String(255), nullable=True),
        sa.Column('alt_text', sa.Text, nullable=True),
        sa.Column('url', sa.Text, nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('provider', sa.String(64), nullable=True),
        sa.Column('wordpress_media_id', sa.Integer, nullable=True),
        sa.Column('wordpress_url', sa.Text, nullable=True),
        sa.Column('error', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_featured_images_article_status', 'featured_images', ['article_id', 'status'])

    print("  Creating wordpress_sites and publications tables...")
    op.create_table(
        'wordpress_sites',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('url', sa.Text, nullable=False),
        sa.Column('username', sa.String(255), nullable=False),
        sa.Column('password', sa.String(255), nullable=False),
        sa.Column('default_category', sa.String(255), nullable=True),
        sa.Column('default_status', sa.String(20), nullable=False, server_default='publish'),
        sa.Column('default_author', sa.Integer, nullable=True),
        sa.Column('enable_auto_publish', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        'publications',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('article_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('articles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('site_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('wordpress_sites.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('retry_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('max_retries', sa.Integer, nullable=False, server_default='3'),
        sa.Column('external_id', sa.String(64), nullable=True),
        sa.Column('external_url', sa.Text, nullable=True),
        sa.Column('error', sa.Text, nullable=True),
        sa.Column('metadata', postgresql.JSONB, nullable=False, server_default='{}'),
        sa.Column('started_at', sa.DateTime, nullable=True),
        sa.Column('completed_at', sa.DateTime, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_publications_article_status', 'publications', ['article_id', 'status'])
    op.create_index('ix_publications_status', 'publications', ['status'])

    print("  Creating automation_rules and scheduler_locks tables...")
    op.create_table(
        'automation_rules',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('source_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('sources.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('is_enabled', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('trigger', sa.String(32), nullable=False),
        sa.Column('conditions', postgresql.JSONB, nullable=False, server_default='[]'),
        sa.Column('actions', postgresql.JSONB, nullable=False, server_default='[]'),
        sa.Column('last_executed_at', sa.DateTime, nullable=True),
        sa.Column('execution_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_automation_rules_source', 'automation_rules', ['source_id'])

    op.create_table(
        'scheduler_locks',
        sa.Column('name', sa.String(64), primary_key=True),
        sa.Column('holder', sa.String(64), nullable=False),
        sa.Column('acquired_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('expires_at', sa.DateTime, nullable=False),
    )
    print("  FeedPress schema created")


def downgrade() -> None:
    op.drop_table('scheduler_locks')
    op.drop_index('ix_automation_rules_source', 'automation_rules')
    op.drop_table('automation_rules')
    op.drop_index('ix_publications_status', 'publications')
    op.drop_index('ix_publications_article_status', 'publications')
    op.drop_table('publications')
    op.drop_table('wordpress_sites')
    op.drop_index('ix_featured_images_article_status', 'featured_images')
    op.drop_table('featured_images')
    op.drop_index('ix_monitor_generations_created_at', 'monitor_generations')
    op.drop_index('ix_monitor_generations_source', 'monitor_generations')
    op.drop_index('ix_monitor_generations_status', 'monitor_generations')
    op.drop_table('monitor_generations')
    op.drop_index('ix_feed_items_created_at', 'feed_items')
    op.drop_index('ix_feed_items_processed', 'feed_items')
    op.drop_index('uq_feed_items_source_guid', 'feed_items')
    op.drop_index('uq_feed_items_source_url', 'feed_items')
    op.drop_table('feed_items')
    op.drop_index('ix_articles_source', 'articles')
    op.drop_index('ix_articles_status_created', 'articles')
    op.drop_table('articles')
    op.drop_table('sources')
