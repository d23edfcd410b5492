"""Initial schema: api keys, usage logs, billing events, awards dataset

Revision ID: 4f1c2a7d9e10
Revises: 
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4f1c2a7d9e10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TIERS = (
    'free', 'games_starter', 'games_pro', 'film_starter', 'film_pro',
    'bundle_starter', 'bundle_pro', 'professional', 'enterprise', 'suspended',
)


def _timestamps() -> list:
    return [
        sa.Column('id', sa.UUID(), server_default=sa.text('uuid_generate_v4()'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    """Create all tables for the awards API."""
    # Enable UUID extension
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # Create enums
    op.execute("CREATE TYPE apikeytier AS ENUM ({})".format(", ".join(f"'{tier}'" for tier in TIERS)))

    # 1. API keys
    op.create_table(
        'api_keys',
        *_timestamps(),
        sa.Column('key_hash', sa.String(length=64), nullable=False),
        sa.Column('key_prefix', sa.String(length=16), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('tier', postgresql.ENUM(*TIERS, name='apikeytier', create_type=False), nullable=False, server_default='free'),
        sa.Column('allowed_domains', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('daily_limit', sa.Integer(), nullable=False, server_default='1000'),
        sa.Column('monthly_limit', sa.Integer(), nullable=False, server_default='1000'),
        sa.Column('daily_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('monthly_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('suspended', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('stripe_customer_id', sa.String(), nullable=True),
        sa.Column('stripe_subscription_id', sa.String(), nullable=True),
        sa.Column('source', sa.String(), nullable=True),
        sa.Column('notes', sa.String(), nullable=True),
        sa.Column('last_used_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('daily_used >= 0 AND monthly_used >= 0', name='ck_api_keys_usage_non_negative'),
    )
    op.create_index(op.f('ix_api_keys_key_hash'), 'api_keys', ['key_hash'], unique=True)
    op.create_index(op.f('ix_api_keys_email'), 'api_keys', ['email'])
    op.create_index(op.f('ix_api_keys_stripe_customer_id'), 'api_keys', ['stripe_customer_id'])
    op.create_index(op.f('ix_api_keys_created_at'), 'api_keys', ['created_at'])

    # 2. Usage logs (depends on api_keys)
    op.create_table(
        'api_usage_logs',
        *_timestamps(),
        sa.Column('api_key_id', sa.UUID(), nullable=True),
        sa.Column('key_prefix', sa.String(length=16), nullable=True),
        sa.Column('path', sa.String(), nullable=False),
        sa.Column('params', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('latency_ms', sa.Integer(), nullable=True),
        sa.Column('status_code', sa.Integer(), nullable=False),
        sa.Column('client_ip', sa.String(length=45), nullable=True),
        sa.Column('client_class', sa.String(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['api_key_id'], ['api_keys.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_api_usage_logs_api_key_id'), 'api_usage_logs', ['api_key_id'])
    op.create_index(op.f('ix_api_usage_logs_path'), 'api_usage_logs', ['path'])
    op.create_index(op.f('ix_api_usage_logs_timestamp'), 'api_usage_logs', ['timestamp'])
    op.create_index('ix_api_usage_logs_key_timestamp', 'api_usage_logs', ['api_key_id', 'timestamp'])

    # 3. Billing events ledger
    op.create_table(
        'billing_events',
        *_timestamps(),
        sa.Column('stripe_event_id', sa.String(), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('kind', sa.String(), nullable=True),
        sa.Column('stripe_customer_id', sa.String(), nullable=True),
        sa.Column('keys_affected', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('processed_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_billing_events_stripe_event_id'), 'billing_events', ['stripe_event_id'], unique=True)
    op.create_index(op.f('ix_billing_events_event_type'), 'billing_events', ['event_type'])
    op.create_index(op.f('ix_billing_events_stripe_customer_id'), 'billing_events', ['stripe_customer_id'])

    # 4. Awards dataset
    op.create_table(
        'ceremonies',
        *_timestamps(),
        sa.Column('domain', sa.String(), nullable=False),
        sa.Column('organization', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_ceremonies_domain'), 'ceremonies', ['domain'])
    op.create_index(op.f('ix_ceremonies_year'), 'ceremonies', ['year'])

    op.create_table(
        'award_categories',
        *_timestamps(),
        sa.Column('ceremony_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.ForeignKeyConstraint(['ceremony_id'], ['ceremonies.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_award_categories_ceremony_id'), 'award_categories', ['ceremony_id'])
    op.create_index(op.f('ix_award_categories_name'), 'award_categories', ['name'])

    op.create_table(
        'nominations',
        *_timestamps(),
        sa.Column('category_id', sa.UUID(), nullable=False),
        sa.Column('imdb_id', sa.String(), nullable=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('is_win', sa.Boolean(), nullable=False, server_default='false'),
        sa.ForeignKeyConstraint(['category_id'], ['award_categories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_nominations_category_id'), 'nominations', ['category_id'])
    op.create_index(op.f('ix_nominations_imdb_id'), 'nominations', ['imdb_id'])

    op.create_table(
        'people',
        *_timestamps(),
        sa.Column('name', sa.String(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_people_name'), 'people', ['name'])

    op.create_table(
        'nomination_people',
        *_timestamps(),
        sa.Column('nomination_id', sa.UUID(), nullable=False),
        sa.Column('person_id', sa.UUID(), nullable=False),
        sa.Column('role', sa.String(), nullable=True),
        sa.ForeignKeyConstraint(['nomination_id'], ['nominations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['person_id'], ['people.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_nomination_people_nomination_id'), 'nomination_people', ['nomination_id'])
    op.create_index(op.f('ix_nomination_people_person_id'), 'nomination_people', ['person_id'])


def downgrade() -> None:
    """Drop all tables."""
    # Drop tables in reverse dependency order
    op.drop_table('nomination_people')
    op.drop_table('people')
    op.drop_table('nominations')
    op.drop_table('award_categories')
    op.drop_table('ceremonies')
    op.drop_table('billing_events')
    op.drop_table('api_usage_logs')
    op.drop_table('api_keys')

    # Drop enums
    op.execute("DROP TYPE IF EXISTS apikeytier")
