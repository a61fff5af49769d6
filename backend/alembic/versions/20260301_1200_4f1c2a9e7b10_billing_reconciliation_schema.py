"""Billing reconciliation schema: businesses, add-ons, features, signup leads, processed events

Revision ID: 4f1c2a9e7b10
Revises:
Create Date: 2026-03-01 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4f1c2a9e7b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('id', sa.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    """Create the tables written by webhook reconciliation."""
    # Enum columns are stored as short strings (values, not names)

    # 1. Businesses (no dependencies)
    op.create_table(
        'businesses',
        *_timestamps(),
        sa.Column('owner_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('address', sa.String(), nullable=True),
        sa.Column('city', sa.String(), nullable=True),
        sa.Column('state', sa.String(), nullable=True),
        sa.Column('zip', sa.String(), nullable=True),
        sa.Column('subdomain', sa.String(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('subscription_plan', sa.String(length=32), nullable=True),
        sa.Column('subscription_status', sa.String(length=32), nullable=True),
        sa.Column('subscription_billing_period', sa.String(length=32), nullable=True),
        sa.Column('stripe_subscription_id', sa.String(), nullable=True),
        sa.Column('stripe_customer_id', sa.String(), nullable=True),
        sa.Column('team_size', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('subscription_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('subscription_ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('condition_config', postgresql.JSONB(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('subdomain'),
    )
    op.create_index(op.f('ix_businesses_id'), 'businesses', ['id'])
    op.create_index(op.f('ix_businesses_created_at'), 'businesses', ['created_at'])
    op.create_index(op.f('ix_businesses_owner_id'), 'businesses', ['owner_id'], unique=True)
    op.create_index(op.f('ix_businesses_stripe_subscription_id'), 'businesses', ['stripe_subscription_id'], unique=True)
    op.create_index(op.f('ix_businesses_stripe_customer_id'), 'businesses', ['stripe_customer_id'])
    op.create_index(op.f('ix_businesses_subscription_status'), 'businesses', ['subscription_status'])

    # 2. Business subscription add-ons (depends on businesses)
    op.create_table(
        'business_subscription_addons',
        *_timestamps(),
        sa.Column('business_id', sa.UUID(), nullable=False),
        sa.Column('addon_key', sa.String(length=32), nullable=False),
        sa.Column('stripe_subscription_id', sa.String(), nullable=True),
        sa.Column('stripe_subscription_item_id', sa.String(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='active'),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('canceled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('trial_ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('business_id', 'addon_key', name='uq_business_addon_key'),
    )
    op.create_index(op.f('ix_business_subscription_addons_id'), 'business_subscription_addons', ['id'])
    op.create_index(op.f('ix_business_subscription_addons_created_at'), 'business_subscription_addons', ['created_at'])
    op.create_index(op.f('ix_business_subscription_addons_business_id'), 'business_subscription_addons', ['business_id'])
    op.create_index(
        op.f('ix_business_subscription_addons_stripe_subscription_id'),
        'business_subscription_addons',
        ['stripe_subscription_id'],
    )
    op.create_index(
        op.f('ix_business_subscription_addons_stripe_subscription_item_id'),
        'business_subscription_addons',
        ['stripe_subscription_item_id'],
    )
    op.create_index(op.f('ix_business_subscription_addons_status'), 'business_subscription_addons', ['status'])

    # 3. Business features (depends on businesses)
    op.create_table(
        'business_features',
        *_timestamps(),
        sa.Column('business_id', sa.UUID(), nullable=False),
        sa.Column('feature_key', sa.String(), nullable=False),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('business_id', 'feature_key', name='uq_business_feature_key'),
    )
    op.create_index(op.f('ix_business_features_id'), 'business_features', ['id'])
    op.create_index(op.f('ix_business_features_created_at'), 'business_features', ['created_at'])
    op.create_index(op.f('ix_business_features_business_id'), 'business_features', ['business_id'])

    # 4. Signup leads (no dependencies)
    op.create_table(
        'signup_leads',
        *_timestamps(),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('converted', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('converted_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_signup_leads_id'), 'signup_leads', ['id'])
    op.create_index(op.f('ix_signup_leads_created_at'), 'signup_leads', ['created_at'])
    op.create_index(op.f('ix_signup_leads_email'), 'signup_leads', ['email'])

    # 5. Processed Stripe events (no dependencies)
    op.create_table(
        'processed_stripe_events',
        *_timestamps(),
        sa.Column('stripe_event_id', sa.String(), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_processed_stripe_events_id'), 'processed_stripe_events', ['id'])
    op.create_index(op.f('ix_processed_stripe_events_created_at'), 'processed_stripe_events', ['created_at'])
    op.create_index(
        op.f('ix_processed_stripe_events_stripe_event_id'),
        'processed_stripe_events',
        ['stripe_event_id'],
        unique=True,
    )
    op.create_index(op.f('ix_processed_stripe_events_event_type'), 'processed_stripe_events', ['event_type'])


def downgrade() -> None:
    """Drop all tables."""
    # Drop tables in reverse dependency order
    op.drop_table('processed_stripe_events')
    op.drop_table('signup_leads')
    op.drop_table('business_features')
    op.drop_table('business_subscription_addons')
    op.drop_table('businesses')
