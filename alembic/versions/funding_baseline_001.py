"""Funding platform baseline

This migration creates:
1. users table
2. campaigns and campaign_milestones tables
3. payments ledger
4. fund_unlock_requests table with one pending request per campaign
5. milestone_proofs table
6. investments, revenue_events and payouts tables
7. streaming_accounts table

Revision ID: funding_baseline_001
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = 'funding_baseline_001'
down_revision = None
branch_labels = None
depends_on = None


def _enum(name, *values):
    return sa.Enum(*values, name=name)


def upgrade():
    # 1. Users
    op.create_table('users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True, index=True),
        sa.Column('password_hash', sa.String(255), nullable=False, server_default=''),
        sa.Column('name', sa.String(255)),
        sa.Column('role', _enum('userrole', 'admin', 'user')),
        sa.Column('user_type', _enum('usertype', 'artist', 'label', 'fan', 'admin')),
        sa.Column('subscription_status',
                  _enum('subscriptionstatus', 'active', 'cancelled', 'expired', 'trial', 'none')),
        sa.Column('is_pro_member', sa.Boolean, server_default=sa.false()),
        sa.Column('subscription_ends_at', sa.DateTime),
        sa.Column('stripe_connect_id', sa.String(255), unique=True),
        sa.Column('is_stripe_account_connected', sa.Boolean, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
    )

    # 2. Campaigns and milestones
    op.create_table('campaigns',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('artist_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('song_title', sa.String(255), nullable=False),
        sa.Column('artist_name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('genre', sa.String(50), nullable=False),
        sa.Column('duration', _enum('campaignduration', '6_months', '1_year', '2_years', '5_years', 'lifetime'),
                  nullable=False),
        sa.Column('release_type', sa.String(50)),
        sa.Column('isrc', sa.String(20)),
        sa.Column('spotify_url', sa.String(500)),
        sa.Column('youtube_url', sa.String(500)),
        sa.Column('deezer_url', sa.String(500)),
        sa.Column('image_key', sa.String(500)),
        sa.Column('funding_goal', sa.Numeric(12, 2), nullable=False),
        sa.Column('expected_roi_percentage', sa.Float),
        sa.Column('automatic_roi', sa.JSON),
        sa.Column('verification_data', sa.JSON),
        sa.Column('status', _enum('campaignstatus', 'draft', 'active', 'rejected'), nullable=False),
        sa.Column('is_active', sa.Boolean, server_default=sa.false()),
        sa.Column('is_deleted', sa.Boolean, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime),
        sa.Column('rejection_reason', sa.Text),
        sa.Column('reviewed_by', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('reviewed_at', sa.DateTime),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
    )

    op.create_table('campaign_milestones',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('campaign_id', sa.String(36), sa.ForeignKey('campaigns.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('milestone_order', sa.Integer, nullable=False),
        sa.Column('status', _enum('milestonestatus', 'pending', 'approved'), nullable=False),
        sa.Column('approved_at', sa.DateTime),
        sa.UniqueConstraint('campaign_id', 'milestone_order', name='uq_milestone_campaign_order'),
    )

    # 4. Fund unlock requests (created before payments, which reference them)
    op.create_table('fund_unlock_requests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('campaign_id', sa.String(36), sa.ForeignKey('campaigns.id', ondelete='CASCADE'), nullable=False),
        sa.Column('artist_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('milestone_id', sa.String(36), sa.ForeignKey('campaign_milestones.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('status', _enum('fundrequeststatus', 'pending', 'approved', 'rejected'), nullable=False),
        sa.Column('transfer_status', _enum('transferstatus', 'in_progress', 'succeeded', 'unrecorded', 'failed')),
        sa.Column('reserved_at', sa.DateTime),
        sa.Column('transfer_id', sa.String(255)),
        sa.Column('transfer_error', sa.Text),
        sa.Column('requested_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('responded_at', sa.DateTime),
        sa.Column('admin_id', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('admin_response', sa.Text),
    )
    op.create_index(
        'uq_fund_unlock_pending_campaign', 'fund_unlock_requests', ['campaign_id'],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
        sqlite_where=sa.text("status = 'pending'"),
    )

    # 3. Payments ledger
    op.create_table('payments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('campaign_id', sa.String(36), sa.ForeignKey('campaigns.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(10), server_default='usd'),
        sa.Column('payment_type', _enum('paymenttype', 'contribution', 'milestone_transfer'), nullable=False),
        sa.Column('status', _enum('paymentstatus', 'success', 'failed'), nullable=False),
        sa.Column('transaction_id', sa.String(255), unique=True),
        sa.Column('transfer_id', sa.String(255)),
        sa.Column('milestone_id', sa.String(36), sa.ForeignKey('campaign_milestones.id', ondelete='SET NULL')),
        sa.Column('fund_unlock_request_id', sa.String(36),
                  sa.ForeignKey('fund_unlock_requests.id', ondelete='SET NULL')),
        sa.Column('description', sa.Text),
        sa.Column('transaction_date', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
    )

    # 5. Milestone proofs
    op.create_table('milestone_proofs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('campaign_id', sa.String(36), sa.ForeignKey('campaigns.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('artist_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('milestone_id', sa.String(36), sa.ForeignKey('campaign_milestones.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('proof', sa.String(500), nullable=False),
        sa.Column('status', _enum('proofstatus', 'pending', 'approved', 'rejected'), nullable=False),
        sa.Column('admin_id', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('admin_response', sa.Text),
        sa.Column('submitted_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('reviewed_at', sa.DateTime),
        sa.UniqueConstraint('campaign_id', 'milestone_id', name='uq_milestone_proof'),
    )

    # 6. Investments, revenue and payouts
    op.create_table('investments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('campaign_id', sa.String(36), sa.ForeignKey('campaigns.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('investor_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('artist_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('payment_id', sa.String(36), sa.ForeignKey('payments.id', ondelete='SET NULL')),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('ownership_percentage', sa.Numeric(9, 4), nullable=False),
        sa.Column('expected_return', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('actual_return', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('investment_type', _enum('investmenttype', 'royalty', 'equity', 'revenue_share')),
        sa.Column('status', _enum('investmentstatus', 'active', 'completed', 'cancelled'), nullable=False),
        sa.Column('maturity_date', sa.DateTime),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
    )

    op.create_table('revenue_events',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('campaign_id', sa.String(36), sa.ForeignKey('campaigns.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('source', sa.String(50), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('stream_count', sa.Integer, server_default='0'),
        sa.Column('country', sa.String(100)),
        sa.Column('payout_rate', sa.Float),
        sa.Column('platform_data', sa.JSON),
        sa.Column('is_processed', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('processed_at', sa.DateTime),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
    )

    op.create_table('payouts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('investment_id', sa.String(36), sa.ForeignKey('investments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('investor_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('campaign_id', sa.String(36), sa.ForeignKey('campaigns.id', ondelete='CASCADE'), nullable=False),
        sa.Column('revenue_id', sa.String(36), sa.ForeignKey('revenue_events.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('ownership_share', sa.Numeric(9, 4), nullable=False),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.UniqueConstraint('investment_id', 'revenue_id', name='uq_payout_investment_revenue'),
    )

    # 7. Streaming accounts
    op.create_table('streaming_accounts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('platform', _enum('streamingplatform', 'spotify', 'youtube'), nullable=False),
        sa.Column('platform_user_id', sa.String(255)),
        sa.Column('platform_data', sa.JSON),
        sa.Column('country', sa.String(100)),
        sa.Column('connected_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('last_synced_at', sa.DateTime),
        sa.UniqueConstraint('user_id', 'platform', name='uq_streaming_account_user_platform'),
    )


def downgrade():
    op.drop_table('streaming_accounts')
    op.drop_table('payouts')
    op.drop_table('revenue_events')
    op.drop_table('investments')
    op.drop_table('milestone_proofs')
    op.drop_table('payments')
    op.drop_index('uq_fund_unlock_pending_campaign', table_name='fund_unlock_requests')
    op.drop_table('fund_unlock_requests')
    op.drop_table('campaign_milestones')
    op.drop_table('campaigns')
    op.drop_table('users')

    for enum_name in (
        'streamingplatform', 'investmentstatus', 'investmenttype', 'proofstatus', 'paymentstatus',
        'paymenttype', 'transferstatus', 'fundrequeststatus', 'milestonestatus', 'campaignstatus',
        'campaignduration', 'subscriptionstatus', 'usertype', 'userrole',
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
