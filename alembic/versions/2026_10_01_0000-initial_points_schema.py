"""initial points schema

Revision ID: 2026_10_01_0000
Revises:
Create Date: 2026-10-01 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_01_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()'))


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()'))


def upgrade() -> None:
    """Create ledger, membership and interest tables."""

    # ========================================================================
    # Create subscriptions table (one row per tenant, the ledger lock target)
    # ========================================================================
    op.create_table(
        'subscriptions',
        _id_column(),
        sa.Column('tenant_id', sa.String(255), nullable=False),
        sa.Column('point_balance', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('points_included', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(30), nullable=False, server_default='ACTIVE'),
        sa.Column('plan_type', sa.String(30), nullable=False),
        _timestamp('created_at'),
        _timestamp('updated_at'),

        # Constraints
        sa.CheckConstraint('point_balance >= 0', name='ck_point_balance_non_negative'),
        sa.CheckConstraint('points_included > 0', name='ck_points_included_positive'),
        sa.CheckConstraint("status IN ('ACTIVE', 'PAST_DUE', 'CANCELED')", name='ck_subscription_status'),
        sa.CheckConstraint("plan_type IN ('LIGHT', 'STANDARD', 'ENTERPRISE')", name='ck_subscription_plan_type'),
        sa.UniqueConstraint('tenant_id', name='uq_subscriptions_tenant_id'),
    )
    op.create_index('idx_subscriptions_status', 'subscriptions', ['status'])

    # ========================================================================
    # Create point_transactions table (append-only ledger)
    # ========================================================================
    op.create_table(
        'point_transactions',
        _id_column(),
        sa.Column('tenant_id', sa.String(255), nullable=False),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('action', sa.String(30), nullable=True),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('balance_after', sa.BigInteger(), nullable=False),
        sa.Column('related_id', sa.String(255), nullable=True),
        sa.Column('description', sa.String(), nullable=False),
        _timestamp('expires_at', nullable=True),
        sa.Column('expired', sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp('created_at'),

        # Constraints
        sa.CheckConstraint('amount <> 0', name='ck_point_amount_non_zero'),
        sa.CheckConstraint('balance_after >= 0', name='ck_point_balance_after_non_negative'),
        sa.CheckConstraint("type IN ('GRANT', 'PURCHASE', 'CONSUME', 'EXPIRE')", name='ck_point_transaction_type'),
        sa.CheckConstraint(
            "(type IN ('GRANT', 'PURCHASE') AND amount > 0) OR (type IN ('CONSUME', 'EXPIRE') AND amount < 0)",
            name='ck_point_amount_sign',
        ),
    )
    op.create_index('idx_point_transactions_tenant_created', 'point_transactions', ['tenant_id', 'created_at'])
    op.create_index(
        'idx_point_transactions_expirable',
        'point_transactions',
        ['tenant_id', 'expires_at'],
        postgresql_where=sa.text('expired = false'),
    )

    # ========================================================================
    # Create accounts / candidates / team_members tables
    # ========================================================================
    op.create_table(
        'accounts',
        _id_column(),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp('created_at'),
        sa.UniqueConstraint('email', name='uq_accounts_email'),
    )

    op.create_table(
        'candidates',
        _id_column(),
        sa.Column('account_id', UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], name='fk_candidates_account', ondelete='RESTRICT'),
    )

    op.create_table(
        'team_members',
        _id_column(),
        sa.Column('tenant_id', sa.String(255), nullable=False),
        sa.Column('account_id', UUID(as_uuid=True), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('status', sa.String(30), nullable=False, server_default='ACTIVE'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.CheckConstraint("status IN ('ACTIVE', 'SUSPENDED', 'DISABLED')", name='ck_team_member_status'),
        sa.UniqueConstraint('tenant_id', 'account_id', name='uq_team_member'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], name='fk_team_members_account', ondelete='RESTRICT'),
    )
    op.create_index('idx_team_members_tenant_id', 'team_members', ['tenant_id'])

    # ========================================================================
    # Create one-time token tables
    # ========================================================================
    op.create_table(
        'invites',
        _id_column(),
        sa.Column('tenant_id', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('token_hash', sa.String(64), nullable=False),
        sa.Column('status', sa.String(30), nullable=False, server_default='PENDING'),
        sa.Column('used_account_id', UUID(as_uuid=True), nullable=True),
        _timestamp('used_at', nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.CheckConstraint("status IN ('PENDING', 'USED', 'REVOKED')", name='ck_invite_status'),
        sa.UniqueConstraint('token_hash', name='uq_invites_token_hash'),
    )
    op.create_index('idx_invites_tenant_id', 'invites', ['tenant_id'])

    op.create_table(
        'verification_tokens',
        _id_column(),
        sa.Column('account_id', UUID(as_uuid=True), nullable=False),
        sa.Column('token_hash', sa.String(64), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        _timestamp('used_at', nullable=True),
        _timestamp('created_at'),
        sa.UniqueConstraint('token_hash', name='uq_verification_tokens_token_hash'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], name='fk_verification_tokens_account', ondelete='CASCADE'),
    )

    # ========================================================================
    # Create interest pipeline tables
    # ========================================================================
    op.create_table(
        'interests',
        _id_column(),
        sa.Column('candidate_id', UUID(as_uuid=True), nullable=False),
        sa.Column('member_id', UUID(as_uuid=True), nullable=False),
        sa.Column('tenant_id', sa.String(255), nullable=False),
        sa.Column('status', sa.String(30), nullable=False, server_default='INTERESTED'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.CheckConstraint(
            "status IN ('INTERESTED', 'CONTACT_REQUESTED', 'CONTACT_DISCLOSED', 'DECLINED')",
            name='ck_interest_status',
        ),
        sa.UniqueConstraint('candidate_id', 'member_id', name='uq_interest_pair'),
        sa.ForeignKeyConstraint(['candidate_id'], ['candidates.id'], name='fk_interests_candidate', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['member_id'], ['team_members.id'], name='fk_interests_member', ondelete='CASCADE'),
    )
    op.create_index('idx_interests_tenant_status', 'interests', ['tenant_id', 'status'])

    op.create_table(
        'company_access',
        _id_column(),
        sa.Column('candidate_id', UUID(as_uuid=True), nullable=False),
        sa.Column('tenant_id', sa.String(255), nullable=False),
        sa.Column('preference', sa.String(30), nullable=False),
        _timestamp('updated_at'),
        sa.CheckConstraint("preference IN ('ALLOW', 'DENY')", name='ck_company_access_preference'),
        sa.UniqueConstraint('candidate_id', 'tenant_id', name='uq_company_access'),
        sa.ForeignKeyConstraint(['candidate_id'], ['candidates.id'], name='fk_company_access_candidate', ondelete='CASCADE'),
    )

    op.create_table(
        'direct_messages',
        _id_column(),
        sa.Column('interest_id', UUID(as_uuid=True), nullable=False),
        sa.Column('sender_type', sa.String(30), nullable=False),
        sa.Column('sender_id', UUID(as_uuid=True), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['interest_id'], ['interests.id'], name='fk_direct_messages_interest', ondelete='CASCADE'),
    )
    op.create_index('idx_direct_messages_interest_id', 'direct_messages', ['interest_id'])

    op.create_table(
        'notifications',
        _id_column(),
        sa.Column('account_id', UUID(as_uuid=True), nullable=False),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('interest_id', UUID(as_uuid=True), nullable=True),
        sa.Column('message_id', UUID(as_uuid=True), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp('created_at'),
    )
    op.create_index('idx_notifications_account_id', 'notifications', ['account_id'])

    op.create_table(
        'chat_sessions',
        _id_column(),
        sa.Column('tenant_id', sa.String(255), nullable=False),
        sa.Column('member_id', UUID(as_uuid=True), nullable=False),
        sa.Column('agent_id', sa.String(255), nullable=False),
        sa.Column('session_type', sa.String(30), nullable=False),
        _timestamp('created_at'),
        sa.UniqueConstraint('member_id', 'agent_id', 'session_type', name='uq_chat_session'),
        sa.ForeignKeyConstraint(['member_id'], ['team_members.id'], name='fk_chat_sessions_member', ondelete='CASCADE'),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('chat_sessions')
    op.drop_index('idx_notifications_account_id', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('idx_direct_messages_interest_id', table_name='direct_messages')
    op.drop_table('direct_messages')
    op.drop_table('company_access')
    op.drop_index('idx_interests_tenant_status', table_name='interests')
    op.drop_table('interests')
    op.drop_table('verification_tokens')
    op.drop_index('idx_invites_tenant_id', table_name='invites')
    op.drop_table('invites')
    op.drop_index('idx_team_members_tenant_id', table_name='team_members')
    op.drop_table('team_members')
    op.drop_table('candidates')
    op.drop_table('accounts')
    op.drop_index('idx_point_transactions_expirable', table_name='point_transactions')
    op.drop_index('idx_point_transactions_tenant_created', table_name='point_transactions')
    op.drop_table('point_transactions')
    op.drop_index('idx_subscriptions_status', table_name='subscriptions')
    op.drop_table('subscriptions')
