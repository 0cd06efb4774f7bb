"""Baseline migration - accounts, users, guest tokens, payments

Revision ID: 0001_baseline
Revises: 
Create Date: 2026-10-19

Creates the account/user tables used by guest contributions and the
payment tables that account merges migrate.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Create account, user, token and payment tables."""

    # ==========================================================================
    # Accounts
    # ==========================================================================
    op.create_table(
        'accounts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('type', sa.String(20), nullable=False, server_default='USER'),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=False, unique=True),
        sa.Column('is_guest', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('data', JSON_TYPE, nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('country_iso', sa.String(2), nullable=True),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('created_by_user_id', sa.Uuid(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        *_timestamps(),
    )
    op.create_index('ix_accounts_deleted_at', 'accounts', ['deleted_at'])

    # ==========================================================================
    # Users
    # ==========================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(320), nullable=False),
        sa.Column('account_id', sa.Uuid(), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('email_confirmation_token', sa.String(128), nullable=True, unique=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        *_timestamps(),
    )
    op.create_index('ix_users_account_id', 'users', ['account_id'])
    op.create_index(
        'uq_users_email_live', 'users', ['email'], unique=True,
        postgresql_where=sa.text('deleted_at IS NULL'),
        sqlite_where=sa.text('deleted_at IS NULL'),
    )
    with op.batch_alter_table('accounts') as batch_op:
        batch_op.create_foreign_key(
            'fk_accounts_created_by_user_id', 'users',
            ['created_by_user_id'], ['id'], ondelete='SET NULL',
        )

    # ==========================================================================
    # Guest tokens & members
    # ==========================================================================
    op.create_table(
        'guest_tokens',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('value', sa.String(128), nullable=False, unique=True),
        sa.Column('account_id', sa.Uuid(), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_guest_tokens_account_id', 'guest_tokens', ['account_id'])

    op.create_table(
        'members',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('member_account_id', sa.Uuid(), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('account_id', sa.Uuid(), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='MEMBER'),
        *_timestamps(),
    )
    op.create_index('ix_members_account_id', 'members', ['account_id'])
    op.create_index('ix_members_member_account_id', 'members', ['member_account_id'])

    # ==========================================================================
    # Payments
    # ==========================================================================
    op.create_table(
        'payment_methods',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('account_id', sa.Uuid(), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_by_user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('service', sa.String(20), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('token', sa.String(255), nullable=True),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('saved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('data', JSON_TYPE, nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        *_timestamps(),
    )
    op.create_index('ix_payment_methods_account_id', 'payment_methods', ['account_id'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('from_account_id', sa.Uuid(), sa.ForeignKey('accounts.id'), nullable=False),
        sa.Column('to_account_id', sa.Uuid(), sa.ForeignKey('accounts.id'), nullable=False),
        sa.Column('payment_method_id', sa.Uuid(), sa.ForeignKey('payment_methods.id', ondelete='SET NULL'), nullable=True),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('status', sa.String(20), nullable=False, server_default='NEW'),
        *_timestamps(),
    )
    op.create_index('ix_orders_from_account_id', 'orders', ['from_account_id'])
    op.create_index('ix_orders_to_account_id', 'orders', ['to_account_id'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('order_id', sa.Uuid(), sa.ForeignKey('orders.id', ondelete='SET NULL'), nullable=True),
        sa.Column('type', sa.String(10), nullable=False),
        sa.Column('account_id', sa.Uuid(), sa.ForeignKey('accounts.id'), nullable=False),
        sa.Column('from_account_id', sa.Uuid(), sa.ForeignKey('accounts.id'), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        *_timestamps(),
    )
    op.create_index('ix_transactions_account_id', 'transactions', ['account_id'])
    op.create_index('ix_transactions_from_account_id', 'transactions', ['from_account_id'])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table('transactions')
    op.drop_table('orders')
    op.drop_table('payment_methods')
    op.drop_table('members')
    op.drop_table('guest_tokens')
    with op.batch_alter_table('accounts') as batch_op:
        batch_op.drop_constraint('fk_accounts_created_by_user_id', type_='foreignkey')
    op.drop_table('users')
    op.drop_table('accounts')
