"""SQLAlchemy ORM models for accounts, users, guest tokens and payments.

Soft delete is an explicit ``deleted_at`` column. Nothing filters it
implicitly: every query that must ignore deleted rows says so.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON, Boolean, ForeignKey, Index, Integer, String, Text, Uuid, text
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fiscalhost.db.base import Base
from fiscalhost.db.enums import (
    DEFAULT_CURRENCY, DEFAULT_ORDER_STATUS, AccountType, MemberRole
)

JsonType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Accounts & Users
# =============================================================================

class Account(Base):
    """
    A public profile: a person, an organization, a collective...

    Guest profiles are USER accounts created without a password. ``is_guest``
    is the source of truth; ``data["isGuest"]`` mirrors it for API clients
    that read the metadata bag.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        Index("ix_accounts_deleted_at", "deleted_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    type: Mapped[str] = mapped_column(
        String(20), default=AccountType.USER.value, nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    is_guest: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    data: Mapped[dict] = mapped_column(JsonType, default=dict, nullable=False)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    country_iso: Mapped[str | None] = mapped_column(String(2), nullable=True)
    currency: Mapped[str] = mapped_column(
        String(3), default=DEFAULT_CURRENCY, nullable=False
    )
    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", use_alter=True, ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, onupdate=_utcnow, nullable=False
    )
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Relationships
    guest_tokens: Mapped[list["GuestToken"]] = relationship(back_populates="account")
    payment_methods: Mapped[list["PaymentMethod"]] = relationship(
        back_populates="account"
    )


class User(Base):
    """
    Login-capable identity, one-to-one with its personal Account.

    ``confirmed_at`` moves from NULL to a timestamp exactly once.
    ``email_confirmation_token`` is consumed (set to NULL) on confirmation.
    """
    __tablename__ = "users"
    __table_args__ = (
        Index("ix_users_account_id", "account_id"),
        # Email is unique among live users only, a merged-away guest frees it
        Index(
            "uq_users_email_live",
            "email",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    email_confirmation_token: Mapped[str | None] = mapped_column(
        String(128), unique=True, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, onupdate=_utcnow, nullable=False
    )
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    account: Mapped["Account"] = relationship(foreign_keys=[account_id])

    @property
    def is_confirmed(self) -> bool:
        return self.confirmed_at is not None


class GuestToken(Base):
    """Bearer capability to act as a guest Account without authenticating."""
    __tablename__ = "guest_tokens"
    __table_args__ = (
        Index("ix_guest_tokens_account_id", "account_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    value: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    account: Mapped["Account"] = relationship(back_populates="guest_tokens")


class Member(Base):
    """
    Relation between two accounts (``member_account`` is ROLE of ``account``).

    An ADMIN member row on an account grants its member's user admin rights.
    """
    __tablename__ = "members"
    __table_args__ = (
        Index("ix_members_account_id", "account_id"),
        Index("ix_members_member_account_id", "member_account_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    member_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(
        String(20), default=MemberRole.MEMBER.value, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)


# =============================================================================
# Payments
# =============================================================================

class PaymentMethod(Base):
    """
    A stored means of payment (credit card through Stripe).

    ``confirmed_at`` is set once the provider setup (including strong
    customer authentication) succeeded.
    """
    __tablename__ = "payment_methods"
    __table_args__ = (
        Index("ix_payment_methods_account_id", "account_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    service: Mapped[str] = mapped_column(String(20), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    token: Mapped[str | None] = mapped_column(String(255), nullable=True)
    currency: Mapped[str] = mapped_column(
        String(3), default=DEFAULT_CURRENCY, nullable=False
    )
    saved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    confirmed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    data: Mapped[dict] = mapped_column(JsonType, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, onupdate=_utcnow, nullable=False
    )
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    account: Mapped["Account"] = relationship(back_populates="payment_methods")


class Order(Base):
    """A contribution from one account to another."""
    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_from_account_id", "from_account_id"),
        Index("ix_orders_to_account_id", "to_account_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    from_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id"), nullable=False
    )
    to_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id"), nullable=False
    )
    payment_method_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("payment_methods.id", ondelete="SET NULL"), nullable=True
    )
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(
        String(3), default=DEFAULT_CURRENCY, nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_ORDER_STATUS.value, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    transactions: Mapped[list["Transaction"]] = relationship(back_populates="order")


class Transaction(Base):
    """
    One side of a ledger movement.

    A contribution produces a CREDIT on the receiving account (``account_id``)
    and a matching DEBIT on the contributor, each recording the counterpart in
    ``from_account_id``.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_account_id", "account_id"),
        Index("ix_transactions_from_account_id", "from_account_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True
    )
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id"), nullable=False
    )
    from_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id"), nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(
        String(3), default=DEFAULT_CURRENCY, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    order: Mapped["Order | None"] = relationship(back_populates="transactions")
