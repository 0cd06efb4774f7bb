"""Account store helpers: lookups, slugs, authorization and merges."""

import logging
import secrets
import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from fiscalhost.core.errors import NotFoundError, ValidationError
from fiscalhost.core.structured_logging import build_log_context
from fiscalhost.db.enums import MemberRole
from fiscalhost.db.models import (
    Account, Member, Order, PaymentMethod, Transaction, User
)
from fiscalhost.utils.normalization import slugify

logger = logging.getLogger(__name__)

MAX_SLUG_ATTEMPTS = 1000


# =============================================================================
# Lookups
# =============================================================================

def get_account(db: Session, account_id: uuid.UUID) -> Account | None:
    """Get a live account by id."""
    return db.query(Account).filter(
        Account.id == account_id,
        Account.deleted_at.is_(None),
    ).first()


def get_account_by_slug(db: Session, slug: str) -> Account | None:
    """Get a live account by slug."""
    return db.query(Account).filter(
        Account.slug == slug.strip().lower(),
        Account.deleted_at.is_(None),
    ).first()


def fetch_account_with_reference(
    db: Session,
    *,
    account_id: uuid.UUID | None = None,
    slug: str | None = None,
) -> Account:
    """
    Resolve an account reference (id or slug).

    Raises:
        ValidationError: Neither id nor slug given
        NotFoundError: No live account matches
    """
    if account_id:
        account = get_account(db, account_id)
    elif slug:
        account = get_account_by_slug(db, slug)
    else:
        raise ValidationError("Please provide an id or a slug")

    if not account:
        raise NotFoundError("Account Not Found")
    return account


def get_user_for_account(db: Session, account_id: uuid.UUID) -> User | None:
    """Get the live user whose personal account is ``account_id``."""
    return db.query(User).filter(
        User.account_id == account_id,
        User.deleted_at.is_(None),
    ).first()


def is_admin_of(db: Session, user: User, account: Account) -> bool:
    """True if ``user`` owns ``account`` or is an ADMIN member of it."""
    if user.account_id == account.id:
        return True
    membership = db.query(Member).filter(
        Member.member_account_id == user.account_id,
        Member.account_id == account.id,
        Member.role == MemberRole.ADMIN.value,
        Member.deleted_at.is_(None),
    ).first()
    return membership is not None


# =============================================================================
# Slugs
# =============================================================================

def _slug_taken(db: Session, slug: str, exclude_account_id: uuid.UUID | None) -> bool:
    # Deleted accounts keep their slug: slugs are never reused
    query = db.query(Account.id).filter(Account.slug == slug)
    if exclude_account_id:
        query = query.filter(Account.id != exclude_account_id)
    return query.first() is not None


def generate_slug(
    db: Session,
    suggestions: list[str | None],
    exclude_account_id: uuid.UUID | None = None,
) -> str:
    """
    Return the first available slug built from ``suggestions``.

    Each suggestion is tried as-is (slugified); if all are taken, the first
    one gets a numeric suffix (``joe-1``, ``joe-2``...). Falls back to a
    random ``user-<hex>`` slug when no suggestion contains usable characters.
    """
    bases = [s for s in (slugify(x) for x in suggestions) if s]
    if not bases:
        return f"user-{secrets.token_hex(4)}"

    for base in bases:
        if not _slug_taken(db, base, exclude_account_id):
            return base

    base = bases[0]
    for index in range(1, MAX_SLUG_ATTEMPTS):
        candidate = f"{base}-{index}"
        if not _slug_taken(db, candidate, exclude_account_id):
            return candidate

    return f"{base}-{secrets.token_hex(4)}"


# =============================================================================
# Lifecycle
# =============================================================================

def soft_delete_account(db: Session, account: Account) -> None:
    """Mark an account deleted (keeps the row and its slug)."""
    account.deleted_at = datetime.now(timezone.utc)
    db.flush()


def _merge_members(db: Session, source: Account, target: Account) -> int:
    """Re-point member rows from source to target, dropping duplicates."""
    moved = 0
    rows = db.query(Member).filter(
        (Member.member_account_id == source.id) | (Member.account_id == source.id),
        Member.deleted_at.is_(None),
    ).all()

    for row in rows:
        member_account_id = (
            target.id if row.member_account_id == source.id else row.member_account_id
        )
        account_id = target.id if row.account_id == source.id else row.account_id

        duplicate = db.query(Member.id).filter(
            Member.member_account_id == member_account_id,
            Member.account_id == account_id,
            Member.role == row.role,
            Member.deleted_at.is_(None),
            Member.id != row.id,
        ).first()

        # Self-membership or already a member with the same role
        if duplicate or member_account_id == account_id:
            row.deleted_at = datetime.now(timezone.utc)
            continue

        row.member_account_id = member_account_id
        row.account_id = account_id
        moved += 1

    return moved


def merge_accounts(db: Session, source: Account, target: Account) -> dict[str, int]:
    """
    Fold ``source`` into ``target``.

    Moves orders, transactions, payment methods and memberships, then
    soft-deletes the source account and the users bound to it. Only touches
    rows of ``source``, so merges of distinct sources are independent.

    Returns:
        Count of moved rows per kind
    """
    if source.id == target.id:
        raise ValidationError("Cannot merge an account into itself")

    counts = {
        "orders": db.query(Order).filter(
            Order.from_account_id == source.id
        ).update(
            {Order.from_account_id: target.id}, synchronize_session="fetch"
        ),
        "orders_received": db.query(Order).filter(
            Order.to_account_id == source.id
        ).update(
            {Order.to_account_id: target.id}, synchronize_session="fetch"
        ),
        "transactions": db.query(Transaction).filter(
            Transaction.account_id == source.id
        ).update(
            {Transaction.account_id: target.id}, synchronize_session="fetch"
        ),
        "transactions_from": db.query(Transaction).filter(
            Transaction.from_account_id == source.id
        ).update(
            {Transaction.from_account_id: target.id}, synchronize_session="fetch"
        ),
        "payment_methods": db.query(PaymentMethod).filter(
            PaymentMethod.account_id == source.id
        ).update(
            {PaymentMethod.account_id: target.id}, synchronize_session="fetch"
        ),
        "members": _merge_members(db, source, target),
    }

    now = datetime.now(timezone.utc)
    # Loaded, not bulk-updated: callers may hold these users in the session
    for user in db.query(User).filter(
        User.account_id == source.id,
        User.deleted_at.is_(None),
    ).all():
        user.deleted_at = now
    source.deleted_at = now
    db.flush()

    logger.info(
        "Merged account into target",
        extra={
            **build_log_context(account_id=str(target.id)),
            "source_account_id": str(source.id),
            **counts,
        },
    )
    return counts
