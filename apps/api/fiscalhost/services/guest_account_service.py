"""Guest accounts: contribute without signing up, confirm later.

A guest profile is an Account (type USER, ``is_guest``) + an unconfirmed
User + one or more GuestTokens. The token lets the same browser keep
contributing as the same profile; confirming the email promotes the profile
to a regular account and can fold other guest profiles into it.
"""

import base64
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import urlencode

from sqlalchemy.orm import Session

from fiscalhost.core.config import settings
from fiscalhost.core.errors import (
    AlreadyConfirmedError,
    AlreadyVerifiedError,
    BadRequestError,
    InvalidTokenError,
    NotFoundError,
    RateLimitExceededError,
    ValidationError,
)
from fiscalhost.core.rate_limit import RateLimit
from fiscalhost.core.security import generate_opaque_token
from fiscalhost.core.structured_logging import build_log_context
from fiscalhost.db.enums import AccountType
from fiscalhost.db.models import Account, GuestToken, User
from fiscalhost.schemas.auth import RequestContext
from fiscalhost.services import account_service, email_service
from fiscalhost.utils.normalization import (
    normalize_country,
    normalize_email,
    normalize_name,
)

logger = logging.getLogger(__name__)

INVALID_TOKEN_MSG = (
    "Your guest token is invalid. If you already have an account, please sign in."
)
ACCOUNT_EXISTS_MSG = "An account already exists for this email, please sign in."
DEFAULT_GUEST_NAME = "Guest"
DEFAULT_CONFIRMED_NAME = "Incognito"
RATE_LIMIT_WINDOW_SECONDS = 60
# Callers without a resolvable IP share one bucket
UNKNOWN_IP_KEY = "unknown"


@dataclass
class Location:
    country: str | None = None
    address: str | None = None


@dataclass
class GuestProfile:
    """Resolved guest profile returned to the caller."""

    account: Account
    user: User
    token: GuestToken


# =============================================================================
# Token store
# =============================================================================

def load_guest_token(db: Session, token_value: str) -> GuestProfile:
    """
    Load a live guest token with its account and user.

    Raises:
        InvalidTokenError: Unknown token, deleted account, or no user left
            for the account (e.g. removed as spam)
    """
    token = db.query(GuestToken).join(Account, GuestToken.account_id == Account.id).filter(
        GuestToken.value == token_value,
        GuestToken.deleted_at.is_(None),
        Account.deleted_at.is_(None),
    ).first()
    if not token:
        raise InvalidTokenError(INVALID_TOKEN_MSG)

    user = account_service.get_user_for_account(db, token.account_id)
    if not user:
        raise InvalidTokenError(INVALID_TOKEN_MSG)

    return GuestProfile(account=token.account, user=user, token=token)


def get_live_guest_tokens(db: Session, values: list[str]) -> list[GuestToken]:
    """Live tokens among ``values`` (unknown values are skipped)."""
    if not values:
        return []
    return db.query(GuestToken).filter(
        GuestToken.value.in_(values),
        GuestToken.deleted_at.is_(None),
    ).all()


def delete_guest_tokens_for_accounts(db: Session, account_ids: list[uuid.UUID]) -> int:
    """Soft-delete every live token owned by ``account_ids``."""
    if not account_ids:
        return 0
    return db.query(GuestToken).filter(
        GuestToken.account_id.in_(account_ids),
        GuestToken.deleted_at.is_(None),
    ).update({GuestToken.deleted_at: datetime.now(timezone.utc)})


def _create_guest_token(db: Session, account: Account) -> GuestToken:
    token = GuestToken(account_id=account.id, value=generate_opaque_token())
    db.add(token)
    db.flush()
    return token


# =============================================================================
# Profile resolution
# =============================================================================

def _get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(
        User.email == email,
        User.deleted_at.is_(None),
    ).first()


def _create_guest_profile(
    db: Session,
    email: str | None,
    name: str | None,
    location: Location | None,
) -> GuestProfile:
    """
    Create a guest profile for ``email``, or reuse the unconfirmed one.

    New Account + User + GuestToken are committed together or not at all.
    """
    email = normalize_email(email)
    if not email:
        raise ValidationError("An email is required to create a guest profile")

    existing_user = _get_user_by_email(db, email)
    if existing_user and existing_user.is_confirmed:
        # We only allow to re-use the same User without token if it's not verified
        raise AlreadyConfirmedError(ACCOUNT_EXISTS_MSG)

    try:
        if existing_user:
            account = existing_user.account
            _update_guest_account(account, name, location)
            user = existing_user
        else:
            location = location or Location()
            account = Account(
                type=AccountType.USER.value,
                slug=f"guest-{secrets.token_hex(4)}",
                name=normalize_name(name) or DEFAULT_GUEST_NAME,
                is_guest=True,
                data={"isGuest": True},
                address=location.address or None,
                country_iso=normalize_country(location.country),
            )
            db.add(account)
            db.flush()

            user = User(
                email=email,
                account_id=account.id,
                confirmed_at=None,
                email_confirmation_token=generate_opaque_token(),
            )
            db.add(user)
            db.flush()
            account.created_by_user_id = user.id

        token = _create_guest_token(db, account)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Guest profile %s",
        "reused" if existing_user else "created",
        extra=build_log_context(user_id=str(user.id), account_id=str(account.id)),
    )
    return GuestProfile(account=account, user=user, token=token)


def _update_guest_account(
    account: Account,
    name: str | None,
    location: Location | None,
) -> bool:
    """
    Backfill more recent profile info. Never erases existing data.

    Returns:
        True if anything changed
    """
    changed = False
    name = normalize_name(name)
    if name and account.name != name:
        account.name = name
        changed = True

    if location:
        country = normalize_country(location.country)
        if country and country != account.country_iso:
            account.country_iso = country
            changed = True
        address = (location.address or "").strip()
        if address and address != account.address:
            account.address = address
            changed = True

    return changed


def _get_guest_profile_from_token(
    db: Session,
    token_value: str,
    email: str | None,
    name: str | None,
    location: Location | None,
) -> GuestProfile:
    profile = load_guest_token(db, token_value)

    if profile.user.is_confirmed:
        # Account exists & user is confirmed => need to sign in
        raise AlreadyConfirmedError(ACCOUNT_EXISTS_MSG)

    normalized_email = normalize_email(email)
    if normalized_email and normalize_email(profile.user.email) != normalized_email:
        # Same browser, different email: the existing guest profile is not
        # repurposed, a profile for the new email is used instead
        logger.info(
            "Guest token used with a different email, switching profile",
            extra=build_log_context(account_id=str(profile.account.id)),
        )
        return _create_guest_profile(db, normalized_email, name, location)

    if _update_guest_account(profile.account, name, location):
        db.commit()
    return profile


def get_or_create_guest_profile(
    db: Session,
    *,
    email: str | None = None,
    token: str | None = None,
    name: str | None = None,
    location: Location | None = None,
) -> GuestProfile:
    """
    Retrieve or create a guest profile.

    With a token, the profile bound to it is returned (and its name/location
    backfilled). Without one, or when the email differs from the token's,
    the profile for the email is reused if unconfirmed or created.

    Raises:
        InvalidTokenError: Token does not resolve
        AlreadyConfirmedError: A confirmed account exists for this email
        ValidationError: No email and no usable token
    """
    if token:
        return _get_guest_profile_from_token(db, token, email, name, location)
    return _create_guest_profile(db, email, name, location)


# =============================================================================
# Confirmation
# =============================================================================

def _validate_link_tokens(guest_tokens: list[str] | None) -> list[str]:
    values = [value for value in (guest_tokens or []) if value]
    if len(values) > settings.MAX_LINKED_GUEST_TOKENS:
        raise ValidationError(
            f"Cannot link more than {settings.MAX_LINKED_GUEST_TOKENS} profiles at the same time"
        )
    return list(dict.fromkeys(values))


def confirm_guest_account(
    db: Session,
    email_confirmation_token: str,
    name: str | None = None,
    guest_tokens: list[str] | None = None,
) -> Account:
    """
    Confirm a guest user's email and promote its profile.

    Other guest profiles whose tokens are given in ``guest_tokens`` are
    merged into the confirmed account. All tokens of the confirmed account
    and of the merged ones are deleted.

    Raises:
        ValidationError: Too many guest tokens (checked before any query)
        InvalidTokenError: Unknown confirmation token
        AlreadyVerifiedError: User already confirmed
    """
    link_values = _validate_link_tokens(guest_tokens)

    user = db.query(User).filter(
        User.email_confirmation_token == email_confirmation_token,
        User.deleted_at.is_(None),
    ).first() if email_confirmation_token else None
    if not user:
        raise InvalidTokenError("Invalid email confirmation token")
    if user.is_confirmed:
        # The token is also used when users change their emails
        raise AlreadyVerifiedError(
            "This account has already been verified"
        )

    # Committed before any merge: a concurrent confirmation sees "verified"
    user.email_confirmation_token = None
    user.confirmed_at = datetime.now(timezone.utc)
    db.commit()

    account = user.account
    new_name = normalize_name(name)
    if not new_name:
        new_name = account.name if account.name != DEFAULT_GUEST_NAME else DEFAULT_CONFIRMED_NAME
    account.name = new_name
    account.slug = account_service.generate_slug(
        db, [new_name], exclude_account_id=account.id
    )
    account.is_guest = False
    account.data = {**(account.data or {}), "isGuest": False}
    db.flush()

    all_account_ids = [account.id]
    merged = 0
    for token in get_live_guest_tokens(db, link_values):
        other = token.account
        if (
            other.id in all_account_ids
            or other.deleted_at is not None
            or not other.is_guest
        ):
            continue
        all_account_ids.append(other.id)
        account_service.merge_accounts(db, other, account)
        merged += 1

    delete_guest_tokens_for_accounts(db, all_account_ids)
    db.commit()

    logger.info(
        "Guest account confirmed",
        extra={
            **build_log_context(user_id=str(user.id), account_id=str(account.id)),
            "merged_accounts": merged,
        },
    )
    return account


# =============================================================================
# Confirmation email
# =============================================================================

def _retry_hint(seconds: int) -> str:
    if seconds <= 60:
        return "in a minute"
    return f"in {seconds // 60 + 1} minutes"


async def send_guest_confirmation_email(
    db: Session,
    email: str,
    context: RequestContext,
) -> bool:
    """
    Send the email that lets a guest confirm their address.

    Rate limited per IP first, then per email, so the endpoint cannot be
    used to probe which addresses have guest profiles.

    Raises:
        BadRequestError: Caller is signed in, or user already confirmed
        RateLimitExceededError: Too many requests for this IP or email
        NotFoundError: No user for this email
        EmailDeliveryError: Provider failure (not retried here)
    """
    if context.is_authenticated:
        raise BadRequestError(
            "You're signed in, which means your account is already verified. "
            "Sign out first if you want to verify another account."
        )

    rate_limit_on_ip = RateLimit(
        f"confirm_guest_account_ip_{context.ip or UNKNOWN_IP_KEY}",
        settings.RATE_LIMIT_CONFIRM_GUEST_EMAIL_PER_IP,
        RATE_LIMIT_WINDOW_SECONDS,
    )
    if not rate_limit_on_ip.register_call():
        raise RateLimitExceededError(
            "An email has already been sent recently. Please try again "
            f"{_retry_hint(rate_limit_on_ip.seconds_until_reset())}."
        )

    normalized_email = normalize_email(email)
    if not normalized_email:
        raise ValidationError("An email is required")

    encoded_email = base64.b64encode(normalized_email.encode()).decode()
    rate_limit_on_email = RateLimit(
        f"confirm_guest_account_email_{encoded_email}",
        settings.RATE_LIMIT_CONFIRM_GUEST_EMAIL,
        RATE_LIMIT_WINDOW_SECONDS,
    )
    if not rate_limit_on_email.register_call():
        raise RateLimitExceededError(
            "An email has already been sent for this address recently. Please check "
            f"your SPAM folder, or try again {_retry_hint(rate_limit_on_email.seconds_until_reset())}."
        )

    user = _get_user_by_email(db, normalized_email)
    if not user:
        raise NotFoundError("No user found for this email address")
    if user.is_confirmed:
        raise BadRequestError("This account has already been confirmed")

    query = urlencode({"email": user.email})
    verify_link = (
        f"{settings.FRONTEND_URL.rstrip('/')}/confirm/guest/"
        f"{user.email_confirmation_token}?{query}"
    )
    await email_service.send(
        "confirm-guest-account",
        user.email,
        {"email": user.email, "verifyAccountLink": verify_link},
    )
    return True
