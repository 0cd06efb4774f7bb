"""Credit card payment methods: add, then confirm after authentication."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from fiscalhost.core.errors import ForbiddenError, NotFoundError
from fiscalhost.core.structured_logging import build_log_context
from fiscalhost.db.enums import PaymentMethodService, PaymentMethodType
from fiscalhost.db.models import Account, PaymentMethod, User
from fiscalhost.services import account_service, stripe_service

logger = logging.getLogger(__name__)

# Card fields the client may store alongside the Stripe token
CREDIT_CARD_DATA_FIELDS = (
    "brand", "country", "expMonth", "expYear", "fullName", "funding", "zip",
)


@dataclass
class CreditCardResult:
    """Payment method plus the Stripe error when authentication is pending."""

    payment_method: PaymentMethod
    stripe_error: dict | None = None
    should_be_saved: bool | None = None


def get_payment_method(db: Session, payment_method_id: uuid.UUID) -> PaymentMethod | None:
    return db.query(PaymentMethod).filter(
        PaymentMethod.id == payment_method_id,
        PaymentMethod.deleted_at.is_(None),
    ).first()


def _mark_confirmed(payment_method: PaymentMethod, saved: bool | None = None) -> None:
    data = dict(payment_method.data or {})
    data.pop("setupIntent", None)
    payment_method.data = data
    payment_method.confirmed_at = datetime.now(timezone.utc)
    if saved is not None:
        payment_method.saved = saved


async def add_credit_card(
    db: Session,
    *,
    user: User,
    account: Account,
    name: str,
    credit_card_info: dict,
    is_saved_for_later: bool = True,
) -> CreditCardResult:
    """
    Add a Stripe credit card to ``account``.

    When Stripe requires strong customer authentication the card is kept
    but unsaved, and the result carries ``stripe_error`` so the client can
    authenticate and then call ``confirm_credit_card``.

    Raises:
        ForbiddenError: ``user`` is not an admin of ``account``
        StripeApiError: Stripe rejected the card (propagated)
    """
    if not account_service.is_admin_of(db, user, account):
        raise ForbiddenError(f"Must be an admin of {account.name}")

    payment_method = PaymentMethod(
        service=PaymentMethodService.STRIPE.value,
        type=PaymentMethodType.CREDITCARD.value,
        name=name,
        created_by_user_id=user.id,
        currency=account.currency,
        saved=is_saved_for_later,
        account_id=account.id,
        token=credit_card_info.get("token"),
        data={
            key: credit_card_info[key]
            for key in CREDIT_CARD_DATA_FIELDS
            if credit_card_info.get(key) is not None
        },
    )
    db.add(payment_method)
    db.commit()

    try:
        payment_method = await stripe_service.setup_credit_card(payment_method, account, user)
    except stripe_service.StripeSetupError as error:
        if not error.stripe_response:
            raise
        # Unsaved until confirm_credit_card re-saves it
        payment_method.saved = False
        db.commit()
        return CreditCardResult(
            payment_method=payment_method,
            stripe_error={
                "message": error.message,
                "account": error.stripe_account,
                "response": error.stripe_response,
            },
            should_be_saved=is_saved_for_later,
        )

    _mark_confirmed(payment_method)
    db.commit()

    logger.info(
        "Credit card added",
        extra=build_log_context(user_id=str(user.id), account_id=str(account.id)),
    )
    return CreditCardResult(payment_method=payment_method)


def confirm_credit_card(
    db: Session,
    *,
    user: User,
    payment_method_id: uuid.UUID,
    should_be_saved: bool | None = None,
) -> CreditCardResult:
    """
    Mark a card as ready after strong customer authentication.

    Raises:
        NotFoundError: Unknown payment method
        ForbiddenError: ``user`` is not an admin of the card's account
    """
    payment_method = get_payment_method(db, payment_method_id)
    if not payment_method:
        raise NotFoundError("Payment Method Not Found")

    account = account_service.get_account(db, payment_method.account_id)
    if not account or not account_service.is_admin_of(db, user, account):
        raise ForbiddenError("You don't have permission to confirm this payment method")

    _mark_confirmed(payment_method, should_be_saved)
    db.commit()
    return CreditCardResult(payment_method=payment_method)
