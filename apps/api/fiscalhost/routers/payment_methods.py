"""Credit card payment method endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fiscalhost.core.deps import get_current_user, get_db, require_csrf_header
from fiscalhost.db.models import User
from fiscalhost.schemas.payment_method import (
    AddCreditCardRequest,
    ConfirmCreditCardRequest,
    CreditCardWithStripeError,
    PaymentMethodRead,
    StripeErrorRead,
)
from fiscalhost.services import account_service, payment_method_service
from fiscalhost.services.payment_method_service import CreditCardResult

router = APIRouter(
    prefix="/payment-methods",
    tags=["payment-methods"],
    dependencies=[Depends(require_csrf_header)],
)


def _to_response(result: CreditCardResult) -> CreditCardWithStripeError:
    return CreditCardWithStripeError(
        payment_method=PaymentMethodRead.model_validate(result.payment_method),
        stripe_error=StripeErrorRead(**result.stripe_error) if result.stripe_error else None,
        should_be_saved=result.should_be_saved,
    )


@router.post("/credit-cards", response_model=CreditCardWithStripeError)
async def add_credit_card(
    body: AddCreditCardRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Add a new credit card to be used with an order."""
    account = account_service.fetch_account_with_reference(
        db, account_id=body.account.id, slug=body.account.slug
    )
    result = await payment_method_service.add_credit_card(
        db,
        user=user,
        account=account,
        name=body.name,
        credit_card_info=body.credit_card_info.model_dump(),
        is_saved_for_later=body.is_saved_for_later,
    )
    return _to_response(result)


@router.post("/{payment_method_id}/confirm", response_model=CreditCardWithStripeError)
def confirm_credit_card(
    payment_method_id: UUID,
    body: ConfirmCreditCardRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Confirm a credit card is ready for use after strong customer authentication."""
    result = payment_method_service.confirm_credit_card(
        db,
        user=user,
        payment_method_id=payment_method_id,
        should_be_saved=body.should_be_saved,
    )
    return _to_response(result)
