"""Guest contribution endpoints: resolve profile, request confirmation, confirm."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fiscalhost.core.deps import get_db, get_request_context, require_csrf_header
from fiscalhost.schemas.account import AccountRead
from fiscalhost.schemas.auth import RequestContext
from fiscalhost.schemas.guest import (
    ConfirmGuestAccountRequest,
    GuestConfirmationEmailRequest,
    GuestConfirmationEmailResponse,
    GuestProfileRequest,
    GuestProfileResponse,
    GuestUserRead,
)
from fiscalhost.services import guest_account_service
from fiscalhost.services.guest_account_service import Location

router = APIRouter(
    prefix="/guests",
    tags=["guests"],
    dependencies=[Depends(require_csrf_header)],
)


@router.post("/profile", response_model=GuestProfileResponse)
def get_or_create_guest_profile(
    body: GuestProfileRequest,
    db: Session = Depends(get_db),
):
    """
    Resolve the guest profile to contribute with.

    Returns the token to send back on the next contribution.
    """
    location = None
    if body.location:
        location = Location(country=body.location.country, address=body.location.address)

    profile = guest_account_service.get_or_create_guest_profile(
        db,
        email=body.email,
        token=body.token,
        name=body.name,
        location=location,
    )
    return GuestProfileResponse(
        account=AccountRead.model_validate(profile.account),
        user=GuestUserRead(
            id=profile.user.id,
            email=profile.user.email,
            confirmed=profile.user.is_confirmed,
        ),
        token=profile.token.value,
    )


@router.post("/confirmation-email", response_model=GuestConfirmationEmailResponse)
async def send_guest_confirmation_email(
    body: GuestConfirmationEmailRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Send the guest an email to confirm their address (anonymous only)."""
    success = await guest_account_service.send_guest_confirmation_email(
        db, body.email, context
    )
    return GuestConfirmationEmailResponse(success=success)


@router.post("/confirm", response_model=AccountRead)
def confirm_guest_account(
    body: ConfirmGuestAccountRequest,
    db: Session = Depends(get_db),
):
    """Confirm the email and link other guest profiles by their tokens."""
    account = guest_account_service.confirm_guest_account(
        db,
        body.email_confirmation_token,
        name=body.name,
        guest_tokens=body.guest_tokens,
    )
    return AccountRead.model_validate(account)
