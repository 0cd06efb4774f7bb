"""Payment method request/response schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AccountReferenceInput(BaseModel):
    id: UUID | None = None
    slug: str | None = None

    @model_validator(mode="after")
    def _require_reference(self):
        if not self.id and not self.slug:
            raise ValueError("Please provide an id or a slug")
        return self


class CreditCardCreateInput(BaseModel):
    token: str = Field(min_length=1, max_length=255)
    brand: str | None = None
    country: str | None = None
    expMonth: int | None = Field(default=None, ge=1, le=12)
    expYear: int | None = None
    fullName: str | None = None
    funding: str | None = None
    zip: str | None = None


class AddCreditCardRequest(BaseModel):
    credit_card_info: CreditCardCreateInput
    name: str = Field(min_length=1, max_length=255)
    is_saved_for_later: bool = True
    account: AccountReferenceInput


class ConfirmCreditCardRequest(BaseModel):
    should_be_saved: bool | None = None


class PaymentMethodRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    account_id: UUID
    service: str
    type: str
    name: str | None
    currency: str
    saved: bool
    confirmed_at: datetime | None
    data: dict


class StripeErrorRead(BaseModel):
    message: str
    account: str | None = None
    response: dict | None = None


class CreditCardWithStripeError(BaseModel):
    payment_method: PaymentMethodRead
    stripe_error: StripeErrorRead | None = None
    should_be_saved: bool | None = None
