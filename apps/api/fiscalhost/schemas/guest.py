"""Guest account request/response schemas."""

from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from fiscalhost.schemas.account import AccountRead


class LocationInput(BaseModel):
    country: str | None = Field(default=None, max_length=2)
    address: str | None = Field(default=None, max_length=1000)


class GuestProfileRequest(BaseModel):
    email: EmailStr | None = None
    token: str | None = Field(default=None, max_length=128)
    name: str | None = Field(default=None, max_length=255)
    location: LocationInput | None = None


class GuestUserRead(BaseModel):
    id: UUID
    email: str
    confirmed: bool


class GuestProfileResponse(BaseModel):
    account: AccountRead
    user: GuestUserRead
    token: str


class GuestConfirmationEmailRequest(BaseModel):
    email: EmailStr


class GuestConfirmationEmailResponse(BaseModel):
    success: bool


class ConfirmGuestAccountRequest(BaseModel):
    email_confirmation_token: str = Field(min_length=1, max_length=128)
    name: str | None = Field(default=None, max_length=255)
    # Length is checked by the service so the error message stays consistent
    guest_tokens: list[str] | None = None
