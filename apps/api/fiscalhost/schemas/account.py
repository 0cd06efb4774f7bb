"""Account schemas."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict


class AccountRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: str
    name: str
    slug: str
    is_guest: bool
    country_iso: str | None = None
    address: str | None = None
    currency: str
