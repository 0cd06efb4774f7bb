"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel


class TokenPayload(BaseModel):
    """Decoded JWT payload structure."""
    sub: UUID  # user_id


class RequestContext(BaseModel):
    """
    Caller context passed explicitly to services.

    ``user_id`` is None for anonymous callers (guests).
    """
    user_id: UUID | None = None
    email: str | None = None
    ip: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None
