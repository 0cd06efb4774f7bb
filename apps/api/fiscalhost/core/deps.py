"""FastAPI dependencies for authentication, caller context and database access."""

from typing import Generator
from uuid import UUID

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from fiscalhost.core.config import settings
from fiscalhost.core.security import decode_session_token
from fiscalhost.db.models import User
from fiscalhost.db.session import SessionLocal
from fiscalhost.schemas.auth import RequestContext


# Cookie and header names
COOKIE_NAME = "fh_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_client_ip(request: Request) -> str | None:
    """
    Extract client IP from request.

    Only trusts X-Forwarded-For when TRUST_PROXY_HEADERS=True (behind reverse proxy).
    """
    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            # X-Forwarded-For: client, proxy1, proxy2 - take first
            return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return None


def get_optional_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User | None:
    """
    Get the signed-in user, or None for anonymous callers.

    An invalid or stale cookie is treated as anonymous.
    """
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        return None

    try:
        payload = decode_session_token(token)
        user_id = UUID(payload["sub"])
    except Exception:
        return None

    return db.query(User).filter(
        User.id == user_id,
        User.deleted_at.is_(None),
    ).first()


def get_current_user(
    user: User | None = Depends(get_optional_user),
) -> User:
    """
    Get authenticated user from session cookie.

    Raises:
        HTTPException 401: Not authenticated
    """
    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")
    if not user.is_confirmed:
        raise HTTPException(status_code=401, detail="Email not confirmed")
    return user


def get_request_context(
    request: Request,
    user: User | None = Depends(get_optional_user),
) -> RequestContext:
    """Explicit caller context for services (identity-or-none + IP)."""
    return RequestContext(
        user_id=user.id if user else None,
        email=user.email if user else None,
        ip=get_client_ip(request),
    )


def require_csrf_header(request: Request) -> None:
    """
    Verify CSRF header on mutations.

    Raises:
        HTTPException 403: Missing or invalid CSRF header
    """
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'"
        )
