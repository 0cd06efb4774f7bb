"""Security utilities for JWT session tokens and opaque bearer tokens."""

import secrets
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt

from fiscalhost.core.config import settings

# 48 random bytes, hex encoded (96 chars)
OPAQUE_TOKEN_BYTES = 48


# =============================================================================
# Session Token (JWT in cookie)
# =============================================================================

def create_session_token(user_id: UUID) -> str:
    """
    Create signed session JWT.

    Always signs with current secret (JWT_SECRET).
    """
    payload = {
        "sub": str(user_id),
        "iat": datetime.now(timezone.utc),
        "exp": datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_session_token(token: str) -> dict:
    """
    Decode and verify session JWT.

    Tries current secret first, then previous (for rotation support).

    Raises:
        jwt.InvalidTokenError: If token invalid with all secrets
    """
    last_error = None
    for secret in settings.jwt_secrets:
        try:
            return jwt.decode(token, secret, algorithms=["HS256"])
        except jwt.InvalidTokenError as e:
            last_error = e
            continue
    raise last_error  # type: ignore


# =============================================================================
# Opaque tokens (guest tokens, email confirmation tokens)
# =============================================================================

def generate_opaque_token() -> str:
    """Generate a cryptographically random bearer value (96 hex chars)."""
    return secrets.token_hex(OPAQUE_TOKEN_BYTES)
