"""Platform/system email sender (Resend).

Used for transactional emails sent by the platform itself (guest account
confirmation...). Configured with PLATFORM_RESEND_API_KEY and
PLATFORM_EMAIL_FROM.
"""

from __future__ import annotations

import html as html_module
import logging
import re

import httpx

from fiscalhost.core.config import settings
from fiscalhost.core.structured_logging import build_log_context
from fiscalhost.services.http_service import DEFAULT_RETRY_STATUSES, request_with_retries

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_MAX_ATTEMPTS = 3
RESEND_RETRY_BASE_DELAY = 0.5
RESEND_RETRY_MAX_DELAY = 4.0
RESEND_TIMEOUT_SECONDS = 20.0


def html_to_text(content: str) -> str:
    """Convert HTML into readable text (plain-text alternative part)."""
    text = re.sub(r"<(script|style)[^>]*>.*?</\1>", "", content, flags=re.DOTALL | re.I)
    text = re.sub(r"<[^>]+>", " ", text)
    text = re.sub(r"\s+", " ", text).strip()
    return html_module.unescape(text)


async def send_platform_email(
    *,
    to_email: str,
    subject: str,
    html: str,
) -> dict:
    """
    Send one email through Resend.

    Returns:
        {"success": bool, "message_id": str | None, "error": str | None}
    """
    api_key = settings.PLATFORM_RESEND_API_KEY
    resolved_from = settings.PLATFORM_EMAIL_FROM.strip()
    if not api_key:
        return {
            "success": False,
            "message_id": None,
            "error": "Platform email sender not configured (missing PLATFORM_RESEND_API_KEY)",
        }
    if not resolved_from:
        return {
            "success": False,
            "message_id": None,
            "error": "Missing From address for platform email (set PLATFORM_EMAIL_FROM)",
        }

    payload: dict[str, object] = {
        "from": resolved_from,
        "to": [to_email],
        "subject": subject,
        "html": html,
        "text": html_to_text(html),
    }
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }

    async with httpx.AsyncClient(timeout=RESEND_TIMEOUT_SECONDS) as client:

        async def request_fn() -> httpx.Response:
            return await client.post(RESEND_SEND_URL, headers=headers, json=payload)

        response = await request_with_retries(
            request_fn,
            max_attempts=RESEND_MAX_ATTEMPTS,
            base_delay=RESEND_RETRY_BASE_DELAY,
            max_delay=RESEND_RETRY_MAX_DELAY,
            retry_statuses=DEFAULT_RETRY_STATUSES,
        )

    data: dict = {}
    try:
        parsed = response.json()
        if isinstance(parsed, dict):
            data = parsed
    except ValueError:
        data = {}

    if 200 <= response.status_code < 300:
        return {"success": True, "message_id": data.get("id"), "error": None}

    detail = data.get("message") or data.get("error") or f"HTTP {response.status_code}"
    logger.warning(
        "Resend API error %s",
        response.status_code,
        extra=build_log_context(email=to_email),
    )
    return {"success": False, "message_id": None, "error": f"Resend API error: {detail}"}
