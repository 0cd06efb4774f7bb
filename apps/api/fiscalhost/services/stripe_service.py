"""Stripe REST client for credit card setup.

Only what the payment-method flow needs: customers and SetupIntents. Card
details never reach this service; the client sends a Stripe token.
"""

from __future__ import annotations

import logging

import httpx

from fiscalhost.core.config import settings
from fiscalhost.core.structured_logging import build_log_context
from fiscalhost.db.models import Account, PaymentMethod, User
from fiscalhost.services.http_service import DEFAULT_RETRY_STATUSES, request_with_retries

logger = logging.getLogger(__name__)

STRIPE_API_URL = "https://api.stripe.com/v1"
STRIPE_MAX_ATTEMPTS = 3
STRIPE_TIMEOUT_SECONDS = 30.0

# SetupIntent statuses that need the customer to act (3D Secure...)
ACTION_REQUIRED_STATUSES = {"requires_action", "requires_confirmation"}


class StripeApiError(Exception):
    """Stripe rejected the request (card declined, invalid token...)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StripeSetupError(Exception):
    """
    Card setup needs strong customer authentication.

    ``stripe_response`` carries the SetupIntent the client must confirm.
    """

    def __init__(
        self,
        message: str,
        *,
        stripe_account: str | None = None,
        stripe_response: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.stripe_account = stripe_account
        self.stripe_response = stripe_response


async def _post(path: str, data: dict[str, str]) -> dict:
    if not settings.STRIPE_SECRET_KEY:
        raise StripeApiError("Stripe is not configured (missing STRIPE_SECRET_KEY)")

    headers = {"Authorization": f"Bearer {settings.STRIPE_SECRET_KEY}"}
    async with httpx.AsyncClient(base_url=STRIPE_API_URL, timeout=STRIPE_TIMEOUT_SECONDS) as client:

        async def request_fn() -> httpx.Response:
            return await client.post(path, headers=headers, data=data)

        response = await request_with_retries(
            request_fn,
            max_attempts=STRIPE_MAX_ATTEMPTS,
            retry_statuses=DEFAULT_RETRY_STATUSES,
        )

    body = response.json()
    if response.status_code >= 400:
        error = body.get("error", {}) if isinstance(body, dict) else {}
        raise StripeApiError(
            error.get("message") or f"Stripe API error {response.status_code}",
            status_code=response.status_code,
        )
    return body


async def create_customer(token: str, account: Account, user: User) -> dict:
    """Create a Stripe customer with the card token as default source."""
    return await _post(
        "/customers",
        {
            "source": token,
            "email": user.email,
            "description": f"{settings.FRONTEND_URL.rstrip('/')}/{account.slug}",
        },
    )


async def create_setup_intent(customer_id: str, source_id: str) -> dict:
    return await _post(
        "/setup_intents",
        {
            "customer": customer_id,
            "payment_method": source_id,
            "payment_method_types[]": "card",
            "usage": "off_session",
            "confirm": "true",
        },
    )


async def setup_credit_card(
    payment_method: PaymentMethod,
    account: Account,
    user: User,
) -> PaymentMethod:
    """
    Register the card with Stripe so it can be charged off-session.

    Stores ``customerId`` in ``payment_method.data``. When the SetupIntent
    needs customer action, its id and client secret are stored under
    ``data["setupIntent"]`` and ``StripeSetupError`` is raised.

    Raises:
        StripeSetupError: Strong customer authentication required
        StripeApiError: Stripe rejected the card or the request
    """
    data = dict(payment_method.data or {})

    customer_id = data.get("customerId")
    if not customer_id:
        customer = await create_customer(payment_method.token, account, user)
        customer_id = customer["id"]
        data["customerId"] = customer_id
        default_source = customer.get("default_source")
        if default_source:
            data["sourceId"] = default_source

    setup_intent = await create_setup_intent(
        customer_id, data.get("sourceId") or payment_method.token
    )

    if setup_intent.get("status") in ACTION_REQUIRED_STATUSES or setup_intent.get("next_action"):
        data["setupIntent"] = {
            "id": setup_intent.get("id"),
            "client_secret": setup_intent.get("client_secret"),
        }
        payment_method.data = data
        logger.info(
            "Card setup requires authentication",
            extra=build_log_context(account_id=str(account.id)),
        )
        raise StripeSetupError(
            "Authentication Required",
            stripe_response={"setupIntent": setup_intent},
        )

    payment_method.data = data
    return payment_method
