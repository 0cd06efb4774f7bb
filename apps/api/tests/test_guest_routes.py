"""Tests for the guest HTTP endpoints."""

import inspect
from urllib.parse import parse_qs, urlparse

import pytest
from httpx import AsyncClient

from fiscalhost.db.models import User
from fiscalhost.routers import guests
from fiscalhost.services import email_service, guest_account_service


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture outgoing template emails instead of calling the provider."""
    sent = []

    async def fake_send(template_name, to_email, variables):
        sent.append({"template": template_name, "to": to_email, "variables": variables})
        return "msg_test"

    monkeypatch.setattr(email_service, "send", fake_send)
    return sent


# =============================================================================
# POST /guests/profile
# =============================================================================

@pytest.mark.asyncio
async def test_profile_requires_csrf_header(client: AsyncClient):
    response = await client.post(
        "/guests/profile",
        json={"email": "jane@example.com"},
        headers={"X-Requested-With": ""},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_profile_created_then_resolved_by_token(client: AsyncClient):
    response = await client.post(
        "/guests/profile",
        json={"email": "jane@example.com", "name": "Jane", "location": {"country": "fr"}},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["account"]["is_guest"] is True
    assert data["account"]["country_iso"] == "FR"
    assert data["user"]["email"] == "jane@example.com"
    assert data["user"]["confirmed"] is False
    token = data["token"]

    response = await client.post("/guests/profile", json={"token": token})
    assert response.status_code == 200
    assert response.json()["account"]["id"] == data["account"]["id"]


@pytest.mark.asyncio
async def test_profile_with_invalid_token(client: AsyncClient):
    response = await client.post("/guests/profile", json={"token": "nope"})
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_TOKEN"


@pytest.mark.asyncio
async def test_profile_for_confirmed_email_conflicts(client: AsyncClient, confirmed_user):
    response = await client.post("/guests/profile", json={"email": confirmed_user.email})
    assert response.status_code == 409
    assert response.json()["code"] == "ACCOUNT_ALREADY_EXISTS"


@pytest.mark.asyncio
async def test_profile_without_email_or_token(client: AsyncClient):
    response = await client.post("/guests/profile", json={"name": "Nobody"})
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_unexpected_error_is_opaque(client: AsyncClient, monkeypatch):
    def boom(*_args, **_kwargs):
        raise RuntimeError("connection reset by peer at 10.0.0.3")

    monkeypatch.setattr(guest_account_service, "get_or_create_guest_profile", boom)

    response = await client.post("/guests/profile", json={"email": "jane@example.com"})
    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}


# =============================================================================
# POST /guests/confirmation-email
# =============================================================================

@pytest.mark.asyncio
async def test_confirmation_email_sent_to_guest(client: AsyncClient, db, sent_emails):
    profile = guest_account_service.get_or_create_guest_profile(db, email="jane@example.com")
    confirmation_token = profile.user.email_confirmation_token

    response = await client.post("/guests/confirmation-email", json={"email": "Jane@example.com"})

    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert len(sent_emails) == 1
    sent = sent_emails[0]
    assert sent["template"] == "confirm-guest-account"
    assert sent["to"] == "jane@example.com"

    link = urlparse(sent["variables"]["verifyAccountLink"])
    assert link.path == f"/confirm/guest/{confirmation_token}"
    assert parse_qs(link.query) == {"email": ["jane@example.com"]}


@pytest.mark.asyncio
async def test_confirmation_email_rejected_when_signed_in(authed_client: AsyncClient, sent_emails):
    response = await authed_client.post(
        "/guests/confirmation-email", json={"email": "jane@example.com"}
    )
    assert response.status_code == 400
    assert "signed in" in response.json()["detail"]
    assert sent_emails == []


@pytest.mark.asyncio
async def test_confirmation_email_unknown_address(client: AsyncClient, sent_emails):
    response = await client.post(
        "/guests/confirmation-email", json={"email": "ghost@example.com"}
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "No user found for this email address"


@pytest.mark.asyncio
async def test_confirmation_email_already_confirmed(client: AsyncClient, confirmed_user, sent_emails):
    response = await client.post(
        "/guests/confirmation-email", json={"email": confirmed_user.email}
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "This account has already been confirmed"
    assert sent_emails == []


@pytest.mark.asyncio
async def test_confirmation_email_rate_limited_per_email(client: AsyncClient, db, sent_emails):
    guest_account_service.get_or_create_guest_profile(db, email="jane@example.com")

    first = await client.post("/guests/confirmation-email", json={"email": "jane@example.com"})
    second = await client.post("/guests/confirmation-email", json={"email": "jane@example.com"})

    assert first.status_code == 200
    assert second.status_code == 429
    assert second.json()["code"] == "RATE_LIMITED"
    assert "SPAM" in second.json()["detail"]
    assert len(sent_emails) == 1


@pytest.mark.asyncio
async def test_confirmation_email_rate_limit_uses_normalized_email(client: AsyncClient, db, sent_emails):
    guest_account_service.get_or_create_guest_profile(db, email="jane@example.com")

    first = await client.post("/guests/confirmation-email", json={"email": "JANE@Example.com"})
    second = await client.post("/guests/confirmation-email", json={"email": "jane@example.com"})

    assert first.status_code == 200
    assert second.status_code == 429
    assert "for this address" in second.json()["detail"]
    assert len(sent_emails) == 1


@pytest.mark.asyncio
async def test_confirmation_email_rate_limited_per_ip(client: AsyncClient, sent_emails):
    # Unknown addresses still count against the caller's quota
    for index in range(5):
        response = await client.post(
            "/guests/confirmation-email", json={"email": f"nobody{index}@example.com"}
        )
        assert response.status_code == 404

    response = await client.post(
        "/guests/confirmation-email", json={"email": "nobody-last@example.com"}
    )
    assert response.status_code == 429
    assert "SPAM" not in response.json()["detail"]


@pytest.mark.asyncio
async def test_confirmation_email_delivery_failure_is_opaque(client: AsyncClient, db, monkeypatch):
    guest_account_service.get_or_create_guest_profile(db, email="jane@example.com")

    async def failing_send(*_args, **_kwargs):
        raise email_service.EmailDeliveryError("Resend API error: HTTP 503")

    monkeypatch.setattr(email_service, "send", failing_send)

    response = await client.post("/guests/confirmation-email", json={"email": "jane@example.com"})
    assert response.status_code == 500
    assert "Resend" not in response.text


# =============================================================================
# POST /guests/confirm
# =============================================================================

@pytest.mark.asyncio
async def test_confirm_guest_account_route(client: AsyncClient, db):
    main = guest_account_service.get_or_create_guest_profile(db, email="main@example.com")
    other = guest_account_service.get_or_create_guest_profile(db, email="other@example.com")

    response = await client.post(
        "/guests/confirm",
        json={
            "email_confirmation_token": main.user.email_confirmation_token,
            "name": "Zappa",
            "guest_tokens": [other.token.value],
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert data["slug"] == "zappa"
    assert data["is_guest"] is False
    assert db.get(User, other.user.id).deleted_at is not None


@pytest.mark.asyncio
async def test_confirm_guest_account_invalid_token(client: AsyncClient):
    response = await client.post(
        "/guests/confirm", json={"email_confirmation_token": "nope"}
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid email confirmation token"


@pytest.mark.asyncio
async def test_confirm_guest_account_too_many_tokens(client: AsyncClient):
    response = await client.post(
        "/guests/confirm",
        json={
            "email_confirmation_token": "anything",
            "guest_tokens": [f"token-{i}" for i in range(31)],
        },
    )
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_database_bound_guest_routes_are_sync():
    # Sync handlers run in the threadpool instead of blocking the event loop
    assert not inspect.iscoroutinefunction(guests.get_or_create_guest_profile)
    assert not inspect.iscoroutinefunction(guests.confirm_guest_account)
    assert inspect.iscoroutinefunction(guests.send_guest_confirmation_email)
