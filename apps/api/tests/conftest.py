"""
Test configuration and fixtures.

Provides:
- Fresh in-memory database per test (schema created from the models)
- JWT session cookie minting for authenticated tests
- HTTPX AsyncClient with proper headers
"""
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncGenerator, Generator

# Must be set before the app modules read their settings
os.environ["TESTING"] = "1"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENV"] = "test"
os.environ["PLATFORM_RESEND_API_KEY"] = ""
os.environ["STRIPE_SECRET_KEY"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from fiscalhost.main import app
from fiscalhost.core.deps import COOKIE_NAME, get_db
from fiscalhost.core.rate_limit import reset_rate_limits
from fiscalhost.core.security import create_session_token
from fiscalhost.db.base import Base
from fiscalhost.db.enums import AccountType
from fiscalhost.db.models import Account, User


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Creates a session on a brand new in-memory database.

    App code can commit freely: the whole database is dropped after the test.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(autouse=True)
def clear_rate_limits():
    """Every test starts with empty rate limit counters."""
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture(scope="function")
def confirmed_user(db: Session) -> User:
    """Create a confirmed user with its personal account."""
    account = Account(
        id=uuid.uuid4(),
        type=AccountType.USER.value,
        name="Test User",
        slug=f"test-user-{uuid.uuid4().hex[:8]}",
        is_guest=False,
        data={},
    )
    db.add(account)
    db.flush()

    user = User(
        id=uuid.uuid4(),
        email=f"test-{uuid.uuid4().hex[:8]}@test.com",
        account_id=account.id,
        confirmed_at=datetime.now(timezone.utc),
    )
    db.add(user)
    db.flush()
    account.created_by_user_id = user.id
    db.commit()
    return user


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    user: User
    token: str
    cookie_name: str = COOKIE_NAME


@pytest.fixture(scope="function")
def test_auth(confirmed_user: User) -> TestAuth:
    """Create session JWT for the confirmed user."""
    return TestAuth(
        user=confirmed_user,
        token=create_session_token(user_id=confirmed_user.id),
    )


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """
    Create unauthenticated AsyncClient (guest caller) with the CSRF header.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
        headers={"X-Requested-With": "XMLHttpRequest"},  # CSRF header
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def authed_client(
    db: Session,
    test_auth: TestAuth,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create authenticated AsyncClient with JWT cookie and CSRF header.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
        cookies={test_auth.cookie_name: test_auth.token},
        headers={"X-Requested-With": "XMLHttpRequest"},  # CSRF header
    ) as c:
        yield c

    app.dependency_overrides.clear()
