"""
Test configuration and fixtures.

Provides:
- Fresh in-memory SQLite schema per test
- Users per role and JWT cookie minting
- HTTPX AsyncClients per role with the CSRF header
- Small factories for threads, sellers, orders, and conversations
"""
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncGenerator, Generator

# Must be set before the app (and its settings/limiter) are imported
os.environ["TESTING"] = "1"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENV"] = "test"
os.environ["SENTRY_DSN"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from support_triage.core.deps import COOKIE_NAME, CSRF_HEADER, CSRF_HEADER_VALUE, get_db
from support_triage.core.security import create_session_token
from support_triage.db.base import Base
from support_triage.db.enums import Role
from support_triage.db.models import Conversation, Order, Seller, SupportThread, User
from support_triage.db.session import SessionLocal, engine
from support_triage.main import app
from support_triage.schemas.auth import UserSession


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Database session on a freshly created schema.

    The engine is an in-memory SQLite database on a single shared connection,
    so app code may commit freely; the schema is dropped after each test.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def _make_user(db: Session, role: Role, name: str) -> User:
    user = User(
        id=uuid.uuid4(),
        email=f"{role.value}-{uuid.uuid4().hex[:8]}@test.com",
        name=name,
        role=role.value,
        token_version=1,
        is_active=True,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture(scope="function")
def buyer_user(db: Session) -> User:
    return _make_user(db, Role.BUYER, "Test Buyer")


@pytest.fixture(scope="function")
def support_user(db: Session) -> User:
    return _make_user(db, Role.SUPPORT, "Support Agent")


@pytest.fixture(scope="function")
def admin_user(db: Session) -> User:
    return _make_user(db, Role.ADMIN, "Admin User")


def session_for(user: User) -> UserSession:
    """Service-level actor for a user row."""
    return UserSession(user_id=user.id, role=Role(user.role), email=user.email, name=user.name)


@pytest.fixture(scope="function")
def support_session(support_user: User) -> UserSession:
    return session_for(support_user)


@pytest.fixture(scope="function")
def admin_session(admin_user: User) -> UserSession:
    return session_for(admin_user)


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture(scope="function")
def make_seller(db: Session):
    def _make(brand_name: str = "Acme Ceramics") -> Seller:
        seller = Seller(
            id=uuid.uuid4(),
            brand_name=brand_name,
            slug=f"seller-{uuid.uuid4().hex[:8]}",
        )
        db.add(seller)
        db.commit()
        return seller

    return _make


@pytest.fixture(scope="function")
def make_conversation(db: Session):
    def _make(**kwargs) -> Conversation:
        conversation = Conversation(id=uuid.uuid4(), **kwargs)
        db.add(conversation)
        db.commit()
        return conversation

    return _make


@pytest.fixture(scope="function")
def make_order(db: Session):
    def _make(order_number: str) -> Order:
        order = Order(id=uuid.uuid4(), order_number=order_number)
        db.add(order)
        db.commit()
        return order

    return _make


@pytest.fixture(scope="function")
def make_thread(db: Session):
    def _make(**kwargs) -> SupportThread:
        values = {
            "id": uuid.uuid4(),
            "source": "buyer_seller",
            "source_id": str(uuid.uuid4()),
            "status": "open",
            "priority": "normal",
            "subject": "Where is my order?",
            "created_at": datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc),
            "updated_at": datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc),
        }
        values.update(kwargs)
        thread = SupportThread(**values)
        db.add(thread)
        db.commit()
        return thread

    return _make


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    user: User
    token: str
    cookie_name: str = COOKIE_NAME


def make_auth(user: User) -> TestAuth:
    token = create_session_token(
        user_id=user.id,
        role=user.role,
        token_version=user.token_version,
    )
    return TestAuth(user=user, token=token)


# =============================================================================
# Client Fixtures
# =============================================================================

async def _client_for(db: Session, auth: TestAuth | None) -> AsyncGenerator[AsyncClient, None]:
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    cookies = {auth.cookie_name: auth.token} if auth else None
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies=cookies,
        headers={CSRF_HEADER: CSRF_HEADER_VALUE},
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated AsyncClient."""
    async for c in _client_for(db, None):
        yield c


@pytest.fixture(scope="function")
async def buyer_client(db: Session, buyer_user: User) -> AsyncGenerator[AsyncClient, None]:
    async for c in _client_for(db, make_auth(buyer_user)):
        yield c


@pytest.fixture(scope="function")
async def support_client(db: Session, support_user: User) -> AsyncGenerator[AsyncClient, None]:
    """Authenticated support-role AsyncClient with JWT cookie and CSRF header."""
    async for c in _client_for(db, make_auth(support_user)):
        yield c


@pytest.fixture(scope="function")
async def admin_client(db: Session, admin_user: User) -> AsyncGenerator[AsyncClient, None]:
    """Authenticated admin AsyncClient with JWT cookie and CSRF header."""
    async for c in _client_for(db, make_auth(admin_user)):
        yield c
