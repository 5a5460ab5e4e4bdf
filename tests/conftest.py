"""
tests/conftest.py -- Shared test fixtures for the billing auth test suite.

This module provides:
  - RecordingMailer: mailer double that keeps every message in memory
  - settings / store / mailer / tokens / otp_engine / sessions / provisioning:
    function-scoped service objects on a private in-memory SQLite database
  - make_user: inserts a user with a known password
  - _patch_lifespan(): wires test services into app.state, bypassing real startup
  - api_client: TestClient on the real app with an Admin bearer token

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
API client because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. Unit-level fixtures use sqlite:///:memory:, which is fine
from a single thread.

DEBUG must be set before any core/auth/api import so get_settings() can
auto-generate the JWT secrets instead of raising ValueError. BCRYPT_ROUNDS is
lowered to keep hashing fast.
"""

from __future__ import annotations

import os
import re
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: set before any project import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("EMAIL_BACKEND", "console")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import ROLE_ADMIN, ROLE_USER, User
from auth.otp import OtpEngine
from auth.provisioning import AdminProvisioning
from auth.sessions import SessionManager
from auth.store import CredentialStore
from auth.tokens import TokenService, hash_password
from core.config import Settings
from core.mailer import EmailDeliveryError

TEST_ROUNDS = 4
_OTP_IN_BODY_RE = re.compile(r"\b(\d{6})\b")


class RecordingMailer:
    """Mailer double: every send() is appended to .sent as (to, subject, body)."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail_next = False

    def send(self, to: str, subject: str, body: str) -> None:
        if self.fail_next:
            self.fail_next = False
            raise EmailDeliveryError(f"could not deliver email to {to}")
        self.sent.append((to, subject, body))

    def last_code_for(self, email: str) -> str:
        """Pull the 6-digit code out of the newest message sent to `email`."""
        for to, _subject, body in reversed(self.sent):
            if to == email:
                match = _OTP_IN_BODY_RE.search(body)
                assert match, f"no OTP in mail body: {body!r}"
                return match.group(1)
        raise AssertionError(f"no mail sent to {email}")


@pytest.fixture
def new_email() -> Callable[..., str]:
    """Factory for addresses that never collide across tests sharing one database."""

    def _new(prefix: str = "user") -> str:
        return f"{prefix}-{uuid.uuid4().hex[:8]}@example.com"

    return _new


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        debug=True,
        jwt_secret="a" * 40,
        jwt_refresh_secret="b" * 40,
        jwt_expire="1h",
        jwt_refresh_expire="7d",
        otp_expire_min=10,
        bcrypt_rounds=TEST_ROUNDS,
        email_backend="console",
    )


@pytest.fixture
def store() -> Generator[CredentialStore, None, None]:
    s = CredentialStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def tokens(settings: Settings) -> TokenService:
    return TokenService(settings)


@pytest.fixture
def otp_engine(store: CredentialStore, mailer: RecordingMailer, settings: Settings) -> OtpEngine:
    return OtpEngine(store, mailer, ttl_minutes=settings.otp_expire_min)


@pytest.fixture
def sessions(store: CredentialStore, tokens: TokenService) -> SessionManager:
    return SessionManager(store, tokens)


@pytest.fixture
def provisioning(store: CredentialStore, otp_engine: OtpEngine) -> AdminProvisioning:
    return AdminProvisioning(store, otp_engine, bcrypt_rounds=TEST_ROUNDS)


@pytest.fixture
def make_user(store: CredentialStore) -> Callable[..., User]:
    """Insert a user and return it with its id filled in."""

    def _make(
        email: str = "a@x.com",
        password: str = "s3cret-pass",
        role: str = ROLE_USER,
        is_verified: bool = False,
        name: str = "Test User",
    ) -> User:
        user = User(
            name=name,
            email=email,
            password=hash_password(password, rounds=TEST_ROUNDS),
            role=role,
            is_verified=is_verified,
        )
        user.id = store.create_user(user)
        return user

    return _make


# ---------------------------------------------------------------------------
# API-level fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(store: CredentialStore, mailer: RecordingMailer, settings: Settings):
    """Return an async context manager that replaces the real lifespan.

    Same wiring as api.main.lifespan, but on the test store and the recording
    mailer, and without the first-admin bootstrap.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        tokens = TokenService(settings)
        otp_engine = OtpEngine(store, mailer, ttl_minutes=settings.otp_expire_min)
        app.state.settings = settings
        app.state.credential_store = store
        app.state.mailer = mailer
        app.state.token_service = tokens
        app.state.otp_engine = otp_engine
        app.state.session_manager = SessionManager(store, tokens)
        app.state.provisioning = AdminProvisioning(store, otp_engine, bcrypt_rounds=TEST_ROUNDS)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, CredentialStore, RecordingMailer], None, None]:
    """Yield (client, admin_token, store, mailer) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers on an isolated in-memory store. Each test module
    gets its own database.
    """
    db_name = f"test_auth_{uuid.uuid4().hex[:8]}"
    store = CredentialStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    mailer = RecordingMailer()
    settings = Settings(
        debug=True,
        jwt_secret="c" * 40,
        jwt_refresh_secret="d" * 40,
        bcrypt_rounds=TEST_ROUNDS,
        email_backend="console",
    )

    admin = User(
        name="Root Admin",
        email="admin@example.com",
        password=hash_password("adminpass123", rounds=TEST_ROUNDS),
        role=ROLE_ADMIN,
        is_verified=True,
    )
    admin_id = store.create_user(admin)
    token = TokenService(settings).sign_access(admin_id, ROLE_ADMIN)

    app.router.lifespan_context = _patch_lifespan(store, mailer, settings)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, store, mailer

    store.close()
