"""Shared fixtures: in-memory database, fake hosted platform, test client."""

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from app.client import PortalClient
from app.config import get_settings
from app.context import build_context
from app.main import create_app
from app.models.database import Base
from app.services.encryption import Envelope
from app.services.platform import PlatformError, Session

SHARED_SECRET = "test-shared-secret"
SALT = b"healthcare-portal.test"
ITERATIONS = 1000


class FakePlatform:
    """In-process stand-in for the hosted auth/storage platform."""

    def __init__(self):
        self.accounts = {}  # email -> (auth_id, password)
        self.access_tokens = {}
        self.refresh_tokens = {}
        self.objects = {}
        self.deleted = []
        self.closed = False

    def _issue(self, auth_id):
        session = Session(
            user_id=auth_id,
            access_token=f"access-{uuid.uuid4()}",
            refresh_token=f"refresh-{uuid.uuid4()}",
        )
        self.access_tokens[session.access_token] = auth_id
        self.refresh_tokens[session.refresh_token] = auth_id
        return session

    def sign_up(self, email, password):
        if email in self.accounts:
            raise PlatformError("User already registered", 422)
        auth_id = str(uuid.uuid4())
        self.accounts[email] = (auth_id, password)
        return auth_id

    def sign_in(self, email, password):
        account = self.accounts.get(email)
        if account is None or account[1] != password:
            raise PlatformError("Invalid login credentials", 400)
        return self._issue(account[0])

    def refresh(self, refresh_token):
        auth_id = self.refresh_tokens.pop(refresh_token, None)
        if auth_id is None:
            raise PlatformError("Invalid Refresh Token", 400)
        return self._issue(auth_id)

    def get_user_id(self, access_token):
        return self.access_tokens.get(access_token)

    def delete_user(self, auth_id):
        self.deleted.append(auth_id)
        self.accounts = {e: a for e, a in self.accounts.items() if a[0] != auth_id}

    def upload_object(self, bucket, name, content, content_type):
        self.objects[(bucket, name)] = (content, content_type)
        return f"https://platform.test/storage/v1/object/public/{bucket}/{name}"

    def close(self):
        self.closed = True


@pytest.fixture
def settings():
    return get_settings(
        DATABASE_URL="sqlite://",
        ENCRYPTION_KEY=SHARED_SECRET,
        ENCRYPTION_SALT=SALT.decode(),
        KDF_ITERATIONS=ITERATIONS,
        ENVIRONMENT="test",
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def context(settings, platform):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    ctx = build_context(settings, engine=engine, platform=platform)
    yield ctx
    engine.dispose()


@pytest.fixture
def client(context):
    with TestClient(create_app(context=context)) as test_client:
        yield test_client


@pytest.fixture
def client_envelope():
    """Envelope provisioned with the same shared secret as the server."""
    return Envelope.for_secret(SHARED_SECRET, SALT, ITERATIONS)


@pytest.fixture
def portal(client, client_envelope):
    return PortalClient(client, client_envelope)


@pytest.fixture
def registered(portal):
    """A signed-in patient."""
    portal.register("Jane Doe", "jane@example.com", "P@ssw0rd1", userType="patient")
    return portal
