import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789-abcdefghijklmnop")

from typing import Any  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from fedid import models, oauth2, token_info  # noqa: E402
from fedid.config import settings  # noqa: E402
from fedid.database import Base, get_db  # noqa: E402
from fedid.directory import SqlAccountDirectory  # noqa: E402
from fedid.exceptions import ClientNotConnectedError  # noqa: E402
from fedid.flow import AuthFlowController  # noqa: E402
from fedid.main import app  # noqa: E402
from fedid.provider import ClientCredentials, TokenResponse  # noqa: E402
from fedid.registry import BindingRegistry  # noqa: E402
from fedid.resolver import ConflictResolver  # noqa: E402

# In-memory SQLite shared through a single connection.
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

PROVIDER_SIGNING_KEY = "provider-signing-key-for-unit-tests-0123456789"


class FakeGate:
    def __init__(self, connected: bool = True):
        self.connected = connected

    def is_connected(self) -> bool:
        return self.connected

    def credentials(self) -> ClientCredentials:
        if not self.connected:
            raise ClientNotConnectedError()
        return ClientCredentials(client_id="client-id", client_secret="client-secret")


class FakeOAuth2Client:
    def __init__(self, token: TokenResponse | None = None, error: Exception | None = None):
        self.token = token
        self.error = error
        self.authorization_calls: list[dict[str, Any]] = []
        self.exchange_calls: list[dict[str, Any]] = []

    def authorization_url(self, scope: str, callback_url: str, state: str | None = None) -> str:
        self.authorization_calls.append(
            {"scope": scope, "callback_url": callback_url, "state": state}
        )
        return "https://id.example.com/oauth2/auth/code?client_id=client-id"

    def exchange_code(self, code: str, callback_url: str) -> TokenResponse:
        self.exchange_calls.append({"code": code, "callback_url": callback_url})
        if self.error is not None:
            raise self.error
        assert self.token is not None
        return self.token


def encode_provider_token(**claims: Any) -> str:
    return jwt.encode(claims, PROVIDER_SIGNING_KEY, algorithm="HS256")


@pytest.fixture(autouse=True)
def reset_provider_settings(monkeypatch):
    monkeypatch.setattr(settings, "provider_client_id", None)
    monkeypatch.setattr(settings, "provider_client_secret", None)
    monkeypatch.setattr(settings, "provider_token_verify_key", None)
    monkeypatch.setattr(settings, "provider_token_audience", None)
    monkeypatch.setattr(settings, "public_base_url", None)


@pytest.fixture
def session():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client(session):
    def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create_account(session, name: str, email: str) -> models.Account:
    account = models.Account(
        name=name,
        userpic_url=f"https://cdn.example.com/{name.lower().replace(' ', '-')}.png",
        emails=[{"value": email, "status": "confirmed"}],
        phones=[],
    )
    session.add(account)
    session.commit()
    session.refresh(account)
    return account


@pytest.fixture
def account(session) -> models.Account:
    return _create_account(session, "Current User", "current@example.com")


@pytest.fixture
def other_account(session) -> models.Account:
    return _create_account(session, "Bound User", "bound@example.com")


@pytest.fixture
def authorized_client(client, account):
    token = oauth2.issue_session_token(int(account.id))
    client.headers = {**client.headers, "Authorization": f"Bearer {token.access_token}"}
    return client


@pytest.fixture
def registry(session) -> BindingRegistry:
    return BindingRegistry(session)


@pytest.fixture
def resolver(session, registry) -> ConflictResolver:
    return ConflictResolver(registry, SqlAccountDirectory(session))


@pytest.fixture
def provider_token():
    def _build(remote_id: str = "rc_42", **extra: Any) -> TokenResponse:
        claims = {"contact_id": remote_id, "name": "Remote Contact", **extra}
        return TokenResponse(
            access_token=encode_provider_token(**claims),
            refresh_token="refresh-1",
            expires_in=3600,
            token_type="bearer",
        )

    return _build


@pytest.fixture
def make_controller(resolver):
    def _build(
        *,
        connected: bool = True,
        token: TokenResponse | None = None,
        error: Exception | None = None,
    ) -> tuple[AuthFlowController, FakeGate, FakeOAuth2Client]:
        gate = FakeGate(connected)
        oauth_client = FakeOAuth2Client(token=token, error=error)
        controller = AuthFlowController(
            gate=gate,
            client=oauth_client,
            resolver=resolver,
            extractor=token_info.extract,
        )
        return controller, gate, oauth_client

    return _build
