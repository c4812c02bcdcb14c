import os

# Settings are read when app.core.config is first imported: pin a dev, SQLite-backed
# environment before anything from app.* is loaded.
os.environ["ENV"] = "dev"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ.setdefault("JWT_ACCESS_SECRET", "test_access_secret")
os.environ.setdefault("JWT_REFRESH_SECRET", "test_refresh_secret")

import base64
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth.config import AuthConfig, OAuthClientConfig, OAuthConfig, TokenConfig
from app.auth.google_keys import GOOGLE_CERTS_URL, GoogleKeySet
from app.auth.identity import IdentityExchange
from app.auth.tokens import TokenCookies, TokenService
from app.core.base import Base
from app.core.database import get_db
from app.core.security import hash_password
from app.services.refresh_tokens import RefreshTokenStore
from app.services.users import UserDirectory

# Import models so they register with SQLAlchemy metadata.
from app.models.user import OAuthProvider, User, UserRole
from app.models.refresh_token import RefreshToken  # noqa: F401

GOOGLE_CLIENT_ID = "test-google-client.apps.googleusercontent.com"
FRONTEND_URL = "http://frontend.test"
ADMIN_PASSWORD = "correct horse battery staple"

# http.cookiejar files host-only cookies for a dotless host under "<host>.local";
# cookies set by tests must use the same key or responses would add duplicates.
TEST_COOKIE_DOMAIN = "testserver.local"


def set_client_cookie(client, name: str, value: str) -> None:
    client.cookies.set(name, value, domain=TEST_COOKIE_DOMAIN, path="/")


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def db_engine():
    # In-memory SQLite for fast, isolated tests.
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture()
def db_session(db_engine):
    # The in-memory DB persists across tests (StaticPool); reset schema per test.
    Base.metadata.drop_all(bind=db_engine)
    Base.metadata.create_all(bind=db_engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


# ---------------------------------------------------------------------------
# Clock / config / services
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock that only moves when a test tells it to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def auth_config():
    return AuthConfig(
        tokens=TokenConfig(
            access_secret="test_access_secret",
            refresh_secret="test_refresh_secret",
            # TestClient talks plain http://testserver; Secure cookies would never be sent back.
            cookie_secure=False,
        ),
        oauth=OAuthConfig(
            google=OAuthClientConfig(
                client_id=GOOGLE_CLIENT_ID,
                client_secret="google-secret",
                redirect_uri="http://testserver/api/auth/google/callback",
            ),
            github=OAuthClientConfig(
                client_id="github-client",
                client_secret="github-secret",
                redirect_uri="http://testserver/api/auth/github/callback",
            ),
            frontend_url=FRONTEND_URL,
            http_timeout_seconds=2.0,
        ),
    )


@pytest.fixture()
def token_service(db_session, auth_config, clock):
    return TokenService(RefreshTokenStore(db_session), auth_config.tokens, clock=clock)


@pytest.fixture()
def token_cookies(auth_config):
    return TokenCookies(auth_config.tokens)


# ---------------------------------------------------------------------------
# Upstream providers (httpx.MockTransport)
# ---------------------------------------------------------------------------


class FakeUpstream:
    """
    Routes outbound httpx requests to canned handlers and records every call.

    A route value is either an ``httpx.Response``, a callable taking the
    request, or an exception instance to raise.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], object] = {}
        self.calls: list[httpx.Request] = []

    def route(self, method: str, url: str, result) -> None:
        self.routes[(method.upper(), url)] = result

    def json(self, method: str, url: str, payload, status_code: int = 200) -> None:
        self.route(method, url, httpx.Response(status_code, json=payload))

    def calls_to(self, url: str) -> list[httpx.Request]:
        return [r for r in self.calls if str(r.url).split("?", 1)[0] == url]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        key = (request.method, str(request.url).split("?", 1)[0])
        result = self.routes.get(key)
        if result is None:
            return httpx.Response(404, json={"error": "no route"})
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return result(request)
        return result


@pytest.fixture()
def upstream():
    return FakeUpstream()


@pytest.fixture()
def http_client(upstream):
    client = httpx.Client(transport=httpx.MockTransport(upstream.handler))
    try:
        yield client
    finally:
        client.close()


@pytest.fixture()
def google_keys(http_client):
    return GoogleKeySet(http_client, ttl_seconds=3600)


@pytest.fixture()
def identity_exchange(db_session, auth_config, http_client, google_keys):
    return IdentityExchange(auth_config.oauth, http_client, google_keys, UserDirectory(db_session))


# ---------------------------------------------------------------------------
# Google One-Tap signing
# ---------------------------------------------------------------------------


def _int_to_base64url(n: int, length: int) -> str:
    return base64.urlsafe_b64encode(n.to_bytes(length, "big")).decode("utf-8").rstrip("=")


def public_key_to_jwk(private_key, kid: str) -> dict:
    public_numbers = private_key.public_key().public_numbers()
    return {
        "kty": "RSA",
        "kid": kid,
        "use": "sig",
        "alg": "RS256",
        "n": _int_to_base64url(public_numbers.n, 256),
        "e": _int_to_base64url(public_numbers.e, 3),
    }


class GoogleSigner:
    """Mints One-Tap style ID tokens with a locally generated RSA key."""

    def __init__(self, private_key, kid: str = "google-test-kid") -> None:
        self.kid = kid
        self.private_key = private_key
        self.pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def jwks(self) -> dict:
        return {"keys": [public_key_to_jwk(self.private_key, self.kid)]}

    def claims(self, **overrides) -> dict:
        now = int(datetime.now(timezone.utc).timestamp())
        claims = {
            "iss": "https://accounts.google.com",
            "aud": GOOGLE_CLIENT_ID,
            "sub": "google-sub-123",
            "email": "ada@example.com",
            "email_verified": True,
            "name": "Ada Lovelace",
            "picture": "https://example.com/ada.png",
            "iat": now,
            "exp": now + 3600,
        }
        claims.update(overrides)
        return claims

    def sign(self, claims: dict | None = None, *, kid: str | None = None, **overrides) -> str:
        payload = claims if claims is not None else self.claims(**overrides)
        return jwt.encode(payload, self.pem, algorithm="RS256", headers={"kid": kid or self.kid})


@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture()
def google_signer(rsa_private_key, upstream):
    signer = GoogleSigner(rsa_private_key)
    upstream.json("GET", GOOGLE_CERTS_URL, signer.jwks())
    return signer


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@pytest.fixture()
def oauth_user(db_session):
    user = User(
        email="grace@example.com",
        name="Grace Hopper",
        role=UserRole.USER,
        provider=OAuthProvider.GITHUB,
        provider_account_id="4242",
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture()
def admin_user(db_session):
    user = User(
        email="admin@example.com",
        name="Site Admin",
        role=UserRole.ADMIN,
        password_hash=hash_password(ADMIN_PASSWORD),
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


# ---------------------------------------------------------------------------
# App / client
# ---------------------------------------------------------------------------


@pytest.fixture()
def app(db_session, auth_config, http_client, google_keys):
    import app.main as main

    fastapi_app = main.app
    original_state = {
        "auth_config": fastapi_app.state.auth_config,
        "http_client": fastapi_app.state.http_client,
        "google_keys": fastapi_app.state.google_keys,
    }
    fastapi_app.state.auth_config = auth_config
    fastapi_app.state.http_client = http_client
    fastapi_app.state.google_keys = google_keys

    def override_get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    try:
        yield fastapi_app
    finally:
        fastapi_app.dependency_overrides.clear()
        for key, value in original_state.items():
            setattr(fastapi_app.state, key, value)


@pytest.fixture()
def client(app):
    c = TestClient(app)
    try:
        yield c
    finally:
        c.close()


@pytest.fixture()
def client_for(app, auth_config, db_session):
    """
    Context manager yielding a client that already holds session cookies for ``user``.

    Usage:
        with client_for(user) as c:
            ...
    """

    @contextmanager
    def _client_for(user: User):
        service = TokenService(RefreshTokenStore(db_session), auth_config.tokens)
        pair = service.issue_for_user(user, "pytest")
        c = TestClient(app)
        set_client_cookie(c, auth_config.tokens.access_cookie_name, pair.access_token)
        set_client_cookie(c, auth_config.tokens.refresh_cookie_name, pair.refresh_token)
        try:
            yield c
        finally:
            c.close()

    return _client_for
