# app/auth/config.py
"""
Immutable configuration handed to the auth services.

Built once from ``Settings`` when the app starts and passed into
``TokenService`` / ``IdentityExchange`` explicitly, so tests can construct
their own without touching process-wide state.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from app.core.config import Settings

ACCESS_COOKIE_NAME = "access_token"
REFRESH_COOKIE_NAME = "refresh_token"


@dataclass(frozen=True)
class TokenConfig:
    access_secret: str
    refresh_secret: str
    algorithm: str = "HS256"
    access_ttl: timedelta = timedelta(minutes=15)
    refresh_ttl: timedelta = timedelta(days=7)
    cookie_secure: bool = True
    cookie_samesite: str = "lax"
    cookie_path: str = "/"
    access_cookie_name: str = ACCESS_COOKIE_NAME
    refresh_cookie_name: str = REFRESH_COOKIE_NAME

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenConfig":
        return cls(
            access_secret=settings.JWT_ACCESS_SECRET,
            refresh_secret=settings.JWT_REFRESH_SECRET,
            algorithm=settings.JWT_ALGORITHM,
            access_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            # Dev runs on http://localhost; everywhere else is HTTPS.
            cookie_secure=not settings.is_dev,
        )

    @property
    def access_max_age_seconds(self) -> int:
        return int(self.access_ttl.total_seconds())

    @property
    def refresh_max_age_seconds(self) -> int:
        return int(self.refresh_ttl.total_seconds())


@dataclass(frozen=True)
class OAuthClientConfig:
    client_id: str
    client_secret: str
    redirect_uri: str

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass(frozen=True)
class OAuthConfig:
    google: OAuthClientConfig
    github: OAuthClientConfig
    frontend_url: str
    http_timeout_seconds: float = 10.0
    google_certs_cache_seconds: int = 3600

    @classmethod
    def from_settings(cls, settings: Settings) -> "OAuthConfig":
        return cls(
            google=OAuthClientConfig(
                client_id=settings.GOOGLE_CLIENT_ID,
                client_secret=settings.GOOGLE_CLIENT_SECRET,
                redirect_uri=settings.GOOGLE_REDIRECT_URI,
            ),
            github=OAuthClientConfig(
                client_id=settings.GITHUB_CLIENT_ID,
                client_secret=settings.GITHUB_CLIENT_SECRET,
                redirect_uri=settings.GITHUB_REDIRECT_URI,
            ),
            frontend_url=settings.FRONTEND_URL,
            http_timeout_seconds=settings.OAUTH_HTTP_TIMEOUT_SECONDS,
            google_certs_cache_seconds=settings.GOOGLE_CERTS_CACHE_SECONDS,
        )


@dataclass(frozen=True)
class AuthConfig:
    tokens: TokenConfig
    oauth: OAuthConfig

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthConfig":
        return cls(
            tokens=TokenConfig.from_settings(settings),
            oauth=OAuthConfig.from_settings(settings),
        )
