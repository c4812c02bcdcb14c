# app/auth/identity.py
"""
Identity exchange with upstream providers.

Turns a provider artifact (Google/GitHub authorization code, or a Google
One-Tap ID token) into ``IdentityClaims``, and maps claims onto a local user.

All outbound calls go through the injected ``httpx.Client`` with a bounded
timeout. Upstream failures surface as ``OAuthExchangeFailed``; nothing in this
module logs access tokens or credentials.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from jose import JWTError, jwt

from app.auth.config import OAuthClientConfig, OAuthConfig
from app.auth.errors import InvalidCredential, MissingEmail, OAuthExchangeFailed
from app.auth.google_keys import GoogleKeyError, GoogleKeySet
from app.models.user import OAuthProvider, User
from app.services.users import UserDirectory

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_ISSUERS = frozenset({"accounts.google.com", "https://accounts.google.com"})

GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_USER_URL = "https://api.github.com/user"
GITHUB_EMAILS_URL = "https://api.github.com/user/emails"


@dataclass(frozen=True)
class IdentityClaims:
    """
    Provider-neutral identity asserted by Google or GitHub.

    Attributes:
        provider: Which provider vouched for the identity.
        provider_account_id: The provider's stable account id (always a string).
        email: Email address as reported by the provider.
        name: Display name, if the provider has one.
        avatar_url: Profile picture URL, if any.
    """

    provider: OAuthProvider
    provider_account_id: str
    email: str
    name: str | None = None
    avatar_url: str | None = None


class IdentityExchange:
    def __init__(
        self,
        config: OAuthConfig,
        http_client: httpx.Client,
        google_keys: GoogleKeySet,
        users: UserDirectory,
    ) -> None:
        self._config = config
        self._http = http_client
        self._google_keys = google_keys
        self._users = users

    def exchange_code(self, provider: OAuthProvider, code: str) -> IdentityClaims:
        if provider == OAuthProvider.GOOGLE:
            return self.exchange_google_code(code)
        return self.exchange_github_code(code)

    # -----------------------------
    # Google
    # -----------------------------
    def exchange_google_code(self, code: str) -> IdentityClaims:
        client = self._require_client(self._config.google, "Google")
        token_data = self._request_json(
            "POST",
            GOOGLE_TOKEN_URL,
            provider="google",
            data={
                "grant_type": "authorization_code",
                "code": code,
                "client_id": client.client_id,
                "client_secret": client.client_secret,
                "redirect_uri": client.redirect_uri,
            },
        )
        access_token = _access_token_from(token_data, provider="google")

        profile = self._request_json(
            "GET",
            GOOGLE_USERINFO_URL,
            provider="google",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if not isinstance(profile, dict) or not profile.get("id"):
            raise OAuthExchangeFailed("Invalid Google profile response")

        email = profile.get("email")
        if not email:
            raise MissingEmail("Unable to retrieve email from Google")

        return IdentityClaims(
            provider=OAuthProvider.GOOGLE,
            provider_account_id=str(profile["id"]),
            email=email,
            name=profile.get("name"),
            avatar_url=profile.get("picture"),
        )

    def verify_google_one_tap_credential(self, credential: str) -> IdentityClaims:
        """
        Verify a One-Tap ID token locally against Google's published keys.

        Checks signature (RS256), expiry, audience (our client id) and issuer.
        Only the key fetch touches the network.
        """
        if not credential:
            raise InvalidCredential("Google credential is required")

        client_id = self._config.google.client_id
        if not client_id:
            raise InvalidCredential("Google sign-in is not configured")

        try:
            header = jwt.get_unverified_header(credential)
            kid = header.get("kid")
            if not kid:
                raise InvalidCredential("Credential missing key id")
            if header.get("alg") != "RS256":
                raise InvalidCredential("Unsupported credential algorithm")

            key = self._google_keys.get_signing_key(kid)
            claims = jwt.decode(
                credential,
                key,
                algorithms=["RS256"],
                audience=client_id,
                options={"verify_at_hash": False},
            )
        except (JWTError, GoogleKeyError) as exc:
            logger.warning("Google One-Tap credential rejected: %s", type(exc).__name__)
            raise InvalidCredential() from exc

        if claims.get("iss") not in GOOGLE_ISSUERS:
            logger.warning("Google One-Tap credential rejected: unexpected issuer")
            raise InvalidCredential()

        sub = claims.get("sub")
        if not sub:
            raise InvalidCredential("Credential missing subject")

        email = claims.get("email")
        if not email:
            raise MissingEmail("Unable to retrieve email from Google")

        return IdentityClaims(
            provider=OAuthProvider.GOOGLE,
            provider_account_id=str(sub),
            email=email,
            name=claims.get("name"),
            avatar_url=claims.get("picture"),
        )

    # -----------------------------
    # GitHub
    # -----------------------------
    def exchange_github_code(self, code: str) -> IdentityClaims:
        client = self._require_client(self._config.github, "GitHub")
        token_data = self._request_json(
            "POST",
            GITHUB_TOKEN_URL,
            provider="github",
            headers={"Accept": "application/json"},
            data={
                "client_id": client.client_id,
                "client_secret": client.client_secret,
                "code": code,
                "redirect_uri": client.redirect_uri,
            },
        )
        access_token = _access_token_from(token_data, provider="github")
        api_headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/vnd.github+json",
        }

        profile = self._request_json("GET", GITHUB_USER_URL, provider="github", headers=api_headers)
        if not isinstance(profile, dict) or profile.get("id") is None:
            raise OAuthExchangeFailed("Invalid GitHub profile response")

        email = profile.get("email")
        if not email:
            # Private email: ask the emails endpoint for the primary address.
            emails = self._request_json("GET", GITHUB_EMAILS_URL, provider="github", headers=api_headers)
            email = _primary_email(emails)
        if not email:
            raise MissingEmail("Unable to retrieve email from GitHub")

        return IdentityClaims(
            provider=OAuthProvider.GITHUB,
            provider_account_id=str(profile["id"]),
            email=email,
            name=profile.get("name") or email.split("@", 1)[0],
            avatar_url=profile.get("avatar_url"),
        )

    # -----------------------------
    # Local users
    # -----------------------------
    def upsert_user(self, claims: IdentityClaims) -> User:
        return self._users.upsert_oauth_user(claims)

    # -----------------------------
    # Internals
    # -----------------------------
    @staticmethod
    def _require_client(client: OAuthClientConfig, label: str) -> OAuthClientConfig:
        if not client.configured:
            raise OAuthExchangeFailed(f"{label} OAuth is not configured")
        return client

    def _request_json(self, method: str, url: str, *, provider: str, **kwargs: Any) -> Any:
        try:
            response = self._http.request(
                method,
                url,
                timeout=self._config.http_timeout_seconds,
                **kwargs,
            )
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as exc:
            logger.warning("OAuth upstream timeout: provider=%s url=%s", provider, url)
            raise OAuthExchangeFailed(f"{provider} request timed out") from exc
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "OAuth upstream error: provider=%s url=%s status=%s",
                provider,
                url,
                exc.response.status_code,
            )
            raise OAuthExchangeFailed(f"{provider} request failed") from exc
        except httpx.HTTPError as exc:
            logger.warning("OAuth upstream unreachable: provider=%s url=%s error=%s", provider, url, exc)
            raise OAuthExchangeFailed(f"{provider} request failed") from exc
        except ValueError as exc:
            raise OAuthExchangeFailed(f"{provider} returned an invalid response") from exc


def _access_token_from(token_data: Any, *, provider: str) -> str:
    if not isinstance(token_data, dict):
        raise OAuthExchangeFailed(f"Invalid {provider} token response")

    access_token = token_data.get("access_token")
    if not access_token:
        # GitHub answers 200 with {"error": ..., "error_description": ...}.
        reason = token_data.get("error_description") or token_data.get("error") or "no access token"
        logger.warning("OAuth token exchange rejected: provider=%s reason=%s", provider, reason)
        raise OAuthExchangeFailed(f"Failed to obtain {provider} access token")
    return access_token


def _primary_email(emails: Any) -> str | None:
    if not isinstance(emails, list):
        return None
    for entry in emails:
        if isinstance(entry, dict) and entry.get("primary") and entry.get("email"):
            return entry["email"]
    return None
