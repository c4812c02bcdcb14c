# app/auth/google_keys.py
"""
Google signing-key cache for One-Tap credential verification.

Responsibilities:
- Lazy JWKS fetching (no network calls on construction)
- In-memory caching with a TTL
- One forced refetch when a credential names an unknown ``kid`` (Google rotates keys),
  at most once per cooldown window
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

import httpx
from jose import jwk

logger = logging.getLogger(__name__)

GOOGLE_CERTS_URL = "https://www.googleapis.com/oauth2/v3/certs"


class GoogleKeyError(Exception):
    """Base exception for signing-key lookups."""


class GoogleKeyFetchError(GoogleKeyError):
    """Raised when the key set cannot be fetched or parsed."""


class UnknownSigningKeyError(GoogleKeyError):
    """Raised when no published key matches the credential's ``kid``."""


class GoogleKeySet:
    """
    Thread-safe cache of Google's published RS256 keys.

    One instance lives for the process; the httpx client is injected so tests
    can serve their own key set.
    """

    def __init__(
        self,
        http_client: httpx.Client,
        *,
        certs_url: str = GOOGLE_CERTS_URL,
        ttl_seconds: int = 3600,
        refetch_cooldown_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._http = http_client
        self._certs_url = certs_url
        self._ttl = ttl_seconds
        self._refetch_cooldown = refetch_cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._keys: dict[str, Any] | None = None
        self._fetched_at: float = 0.0

    def get_signing_key(self, kid: str) -> Any:
        with self._lock:
            now = self._clock()
            if self._keys is None or (now - self._fetched_at) > self._ttl:
                self._refresh_keys()

            if kid not in self._keys and (now - self._fetched_at) >= self._refetch_cooldown:
                # Key not found; Google may have rotated. Try one refresh.
                self._refresh_keys()

            if kid not in self._keys:
                raise UnknownSigningKeyError(f"Signing key not found for kid: {kid}")

            return self._keys[kid]

    def _refresh_keys(self) -> None:
        try:
            logger.info("Fetching Google signing keys from %s", self._certs_url)
            response = self._http.get(self._certs_url)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Failed to fetch Google signing keys: %s", e)
            raise GoogleKeyFetchError(f"Failed to fetch signing keys: {e}") from e

        keys_list = data.get("keys", []) if isinstance(data, dict) else []
        if not keys_list:
            raise GoogleKeyFetchError("Key set response contains no keys")

        keys: dict[str, Any] = {}
        for key_data in keys_list:
            kid = key_data.get("kid")
            if kid:
                try:
                    keys[kid] = jwk.construct(key_data, algorithm="RS256")
                except Exception as e:
                    logger.warning("Failed to construct key for kid=%s: %s", kid, e)

        self._keys = keys
        self._fetched_at = self._clock()
        logger.info("Cached %d Google signing keys", len(self._keys))

    def clear(self) -> None:
        with self._lock:
            self._keys = None
            self._fetched_at = 0.0
