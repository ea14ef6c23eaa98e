"""
Per-provider credential and access-token lifecycle.

One AuthManager instance per provider. It owns its token; nothing else
mutates it. Header injection is explicit: callers pass a headers dict to
apply() before each request.

OAuth (PayPal-style, client_credentials grant):
1) Cached token, not forced, still usable → no network call.
2) On first use, a persisted token from the token store is tried.
3) Otherwise exchange the credential at the token endpoint.
4) Record expires_at = request time + expires_in and persist it.

API key (Stripe-style): static Basic header, nothing to refresh.
"""

import base64
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

import requests

from ..errors import AuthFailure
from ..schemas.transaction import AccessToken

logger = logging.getLogger(__name__)

# A token is refreshed once it is within this margin of expiring.
TOKEN_SAFETY_MARGIN = timedelta(hours=1)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _basic(secret: str) -> str:
    return "Basic " + base64.b64encode(secret.encode("utf-8")).decode("ascii")


@dataclass(frozen=True)
class OAuthCredential:
    """Client-credentials pair for an OAuth provider."""

    client_id: str
    client_secret: str

    def __repr__(self) -> str:
        return f"OAuthCredential(client_id={self.client_id!r}, client_secret='***')"


@dataclass(frozen=True)
class ApiKeyCredential:
    """Secret API key for a Basic-auth provider."""

    api_key: str

    def __repr__(self) -> str:
        return "ApiKeyCredential(api_key='***')"


class TokenStore(Protocol):
    """Persisted-token read/write (implemented by StateStore)."""

    def load_token(self, provider: str) -> AccessToken | None: ...

    def save_token(self, provider: str, token: AccessToken) -> None: ...

    def delete_token(self, provider: str) -> bool: ...


class AuthManager:
    """Base class: guarantees a usable Authorization header per provider."""

    refreshable = False

    def __init__(self, provider: str):
        self.provider = provider

    def ensure_token(self, force: bool = False, stale: str | None = None) -> None:
        """Make sure authorization_header() returns a usable value."""
        raise NotImplementedError

    def authorization_header(self) -> str:
        raise NotImplementedError

    def current_token_value(self) -> str | None:
        """Identifier of the credential currently in use (for stale checks)."""
        return None

    def apply(self, headers: dict[str, str]) -> dict[str, str]:
        """Inject the Authorization header into headers (in place) and return it."""
        self.ensure_token()
        headers["Authorization"] = self.authorization_header()
        return headers

    def reset(self) -> bool:
        """
        Drop cached and persisted credentials state.

        Returns:
            True if a persisted token was removed
        """
        return False


class ApiKeyAuthManager(AuthManager):
    """Basic auth with a static secret key; a 401 cannot be fixed by refreshing."""

    refreshable = False

    def __init__(self, provider: str, credential: ApiKeyCredential):
        super().__init__(provider)
        self._header = _basic(credential.api_key)

    def ensure_token(self, force: bool = False, stale: str | None = None) -> None:
        if force:
            logger.debug("%s uses a static API key, nothing to refresh", self.provider)

    def authorization_header(self) -> str:
        return self._header


class OAuthAuthManager(AuthManager):
    """OAuth 2.0 client_credentials token lifecycle."""

    refreshable = True
    DEFAULT_TIMEOUT = 30

    def __init__(
        self,
        provider: str,
        credential: OAuthCredential,
        token_url: str,
        session: requests.Session | None = None,
        token_store: TokenStore | None = None,
        clock: Clock = utc_now,
        safety_margin: timedelta = TOKEN_SAFETY_MARGIN,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        """
        Initialize OAuth auth manager.

        Args:
            provider: Provider name, also the token store key
            credential: Client id / secret
            token_url: Full URL of the token endpoint
            session: HTTP session for the credential exchange
            token_store: Optional persistence for tokens across processes
            clock: Returns the current aware datetime
            safety_margin: Refresh this long before the reported expiry
            timeout: Request timeout in seconds
        """
        super().__init__(provider)
        self._credential = credential
        self.token_url = token_url
        self.session = session or requests.Session()
        self.token_store = token_store
        self.clock = clock
        self.safety_margin = safety_margin
        self.timeout = timeout

        self._token: AccessToken | None = None
        self._store_checked = False
        self._lock = threading.Lock()

    @property
    def token(self) -> AccessToken | None:
        return self._token

    def current_token_value(self) -> str | None:
        return self._token.value if self._token else None

    def _usable(self, token: AccessToken | None) -> bool:
        return token is not None and token.is_usable(self.clock(), self.safety_margin)

    def ensure_token(self, force: bool = False, stale: str | None = None) -> None:
        """
        Guarantee a usable token.

        Args:
            force: Ignore cached and persisted tokens and exchange the credential
            stale: Token value the caller saw rejected. If another thread already
                replaced it, the forced refresh is skipped.

        Raises:
            AuthFailure: Token endpoint rejected the credential
        """
        with self._lock:
            if force and stale is not None and self._token and self._token.value != stale:
                logger.debug("%s token already refreshed by another request", self.provider)
                return

            if not force and self._usable(self._token):
                return

            if not force and not self._store_checked and self.token_store is not None:
                self._store_checked = True
                stored = self.token_store.load_token(self.provider)
                if self._usable(stored):
                    self._token = stored
                    logger.info(
                        "Loaded %s access token from store, expires %s",
                        self.provider,
                        stored.expires_at.isoformat(),
                    )
                    return

            self._token = self._exchange_credential()

    def _exchange_credential(self) -> AccessToken:
        """POST the client credentials to the token endpoint."""
        secret = f"{self._credential.client_id}:{self._credential.client_secret}"
        request_time = self.clock()

        logger.info("Requesting new %s access token", self.provider)
        try:
            response = self.session.post(
                self.token_url,
                data={"grant_type": "client_credentials"},
                headers={
                    "Accept": "application/json",
                    "Accept-Language": "en_US",
                    "Authorization": _basic(secret),
                    "Content-Type": "application/x-www-form-urlencoded",
                },
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Token request to {self.token_url} failed: {e}")
            raise AuthFailure(self.provider, f"token request failed: {e}") from e

        if not response.ok:
            logger.error(f"Token endpoint returned {response.status_code}: {response.text}")
            raise AuthFailure(
                self.provider,
                f"token endpoint returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
            value = data["access_token"]
            expires_in = int(data["expires_in"])
        except (ValueError, KeyError, TypeError) as e:
            raise AuthFailure(self.provider, f"malformed token response: {e}") from e

        token = AccessToken(
            value=value,
            expires_at=request_time + timedelta(seconds=expires_in),
            obtained_via=self._credential.client_id,
        )
        if self.token_store is not None:
            self.token_store.save_token(self.provider, token)

        logger.info(
            "Received new %s access token, expires %s",
            self.provider,
            token.expires_at.isoformat(),
        )
        return token

    def authorization_header(self) -> str:
        self.ensure_token()
        token = self._token
        if token is None:
            raise AuthFailure(self.provider, "no access token after refresh")
        return f"Bearer {token.value}"

    def reset(self) -> bool:
        """Forget the cached and persisted token."""
        with self._lock:
            self._token = None
            self._store_checked = False
            if self.token_store is None:
                return False
            return self.token_store.delete_token(self.provider)
