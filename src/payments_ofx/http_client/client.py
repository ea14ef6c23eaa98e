"""
Resilient HTTP client shared by the provider sources.

Handles two classes of transient failure on top of requests:
- 401: force one token refresh through the AuthManager, retry once
- 429 (only when a rate-limit schedule is configured): sleep along the
  schedule and re-issue, then give up with RateLimitExhausted

Status codes are never turned into exceptions by the transport; this layer
classifies the final response and raises HttpError unless the request asked
for errors to be suppressed.
"""

import json
import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..auth.manager import AuthManager
from ..errors import HttpError, PaymentsOfxError, ProviderConnectionError, RateLimitExhausted
from .retry import retry_with_schedule

logger = logging.getLogger(__name__)

_UNSET = object()


@dataclass
class HttpRequest:
    """A single outbound request."""

    url: str
    method: str = "GET"
    params: dict[str, Any] | list[tuple[str, Any]] | None = None
    data: dict[str, Any] | list[tuple[str, Any]] | None = None
    headers: dict[str, str] = field(default_factory=dict)
    content_type: str | None = None
    # Return error responses instead of raising HttpError
    suppress_errors: bool = False


@dataclass
class HttpResponse:
    """Raw response with lazily decoded JSON."""

    url: str
    status: int
    text: str
    headers: dict[str, str] = field(default_factory=dict)
    # Token value the request was authorized with (for stale-refresh checks)
    sent_with: str | None = field(default=None, repr=False)
    _json: Any = field(default=_UNSET, repr=False, compare=False)

    @property
    def ok(self) -> bool:
        return self.status < 400

    @property
    def json(self) -> Any:
        """Decoded JSON body, or None if the body is not JSON."""
        if self._json is _UNSET:
            try:
                self._json = json.loads(self.text) if self.text else None
            except ValueError:
                self._json = None
        return self._json


class ResilientHttpClient:
    """
    HTTP client for one provider.

    Features:
    - Default headers + explicit Authorization injection per request
    - Single auth retry on 401 (refreshable auth only)
    - Fixed-schedule backoff on 429 (optional)
    - Parallel batches with suffix re-issue after a mid-batch 401
    """

    DEFAULT_TIMEOUT = 30
    DEFAULT_MAX_WORKERS = 8

    def __init__(
        self,
        auth: AuthManager,
        default_headers: dict[str, str] | None = None,
        content_type: str = "application/json",
        rate_limit_schedule: Sequence[float] = (),
        sleep: Callable[[float], None] = time.sleep,
        session: requests.Session | None = None,
        timeout: int = DEFAULT_TIMEOUT,
        max_workers: int = DEFAULT_MAX_WORKERS,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
    ):
        """
        Initialize client.

        Args:
            auth: AuthManager that owns this provider's credentials
            default_headers: Static headers added to every request
            content_type: Default Content-Type for requests
            rate_limit_schedule: Delays (seconds) between 429 retries; empty = no retry
            sleep: Sleep function (injected for tests)
            session: Optional pre-configured requests session
            timeout: Request timeout in seconds
            max_workers: Thread pool size for fetch_all
            max_retries: Transport-level retries (connect errors, 502/503/504 on GET)
            backoff_factor: Backoff factor for transport-level retries
        """
        self.auth = auth
        self.default_headers = {"Accept": "application/json", **(default_headers or {})}
        self.content_type = content_type
        self.rate_limit_schedule = tuple(rate_limit_schedule)
        self.sleep = sleep
        self.timeout = timeout
        self.max_workers = max_workers

        if session is None:
            session = requests.Session()
            retry_strategy = Retry(
                total=max_retries,
                backoff_factor=backoff_factor,
                status_forcelist=[502, 503, 504],
                allowed_methods=["GET"],
                raise_on_status=False,
            )
            adapter = HTTPAdapter(max_retries=retry_strategy)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self.session = session

    def _build_headers(self, request: HttpRequest) -> dict[str, str]:
        headers = dict(self.default_headers)
        headers["Content-Type"] = request.content_type or self.content_type
        headers.update(request.headers)
        return self.auth.apply(headers)

    def _send(self, request: HttpRequest) -> HttpResponse:
        """One network round trip; status codes are returned, not raised."""
        headers = self._build_headers(request)
        sent_with = self.auth.current_token_value()

        logger.debug(f"API Request: {request.method} {request.url} params={request.params}")
        try:
            response = self.session.request(
                method=request.method,
                url=request.url,
                params=request.params,
                data=request.data,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Connection error to {request.url}: {e}")
            raise ProviderConnectionError(f"Failed to connect to {request.url}: {e}") from e
        except requests.exceptions.Timeout as e:
            logger.error(f"Timeout for {request.url}: {e}")
            raise ProviderConnectionError(f"Request to {request.url} timed out: {e}") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Request error for {request.url}: {e}")
            raise PaymentsOfxError(f"Request failed: {e}") from e

        logger.debug(f"Response status: {response.status_code}")
        return HttpResponse(
            url=response.url or request.url,
            status=response.status_code,
            text=response.text,
            headers=dict(response.headers),
            sent_with=sent_with,
        )

    def _dispatch(self, request: HttpRequest) -> HttpResponse:
        """Send, riding out 429s along the rate-limit schedule if one is set."""
        if not self.rate_limit_schedule:
            return self._send(request)

        def exhausted(response: HttpResponse) -> Exception:
            logger.error(f"Rate limit persisted for {request.url}: {response.text}")
            return RateLimitExhausted(
                request.url, len(self.rate_limit_schedule), response.text
            )

        return retry_with_schedule(
            lambda: self._send(request),
            self.rate_limit_schedule,
            should_retry=lambda response: response.status == 429,
            sleep=self.sleep,
            on_exhausted=exhausted,
        )

    def _dispatch_batch(self, requests_: Sequence[HttpRequest]) -> list[HttpResponse]:
        workers = max(1, min(self.max_workers, len(requests_)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(self._dispatch, requests_))

    def _check(self, request: HttpRequest, response: HttpResponse) -> HttpResponse:
        if response.status >= 400 and not request.suppress_errors:
            logger.error(f"API Error {response.status} for {response.url}")
            logger.debug(f"Full response body: {response.text}")
            raise HttpError(response.url, response.status, response.text)
        return response

    def fetch(self, request: HttpRequest) -> HttpResponse:
        """
        Issue one request.

        Raises:
            HttpError: Final status >= 400 and errors not suppressed
            RateLimitExhausted: 429 outlasted the backoff schedule
            AuthFailure: Token refresh was rejected
        """
        response = self._dispatch(request)

        if response.status == 401 and self.auth.refreshable:
            logger.info(f"Access token rejected for {request.url}, refreshing and retrying once")
            self.auth.ensure_token(force=True, stale=response.sent_with)
            response = self._dispatch(request)

        return self._check(request, response)

    def fetch_all(self, requests_: Sequence[HttpRequest]) -> list[HttpResponse]:
        """
        Issue a batch of independent requests in parallel.

        If any response is a 401, the token is refreshed once and every
        request from the first 401 onward is re-issued as a new batch; the
        new responses replace the old ones at the same positions.
        """
        if not requests_:
            return []

        self.auth.ensure_token()
        responses = self._dispatch_batch(requests_)

        first_401 = next((i for i, r in enumerate(responses) if r.status == 401), None)
        if first_401 is not None and self.auth.refreshable:
            logger.info(
                f"Access token rejected in batch at index {first_401}, "
                f"re-issuing {len(requests_) - first_401} request(s)"
            )
            self.auth.ensure_token(force=True, stale=responses[first_401].sent_with)
            responses[first_401:] = self._dispatch_batch(requests_[first_401:])

        return [self._check(req, resp) for req, resp in zip(requests_, responses)]

    def get(self, url: str, params=None, **kwargs) -> HttpResponse:
        return self.fetch(HttpRequest(url=url, method="GET", params=params, **kwargs))

    def post(self, url: str, data=None, **kwargs) -> HttpResponse:
        return self.fetch(HttpRequest(url=url, method="POST", data=data, **kwargs))
