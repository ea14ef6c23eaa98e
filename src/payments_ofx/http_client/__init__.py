"""
Resilient provider HTTP client.

Provides:
- Single and parallel batched requests
- One token refresh + retry on 401
- Fixed-schedule backoff on 429
"""

from .client import HttpRequest, HttpResponse, ResilientHttpClient
from .retry import RATE_LIMIT_SCHEDULE, retry_with_schedule

__all__ = [
    "HttpRequest",
    "HttpResponse",
    "ResilientHttpClient",
    "RATE_LIMIT_SCHEDULE",
    "retry_with_schedule",
]
