"""
Provider authentication.

Provides:
- OAuth client_credentials token lifecycle with persistence and safe refresh
- Static API-key Basic auth
"""

from .manager import (
    TOKEN_SAFETY_MARGIN,
    ApiKeyAuthManager,
    ApiKeyCredential,
    AuthManager,
    OAuthAuthManager,
    OAuthCredential,
    TokenStore,
    utc_now,
)

__all__ = [
    "TOKEN_SAFETY_MARGIN",
    "ApiKeyAuthManager",
    "ApiKeyCredential",
    "AuthManager",
    "OAuthAuthManager",
    "OAuthCredential",
    "TokenStore",
    "utc_now",
]
