"""
Provider sources.

Each source resolves one provider's balance-affecting transactions and
ending balance for a report interval, and maps them onto the common
Transaction model.
"""

from .base import ProviderSource, format_timestamp, parse_timestamp
from .paypal import PAYPAL_BASE_URL, PayPalSource, chunk_interval
from .stripe import STRIPE_BASE_URL, StripeSource, parse_balance_csv

__all__ = [
    "ProviderSource",
    "PayPalSource",
    "StripeSource",
    "PAYPAL_BASE_URL",
    "STRIPE_BASE_URL",
    "chunk_interval",
    "format_timestamp",
    "parse_timestamp",
    "parse_balance_csv",
]
