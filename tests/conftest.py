"""Test fixtures and utilities."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from payments_ofx.auth import ApiKeyAuthManager, ApiKeyCredential, OAuthAuthManager, OAuthCredential
from payments_ofx.http_client import ResilientHttpClient
from payments_ofx.schemas import Transaction, TransactionCategory
from payments_ofx.state_store import StateStore

PAYPAL_URL = "https://paypal.test"
STRIPE_URL = "https://stripe.test"


class FakeClock:
    """Settable clock for token expiry tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class SleepRecorder:
    """Records requested sleeps instead of sleeping."""

    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_txn(
    txn_id: str = "TX1",
    gross: str = "100.00",
    fee: str = "3.20",
    when: datetime | None = None,
    category: TransactionCategory = TransactionCategory.PAYMENT,
    name: str = "Jane Doe",
    memo: tuple[str, ...] = ("jane@example.com", "TX1"),
    reference: str | None = None,
) -> Transaction:
    return Transaction(
        id=txn_id,
        reference=reference or txn_id,
        effective_date=when or utc(2024, 6, 3, 12, 0, 0),
        amount_gross=Decimal(gross),
        amount_fee=Decimal(fee),
        counterparty_name=name,
        category=category,
        memo_parts=memo,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(utc(2024, 8, 1, 12, 0, 0))


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def temp_db(tmp_path):
    """Temporary state database."""
    return StateStore(tmp_path / "state.db")


@pytest.fixture
def paypal_auth(clock) -> OAuthAuthManager:
    return OAuthAuthManager(
        "paypal",
        OAuthCredential("client-id", "client-secret"),
        token_url=f"{PAYPAL_URL}/v1/oauth2/token",
        clock=clock,
    )


@pytest.fixture
def paypal_client(paypal_auth, sleeper) -> ResilientHttpClient:
    return ResilientHttpClient(paypal_auth, sleep=sleeper, max_retries=0)


@pytest.fixture
def stripe_client(sleeper) -> ResilientHttpClient:
    auth = ApiKeyAuthManager("stripe", ApiKeyCredential("sk_test_123"))
    return ResilientHttpClient(
        auth,
        default_headers={"Stripe-Version": "2024-06-20"},
        content_type="application/x-www-form-urlencoded",
        rate_limit_schedule=(15.0, 60.0, 240.0),
        sleep=sleeper,
        max_retries=0,
    )


def token_json(value: str = "A21AAtoken", expires_in: int = 32400) -> dict:
    return {
        "scope": "https://uri.paypal.com/services/reporting/search/read",
        "access_token": value,
        "token_type": "Bearer",
        "app_id": "APP-80W284485P519543T",
        "expires_in": expires_in,
        "nonce": "2024-08-01T12:00:00Z",
    }
