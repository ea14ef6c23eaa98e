"""Tests for the SQLite state store."""

from datetime import timedelta
from decimal import Decimal

from conftest import utc

from payments_ofx.schemas import (
    AccessToken,
    BalanceSnapshot,
    Report,
    ReportInterval,
    ReportMode,
)
from payments_ofx.state_store import StateStore


def make_report(provider="paypal", currency="USD", start=None, end=None, balance="100.00"):
    interval = ReportInterval(start or utc(2024, 6, 1), end or utc(2024, 7, 1))
    return Report(
        provider=provider,
        currency=currency,
        mode=ReportMode.NET,
        report_date=interval.end + timedelta(hours=3),
        interval=interval,
        balance=BalanceSnapshot(Decimal(balance), interval.end),
        transactions=[],
        entries=[],
        encoded="",
    )


class TestTokens:
    """Access token persistence."""

    def test_save_and_load(self, temp_db):
        token = AccessToken("tok-1", utc(2024, 8, 1, 21, 0, 0), "client-id")
        temp_db.save_token("paypal", token)

        loaded = temp_db.load_token("paypal")
        assert loaded == token

    def test_load_missing(self, temp_db):
        assert temp_db.load_token("paypal") is None

    def test_save_replaces(self, temp_db):
        temp_db.save_token("paypal", AccessToken("tok-1", utc(2024, 8, 1), "client-id"))
        temp_db.save_token("paypal", AccessToken("tok-2", utc(2024, 8, 2), "client-id"))

        assert temp_db.load_token("paypal").value == "tok-2"

    def test_delete(self, temp_db):
        temp_db.save_token("paypal", AccessToken("tok-1", utc(2024, 8, 1), "client-id"))

        assert temp_db.delete_token("paypal") is True
        assert temp_db.delete_token("paypal") is False
        assert temp_db.load_token("paypal") is None

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "state.db"
        StateStore(path).save_token("paypal", AccessToken("tok-1", utc(2024, 8, 1), "client-id"))

        assert StateStore(path).load_token("paypal").value == "tok-1"


class TestReportRuns:
    """Report history."""

    def test_record_and_list(self, temp_db):
        run_id = temp_db.record_report(make_report(balance="42.10"))
        assert run_id > 0

        runs = temp_db.get_report_runs()
        assert len(runs) == 1
        run = runs[0]
        assert run.provider == "paypal"
        assert run.currency == "USD"
        assert run.start == utc(2024, 6, 1)
        assert run.end == utc(2024, 7, 1)
        assert run.balance == Decimal("42.10")
        assert run.num_txns == 0

    def test_last_report_end(self, temp_db):
        temp_db.record_report(make_report(start=utc(2024, 6, 1), end=utc(2024, 7, 1)))
        temp_db.record_report(make_report(start=utc(2024, 7, 1), end=utc(2024, 8, 1)))
        temp_db.record_report(make_report(provider="stripe", end=utc(2024, 9, 1)))
        temp_db.record_report(make_report(currency="EUR", end=utc(2024, 9, 1)))

        assert temp_db.get_last_report_end("paypal", "USD") == utc(2024, 8, 1)
        assert temp_db.get_last_report_end("stripe", "USD") == utc(2024, 9, 1)
        assert temp_db.get_last_report_end("stripe", "EUR") is None

    def test_runs_filtered_and_newest_first(self, temp_db):
        temp_db.record_report(make_report(provider="paypal"))
        temp_db.record_report(make_report(provider="stripe"))
        temp_db.record_report(make_report(provider="paypal", end=utc(2024, 8, 1)))

        runs = temp_db.get_report_runs(provider="paypal")
        assert [r.end for r in runs] == [utc(2024, 8, 1), utc(2024, 7, 1)]
        assert len(temp_db.get_report_runs(limit=1)) == 1
