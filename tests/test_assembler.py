"""Tests for report assembly (entries, modes, encoding, wiring)."""

import json
from decimal import Decimal
from urllib.parse import parse_qs, urlparse

import pytest
import responses
from conftest import PAYPAL_URL, make_txn, token_json, utc

from payments_ofx.config import Config, PayPalConfig, StripeConfig
from payments_ofx.providers import PayPalSource, StripeSource
from payments_ofx.providers.base import ProviderSource
from payments_ofx.report import ReportAssembler, build_entries, build_sources
from payments_ofx.schemas import (
    NO_DATA_YET,
    BalanceSnapshot,
    ProviderResult,
    ReportInterval,
    ReportMode,
    TransactionCategory,
)


class FakeSource(ProviderSource):
    """Returns a canned result; records what it was asked for."""

    name = "fake"
    institution_id = "FakeBank"
    fee_payee_name = "Fake fees"

    def __init__(self, result):
        super().__init__(client=None, base_url="https://fake.test")
        self.result = result
        self.calls = []

    def fetch(self, start, end, currency="USD"):
        self.calls.append((start, end, currency))
        return self.result

    def normalize(self, raw):
        raise NotImplementedError


def provider_result(transactions):
    interval = ReportInterval(utc(2024, 6, 1), utc(2024, 8, 1))
    return ProviderResult(
        report_date=utc(2024, 8, 1, 2, 59, 59),
        interval=interval,
        balance=BalanceSnapshot(Decimal("1234.56"), interval.end),
        transactions=tuple(transactions),
        account_id="ACCT1",
    )


class TestBuildEntries:
    """Net and gross fee rendering."""

    def setup_method(self):
        self.source = FakeSource(None)
        self.txns = [
            make_txn("TX1", gross="100.00", fee="3.20", when=utc(2024, 6, 3)),
            make_txn(
                "TX2",
                gross="-50.00",
                fee="0",
                when=utc(2024, 7, 1),
                category=TransactionCategory.XFER,
            ),
        ]

    def test_net_mode_one_entry_per_txn(self):
        entries = build_entries(self.source, self.txns, ReportMode.NET)

        assert [e.fitid for e in entries] == ["TX1", "TX2"]
        assert entries[0].amount == Decimal("96.80")
        assert entries[0].trn_type == TransactionCategory.PAYMENT
        assert entries[0].name == "Jane Doe"
        assert entries[0].memo == "jane@example.com // TX1"
        assert entries[1].amount == Decimal("-50.00")

    def test_gross_mode_separate_fee_entry(self):
        entries = build_entries(self.source, self.txns, "gross")

        assert [e.fitid for e in entries] == ["TX1", "TX1-1", "TX2"]
        fee = entries[1]
        assert fee.trn_type == TransactionCategory.FEE
        assert fee.amount == Decimal("-3.20")
        assert fee.posted == entries[0].posted
        assert fee.name == "Fake fees"
        assert fee.memo == "fee for:TX1"

    def test_gross_entries_sum_to_net(self):
        net = build_entries(self.source, self.txns, ReportMode.NET)
        gross = build_entries(self.source, self.txns, ReportMode.GROSS)
        assert sum(e.amount for e in gross) == sum(e.amount for e in net)

    def test_unknown_mode_raises(self):
        with pytest.raises(ValueError):
            build_entries(self.source, self.txns, "both")


class TestReportAssembler:
    """generate_report end to end with a fake source."""

    def test_net_report(self, clock):
        source = FakeSource(
            provider_result([make_txn("TX1", when=utc(2024, 6, 3)), make_txn("TX2", when=utc(2024, 7, 1))])
        )
        assembler = ReportAssembler({"fake": source}, clock=clock)

        report = assembler.generate_report("fake", utc(2024, 6, 1), utc(2024, 8, 1))

        assert report.num_txns == 2
        assert len(report.entries) == 2
        assert report.mode == ReportMode.NET
        assert report.balance.amount == Decimal("1234.56")
        assert report.encoded.count("<STMTTRN>") == 2
        assert "<BANKID>FakeBank" in report.encoded
        assert "<ACCTID>ACCT1" in report.encoded
        assert "<CURDEF>USD" in report.encoded
        assert "<DTSERVER>20240801025959.000[-0:GMT]" in report.encoded
        assert "<BALAMT>1234.56" in report.encoded
        assert "<DTASOF>20240801000000.000[-0:GMT]" in report.encoded

    def test_gross_report_adds_fee_entries(self, clock):
        source = FakeSource(provider_result([make_txn("TX1")]))
        assembler = ReportAssembler({"fake": source}, clock=clock)

        report = assembler.generate_report("fake", utc(2024, 6, 1), utc(2024, 8, 1), mode="gross")

        assert report.num_txns == 1
        assert len(report.entries) == 2
        assert "<TRNTYPE>FEE" in report.encoded
        assert "<FITID>TX1-1" in report.encoded

    def test_end_defaults_to_now(self, clock):
        source = FakeSource(provider_result([]))
        assembler = ReportAssembler({"fake": source}, clock=clock)

        assembler.generate_report("fake", utc(2024, 6, 1), currency="EUR")

        assert source.calls == [(utc(2024, 6, 1), clock.now, "EUR")]

    def test_no_data_yet_passed_through(self, clock):
        assembler = ReportAssembler({"fake": FakeSource(NO_DATA_YET)}, clock=clock)
        assert assembler.generate_report("fake", utc(2024, 8, 1)) is NO_DATA_YET

    def test_unknown_provider(self, clock):
        assembler = ReportAssembler({"fake": FakeSource(NO_DATA_YET)}, clock=clock)
        with pytest.raises(ValueError, match="Unknown provider"):
            assembler.generate_report("venmo", utc(2024, 6, 1))

    def test_summary(self, clock):
        source = FakeSource(provider_result([make_txn("TX1")]))
        report = ReportAssembler({"fake": source}, clock=clock).generate_report(
            "fake", utc(2024, 6, 1), utc(2024, 8, 1)
        )
        summary = report.to_summary()
        assert summary["provider"] == "fake"
        assert summary["num_txns"] == 1
        assert summary["balance"] == "1234.56"
        assert summary["mode"] == "net"


class TestPayPalReport:
    """June to July 2024 statement through the PayPal source."""

    def _txn(self, txn_id, updated, gross, fee, name):
        return {
            "transaction_info": {
                "transaction_id": txn_id,
                "transaction_event_code": "T0006",
                "transaction_updated_date": updated,
                "transaction_amount": {"currency_code": "USD", "value": gross},
                "fee_amount": {"currency_code": "USD", "value": fee},
            },
            "payer_info": {"payer_name": {"alternate_full_name": name}},
        }

    def _mock_api(self, pages_by_start):
        responses.add(
            responses.POST, f"{PAYPAL_URL}/v1/oauth2/token", json=token_json(), status=200
        )

        def transactions(request):
            q = {k: v[0] for k, v in parse_qs(urlparse(request.url).query).items()}
            pages = pages_by_start[q["start_date"]]
            body = {
                "transaction_details": pages[int(q["page"]) - 1],
                "account_number": "PAYPALACCT123",
                "last_refreshed_datetime": "2024-08-01T02:59:59+0000",
                "total_pages": len(pages),
            }
            return (200, {}, json.dumps(body))

        responses.add_callback(
            responses.GET, f"{PAYPAL_URL}/v1/reporting/transactions", callback=transactions
        )
        responses.add(
            responses.GET,
            f"{PAYPAL_URL}/v1/reporting/balances",
            json={
                "balances": [
                    {"currency": "USD", "total_balance": {"currency_code": "USD", "value": "1234.56"}}
                ]
            },
            status=200,
        )

    @responses.activate
    def test_net_report_two_pages(self, paypal_client, clock):
        july = self._txn("JULY", "2024-07-01T08:30:00+0000", "50.00", "-1.75", "Acme Ltd")
        june = self._txn("JUNE", "2024-06-05T10:00:01+0000", "100.00", "-3.20", "Jane Doe")
        self._mock_api(
            {
                "2024-06-01T00:00:00.000Z": [[july], [june]],
                "2024-07-02T00:00:01.000Z": [[]],
            }
        )
        source = PayPalSource(paypal_client, PAYPAL_URL)
        assembler = ReportAssembler({"paypal": source}, clock=clock)

        report = assembler.generate_report(
            "paypal", utc(2024, 6, 1), utc(2024, 8, 1), currency="USD", mode="net"
        )

        assert [e.fitid for e in report.entries] == ["JUNE-T0006", "JULY-T0006"]
        assert [e.amount for e in report.entries] == [Decimal("96.80"), Decimal("48.25")]
        assert report.interval == ReportInterval(utc(2024, 6, 1), utc(2024, 8, 1))
        assert report.balance.amount == Decimal("1234.56")
        assert report.encoded.count("<STMTTRN>") == 2
        assert report.encoded.index("<FITID>JUNE-T0006") < report.encoded.index("<FITID>JULY-T0006")
        assert "<DTSTART>20240601000000.000[-0:GMT]" in report.encoded
        assert "<DTEND>20240801000000.000[-0:GMT]" in report.encoded
        assert "<BALAMT>1234.56" in report.encoded
        assert "<DTASOF>20240801000000.000[-0:GMT]" in report.encoded

        balance_call = next(c for c in responses.calls if "/balances" in c.request.url)
        assert "as_of_time=2024-07-31T23%3A59%3A59.000Z" in balance_call.request.url


class TestBuildSources:
    """Config → provider sources."""

    def test_only_configured_providers(self):
        config = Config(stripe=StripeConfig(secret_key="sk_test_123"))
        sources = build_sources(config)
        assert list(sources) == ["stripe"]
        assert isinstance(sources["stripe"], StripeSource)
        assert sources["stripe"].client.rate_limit_schedule == (15.0, 60.0, 240.0)

    def test_both_providers(self, temp_db):
        config = Config(
            paypal=PayPalConfig(client_id="id", client_secret="secret", base_url="https://paypal.test"),
            stripe=StripeConfig(secret_key="sk_test_123"),
        )
        sources = build_sources(config, token_store=temp_db)

        paypal = sources["paypal"]
        assert isinstance(paypal, PayPalSource)
        assert paypal.base_url == "https://paypal.test"
        assert paypal.client.auth.token_url == "https://paypal.test/v1/oauth2/token"
        assert paypal.client.auth.token_store is temp_db
        assert paypal.client.rate_limit_schedule == ()
