"""
CLI main entry point.
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from ..config import Config, create_default_config, load_config
from ..errors import PaymentsOfxError
from ..ofx.encoder import statement_filename, write_statement
from ..providers.base import parse_timestamp
from ..report.assembler import ReportAssembler, build_sources
from ..schemas.transaction import NO_DATA_YET, ReportMode
from ..state_store import StateStore

logger = logging.getLogger(__name__)

PROVIDERS = ("paypal", "stripe")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _timestamp_arg(value: str) -> datetime:
    try:
        return parse_timestamp(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid ISO-8601 timestamp: {value!r}") from e


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="payments-ofx",
        description="Download PayPal / Stripe transactions as OFX bank statements",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # report command
    report_parser = subparsers.add_parser("report", help="Generate an OFX statement")
    report_parser.add_argument("provider", choices=PROVIDERS, help="Payment provider")
    report_parser.add_argument(
        "--start",
        type=_timestamp_arg,
        help="Inclusive start, ISO-8601 (naive times are UTC)",
    )
    report_parser.add_argument(
        "--end",
        type=_timestamp_arg,
        help="Exclusive end, ISO-8601 (default: now)",
    )
    report_parser.add_argument(
        "--since-last",
        action="store_true",
        help="Start where the previous report for this provider/currency ended",
    )
    report_parser.add_argument(
        "--currency",
        type=str.upper,
        help="ISO 4217 currency code (default: from config)",
    )
    report_parser.add_argument(
        "--mode",
        choices=[m.value for m in ReportMode],
        help="net: fees folded into each entry; gross: separate FEE entries",
    )
    report_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        help="Output file (default: <output_dir>/<provider>_<currency>_<start>_<end>.ofx)",
    )
    report_parser.add_argument(
        "--json",
        action="store_true",
        help="Print a JSON summary instead of text",
    )

    # reset-token command
    reset_parser = subparsers.add_parser(
        "reset-token", help="Forget the cached access token for a provider"
    )
    reset_parser.add_argument("provider", choices=PROVIDERS, help="Payment provider")

    # init-config command
    init_parser = subparsers.add_parser("init-config", help="Write a default config file")
    init_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing config file",
    )

    # history command
    history_parser = subparsers.add_parser("history", help="Show previously generated reports")
    history_parser.add_argument("--provider", choices=PROVIDERS, help="Filter by provider")
    history_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Maximum rows to show (default: 20)",
    )

    return parser


def cmd_report(
    config: Config,
    provider: str,
    start: datetime | None,
    end: datetime | None,
    since_last: bool,
    currency: str | None,
    mode: str | None,
    output: Path | None,
    as_json: bool = False,
) -> int:
    """Generate one statement and write it to disk."""
    errors = config.validate()
    if errors:
        print("❌ Invalid configuration:")
        for error in errors:
            print(f"   - {error}")
        return 1

    currency = currency or config.report.currency
    mode = mode or config.report.mode
    store = StateStore(config.state_db_path)

    if since_last:
        last_end = store.get_last_report_end(provider, currency)
        if last_end is None and start is None:
            print(f"❌ No previous {provider} {currency} report; pass --start")
            return 1
        start = last_end or start
    if start is None:
        print("❌ --start is required (or use --since-last)")
        return 1

    sources = build_sources(config, token_store=store)
    if provider not in sources:
        print(f"❌ Provider '{provider}' is not configured")
        return 1

    print(f"📥 Fetching {provider} {currency} transactions since {start.isoformat()}...")
    assembler = ReportAssembler(sources)
    try:
        report = assembler.generate_report(provider, start, end, currency=currency, mode=mode)
    except PaymentsOfxError as e:
        logger.debug("Report generation failed", exc_info=True)
        print(f"❌ Report failed: {e}")
        return 1

    if report is NO_DATA_YET:
        print(f"⏳ {provider} has not published data for {start.isoformat()} yet, try again later")
        return 0

    if output is None:
        name = (
            f"{provider}_{currency}_"
            f"{report.interval.start:%Y%m%d}_{report.interval.end:%Y%m%d}"
        )
        output = config.report.output_dir / statement_filename(name)
    output = write_statement(output, report.encoded)
    store.record_report(report)

    if as_json:
        print(json.dumps({**report.to_summary(), "path": str(output)}, indent=2))
        return 0

    print(f"✓ Wrote {output}")
    print(f"  Interval:     {report.interval.start.isoformat()} → {report.interval.end.isoformat()}")
    print(f"  Data as of:   {report.report_date.isoformat()}")
    print(f"  Transactions: {report.num_txns} ({len(report.entries)} entries, {report.mode.value})")
    print(f"  Balance:      {report.balance.amount} {report.currency}")
    return 0


def cmd_reset_token(config: Config, provider: str) -> int:
    """Delete the persisted token so the next run exchanges credentials again."""
    sources = build_sources(config, token_store=StateStore(config.state_db_path))
    if provider not in sources:
        print(f"❌ Provider '{provider}' is not configured")
        return 1

    if sources[provider].client.auth.reset():
        print(f"✓ Removed cached {provider} token")
    else:
        print(f"ℹ️  No cached {provider} token")
    return 0


def cmd_init_config(config_path: Path, force: bool = False) -> int:
    """Write the default config file."""
    if config_path.exists() and not force:
        print(f"⚠️  {config_path} already exists (use --force to overwrite)")
        return 1
    create_default_config(config_path)
    print(f"✓ Wrote default config to {config_path}")
    return 0


def cmd_history(config: Config, provider: str | None, limit: int) -> int:
    """List recorded report runs."""
    store = StateStore(config.state_db_path)
    runs = store.get_report_runs(provider=provider, limit=limit)

    print("\n📊 Report History")
    print("=" * 72)
    if not runs:
        print("  (no reports yet)")
    for run in runs:
        print(
            f"  {run.created_at[:16].replace('T', ' ')}  {run.provider:<7} {run.currency}  "
            f"{run.start:%Y-%m-%d} → {run.end:%Y-%m-%d}  "
            f"{run.num_txns:>4} txns  balance {run.balance}"
        )
    print()
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init-config":
        return cmd_init_config(parsed.config, parsed.force)

    # Load config
    try:
        config = load_config(parsed.config)
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    # Route to command
    if parsed.command == "report":
        return cmd_report(
            config,
            parsed.provider,
            start=parsed.start,
            end=parsed.end,
            since_last=parsed.since_last,
            currency=parsed.currency,
            mode=parsed.mode,
            output=parsed.output,
            as_json=parsed.json,
        )
    elif parsed.command == "reset-token":
        return cmd_reset_token(config, parsed.provider)
    elif parsed.command == "history":
        return cmd_history(config, parsed.provider, parsed.limit)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
