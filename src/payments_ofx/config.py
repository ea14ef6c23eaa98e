"""
Configuration management.

All configuration keys are defined here; no other module should invent
config keys. Secrets (PayPal client secret, Stripe secret key) are usually
supplied through the environment rather than the YAML file.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .errors import ConfigValidationError
from .providers.paypal import PAYPAL_BASE_URL
from .providers.stripe import STRIPE_BASE_URL
from .schemas.transaction import ReportMode

__all__ = [
    "Config",
    "ConfigValidationError",
    "HttpConfig",
    "PayPalConfig",
    "ReportConfig",
    "StripeConfig",
    "create_default_config",
    "load_config",
]


@dataclass
class PayPalConfig:
    """PayPal REST app credentials (client_credentials grant)."""

    client_id: str = ""
    client_secret: str = ""
    # https://api-m.sandbox.paypal.com for sandbox apps
    base_url: str = PAYPAL_BASE_URL

    @property
    def enabled(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @property
    def token_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/v1/oauth2/token"


@dataclass
class StripeConfig:
    """Stripe secret (or restricted) API key.

    A restricted key needs read access to: Balance, Balance transaction
    sources, Files, and all Reporting resources.
    """

    secret_key: str = ""
    base_url: str = STRIPE_BASE_URL

    @property
    def enabled(self) -> bool:
        return bool(self.secret_key)


@dataclass
class HttpConfig:
    """Outbound HTTP settings shared by all providers."""

    # Request timeout (seconds)
    timeout_seconds: int = 30
    # Parallel page fetches per batch
    max_workers: int = 8
    # Transport-level retries (connect errors, 502/503/504)
    max_retries: int = 3


@dataclass
class ReportConfig:
    """Statement defaults."""

    currency: str = "USD"
    mode: str = ReportMode.NET.value
    output_dir: Path = field(default_factory=lambda: Path("output"))


@dataclass
class Config:
    """Application configuration."""

    paypal: PayPalConfig = field(default_factory=PayPalConfig)
    stripe: StripeConfig = field(default_factory=StripeConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    report: ReportConfig = field(default_factory=ReportConfig)
    state_db_path: Path = field(default_factory=lambda: Path("data/state.db"))

    def enabled_providers(self) -> list[str]:
        providers = []
        if self.paypal.enabled:
            providers.append("paypal")
        if self.stripe.enabled:
            providers.append("stripe")
        return providers

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if not self.enabled_providers():
            errors.append("no provider configured (set paypal credentials or stripe.secret_key)")

        # Half-configured PayPal app is almost certainly a mistake
        if bool(self.paypal.client_id) != bool(self.paypal.client_secret):
            errors.append("paypal.client_id and paypal.client_secret must be set together")

        for name, url in (("paypal", self.paypal.base_url), ("stripe", self.stripe.base_url)):
            if not url.startswith(("http://", "https://")):
                errors.append(f"{name}.base_url must be an http(s) URL")

        if len(self.report.currency) != 3 or not self.report.currency.isalpha():
            errors.append("report.currency must be a 3-letter ISO 4217 code")

        if self.report.mode not in {m.value for m in ReportMode}:
            errors.append("report.mode must be 'net' or 'gross'")

        if self.http.timeout_seconds <= 0:
            errors.append("http.timeout_seconds must be positive")
        if self.http.max_workers < 1:
            errors.append("http.max_workers must be at least 1")

        return errors

    def validate_or_raise(self) -> None:
        errors = self.validate()
        if errors:
            raise ConfigValidationError("; ".join(errors))


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    Environment variables can override config values:
    - PAYPAL_CLIENT_ID
    - PAYPAL_CLIENT_SECRET
    - PAYPAL_BASE_URL
    - STRIPE_SECRET_KEY
    - STRIPE_BASE_URL
    - PAYMENTS_OFX_STATE_DB
    - PAYMENTS_OFX_OUTPUT_DIR
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    # PayPal config
    paypal_data = data.get("paypal") or {}
    paypal = PayPalConfig(
        client_id=os.environ.get("PAYPAL_CLIENT_ID", paypal_data.get("client_id") or ""),
        client_secret=os.environ.get(
            "PAYPAL_CLIENT_SECRET", paypal_data.get("client_secret") or ""
        ),
        base_url=os.environ.get("PAYPAL_BASE_URL", paypal_data.get("base_url", PAYPAL_BASE_URL)),
    )

    # Stripe config
    stripe_data = data.get("stripe") or {}
    stripe = StripeConfig(
        secret_key=os.environ.get("STRIPE_SECRET_KEY", stripe_data.get("secret_key") or ""),
        base_url=os.environ.get("STRIPE_BASE_URL", stripe_data.get("base_url", STRIPE_BASE_URL)),
    )

    # HTTP config
    http_data = data.get("http") or {}
    http = HttpConfig(
        timeout_seconds=int(http_data.get("timeout_seconds", 30)),
        max_workers=int(http_data.get("max_workers", 8)),
        max_retries=int(http_data.get("max_retries", 3)),
    )

    # Report defaults
    report_data = data.get("report") or {}
    report = ReportConfig(
        currency=str(report_data.get("currency", "USD")).upper(),
        mode=str(report_data.get("mode", ReportMode.NET.value)).lower(),
        output_dir=Path(
            os.environ.get("PAYMENTS_OFX_OUTPUT_DIR", report_data.get("output_dir", "output"))
        ),
    )

    # State DB
    state_db = os.environ.get("PAYMENTS_OFX_STATE_DB", data.get("state_db_path", "data/state.db"))

    return Config(
        paypal=paypal,
        stripe=stripe,
        http=http,
        report=report,
        state_db_path=Path(state_db),
    )


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# payments-ofx configuration
#
# Secrets can be left empty here and supplied via the environment:
#   PAYPAL_CLIENT_ID, PAYPAL_CLIENT_SECRET, STRIPE_SECRET_KEY

paypal:
  client_id: ""                            # REST app client id
  client_secret: ""                        # REST app secret
  base_url: "https://api-m.paypal.com"     # Sandbox: https://api-m.sandbox.paypal.com

stripe:
  # Restricted key with read access to Balance, Balance transaction sources,
  # Files and all Reporting resources
  secret_key: ""
  base_url: "https://api.stripe.com"

http:
  timeout_seconds: 30
  max_workers: 8                           # Parallel page fetches
  max_retries: 3                           # Connect errors, 502/503/504

report:
  currency: "USD"
  mode: "net"                              # net: one entry per txn; gross: separate FEE entries
  output_dir: "output"

# Tokens and report history
state_db_path: "data/state.db"
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
