"""
Exception hierarchy for the statement pipeline.

Only three conditions are recovered from inside the pipeline: a single 401
(token refresh + one retry), 429 within the backoff schedule, and a PayPal
"start date too new" rejection (reported as NO_DATA_YET, not raised).
Everything below propagates to the caller unchanged.
"""


class PaymentsOfxError(Exception):
    """Base exception for all payments-ofx errors."""

    pass


class ConfigValidationError(PaymentsOfxError):
    """Raised when configuration validation fails."""

    pass


class InvalidInterval(PaymentsOfxError, ValueError):
    """Report interval start is later than its end."""

    def __init__(self, start, end):
        self.start = start
        self.end = end
        super().__init__(f"Invalid interval: start {start} is later than end {end}")


class AuthFailure(PaymentsOfxError):
    """Credential exchange was rejected by the provider's token endpoint."""

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"{provider} authentication failed: {message}")


class ProviderConnectionError(PaymentsOfxError):
    """Failed to reach the provider at the transport level."""

    pass


class HttpError(PaymentsOfxError):
    """Provider returned an error status after all applicable retries."""

    def __init__(self, url: str, status_code: int, response_body: str | None = None):
        self.url = url
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(f"HTTP request to {url} failed with status code {status_code}")

    @property
    def status(self) -> int:
        return self.status_code

    @property
    def body(self) -> str | None:
        return self.response_body


class RateLimitExhausted(HttpError):
    """429 persisted past the whole backoff schedule."""

    def __init__(self, url: str, attempts: int, response_body: str | None = None):
        self.attempts = attempts
        super().__init__(url, 429, response_body)
        self.args = (
            f"Rate limit on {url} persisted after {attempts} retries, giving up",
        )


class ReportGenerationFailed(PaymentsOfxError):
    """Asynchronous balance report run ended in a failed state."""

    def __init__(self, report_id: str | None, error: str | None = None):
        self.report_id = report_id
        self.error = error
        super().__init__(f"Balance report {report_id} failed: {error}")


class InvalidTransactionType(PaymentsOfxError, ValueError):
    """OFX encoder was given a transaction type outside the closed set."""

    def __init__(self, trn_type: str):
        self.trn_type = trn_type
        super().__init__(f"Given transaction type {trn_type!r} is not valid")
