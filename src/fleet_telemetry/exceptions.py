"""Error taxonomy for the telemetry engine."""


class TelemetryError(Exception):
    """Base exception for all fleet_telemetry errors."""


class ConfigurationError(TelemetryError):
    """Malformed alias lists, fallback templates or settings. Fatal at startup."""


class InvalidRecord(TelemetryError):
    """A single raw record could not be turned into a sample.

    Never fatal: batch normalization counts these and moves on.
    """

    def __init__(self, reason: str, record=None):
        self.reason = reason
        self.record = record
        super().__init__(reason)


class FetchExhausted(TelemetryError):
    """Every candidate endpoint (primary + fallbacks) failed.

    The last underlying error is chained as ``__cause__`` and also kept on
    ``last_error`` so callers can report the real reason.
    """

    def __init__(self, url: str, attempts: list):
        self.url = url
        self.attempts = attempts
        self.last_error = attempts[-1].error if attempts else None
        detail = f": {self.last_error}" if self.last_error is not None else ""
        super().__init__(
            f"All {len(attempts)} endpoint(s) failed for {url}{detail}"
        )


class PayloadRejected(TelemetryError):
    """The provider answered but flagged the request as failed (status: false)."""
