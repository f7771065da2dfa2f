"""Live monitor exceptions."""


class MonitorError(Exception):
    """Base live monitor error."""


class LookupUnavailableError(MonitorError):
    """Raised when an external lookup fails or cannot be attempted."""


class QuotaExhaustedError(LookupUnavailableError):
    """Raised when the authoritative API refuses further budgeted calls."""
