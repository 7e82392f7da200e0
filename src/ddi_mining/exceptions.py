"""
Error Taxonomy

Exceptions raised by the mining core. Transport and parse failures are caught
at the (drug, source) boundary by the orchestrator; configuration and capacity
failures are raised synchronously to the caller before any work starts.
"""

from typing import Optional


class MiningError(Exception):
    """Base class for all DDI mining errors."""
    pass


class TransportError(MiningError):
    """Network failure or non-success upstream status after retries."""

    def __init__(self, message: str, source: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.source = source
        self.status_code = status_code


class ServiceUnavailableError(TransportError):
    """Raised when a source is skipped because its circuit breaker is open."""
    pass


class ParseError(MiningError):
    """Malformed or unexpected upstream payload."""
    pass


class ValidationError(MiningError):
    """An evidence record failed schema checks and must be quarantined."""

    def __init__(self, reason_code: str, message: str = ""):
        super().__init__(message or reason_code)
        self.reason_code = reason_code


class ConfigError(MiningError):
    """Raised when configuration is invalid or an update is rejected."""
    pass


class CapacityError(MiningError):
    """Batch size or rate budget exceeded."""
    pass


class MiningCancelledError(MiningError):
    """Raised inside workers once a job has been stopped."""
    pass
