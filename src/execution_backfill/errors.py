"""Error types raised and recorded by the backfill pipeline."""

from typing import Optional


class BackfillError(Exception):
    """Base class for all backfill errors."""


class ProvisioningError(BackfillError):
    """No usable proxy endpoints could be obtained. Fatal before the run starts."""


class RateLimitError(BackfillError):
    """Waiting for a rate limiter token timed out or was cancelled."""


class FetchError(BackfillError):
    """Page request failed: transport error, timeout or non-2xx status."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class PersistenceError(BackfillError):
    """Page artifact could not be written."""
