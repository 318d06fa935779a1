"""
Exception types for the website tracker.

Ingestion failures carry a short reason code that is returned to the
caller as-is. Store failures are never retried; stats computation turns
the first one into StatsUnavailableError so no partial snapshot escapes.
"""


class TrackerError(Exception):
    """Base class for tracker errors."""
    pass


class IngestValidationError(TrackerError):
    """Raised when an incoming event is rejected before any store write."""

    def __init__(self, reason: str, status_code: int = 400):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


class SiteNotAllowedError(TrackerError):
    """Raised when a request names a site outside the allow-list."""

    reason = "site_not_allowed"
    status_code = 403

    def __init__(self, site: str | None):
        super().__init__(f"Site not allowed: {site!r}")
        self.site = site


class StoreError(TrackerError):
    """Raised when the event store fails a read or a write."""
    pass


class StatsUnavailableError(TrackerError):
    """Raised when any query behind a stats request fails."""
    pass
