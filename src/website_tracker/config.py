"""
Configuration for the website tracker.
"""
import logging
import os
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

# Lookback window policy (minutes)
MIN_SINCE_MIN = 5
MAX_SINCE_MIN = 60 * 24 * 30

# Deployment presets
DASHBOARD_DEFAULT_SINCE_MIN = MAX_SINCE_MIN  # 30 days
EDGE_DEFAULT_SINCE_MIN = 60 * 24  # 24 hours

DEFAULT_FLOW_LAYERS = ("os", "browser", "referrer", "deviceType", "path")

# Event timestamps accepted at ingestion: not before the epoch, and not more
# than this far past the time the event was received
MAX_FUTURE_SKEW_MS = 24 * 60 * 60 * 1000


class InvalidTimezoneError(ValueError):
    """Raised when the configured timezone is not a known IANA zone."""
    pass


class InvalidWindowError(ValueError):
    """Raised when the default lookback falls outside the window policy."""
    pass


@dataclass(frozen=True)
class FieldLimits:
    """Maximum stored length for each string field of an event."""

    site: int = 200
    type: int = 50
    session_id: int = 100
    visitor_id: int = 100
    url: int = 2000
    path: int = 1000
    referrer: int = 2000
    ua: int = 400


@dataclass
class TrackerConfig:
    """Configuration for a single tracker instance."""

    # Single-site allow-list; None accepts any site
    allowed_site: str | None = None

    # Hour buckets are computed in this zone, not the process locale
    timezone: str = "UTC"

    # Lookback used when a stats request gives none (or garbage)
    default_since_min: int = DASHBOARD_DEFAULT_SINCE_MIN

    # Sankey layers used when a request does not choose its own
    flow_layers: tuple[str, ...] = DEFAULT_FLOW_LAYERS

    # Ingestion
    require_ts: bool = False
    max_future_skew_ms: int = MAX_FUTURE_SKEW_MS
    max_data_length: int = 4000
    limits: FieldLimits = field(default_factory=FieldLimits)

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate_timezone()
        if not MIN_SINCE_MIN <= self.default_since_min <= MAX_SINCE_MIN:
            raise InvalidWindowError(
                f"default_since_min must be between {MIN_SINCE_MIN} and "
                f"{MAX_SINCE_MIN} minutes. Got {self.default_since_min}."
            )
        if not self.allowed_site:
            logger.warning("No allowed_site configured: events for any site will be accepted")

    def _validate_timezone(self) -> None:
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise InvalidTimezoneError(f"Unknown timezone: {self.timezone!r}") from None

    @property
    def tzinfo(self) -> ZoneInfo:
        """The configured timezone as a tzinfo object."""
        return ZoneInfo(self.timezone)

    def is_site_allowed(self, site: str | None) -> bool:
        """Check a site against the allow-list."""
        if not site:
            return False
        return self.allowed_site is None or site == self.allowed_site

    @classmethod
    def from_env(cls, **overrides) -> "TrackerConfig":
        """Build a config from TRACKER_* environment variables.

        ALLOWED_SITE is honoured as a fallback for the allow-list so that
        existing deployments keep working.
        """
        values = {}
        allowed_site = os.environ.get("TRACKER_ALLOWED_SITE") or os.environ.get("ALLOWED_SITE")
        if allowed_site:
            values["allowed_site"] = allowed_site
        if os.environ.get("TRACKER_TIMEZONE"):
            values["timezone"] = os.environ["TRACKER_TIMEZONE"]
        if os.environ.get("TRACKER_DEFAULT_SINCE_MIN"):
            values["default_since_min"] = int(os.environ["TRACKER_DEFAULT_SINCE_MIN"])
        values.update(overrides)
        return cls(**values)
