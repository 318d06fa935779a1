"""
Self-hosted website tracking: event collection and aggregated stats.

Usage:
    from fastapi import FastAPI
    from website_tracker import setup_tracker

    tracker = setup_tracker(
        allowed_site="example.com",
        db_path="tracker.db",
        timezone="Asia/Shanghai",
    )

    app = FastAPI(on_startup=[tracker.initialize])
    app.include_router(tracker.router)

Edge deployments store events in Cloudflare D1 instead:

    tracker = setup_tracker(
        allowed_site="example.com",
        d1_database_id="your-d1-id",
        cf_account_id="your-account-id",
        cf_api_token="your-api-token",
        default_since_min=EDGE_DEFAULT_SINCE_MIN,
    )
"""

from .config import DASHBOARD_DEFAULT_SINCE_MIN, EDGE_DEFAULT_SINCE_MIN, TrackerConfig
from .errors import (
    IngestValidationError,
    SiteNotAllowedError,
    StatsUnavailableError,
    StoreError,
    TrackerError,
)
from .flow import build_flow
from .models import Event, FlowGraph, StatsResult
from .routes import create_tracker_router
from .service import TrackerService
from .store import D1EventStore, EventStore, SQLiteEventStore
from .user_agent import DeviceInfo, classify_device
from .window import resolve_window

__version__ = "0.1.0"
__all__ = [
    "setup_tracker", "Tracker", "TrackerConfig", "TrackerService",
    "EventStore", "SQLiteEventStore", "D1EventStore",
    "Event", "StatsResult", "FlowGraph", "DeviceInfo",
    "build_flow", "classify_device", "resolve_window",
    "TrackerError", "IngestValidationError", "SiteNotAllowedError", "StoreError",
    "StatsUnavailableError",
    "DASHBOARD_DEFAULT_SINCE_MIN", "EDGE_DEFAULT_SINCE_MIN",
]


class Tracker:
    """Main tracker interface for a site."""

    def __init__(self, store: EventStore, config: TrackerConfig):
        self.config = config
        self.store = store
        self.service = TrackerService(store, config)
        self.router = create_tracker_router(self.service)

    async def initialize(self) -> None:
        """Create the events table if the store supports it."""
        initialize = getattr(self.store, "initialize", None)
        if initialize is not None:
            await initialize()


def setup_tracker(
    allowed_site: str | None = None,
    db_path: str = "tracker.db",
    d1_database_id: str | None = None,
    cf_account_id: str | None = None,
    cf_api_token: str | None = None,
    timezone: str = "UTC",
    default_since_min: int = DASHBOARD_DEFAULT_SINCE_MIN,
    store: EventStore | None = None,
) -> Tracker:
    """
    Set up tracking for a site.

    Args:
        allowed_site: The only site events are accepted for (None accepts any)
        db_path: SQLite file used when no D1 database is given
        d1_database_id: Cloudflare D1 database ID (enables the D1 store)
        cf_account_id: Cloudflare account ID
        cf_api_token: Cloudflare API token with D1 read/write access
        timezone: IANA timezone for hourly trends
        default_since_min: Lookback used when a stats request gives none
        store: An existing EventStore, overriding the options above

    Returns:
        Tracker with router, service and initialize()
    """
    config = TrackerConfig(
        allowed_site=allowed_site,
        timezone=timezone,
        default_since_min=default_since_min,
    )

    if store is None:
        if d1_database_id:
            store = D1EventStore(
                d1_database_id=d1_database_id,
                cf_account_id=cf_account_id,
                cf_api_token=cf_api_token,
            )
        else:
            store = SQLiteEventStore(db_path)

    return Tracker(store=store, config=config)
