"""
Ingestion and stats orchestration.

TrackerService sits between the transport and the event store: it
validates incoming events before writing them, and turns a stats request
into a handful of scoped store queries plus the pure aggregation in
``aggregator`` and ``flow``.
"""
import hashlib
import logging
import uuid
from collections.abc import Mapping, Sequence
from typing import Any

from . import aggregator
from .config import TrackerConfig
from .errors import IngestValidationError, SiteNotAllowedError, StatsUnavailableError, StoreError
from .flow import build_flow, parse_layers
from .models import Event, EventQuery, EventType, StatsResult
from .payload import serialize_data
from .store import EventStore
from .window import now_ms, resolve_window

logger = logging.getLogger(__name__)


def hash_ip(ip: str | None) -> str:
    """Irreversible short hash of a client IP ("" when unknown)."""
    if not ip:
        return ""
    return hashlib.sha256(ip.encode()).hexdigest()[:16]


def _clamp(value: Any, max_length: int) -> str | None:
    """Trim and truncate a string field; non-strings and blank strings become None."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value[:max_length] if value else None


def _coerce_ts(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value != value or value in (float("inf"), float("-inf")):
        return None
    return int(value)


def _chunks(items: Sequence[str], size: int):
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


class TrackerService:
    """Collects events and computes stats for one tracked site."""

    def __init__(self, store: EventStore, config: TrackerConfig | None = None):
        self.store = store
        self.config = config or TrackerConfig()

    # =========================================================================
    # INGESTION
    # =========================================================================

    def build_event(
        self,
        payload: Any,
        user_agent: str | None = None,
        client_ip: str | None = None,
        received_at: int | None = None,
    ) -> Event:
        """Validate a raw collect payload and turn it into an Event.

        Raises:
            IngestValidationError: If the payload is not an object, lacks
                site or type, or names a site outside the allow-list
        """
        if not isinstance(payload, Mapping):
            raise IngestValidationError("invalid_payload")

        limits = self.config.limits
        site = _clamp(payload.get("site"), limits.site)
        event_type = _clamp(payload.get("type"), limits.type)
        ts = _coerce_ts(payload.get("ts"))

        if not site or (self.config.require_ts and ts is None):
            raise IngestValidationError("missing_fields")
        if not self.config.is_site_allowed(site):
            raise IngestValidationError("site_not_allowed", status_code=403)
        if not event_type:
            raise IngestValidationError("missing_type")

        received_at = received_at or now_ms()
        if ts is not None and not 0 <= ts <= received_at + self.config.max_future_skew_ms:
            raise IngestValidationError("invalid_ts")

        return Event(
            id=f"evt-{uuid.uuid4().hex}",
            site=site,
            ts=ts if ts is not None else received_at,
            type=event_type,
            session_id=_clamp(payload.get("session_id"), limits.session_id),
            visitor_id=_clamp(payload.get("visitor_id"), limits.visitor_id),
            url=_clamp(payload.get("url"), limits.url),
            path=_clamp(payload.get("path"), limits.path),
            referrer=_clamp(payload.get("referrer"), limits.referrer),
            ua=_clamp(user_agent, limits.ua),
            ip_hash=hash_ip(client_ip),
            data=serialize_data(payload.get("data"), self.config.max_data_length),
        )

    async def ingest(
        self,
        payload: Any,
        user_agent: str | None = None,
        client_ip: str | None = None,
    ) -> str:
        """Validate and store one event, returning its id.

        Nothing is written when validation fails. Store failures propagate
        as StoreError.
        """
        try:
            event = self.build_event(payload, user_agent=user_agent, client_ip=client_ip)
        except IngestValidationError as e:
            logger.warning(f"Rejected event: {e.reason}")
            raise

        await self.store.insert(event)
        logger.debug(f"Stored {event.type} event {event.id} for {event.site}")
        return event.id

    # =========================================================================
    # STATS
    # =========================================================================

    def resolve_site(self, site: str | None) -> str:
        """Pick the site a stats request is about, enforcing the allow-list."""
        site = site or self.config.allowed_site
        if not self.config.is_site_allowed(site):
            raise SiteNotAllowedError(site)
        return site

    async def _first_visits(self, site: str, visitor_ids: list[str]) -> dict[str, int]:
        """All-time first visit per visitor, in parameter-sized chunks."""
        size = max(1, self.store.max_query_params - 5)
        first_visits: dict[str, int] = {}
        for chunk in _chunks(visitor_ids, size):
            first_visits.update(await self.store.first_visits(site, chunk))
        return first_visits

    async def compute_stats(
        self,
        site: str | None = None,
        since_min=None,
        layers: str | Sequence[str] | None = None,
        now: int | None = None,
    ) -> StatsResult:
        """
        Compute every derived statistic for a site over a lookback window.

        Args:
            site: Site to report on (defaults to the allowed site)
            since_min: Requested lookback in minutes, clamped to policy
            layers: Sankey layers as a list or comma-separated string
            now: Reference time in epoch ms (defaults to the current time)

        Raises:
            SiteNotAllowedError: If the site is not allowed
            StatsUnavailableError: If any store query fails; no partial
                result is returned
        """
        site = self.resolve_site(site)
        window = resolve_window(since_min, now=now, default_since_min=self.config.default_since_min)
        tz = self.config.tzinfo

        try:
            events = await self.store.query(
                EventQuery(site=site, since_ts=window.since_ts, newest_first=False)
            )
            recent = await self.store.query(
                EventQuery(
                    site=site,
                    since_ts=window.since_ts,
                    newest_first=True,
                    limit=aggregator.RECENT_LIMIT,
                )
            )
            # First-visit times need history from before the window, but
            # only for visitors active inside it
            active = list(dict.fromkeys(e.visitor_id for e in events if e.visitor_id))
            history = await self._first_visits(site, active)
        except StoreError as e:
            logger.error(f"Stats for {site} unavailable: {e}")
            raise StatsUnavailableError(str(e)) from e

        first_visits = aggregator.first_visit_times(events, known=history)
        sankey_pageviews = [e for e in events if e.type == EventType.PAGEVIEW and e.path is not None]
        requested_layers = parse_layers(layers) if layers is not None else list(self.config.flow_layers)

        logger.debug(
            f"Computing stats for {site}: {len(events)} events in the last "
            f"{window.since_min} minutes, {len(active)} visitors"
        )

        return StatsResult(
            pv=aggregator.count_pageviews(events),
            uv=aggregator.count_unique_visitors(events),
            since_min=window.since_min,
            top_pages=aggregator.top_pages(events),
            recent=aggregator.recent_events(recent),
            visitors=aggregator.visitor_profiles(events),
            device_stats=aggregator.device_stats(events),
            pv_trend=aggregator.pageview_trend(events, tz),
            sankey=build_flow(sankey_pageviews, requested_layers),
            user_stats=aggregator.classify_users(events, first_visits, window.since_ts),
            user_trend=aggregator.user_trend(events, first_visits, window.since_ts, tz),
        )
