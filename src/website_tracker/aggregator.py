"""
Derived statistics over a windowed event set.

Every function here is pure: it takes events already fetched from the
store and returns response models. Grouping follows store order, so ties
in sorted outputs keep the order the store returned.
"""
from collections import Counter, defaultdict
from collections.abc import Iterable, Mapping, Sequence
from datetime import timezone, tzinfo

from .models import (
    DeviceStats,
    Event,
    RecentEvent,
    TopPage,
    TrendPoint,
    UserStats,
    UserTrendPoint,
    VisitorProfile,
)
from .payload import parse_data
from .user_agent import DeviceType, classify_device
from .window import hour_bucket

TOP_PAGES_LIMIT = 20
VISITORS_LIMIT = 50
RECENT_LIMIT = 50


def _visitor(event: Event) -> str | None:
    """Visitor id of an event; empty ids count as missing."""
    return event.visitor_id or None


def _pageviews(events: Iterable[Event]) -> list[Event]:
    return [e for e in events if e.is_pageview]


# =========================================================================
# TRAFFIC
# =========================================================================

def count_pageviews(events: Iterable[Event]) -> int:
    """PV: number of pageview events."""
    return sum(1 for e in events if e.is_pageview)


def count_unique_visitors(events: Iterable[Event]) -> int:
    """UV: distinct visitor ids across events of any type."""
    return len({_visitor(e) for e in events} - {None})


def pageview_trend(events: Iterable[Event], tz: tzinfo = timezone.utc) -> list[TrendPoint]:
    """Pageviews per hour bucket, oldest first. Empty hours are omitted."""
    counts = Counter(hour_bucket(e.ts, tz) for e in _pageviews(events))
    return [TrendPoint(time=hour, count=count) for hour, count in sorted(counts.items())]


# =========================================================================
# PAGES
# =========================================================================

def top_pages(events: Iterable[Event], limit: int = TOP_PAGES_LIMIT) -> list[TopPage]:
    """Most viewed paths, each with the title from its latest pageview."""
    counts: Counter[str] = Counter()
    latest: dict[str, Event] = {}

    for event in _pageviews(events):
        if not event.path:
            continue
        counts[event.path] += 1
        current = latest.get(event.path)
        if current is None or event.ts >= current.ts:
            latest[event.path] = event

    # Counter keeps first-seen order and sorted() is stable
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)[:limit]
    return [
        TopPage(path=path, title=parse_data(latest[path].data).title, pv=pv)
        for path, pv in ranked
    ]


# =========================================================================
# VISITORS
# =========================================================================

def visitor_profiles(events: Iterable[Event], limit: int = VISITORS_LIMIT) -> list[VisitorProfile]:
    """Per-visitor rollups, most recently active first."""
    groups: dict[str, list[Event]] = defaultdict(list)
    for event in events:
        visitor_id = _visitor(event)
        if visitor_id:
            groups[visitor_id].append(event)

    profiles = []
    for visitor_id, group in groups.items():
        user_agents = [e.ua for e in group if e.ua]
        info = classify_device(max(user_agents) if user_agents else None)
        profiles.append(VisitorProfile(
            visitor_id=visitor_id,
            device=info.device,
            device_type=info.device_type,
            os=info.os,
            browser=info.browser,
            first_visit=min(e.ts for e in group),
            last_visit=max(e.ts for e in group),
            pages_count=len({e.path for e in group if e.path is not None}),
            pv_count=sum(1 for e in group if e.is_pageview),
        ))

    profiles.sort(key=lambda p: p.last_visit, reverse=True)
    return profiles[:limit]


def first_visit_times(
    events: Iterable[Event],
    known: Mapping[str, int] | None = None,
) -> dict[str, int]:
    """Earliest timestamp per visitor.

    ``known`` holds first visits already looked up in the store; events
    only move a visitor's first visit earlier.
    """
    first = dict(known or {})
    for event in events:
        visitor_id = _visitor(event)
        if visitor_id and (visitor_id not in first or event.ts < first[visitor_id]):
            first[visitor_id] = event.ts
    return first


def classify_users(
    events: Iterable[Event],
    first_visits: Mapping[str, int],
    since_ts: int,
) -> UserStats:
    """Split the window's visitors into new and returning.

    A visitor is new iff their all-time first visit (from ``first_visits``,
    not from ``events``) is inside the window.
    """
    pageviews: Counter[str] = Counter()
    active: dict[str, None] = {}
    for event in events:
        visitor_id = _visitor(event)
        if not visitor_id:
            continue
        active[visitor_id] = None
        if event.is_pageview:
            pageviews[visitor_id] += 1

    stats = UserStats()
    for visitor_id in active:
        if first_visits.get(visitor_id, since_ts) >= since_ts:
            stats.new_users += 1
            stats.new_user_pv += pageviews[visitor_id]
        else:
            stats.returning_users += 1
            stats.returning_user_pv += pageviews[visitor_id]

    stats.total_users = stats.new_users + stats.returning_users
    stats.total_pv = stats.new_user_pv + stats.returning_user_pv
    return stats


def user_trend(
    events: Iterable[Event],
    first_visits: Mapping[str, int],
    since_ts: int,
    tz: tzinfo = timezone.utc,
) -> list[UserTrendPoint]:
    """New vs returning visitors per hour bucket, oldest first.

    A visitor active in several hours counts once in each of them.
    """
    hours: dict[str, tuple[set[str], set[str]]] = {}
    for event in events:
        visitor_id = _visitor(event)
        if not visitor_id:
            continue
        new, returning = hours.setdefault(hour_bucket(event.ts, tz), (set(), set()))
        if first_visits.get(visitor_id, since_ts) >= since_ts:
            new.add(visitor_id)
        else:
            returning.add(visitor_id)

    return [
        UserTrendPoint(
            time=hour,
            new_users=len(new),
            returning_users=len(returning),
            total_users=len(new) + len(returning),
        )
        for hour, (new, returning) in sorted(hours.items())
    ]


# =========================================================================
# TECHNOLOGY
# =========================================================================

def device_stats(events: Iterable[Event]) -> DeviceStats:
    """Device type, OS and browser frequencies over pageviews with a UA."""
    device_types: Counter[str] = Counter()
    operating_systems: Counter[str] = Counter()
    browsers: Counter[str] = Counter()

    for event in _pageviews(events):
        if not event.ua or not event.ua.strip():
            continue
        info = classify_device(event.ua)
        device_types[info.device_type or DeviceType.DESKTOP.value] += 1
        operating_systems[info.os] += 1
        browsers[info.browser] += 1

    return DeviceStats(
        device_types=dict(device_types),
        os=dict(operating_systems),
        browsers=dict(browsers),
    )


# =========================================================================
# ACTIVITY FEED
# =========================================================================

def recent_events(events: Sequence[Event], limit: int = RECENT_LIMIT) -> list[RecentEvent]:
    """Latest events of any type, newest first, with title and device."""
    ordered = sorted(events, key=lambda e: e.ts, reverse=True)[:limit]

    recent = []
    for event in ordered:
        data = parse_data(event.data)
        info = classify_device(event.ua)
        recent.append(RecentEvent(
            ts=event.ts,
            type=event.type,
            path=event.path,
            title=data.title,
            data=data.to_json(),
            visitor_id=_visitor(event),
            device=info.device,
            browser=info.browser,
        ))
    return recent
