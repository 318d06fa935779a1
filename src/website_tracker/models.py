"""
Pydantic models for tracker data.
"""
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# =============================================================================
# Raw Data Models
# =============================================================================


class EventType(str, Enum):
    """Event types emitted by the tracking script."""
    PAGEVIEW = "pageview"
    CLICK = "click"
    SCROLL = "scroll"
    DURATION = "duration"
    CUSTOM = "custom"


class Event(BaseModel):
    """A single stored event (one row of the events table)."""
    model_config = ConfigDict(frozen=True)

    id: str
    site: str
    ts: int  # epoch milliseconds
    type: str  # EventType value, or any name passed to track()

    session_id: str | None = None
    visitor_id: str | None = None

    url: str | None = None
    path: str | None = None
    referrer: str | None = None
    ua: str | None = None

    ip_hash: str = ""
    data: str = "{}"  # JSON text, untrusted; may be truncated or malformed

    @property
    def is_pageview(self) -> bool:
        return self.type == EventType.PAGEVIEW


class EventQuery(BaseModel):
    """A windowed read of one site's events."""
    site: str
    since_ts: int | None = None
    newest_first: bool | None = None  # None leaves store order alone
    limit: int | None = None


# =============================================================================
# Stats Response Models
# =============================================================================

class _ResponseModel(BaseModel):
    """Base for response models: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Window(_ResponseModel):
    """A resolved lookback window."""
    since_ts: int  # epoch milliseconds, inclusive lower bound
    since_min: int


class TrendPoint(_ResponseModel):
    """Pageviews in one hour bucket."""
    time: str  # YYYY-MM-DD HH:00:00 in the configured timezone
    count: int


class TopPage(_ResponseModel):
    """Pageview count for a single path."""
    path: str
    title: str = ""
    pv: int


class VisitorProfile(_ResponseModel):
    """Per-visitor rollup within the window."""
    visitor_id: str = Field(alias="visitor_id")
    device: str
    device_type: str | None = None
    os: str
    browser: str
    first_visit: int  # epoch ms
    last_visit: int  # epoch ms
    pages_count: int
    pv_count: int = 0


class RecentEvent(_ResponseModel):
    """An event in the recent activity feed."""
    ts: int
    type: str
    path: str | None = None
    title: str = ""
    data: str = "{}"
    visitor_id: str | None = Field(default=None, alias="visitor_id")
    device: str
    browser: str


class DeviceStats(_ResponseModel):
    """Frequency tables of classified pageview user-agents."""
    device_types: dict[str, int] = Field(default_factory=dict)
    os: dict[str, int] = Field(default_factory=dict)
    browsers: dict[str, int] = Field(default_factory=dict)


class UserStats(_ResponseModel):
    """New vs returning visitor totals."""
    new_users: int = 0
    returning_users: int = 0
    new_user_pv: int = Field(default=0, alias="newUserPV")
    returning_user_pv: int = Field(default=0, alias="returningUserPV")
    total_users: int = 0
    total_pv: int = Field(default=0, alias="totalPV")


class UserTrendPoint(_ResponseModel):
    """New vs returning visitors active in one hour bucket."""
    time: str
    new_users: int = 0
    returning_users: int = 0
    total_users: int = 0


class FlowNode(_ResponseModel):
    label: str


class FlowLink(_ResponseModel):
    source: int  # index into nodes
    target: int
    value: int


class FlowGraph(_ResponseModel):
    """Sankey data: nodes, weighted links and the layers actually used."""
    nodes: list[FlowNode] = Field(default_factory=list)
    links: list[FlowLink] = Field(default_factory=list)
    layers: list[str] = Field(default_factory=list)


class StatsResult(_ResponseModel):
    """Complete stats response."""
    ok: bool = True
    pv: int = 0
    uv: int = 0
    since_min: int

    top_pages: list[TopPage] = Field(default_factory=list)
    recent: list[RecentEvent] = Field(default_factory=list)
    visitors: list[VisitorProfile] = Field(default_factory=list)
    device_stats: DeviceStats = Field(default_factory=DeviceStats)
    pv_trend: list[TrendPoint] = Field(default_factory=list)

    sankey: FlowGraph = Field(default_factory=FlowGraph)

    user_stats: UserStats = Field(default_factory=UserStats)
    user_trend: list[UserTrendPoint] = Field(default_factory=list)
