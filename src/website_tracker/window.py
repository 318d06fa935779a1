"""
Lookback window resolution and hour bucketing.
"""
import time
from datetime import datetime, timezone, tzinfo

from .config import DASHBOARD_DEFAULT_SINCE_MIN, MAX_SINCE_MIN, MIN_SINCE_MIN
from .models import Window

HOUR_BUCKET_FORMAT = "%Y-%m-%d %H:00:00"

# Bucket for timestamps datetime cannot represent; sorts before every real hour
OUT_OF_RANGE_BUCKET = "0000-00-00 00:00:00"


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def _coerce_minutes(raw) -> int | None:
    """Read a minute count from a query value, None if it isn't one."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return int(raw) if raw == raw else None  # NaN
    try:
        return int(float(str(raw).strip()))
    except (ValueError, OverflowError):
        return None


def resolve_window(
    raw_since_min=None,
    now: int | None = None,
    default_since_min: int = DASHBOARD_DEFAULT_SINCE_MIN,
) -> Window:
    """Turn a requested lookback into a concrete timestamp range.

    Args:
        raw_since_min: Lookback in minutes as given by the caller. Absent or
            non-numeric values use ``default_since_min``.
        now: Reference time in epoch ms (defaults to the current time)
        default_since_min: Deployment preset (30 days for the dashboard,
            24 hours for the edge worker)

    Returns:
        Window with ``since_min`` clamped to [5, 43200] and
        ``since_ts = now - since_min * 60000``
    """
    if now is None:
        now = now_ms()

    since_min = _coerce_minutes(raw_since_min)
    if since_min is None:
        since_min = default_since_min
    since_min = max(MIN_SINCE_MIN, min(MAX_SINCE_MIN, since_min))

    return Window(since_ts=now - since_min * 60 * 1000, since_min=since_min)


def hour_bucket(ts: int, tz: tzinfo = timezone.utc) -> str:
    """Format an epoch-ms timestamp as its hour bucket in ``tz``.

    Timestamps outside the range datetime supports land in
    ``OUT_OF_RANGE_BUCKET`` instead of raising.
    """
    try:
        moment = datetime.fromtimestamp(ts / 1000, tz=timezone.utc).astimezone(tz)
    except (ValueError, OverflowError, OSError):
        return OUT_OF_RANGE_BUCKET
    return moment.strftime(HOUR_BUCKET_FORMAT)
