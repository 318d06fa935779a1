"""Tests for lookback window resolution and hour bucketing."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from website_tracker.config import EDGE_DEFAULT_SINCE_MIN
from website_tracker.window import OUT_OF_RANGE_BUCKET, hour_bucket, resolve_window

NOW = 1_767_225_600_000  # 2026-01-01 00:00:00 UTC


class TestResolveWindow:
    """Test since_min coercion and clamping."""

    def test_explicit_minutes(self):
        window = resolve_window("60", now=NOW)
        assert window.since_min == 60
        assert window.since_ts == NOW - 60 * 60 * 1000

    def test_absent_uses_dashboard_default(self):
        """Dashboard default is 30 days."""
        window = resolve_window(None, now=NOW)
        assert window.since_min == 43200

    def test_absent_uses_edge_default(self):
        window = resolve_window(None, now=NOW, default_since_min=EDGE_DEFAULT_SINCE_MIN)
        assert window.since_min == 1440

    @pytest.mark.parametrize("raw", ["abc", "", "nan", float("nan"), True])
    def test_non_numeric_uses_default(self, raw):
        window = resolve_window(raw, now=NOW, default_since_min=1440)
        assert window.since_min == 1440

    def test_clamped_to_minimum(self):
        window = resolve_window(1, now=NOW)
        assert window.since_min == 5
        assert window.since_ts == NOW - 5 * 60 * 1000

    def test_negative_clamped_to_minimum(self):
        assert resolve_window("-30", now=NOW).since_min == 5

    def test_clamped_to_maximum(self):
        assert resolve_window(10**9, now=NOW).since_min == 43200

    def test_fractional_minutes_truncate(self):
        assert resolve_window("90.7", now=NOW).since_min == 90

    def test_wire_shape(self):
        dumped = resolve_window(60, now=NOW).model_dump(by_alias=True)
        assert dumped == {"sinceTs": NOW - 3_600_000, "sinceMin": 60}


class TestHourBucket:
    """Test hour truncation in an explicit timezone."""

    def test_utc(self):
        ts = int(datetime(2026, 3, 5, 14, 47, 12, tzinfo=timezone.utc).timestamp() * 1000)
        assert hour_bucket(ts) == "2026-03-05 14:00:00"

    def test_configured_timezone(self):
        """Same instant lands in a different local hour."""
        ts = int(datetime(2026, 3, 5, 23, 30, tzinfo=timezone.utc).timestamp() * 1000)
        assert hour_bucket(ts, ZoneInfo("Asia/Shanghai")) == "2026-03-06 07:00:00"

    def test_exact_hour_boundary(self):
        ts = int(datetime(2026, 3, 5, 9, 0, tzinfo=timezone.utc).timestamp() * 1000)
        assert hour_bucket(ts) == "2026-03-05 09:00:00"

    @pytest.mark.parametrize("ts", [10**17, -(10**17), 10**400])
    def test_unrepresentable_timestamp(self, ts):
        assert hour_bucket(ts) == OUT_OF_RANGE_BUCKET
        assert hour_bucket(ts, ZoneInfo("Asia/Shanghai")) == OUT_OF_RANGE_BUCKET
