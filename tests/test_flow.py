"""Tests for the flow (Sankey) graph builder."""

from itertools import count

import pytest

from website_tracker.flow import build_flow, parse_layers, resolve_layers
from website_tracker.models import Event

CHROME_MAC = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
SAFARI_IPHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"

_ids = count(1)


def _pageview(referrer=None, path="/", ua=CHROME_MAC) -> Event:
    return Event(
        id=f"evt-{next(_ids)}",
        site="example.com",
        ts=1_767_225_600_000,
        type="pageview",
        referrer=referrer,
        path=path,
        ua=ua,
    )


def _links(graph) -> dict[tuple[str, str], int]:
    labels = [node.label for node in graph.nodes]
    return {(labels[link.source], labels[link.target]): link.value for link in graph.links}


class TestBuildFlow:
    """Test node assignment and link counting."""

    def test_referrer_to_path(self):
        pageviews = [
            _pageview(referrer="google", path="/a"),
            _pageview(referrer="google", path="/a"),
            _pageview(referrer=None, path="/b"),
        ]
        graph = build_flow(pageviews, ["referrer", "path"])

        assert [n.label for n in graph.nodes] == ["google", "Direct", "/a", "/b"]
        assert _links(graph) == {("google", "/a"): 2, ("Direct", "/b"): 1}
        assert graph.layers == ["referrer", "path"]

    def test_same_label_in_two_layers_is_one_node(self):
        """A path named "Direct" shares the node of a missing referrer."""
        pageviews = [
            _pageview(referrer=None, path="Direct"),
            _pageview(referrer="google", path="/a"),
        ]
        graph = build_flow(pageviews, ["referrer", "path"])

        labels = [n.label for n in graph.nodes]
        assert labels == ["Direct", "google", "/a"]
        assert labels.count("Direct") == 1
        direct = labels.index("Direct")
        assert any(l.source == direct and l.target == direct and l.value == 1 for l in graph.links)

    def test_nodes_in_layer_order(self):
        pageviews = [_pageview(ua=SAFARI_IPHONE, path="/x"), _pageview(ua=CHROME_MAC, path="/y")]
        graph = build_flow(pageviews, ["deviceType", "browser", "path"])
        assert [n.label for n in graph.nodes] == ["mobile", "desktop", "Safari", "Chrome", "/x", "/y"]

    def test_browser_layer_drops_version(self):
        graph = build_flow([_pageview()], ["browser", "os"])
        assert _links(graph) == {("Chrome", "macOS 10.15.7"): 1}

    def test_every_adjacent_pair_counted(self):
        graph = build_flow([_pageview(referrer="bing", path="/p")], ["os", "browser", "referrer", "deviceType", "path"])
        assert _links(graph) == {
            ("macOS 10.15.7", "Chrome"): 1,
            ("Chrome", "bing"): 1,
            ("bing", "desktop"): 1,
            ("desktop", "/p"): 1,
        }

    def test_fallback_labels(self):
        graph = build_flow([_pageview(referrer=None, path=None, ua=None)], ["referrer", "deviceType", "os", "browser", "path"])
        assert [n.label for n in graph.nodes] == ["Direct", "desktop", "Unknown", "/"]

    def test_single_layer_has_no_links(self):
        graph = build_flow([_pageview(path="/a"), _pageview(path="/b")], ["path"])
        assert [n.label for n in graph.nodes] == ["/a", "/b"]
        assert graph.links == []

    def test_empty_input(self):
        graph = build_flow([], ["referrer", "path"])
        assert graph.nodes == []
        assert graph.links == []
        assert graph.layers == ["referrer", "path"]

    def test_link_sources_resolve_through_shared_map(self):
        pageviews = [_pageview(referrer=f"r{i % 3}", path=f"/p{i % 2}") for i in range(12)]
        graph = build_flow(pageviews, ["referrer", "path"])
        assert sum(l.value for l in graph.links) == 12
        for link in graph.links:
            assert 0 <= link.source < len(graph.nodes)
            assert 0 <= link.target < len(graph.nodes)

    def test_calls_do_not_share_state(self):
        first = build_flow([_pageview(path="/only-here")], ["path"])
        second = build_flow([_pageview(path="/other")], ["path"])
        assert [n.label for n in first.nodes] == ["/only-here"]
        assert [n.label for n in second.nodes] == ["/other"]


class TestLayerConfig:
    """Test layer parsing and the default fallback."""

    def test_parse_comma_separated(self):
        assert parse_layers(" os, browser ,,path ") == ["os", "browser", "path"]

    def test_parse_none(self):
        assert parse_layers(None) == []

    def test_unknown_names_dropped(self):
        assert resolve_layers(["os", "country", "path"]) == ["os", "path"]

    @pytest.mark.parametrize("layers", [None, [], ["country", "city"]])
    def test_default_order_when_nothing_recognised(self, layers):
        assert resolve_layers(layers) == ["os", "browser", "referrer", "deviceType", "path"]

    def test_build_uses_default_for_unknown_layers(self):
        graph = build_flow([_pageview()], ["nope"])
        assert graph.layers == ["os", "browser", "referrer", "deviceType", "path"]
