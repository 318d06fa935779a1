"""
Multi-layer flow (Sankey) graph over pageviews.

Each layer is a named dimension of a pageview (OS, browser, referrer,
device type, path). Every pageview contributes one unit to the link
between its values in each pair of adjacent layers.

Nodes are keyed by label text in one map shared by all layers, so the
same string produced by two layers is a single node. A path literally
named "Direct" and a missing referrer end up on the same node.
"""
import logging
from collections.abc import Callable, Iterable, Sequence

from .config import DEFAULT_FLOW_LAYERS
from .models import Event, FlowGraph, FlowLink, FlowNode
from .user_agent import DeviceType, UNKNOWN, classify_device

logger = logging.getLogger(__name__)

DIRECT = "Direct"


def _referrer(pv: Event) -> str:
    return pv.referrer or DIRECT


def _device_type(pv: Event) -> str:
    return classify_device(pv.ua).device_type or DeviceType.DESKTOP.value


def _os(pv: Event) -> str:
    return classify_device(pv.ua).os or UNKNOWN


def _browser(pv: Event) -> str:
    return classify_device(pv.ua).browser_name


def _path(pv: Event) -> str:
    return pv.path or "/"


LAYER_EXTRACTORS: dict[str, Callable[[Event], str]] = {
    "referrer": _referrer,
    "deviceType": _device_type,
    "os": _os,
    "browser": _browser,
    "path": _path,
}


def parse_layers(raw: str | Sequence[str] | None) -> list[str]:
    """Split a comma-separated layer list (e.g. "os,browser,path")."""
    if raw is None:
        return []
    parts = raw.split(",") if isinstance(raw, str) else raw
    return [part.strip() for part in parts if part and part.strip()]


def resolve_layers(layers: Iterable[str] | None) -> list[str]:
    """Keep the recognised layer names, in order.

    Falls back to the default order when none are recognised.
    """
    valid = [layer for layer in (layers or []) if layer in LAYER_EXTRACTORS]
    if not valid:
        return list(DEFAULT_FLOW_LAYERS)
    return valid


def build_flow(pageviews: Sequence[Event], layers: Iterable[str] | None = None) -> FlowGraph:
    """
    Build the flow graph for a set of pageviews.

    Args:
        pageviews: Pageview events to chart
        layers: Ordered dimension names from LAYER_EXTRACTORS

    Returns:
        FlowGraph with nodes in layer order then first-seen order, links in
        first-seen order, and the layers actually used
    """
    used = resolve_layers(layers)
    extractors = [LAYER_EXTRACTORS[layer] for layer in used]

    # Each pageview's value in every layer, computed once
    rows = [[extract(pv) for extract in extractors] for pv in pageviews]

    node_index: dict[str, int] = {}
    for column in range(len(used)):
        for row in rows:
            value = row[column]
            if value not in node_index:
                node_index[value] = len(node_index)

    link_counts: dict[tuple[str, str], int] = {}
    for row in rows:
        for source, target in zip(row, row[1:]):
            link_counts[(source, target)] = link_counts.get((source, target), 0) + 1

    logger.debug(
        f"Flow graph over {len(rows)} pageviews: "
        f"{len(node_index)} nodes, {len(link_counts)} links, layers={used}"
    )

    return FlowGraph(
        nodes=[FlowNode(label=label) for label in node_index],
        links=[
            FlowLink(source=node_index[source], target=node_index[target], value=count)
            for (source, target), count in link_counts.items()
        ],
        layers=used,
    )
