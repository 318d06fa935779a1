"""
Handling of the free-form ``data`` payload attached to each event.

The payload comes straight from the page and is stored as truncated JSON
text, so reading it back can fail. Failures are recovered here, never
raised: the result says whether the default was used.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

EMPTY_DATA = "{}"


@dataclass(frozen=True)
class ParsedData:
    """
    Result of reading an event's data column.

    Attributes:
        value: The decoded JSON object, or {} on failure
        is_fallback: True when the stored text was not a JSON object
    """
    value: dict[str, Any] = field(default_factory=dict)
    is_fallback: bool = False

    @property
    def title(self) -> str:
        """The page title recorded with the event, or ""."""
        title = self.value.get("title")
        return title if isinstance(title, str) else ""

    def to_json(self) -> str:
        """Re-serialize the decoded object."""
        return json.dumps(self.value, ensure_ascii=False, separators=(",", ":"))


def parse_data(raw: str | None) -> ParsedData:
    """Decode a stored data column, falling back to an empty object."""
    if not raw:
        return ParsedData()
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        logger.debug(f"Unreadable event data ({len(raw)} chars), using empty object")
        return ParsedData(is_fallback=True)
    if not isinstance(value, dict):
        return ParsedData(is_fallback=True)
    return ParsedData(value=value)


def serialize_data(data: Any, max_length: int = 4000) -> str:
    """Serialize an incoming data payload for storage.

    Output longer than ``max_length`` is cut, which can leave invalid JSON
    behind; ``parse_data`` recovers from that on the way out.
    """
    try:
        text = json.dumps({} if data is None else data, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError):
        return EMPTY_DATA
    return text[:max_length] if len(text) > max_length else text
