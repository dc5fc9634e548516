"""Pure helpers over a message content mapping.

The mapping is the JSON form of the protocol's message payload, keyed by
sub-type (``conversation``, ``extendedTextMessage``, ``imageMessage`` ...).
Nothing here touches the opaque raw payload.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

# Tried in order; the first non-empty string wins.
TEXT_FIELDS: tuple[tuple[str, ...], ...] = (
    ("conversation",),
    ("extendedTextMessage", "text"),
    ("imageMessage", "caption"),
    ("videoMessage", "caption"),
    ("documentMessage", "caption"),
    ("templateButtonReplyMessage", "selectedDisplayText"),
    ("listResponseMessage", "singleSelectReply", "selectedRowId"),
    ("buttonsResponseMessage", "selectedButtonId"),
)

# Envelope keys that sit next to the real payload and never name its type.
_NON_TYPE_KEYS = frozenset({"messageContextInfo"})


def _dig(content: Mapping[str, Any], path: tuple[str, ...]) -> Any:
    node: Any = content
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def extract_text(content: Mapping[str, Any] | None) -> str | None:
    """Return the first text-bearing field of *content*, or None."""
    if not content:
        return None
    for path in TEXT_FIELDS:
        value = _dig(content, path)
        if isinstance(value, str) and value:
            return value
    return None


def message_type(content: Mapping[str, Any] | None) -> str:
    """Name of the payload sub-type, ``"unknown"`` when there is none."""
    if not content:
        return "unknown"
    for key in content:
        if key not in _NON_TYPE_KEYS:
            return key
    return "unknown"
