"""
Tracker payload detection and normalization.

Three schema generations coexist in stored chats:

- **text_legacy** — first-generation plain-text tracker blocks, kept verbatim
- **structured_v2** — player stats whose inventory sections are strings
  under a ``version: 2`` marker
- **json_v3** — JSON objects with list-based sections, locked-value wrappers
  and compound records

``parse`` decides the kind once, so formatters match on ``ParsedTracker.kind``
instead of probing shapes again. Failures never propagate: a bad category
becomes legacy text or ``unknown`` and its siblings are unaffected.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

from tracker_context.schemas import ParsedTracker, ParseIssue, PayloadKind, TrackerCategory
from tracker_context.utils.json_extractor import extract_tracker_json
from tracker_context.utils.logging_config import get_logger

logger = get_logger("tracker.parser")

V2_MARKER = 2


def parse(raw: Any, category: Any) -> ParsedTracker:
    """Detect the payload kind of *raw* and normalize it for *category*.

    *category* may be a ``TrackerCategory`` or any of its host keys.
    """
    resolved_category = TrackerCategory.coerce(category)
    if resolved_category is None:
        logger.warning("tracker_parse_skipped | reason=unknown_category | category=%r", category)
        return ParsedTracker(
            category=TrackerCategory.player_stats,
            kind=PayloadKind.unknown,
            issue=ParseIssue.unknown_shape,
        )

    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return ParsedTracker(category=resolved_category, kind=PayloadKind.unknown)

    if isinstance(raw, str):
        data = _strict_json(raw)
        if data is None:
            logger.debug(
                "tracker_parse_fallback | len=%d", len(raw),
                extra={"category": resolved_category.value, "payload_kind": PayloadKind.text_legacy.value},
            )
            return ParsedTracker(
                category=resolved_category,
                kind=PayloadKind.text_legacy,
                text=raw,
                issue=ParseIssue.malformed_payload,
            )
    else:
        data = raw

    return _normalize(data, resolved_category)


def parse_snapshot(snapshot: Optional[Mapping[str, Any]]) -> Dict[TrackerCategory, ParsedTracker]:
    """Parse every category present in *snapshot*, each one independently.

    Keys may be unified-JSON keys, snapshot keys or config keys. Categories
    with nothing usable are left out of the result.
    """
    parsed: Dict[TrackerCategory, ParsedTracker] = {}
    if not isinstance(snapshot, Mapping):
        return parsed

    for category in TrackerCategory.ordered():
        raw = get_category_payload(snapshot, category)
        if raw is None:
            continue
        result = parse(raw, category)
        if result.kind != PayloadKind.unknown:
            parsed[category] = result
    return parsed


def get_category_payload(snapshot: Mapping[str, Any], category: TrackerCategory) -> Any:
    """Return the raw payload stored for *category*, trying every host key."""
    for key in (category.snapshot_key, category.value, category.config_key):
        if key in snapshot and snapshot[key] is not None:
            return snapshot[key]
    return None


def split_unified_response(text: str) -> Dict[TrackerCategory, ParsedTracker]:
    """Split the unified tracker object in a model reply into per-category results.

    Returns ``{}`` when the reply carries no usable tracker object.
    """
    unified = extract_tracker_json(text)
    if unified is None:
        return {}

    results: Dict[TrackerCategory, ParsedTracker] = {}
    for category in TrackerCategory.ordered():
        if category.value not in unified:
            continue
        result = _normalize(unified[category.value], category)
        if result.kind != PayloadKind.unknown:
            results[category] = result
    return results


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _strict_json(raw: str) -> Any:
    """``json.loads`` that only accepts objects and arrays; ``None`` otherwise."""
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, ValueError):
        return None
    if isinstance(data, (dict, list)):
        return data
    # A bare JSON scalar ("5", "\"text\"") is legacy text, not a tracker.
    return None


def _normalize(data: Any, category: TrackerCategory) -> ParsedTracker:
    """Apply the category's shape assumptions to already-structured *data*."""
    if category == TrackerCategory.character_roster:
        roster = _as_roster(data)
        if roster is None:
            return _unknown_shape(category, data)
        return ParsedTracker(category=category, kind=PayloadKind.json_v3, data=roster)

    if not isinstance(data, Mapping):
        return _unknown_shape(category, data)

    data = dict(data)
    if category == TrackerCategory.player_stats and _has_v2_marker(data):
        return ParsedTracker(category=category, kind=PayloadKind.structured_v2, data=data)
    return ParsedTracker(category=category, kind=PayloadKind.json_v3, data=data)


def _as_roster(data: Any) -> Optional[list]:
    if isinstance(data, list):
        return data
    if isinstance(data, Mapping) and isinstance(data.get("characters"), list):
        return data["characters"]
    return None


def _has_v2_marker(data: Mapping) -> bool:
    if data.get("version") == V2_MARKER:
        return True
    inventory = data.get("inventory")
    return isinstance(inventory, Mapping) and inventory.get("version") == V2_MARKER


def _unknown_shape(category: TrackerCategory, data: Any) -> ParsedTracker:
    logger.warning(
        "tracker_parse_failed | reason=unknown_shape | type=%s", type(data).__name__,
        extra={"category": category.value, "payload_kind": PayloadKind.unknown.value},
    )
    return ParsedTracker(category=category, kind=PayloadKind.unknown, issue=ParseIssue.unknown_shape)
