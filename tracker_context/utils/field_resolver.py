"""
Field value resolution for tracker payloads.

Every tracker field can arrive as a plain scalar, a list, a locked wrapper
(``{"value": ..., "locked": true}``) or one of a handful of compound records
the model likes to emit (status, named item, quest, time range, weather).
``resolve`` turns any of them into the single display string used by all
formatters.

Resolution is total: malformed or unrecognized input degrades to ``""`` and
nothing is ever raised.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Dict, List, Mapping

# Deeper nesting than this is treated as unrecognized.
_MAX_DEPTH = 32

# Sub-field value the model uses for "nothing here".
NONE_SENTINEL = "None"


class FieldShape(str, Enum):
    """Discriminant for a raw field value, checked in priority order."""
    empty = "empty"
    locked = "locked"
    scalar = "scalar"
    list = "list"
    status = "status"
    named = "named"
    titled = "titled"
    time_range = "time_range"
    weather = "weather"
    generic = "generic"
    unknown = "unknown"


def classify(field: Any) -> FieldShape:
    """Return the shape ``resolve`` will treat *field* as."""
    if field is None:
        return FieldShape.empty
    if isinstance(field, Mapping):
        if "value" in field:
            return FieldShape.locked
        if "mood" in field:
            return FieldShape.status
        if "name" in field:
            return FieldShape.named
        if "title" in field:
            return FieldShape.titled
        if "start" in field and "end" in field:
            return FieldShape.time_range
        if "emoji" in field and "forecast" in field:
            return FieldShape.weather
        if 1 <= len(field) <= 3:
            return FieldShape.generic
        return FieldShape.unknown
    if isinstance(field, (str, bool, int, float)):
        return FieldShape.scalar
    if isinstance(field, (list, tuple)):
        return FieldShape.list
    return FieldShape.unknown


def resolve(field: Any) -> str:
    """Return the canonical display string for *field*.

    >>> resolve({"value": {"emoji": "☀️", "forecast": "Clear"}, "locked": True})
    '☀️ Clear'
    """
    return _resolve(field, 0)


def resolve_list(items: Any) -> List[str]:
    """Resolve each element of *items*, keeping only non-empty results.

    A non-list value yields an empty list.
    """
    if not isinstance(items, (list, tuple)):
        return []
    resolved = (_resolve(item, 1) for item in items)
    return [value for value in resolved if value]


def is_meaningful(value: str) -> bool:
    """True for a resolved value that is neither empty nor the ``"None"`` sentinel."""
    return bool(value) and value != NONE_SENTINEL


# ---------------------------------------------------------------------------
# Per-shape renderers
# ---------------------------------------------------------------------------

def _resolve(field: Any, depth: int) -> str:
    if depth > _MAX_DEPTH:
        return ""
    renderer = _RENDERERS[classify(field)]
    return renderer(field, depth + 1)


def _render_empty(field: Any, depth: int) -> str:
    return ""


def _render_locked(field: Mapping, depth: int) -> str:
    # The lock flag belongs to mutation policy, never to display.
    return _resolve(field.get("value"), depth)


def _render_scalar(field: Any, depth: int) -> str:
    return str(field)


def _render_list(field: Any, depth: int) -> str:
    resolved = (_resolve(item, depth) for item in field)
    return ", ".join(value for value in resolved if value)


def _render_status(field: Mapping, depth: int) -> str:
    parts = []
    mood = _resolve(field.get("mood"), depth)
    if mood:
        parts.append(mood)
    for key, value in field.items():
        if key == "mood":
            continue
        resolved = _resolve(value, depth)
        if is_meaningful(resolved):
            parts.append(resolved)
    return " - ".join(parts)


def _render_named(field: Mapping, depth: int) -> str:
    name = _resolve(field.get("name"), depth)
    quantity = field.get("quantity")
    if _is_number(quantity) and quantity > 1:
        count = int(quantity) if float(quantity).is_integer() else quantity
        return f"{name} (x{count})"
    return name


def _render_titled(field: Mapping, depth: int) -> str:
    return _resolve(field.get("title"), depth)


def _render_time_range(field: Mapping, depth: int) -> str:
    return f"{_resolve(field.get('start'), depth)} - {_resolve(field.get('end'), depth)}"


def _render_weather(field: Mapping, depth: int) -> str:
    return f"{_resolve(field.get('emoji'), depth)} {_resolve(field.get('forecast'), depth)}"


def _render_generic(field: Mapping, depth: int) -> str:
    pairs = []
    for key, value in field.items():
        resolved = _resolve(value, depth)
        if resolved:
            pairs.append(f"{key}: {resolved}")
    return ", ".join(pairs)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


_RENDERERS: Dict[FieldShape, Callable[[Any, int], str]] = {
    FieldShape.empty: _render_empty,
    FieldShape.locked: _render_locked,
    FieldShape.scalar: _render_scalar,
    FieldShape.list: _render_list,
    FieldShape.status: _render_status,
    FieldShape.named: _render_named,
    FieldShape.titled: _render_titled,
    FieldShape.time_range: _render_time_range,
    FieldShape.weather: _render_weather,
    FieldShape.generic: _render_generic,
    FieldShape.unknown: _render_empty,
}
