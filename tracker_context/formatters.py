"""
Tracker context formatters.

Turn parsed tracker payloads into plain-text context for the model:

- ``format_tracker`` — full current-state view of one category
- ``format_historical_tracker`` — compact, persistence-filtered view of a
  prior turn's snapshot
- ``build_inventory_summary`` — v1/v2 inventory rendered as section lines

Formatting never raises: an empty, legacy or unrecognized payload yields
``""`` and missing fields are simply left out.
"""
from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Mapping, Optional

from tracker_context.schemas import ParsedTracker, PayloadKind, TrackerCategory
from tracker_context.utils.field_resolver import is_meaningful, resolve, resolve_list
from tracker_context.utils.logging_config import get_logger
from tracker_context.utils.tracker_defaults import (
    find_by_id,
    get_entry,
    get_list,
    get_section,
    should_include,
)
from tracker_context.utils.tracker_parser import get_category_payload, parse

logger = get_logger("tracker.formatters")

DEFAULT_MAX_VALUE = 100
DISPLAY_MODE_NUMBER = "number"
DISPLAY_MODE_PERCENTAGE = "percentage"

# Flat (pre-``stats`` list) player layout
_FLAT_STAT_ORDER = ("health", "mana", "stamina", "satiety", "hygiene", "energy", "arousal")
_FLAT_SPECIAL_FIELDS = ("status", "mood", "skills", "inventory", "quests", "version")

_SCENE_FIELDS = (
    ("location", "Location"),
    ("date", "Date"),
    ("time", "Time"),
    ("weather", "Weather"),
    ("temperature", "Temperature"),
)

_CAMEL_BOUNDARY = re.compile(r"([A-Z])")


def humanize_key(key: str) -> str:
    """``recentEvents`` → ``Recent Events``; ``eye_color`` → ``Eye color``."""
    label = _CAMEL_BOUNDARY.sub(r" \1", str(key).replace("_", " "))
    label = re.sub(r"\s+", " ", label).strip()
    return label[:1].upper() + label[1:]


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------

def build_inventory_summary(inventory: Any) -> str:
    """Render an inventory as section lines.

    Legacy v1 strings pass through unchanged; v2 objects (string sections
    under ``version: 2``) become ``On Person`` / ``Clothing`` /
    ``Stored - <location>`` / ``Assets`` lines; anything else is ``"None"``.
    """
    if isinstance(inventory, str):
        return inventory

    if isinstance(inventory, Mapping) and inventory.get("version") == 2:
        lines = []
        on_person = resolve(inventory.get("onPerson"))
        if is_meaningful(on_person):
            lines.append(f"On Person: {on_person}")
        clothing = resolve(inventory.get("clothing"))
        if is_meaningful(clothing):
            lines.append(f"Clothing: {clothing}")
        stored = inventory.get("stored")
        if isinstance(stored, Mapping):
            for location, items in stored.items():
                value = resolve(items)
                if is_meaningful(value):
                    lines.append(f"Stored - {location}: {value}")
        assets = resolve(inventory.get("assets"))
        if is_meaningful(assets):
            lines.append(f"Assets: {assets}")
        return "\n".join(lines).strip()

    return "None"


def _section_items(value: Any) -> List[str]:
    """Items of one inventory section: a list of entries, or a v2 string section."""
    if isinstance(value, (list, tuple)):
        return resolve_list(value)
    resolved = resolve(value)
    return [resolved] if is_meaningful(resolved) else []


def _inventory_lines(inventory: Any) -> List[str]:
    if not isinstance(inventory, Mapping):
        return []

    lines = []
    on_person = _section_items(inventory.get("onPerson"))
    if on_person:
        lines.append(f"On Person: {', '.join(on_person)}")

    clothing = _section_items(inventory.get("clothing"))
    if clothing:
        lines.append(f"Clothing: {', '.join(clothing)}")

    stored = inventory.get("stored")
    if isinstance(stored, Mapping):
        for location, items in stored.items():
            stored_items = _section_items(items)
            label = resolve(location)
            if stored_items and label:
                lines.append(f"{label}: {', '.join(stored_items)}")

    assets = _section_items(inventory.get("assets"))
    if assets:
        lines.append(f"Assets: {', '.join(assets)}")

    return lines


# ---------------------------------------------------------------------------
# Current-state view
# ---------------------------------------------------------------------------

def _stat_formatter(tracker_config: Optional[Mapping[str, Any]]) -> Callable[[Any, str], str]:
    section = get_section(tracker_config, TrackerCategory.player_stats)
    display_mode = section.get("statsDisplayMode") or DISPLAY_MODE_PERCENTAGE
    custom_stats = get_list(section, "customStats")

    def format_value(value: Any, stat_id: str) -> str:
        shown = resolve(value)
        if display_mode == DISPLAY_MODE_NUMBER:
            stat_config = find_by_id(custom_stats, stat_id) or {}
            max_value = stat_config.get("maxValue") or DEFAULT_MAX_VALUE
            return f"{shown}/{max_value}"
        return shown

    return format_value


def _format_player_stats(data: Mapping[str, Any], user_name: str, tracker_config) -> List[str]:
    lines = [f"{user_name}'s Stats:"]
    format_value = _stat_formatter(tracker_config)

    stats = data.get("stats")
    if isinstance(stats, list):
        for stat in stats:
            if not isinstance(stat, Mapping) or stat.get("value") is None:
                continue
            stat_id = resolve(stat.get("id"))
            stat_name = resolve(stat.get("name")) or (_capitalize(stat_id) if stat_id else "Unknown")
            if not resolve(stat.get("value")):
                continue
            lines.append(f"{stat_name}: {format_value(stat.get('value'), stat_id or stat_name.lower())}")
    else:
        for stat_id in _FLAT_STAT_ORDER:
            value = resolve(data.get(stat_id))
            if value:
                lines.append(f"{_capitalize(stat_id)}: {format_value(value, stat_id)}")
        for key, value in data.items():
            if key in _FLAT_STAT_ORDER or key in _FLAT_SPECIAL_FIELDS:
                continue
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                lines.append(f"{_capitalize(key)}: {format_value(value, key)}")

    status = resolve(data.get("status"))
    if status:
        lines.append(f"Status: {status}")
    mood = resolve(data.get("mood"))
    if mood:
        lines.append(f"Mood: {mood}")

    skills = data.get("skills")
    if isinstance(skills, list):
        skill_names = resolve_list(skills)
        if skill_names:
            lines.append(f"Skills: {', '.join(skill_names)}")
    elif isinstance(skills, Mapping) and "value" not in skills:
        entries = []
        for name, value in skills.items():
            skill_value = resolve(value)
            entries.append(f"{name}: {skill_value}" if skill_value else str(name))
        if entries:
            lines.append(f"Skills: {', '.join(entries)}")
    else:
        skill_text = resolve(skills)
        if skill_text:
            lines.append(f"Skills: {skill_text}")

    inventory = data.get("inventory")
    if isinstance(inventory, str):
        if is_meaningful(inventory.strip()):
            lines.append(f"Inventory: {inventory.strip()}")
    else:
        lines.extend(_inventory_lines(inventory))

    quests = data.get("quests")
    if isinstance(quests, Mapping):
        main = quests.get("main")
        if isinstance(main, list):
            main_quests = resolve_list(main)
            if main_quests:
                lines.append(f"Main Quests: {', '.join(main_quests)}")
        else:
            main_quest = resolve(main)
            if main_quest:
                lines.append(f"Main Quest: {main_quest}")

        optional = resolve_list(quests.get("optional"))
        if optional:
            lines.append(f"Optional Quests: {', '.join(optional)}")

    return lines


def _format_scene_info(data: Mapping[str, Any], user_name: str, tracker_config) -> List[str]:
    lines = []
    known = set()
    for key, label in _SCENE_FIELDS:
        known.add(key)
        value = resolve(data.get(key))
        if value:
            lines.append(f"{label}: {value}")

    for key, value in data.items():
        if key in known or key == "version":
            continue
        resolved = resolve(value)
        if resolved:
            lines.append(f"{humanize_key(key)}: {resolved}")
    return lines


def _format_character_roster(data: List[Any], user_name: str, tracker_config) -> List[str]:
    lines = []
    for char in data:
        if not isinstance(char, Mapping):
            continue
        lines.append(f"- {resolve(char.get('name')) or 'Unknown'}:")

        details = char.get("details")
        if isinstance(details, Mapping):
            for key, value in details.items():
                field_value = resolve(value)
                if field_value:
                    lines.append(f"  {humanize_key(key)}: {field_value}")

        relationship = _unwrap(char.get("relationship"), "status")
        if relationship:
            lines.append(f"  Relationship: {relationship}")

        thoughts = _unwrap(char.get("thoughts"), "content")
        if thoughts:
            lines.append(f"  Thoughts: {thoughts}")

        stats = char.get("stats")
        if isinstance(stats, Mapping):
            entries = []
            for name, value in stats.items():
                stat_value = resolve(value)
                if stat_value:
                    entries.append(f"{name}: {stat_value}")
            if entries:
                lines.append(f"  Stats: {', '.join(entries)}")

    if not lines:
        return []
    return ["Present Characters:"] + lines


def _unwrap(field: Any, key: str) -> str:
    """Resolve ``field[key]`` for a wrapper record, else the field itself."""
    if isinstance(field, Mapping) and key in field:
        return resolve(field.get(key))
    return resolve(field)


_CATEGORY_FORMATTERS = {
    TrackerCategory.player_stats: _format_player_stats,
    TrackerCategory.scene_info: _format_scene_info,
    TrackerCategory.character_roster: _format_character_roster,
}


def format_parsed_tracker(
    parsed: ParsedTracker,
    user_name: str,
    tracker_config: Optional[Mapping[str, Any]] = None,
) -> str:
    """Format an already-parsed payload; ``""`` for anything but structured data."""
    if parsed.kind not in (PayloadKind.structured_v2, PayloadKind.json_v3):
        return ""
    try:
        lines = _CATEGORY_FORMATTERS[parsed.category](parsed.data, user_name, tracker_config)
    except (AttributeError, KeyError, TypeError, ValueError):
        logger.warning(
            "tracker_format_failed",
            extra={"category": parsed.category.value, "payload_kind": parsed.kind.value},
            exc_info=True,
        )
        return ""
    return "\n".join(lines).strip()


def format_tracker(
    snapshot: Any,
    category: Any,
    display_name: str,
    tracker_config: Optional[Mapping[str, Any]] = None,
) -> str:
    """Format one category payload as a human-readable current-state summary.

    *snapshot* is the raw category payload (JSON string or structured value).
    Returns ``""`` for an empty or unparseable payload.
    """
    if snapshot is None or snapshot == "" or snapshot == {} or snapshot == []:
        return ""
    parsed = parse(snapshot, category)
    formatted = format_parsed_tracker(parsed, display_name, tracker_config)
    if parsed.category == TrackerCategory.player_stats and formatted == f"{display_name}'s Stats:":
        # Header alone carries nothing.
        return ""
    return formatted


# ---------------------------------------------------------------------------
# Historical view
# ---------------------------------------------------------------------------

def _historical_player_stats(data: Mapping[str, Any], section: Mapping[str, Any], include_all: bool) -> List[str]:
    parts: List[str] = []

    stats = data.get("stats")
    custom_stats = get_list(section, "customStats")
    if isinstance(stats, list) and isinstance(section.get("customStats"), list):
        for stat in stats:
            if not isinstance(stat, Mapping) or stat.get("value") is None:
                continue
            stat_config = find_by_id(custom_stats, stat.get("id"))
            if not should_include(stat_config, include_all):
                continue
            value = resolve(stat.get("value"))
            name = resolve(stat.get("name")) or resolve((stat_config or {}).get("name")) or resolve(stat.get("id"))
            if value and name:
                parts.append(f"{name}: {value}")

    status_cfg = get_entry(section, "statusSection")
    status = data.get("status")
    if should_include(status_cfg, include_all) and status:
        mood_source = status.get("mood") if isinstance(status, Mapping) and "mood" in status else status
        mood = resolve(mood_source)
        # Mood is shown only when the emoji display is switched on.
        if mood and (status_cfg or {}).get("showMoodEmoji"):
            parts.append(f"Mood: {mood}")
        if isinstance(status, Mapping):
            for field_name in get_list(status_cfg or {}, "customFields"):
                if not isinstance(field_name, str):
                    continue
                value = resolve(status.get(field_name.lower()))
                if is_meaningful(value):
                    parts.append(f"{field_name}: {value}")

    skills_cfg = get_entry(section, "skillsSection")
    skills = data.get("skills")
    if should_include(skills_cfg, include_all) and skills:
        skill_text = ", ".join(resolve_list(skills)) if isinstance(skills, list) else resolve(skills)
        if skill_text:
            parts.append(f"Skills: {skill_text}")

    inventory = data.get("inventory")
    if (include_all or section.get("inventoryPersistInHistory") is True) and isinstance(inventory, Mapping):
        on_person = _section_items(inventory.get("onPerson"))
        if on_person:
            parts.append(f"On Person: {', '.join(on_person)}")
        clothing = _section_items(inventory.get("clothing"))
        if clothing:
            parts.append(f"Clothing: {', '.join(clothing)}")

    quests = data.get("quests")
    if (include_all or section.get("questsPersistInHistory") is True) and isinstance(quests, Mapping):
        main_quest = resolve(quests.get("main"))
        if is_meaningful(main_quest):
            parts.append(f"Quest: {main_quest}")

    return parts


_HISTORICAL_SCENE_FIELDS = (
    ("date", "Date"),
    ("time", "Time"),
    ("weather", "Weather"),
    ("temperature", "Temp"),
    ("location", "Location"),
    ("recentEvents", "Events"),
)


def _historical_scene_info(data: Mapping[str, Any], section: Mapping[str, Any], include_all: bool) -> List[str]:
    widgets = get_entry(section, "widgets") or {}
    parts = []
    for key, label in _HISTORICAL_SCENE_FIELDS:
        if not should_include(widgets.get(key), include_all):
            continue
        value = resolve(data.get(key))
        if value:
            parts.append(f"{label}: {value}")
    return parts


def _historical_character_lines(roster: List[Any], section: Mapping[str, Any], include_all: bool) -> List[str]:
    custom_fields = get_list(section, "customFields")
    thoughts_cfg = get_entry(section, "thoughts")
    lines = []

    for char in roster:
        if not isinstance(char, Mapping):
            continue
        name = resolve(char.get("name"))
        if not name:
            continue

        parts = []
        details = char.get("details")
        if isinstance(details, Mapping):
            for field in custom_fields:
                if not isinstance(field, Mapping) or not should_include(field, include_all):
                    continue
                value = resolve(details.get(field.get("id")))
                if value:
                    parts.append(f"{field.get('name') or humanize_key(field.get('id', ''))}: {value}")

        if should_include(thoughts_cfg, include_all):
            thoughts = _unwrap(char.get("thoughts"), "content")
            if thoughts:
                parts.append(f"Thinking: {thoughts}")

        if parts:
            lines.append(f"{name}: {', '.join(parts)}")

    return lines


def format_historical_tracker(
    snapshot: Optional[Mapping[str, Any]],
    tracker_config: Optional[Mapping[str, Any]],
    user_name: str,
    include_all_enabled: bool = False,
) -> str:
    """Compact context for a prior turn's snapshot, filtered by persistence policy.

    Only fields whose config sets ``persistInHistory`` are kept, or every
    enabled field when *include_all_enabled* is set. Each category is parsed
    and filtered on its own; one bad category never hides the others.
    """
    if not isinstance(snapshot, Mapping) or not snapshot or tracker_config is None:
        return ""

    lines: List[str] = []

    for category in TrackerCategory.ordered():
        raw = get_category_payload(snapshot, category)
        if raw is None:
            continue
        parsed = parse(raw, category)
        if not parsed.is_structured:
            continue

        section = get_section(tracker_config, category)
        try:
            if category == TrackerCategory.player_stats:
                parts = _historical_player_stats(parsed.data, section, include_all_enabled)
                if parts:
                    lines.append(f"{user_name}: {', '.join(parts)}")
            elif category == TrackerCategory.scene_info:
                parts = _historical_scene_info(parsed.data, section, include_all_enabled)
                if parts:
                    lines.append(", ".join(parts))
            else:
                lines.extend(_historical_character_lines(parsed.data, section, include_all_enabled))
        except (AttributeError, KeyError, TypeError, ValueError):
            logger.warning(
                "historical_format_failed",
                extra={"category": category.value, "payload_kind": parsed.kind.value},
                exc_info=True,
            )

    return "\n".join(lines).strip()


def format_snapshot(
    snapshot: Optional[Mapping[str, Any]],
    user_name: str,
    tracker_config: Optional[Mapping[str, Any]] = None,
) -> Dict[TrackerCategory, str]:
    """Format every category of *snapshot*; categories that render empty are omitted."""
    formatted: Dict[TrackerCategory, str] = {}
    if not isinstance(snapshot, Mapping):
        return formatted
    for category in TrackerCategory.ordered():
        raw = get_category_payload(snapshot, category)
        if raw is None:
            continue
        text = format_tracker(raw, category, user_name, tracker_config)
        if text:
            formatted[category] = text
    return formatted
