"""
Tracker configuration defaults and lookups.

Loads the packaged default tracker config from
tracker_context/data/default_tracker_config.json at first use. Results are
cached so the file is read only once per process.

The host owns the real tracker config; these helpers only read it and fall
back to the packaged defaults where a section is missing.
"""
from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from tracker_context.schemas import TrackerCategory

logger = logging.getLogger("tracker.defaults")

_CONFIG_PATH = Path(__file__).parent.parent / "data" / "default_tracker_config.json"


@lru_cache(maxsize=1)
def _load_raw() -> dict:
    """Read and parse the JSON defaults once; cache the result."""
    try:
        with open(_CONFIG_PATH, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        logger.warning(
            "default_tracker_config.json not found at %s; using empty config", _CONFIG_PATH
        )
        return {}
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse default_tracker_config.json: %s", exc)
        return {}


def get_default_tracker_config() -> dict:
    """Return the full packaged default tracker config."""
    return _load_raw()


def get_section(tracker_config: Optional[Mapping[str, Any]], category: TrackerCategory) -> Mapping[str, Any]:
    """Return the config section for *category*, falling back to the packaged default."""
    if isinstance(tracker_config, Mapping):
        section = tracker_config.get(category.config_key)
        if isinstance(section, Mapping):
            return section
    logger.debug("missing_config | section=%s | using=defaults", category.config_key)
    return _load_raw().get(category.config_key, {})


def get_entry(section: Mapping[str, Any], *path: str) -> Optional[Mapping[str, Any]]:
    """Walk *path* inside *section*; ``None`` when any step is missing or not a mapping."""
    node: Any = section
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node if isinstance(node, Mapping) else None


def get_list(section: Mapping[str, Any], key: str) -> List[Any]:
    value = section.get(key) if isinstance(section, Mapping) else None
    return value if isinstance(value, list) else []


def is_enabled(entry: Optional[Mapping[str, Any]]) -> bool:
    """Fields are enabled unless explicitly switched off."""
    return not isinstance(entry, Mapping) or entry.get("enabled") is not False


def should_include(entry: Optional[Mapping[str, Any]], include_all_enabled: bool) -> bool:
    """History inclusion rule for one field's persistence policy.

    With *include_all_enabled* every field not explicitly disabled is kept;
    otherwise only fields whose ``persistInHistory`` is exactly ``True``.
    """
    if include_all_enabled:
        return is_enabled(entry)
    return isinstance(entry, Mapping) and entry.get("persistInHistory") is True


def find_by_id(entries: List[Any], entry_id: Any) -> Optional[Dict[str, Any]]:
    for entry in entries:
        if isinstance(entry, Mapping) and entry.get("id") == entry_id:
            return dict(entry)
    return None
