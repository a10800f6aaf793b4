"""Tracker context rendering for AI-driven narrative sessions."""

from tracker_context.formatters import (
    build_inventory_summary,
    format_historical_tracker,
    format_tracker,
)
from tracker_context.history import apply_injection_map, build_injection_map
from tracker_context.prompts.instructions import compose_instructions
from tracker_context.utils.field_resolver import resolve
from tracker_context.utils.tracker_parser import parse, parse_snapshot, split_unified_response

__version__ = "1.0.0"

__all__ = [
    "resolve",
    "parse",
    "parse_snapshot",
    "split_unified_response",
    "compose_instructions",
    "format_tracker",
    "format_historical_tracker",
    "build_inventory_summary",
    "build_injection_map",
    "apply_injection_map",
]
