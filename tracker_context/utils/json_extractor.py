"""
Robust JSON extraction for model replies carrying a tracker update.

The instruction block asks for exactly one unified JSON object, but models
wrap it in fences, prefix it with prose, or continue the story after it.
Extraction is delimiter-aware first and falls back to balanced-brace scanning.
"""
import json
import logging
from typing import Optional

from pydantic import ValidationError

from tracker_context.schemas import TrackerCategory, UnifiedTrackerResponse

logger = logging.getLogger("tracker.json_extractor")

_UNIFIED_KEYS = frozenset(category.value for category in TrackerCategory)


def extract_tracker_json(text: str) -> Optional[dict]:
    """
    Extract the unified tracker object from a model reply.

    Strategy (in order of reliability):
        1. Find the first ``\\`\\`\\`json ... \\`\\`\\``` code-block delimiter.
        2. Fall back to balanced-brace scanning from the start of the text.

    Returns a plain ``dict`` or ``None`` when extraction fails or the object
    carries none of the tracker keys.
    """
    if not isinstance(text, str) or not text.strip():
        return None

    raw = _extract_from_code_block(text) or _extract_by_brace_scan(text)

    if raw is None:
        logger.debug(
            "json_extract_failed | strategy=none_matched | text_len=%d | head=%.200s",
            len(text), text[:200],
        )
        return None

    # --- Parse ---
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning(
            "json_extract_failed | strategy=parse_error | error=%s | raw_head=%.500s",
            exc, raw[:500],
        )
        return None

    if not isinstance(parsed, dict):
        logger.warning(
            "json_extract_failed | strategy=not_a_dict | type=%s",
            type(parsed).__name__,
        )
        return None

    if not _UNIFIED_KEYS.intersection(parsed):
        logger.warning(
            "json_extract_failed | strategy=missing_keys | keys=%s",
            list(parsed.keys()),
        )
        return None

    # Pydantic validation for structural warnings (non-blocking).
    try:
        UnifiedTrackerResponse(**parsed)
    except ValidationError as exc:
        logger.info(
            "json_extract_warning | pydantic_issues=%d | detail=%s",
            exc.error_count(), exc.errors(),
        )

    return parsed


# ---------------------------------------------------------------------------
# Extraction strategies
# ---------------------------------------------------------------------------

def _extract_from_code_block(text: str) -> Optional[str]:
    """
    Extract JSON from the **first** ``\\`\\`\\`json ... \\`\\`\\``` fenced code block.

    The tracker update is requested at the start of every reply, so the
    first fenced block is the one that matters.
    """
    marker = "```json"
    idx = text.find(marker)
    if idx == -1:
        return None

    start = idx + len(marker)
    end = text.find("```", start)
    if end == -1:
        # Unclosed code block: take everything after the marker.
        candidate = text[start:].strip()
    else:
        candidate = text[start:end].strip()

    return candidate or None


def _extract_by_brace_scan(text: str) -> Optional[str]:
    """
    Find the first balanced ``{…}`` block in *text* that parses as valid JSON.

    Scans forward so a stray ``{`` later in the narrative is never preferred
    over the leading tracker object.
    """
    search_from = 0

    while True:
        open_idx = text.find("{", search_from)
        if open_idx == -1:
            return None

        close_idx = _find_matching_brace(text, open_idx)
        if close_idx is not None:
            candidate = text[open_idx : close_idx + 1]
            try:
                json.loads(candidate)
                return candidate
            except json.JSONDecodeError:
                pass

        # Try the next '{'.
        search_from = open_idx + 1


def _find_matching_brace(text: str, start: int) -> Optional[int]:
    """
    Return the index of the ``}`` that balances the ``{`` at *start*,
    respecting JSON string literals so embedded braces don't confuse the count.
    """
    depth = 0
    in_string = False
    escape = False
    length = len(text)

    for i in range(start, length):
        ch = text[i]

        if escape:
            escape = False
            continue

        if ch == "\\":
            if in_string:
                escape = True
            continue

        if ch == '"':
            in_string = not in_string
            continue

        if in_string:
            continue

        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i

    return None
