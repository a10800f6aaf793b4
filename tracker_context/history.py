"""
Historical tracker context for transcript windows.

Provides:
- ``build_injection_map`` — which earlier turns receive which historical
  tracker context, honoring the injection anchor and persistence policy
- ``apply_injection_map`` — merges that map into the outgoing transcript
  without changing turn order

Turns may be ``TranscriptTurn`` models, plain dicts, or any object exposing
``role``/``text``/``snapshot`` (the shape the host's chat store uses).
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from tracker_context.config import get_settings
from tracker_context.formatters import format_historical_tracker
from tracker_context.utils.logging_config import get_logger

logger = get_logger("tracker.history")

ANCHOR_ASSISTANT_END = "assistant_message_end"
ANCHOR_USER_END = "user_message_end"
VALID_ANCHORS = frozenset({ANCHOR_ASSISTANT_END, ANCHOR_USER_END})

MODEL_ROLES = frozenset({"model", "assistant"})
USER_ROLE = "user"


def _turn_attr(turn: Any, name: str, default: Any = None) -> Any:
    if isinstance(turn, Mapping):
        return turn.get(name, default)
    return getattr(turn, name, default)


def is_model_turn(turn: Any) -> bool:
    return _turn_attr(turn, "role") in MODEL_ROLES


def is_user_turn(turn: Any) -> bool:
    return _turn_attr(turn, "role") == USER_ROLE


def find_last_model_index(window: Sequence[Any]) -> Optional[int]:
    """Index of the last model-authored turn in *window*, or ``None``."""
    for i in range(len(window) - 1, -1, -1):
        if is_model_turn(window[i]):
            return i
    return None


def find_preceding_user_index(window: Sequence[Any], index: int) -> Optional[int]:
    """Nearest user turn strictly before *index*, scanning backwards; ``None`` if there is none."""
    for j in range(index - 1, -1, -1):
        if is_user_turn(window[j]):
            return j
    return None


def build_injection_map(
    window: Sequence[Any],
    tracker_config: Optional[Mapping[str, Any]],
    user_name: str,
    anchor: Optional[str] = None,
    include_all_enabled: bool = False,
    preamble: Optional[str] = None,
) -> Dict[int, str]:
    """Map transcript indices to the historical context appended to them.

    The last model turn is left out: it carries the current trackers, which
    are injected elsewhere. Every other model turn with an attached snapshot
    contributes ``"\\n<preamble>\\n<context>"`` to its own index
    (``assistant_message_end``) or to the closest preceding user turn
    (``user_message_end``); with no such user turn it contributes nothing.
    Contributions landing on the same index are concatenated in scan order.

    Pure function: the same inputs always produce the same map.
    """
    injection_map: Dict[int, str] = {}
    if not window:
        return injection_map

    settings = get_settings()
    if anchor is None:
        anchor = settings.injection_position
    if anchor not in VALID_ANCHORS:
        logger.warning(
            "injection_anchor_unknown | anchor=%r | using=%s", anchor, ANCHOR_ASSISTANT_END,
            extra={"event_type": "injection_map"},
        )
        anchor = ANCHOR_ASSISTANT_END

    if preamble is None:
        preamble = settings.context_preamble
    user_name = user_name or settings.default_user_name

    last_model_idx = find_last_model_index(window)

    for i, turn in enumerate(window):
        if not is_model_turn(turn) or i == last_model_idx:
            continue

        snapshot = _turn_attr(turn, "snapshot")
        if not snapshot:
            continue

        formatted = format_historical_tracker(snapshot, tracker_config, user_name, include_all_enabled)
        if not formatted:
            continue

        target_idx = i
        if anchor == ANCHOR_USER_END:
            user_idx = find_preceding_user_index(window, i)
            if user_idx is None:
                logger.debug(
                    "historical_context_skipped | reason=no_preceding_user_turn",
                    extra={"turn_index": i, "event_type": "injection_map"},
                )
                continue
            target_idx = user_idx

        wrapped = f"\n{preamble}\n{formatted}"
        injection_map[target_idx] = injection_map.get(target_idx, "") + wrapped

    if injection_map:
        logger.debug(
            "injection_map_built | turns=%d | targets=%s | anchor=%s",
            len(window), list(injection_map.keys()), anchor,
        )
    return injection_map


def apply_injection_map(window: Sequence[Any], injection_map: Mapping[int, str]) -> List[Dict[str, str]]:
    """Render *window* as chat messages with mapped context appended.

    User turns stay ``user``; every other turn (model or system) is sent as
    ``assistant``. Order and count of turns are unchanged.
    """
    messages: List[Dict[str, str]] = []
    for i, turn in enumerate(window):
        content = _turn_attr(turn, "text", "") or ""
        if i in injection_map:
            content += injection_map[i]
        messages.append({
            "role": "user" if is_user_turn(turn) else "assistant",
            "content": content,
        })
    return messages
