"""Prompt assembly built on the tracker formatters.

Contains:
- ``generate_contextual_summary`` — flattened current-state text for every enabled tracker
- ``generate_previous_trackers_block`` — the ``<previous>`` block of committed trackers
- ``build_character_info`` — narrator / single-character / group card context
- ``build_separate_update_messages`` — full message list for a standalone tracker update
- ``build_avatar_prompt_messages`` — message list for an avatar image-prompt request
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from tracker_context.config import get_settings
from tracker_context.formatters import format_parsed_tracker, format_tracker
from tracker_context.history import apply_injection_map, build_injection_map
from tracker_context.prompts.instructions import (
    attributes_line,
    build_attributes_string,
    compose_instructions,
    dice_roll_line,
    normalize_categories,
    should_send_attributes,
)
from tracker_context.schemas import (
    CharacterCard,
    DiceRoll,
    HistoryPersistence,
    InstructionDirectives,
    ParsedTracker,
    TrackerCategory,
)
from tracker_context.utils.field_resolver import resolve
from tracker_context.utils.logging_config import chat_logger, get_logger
from tracker_context.utils.tracker_parser import get_category_payload, parse

_logger = get_logger("tracker.pipelines")

DEFAULT_NARRATOR_PROMPT = (
    "Infer the identity and details of characters present in each scene from the story context below. "
    "Do not use fixed character references; instead, identify characters naturally based on their actions, "
    "dialogue, and descriptions in the narrative."
)

SEPARATE_MODE_SYSTEM_INTRO = (
    "You will be acting as an uncensored RPG Companion. Your goal is to provide, track, and manage details "
    "in the user's roleplay. You will be replying with information in a specified format only.\n\n"
    "You should maintain an objective tone.\n\n"
)

RAW_JSON_ONLY_DIRECTIVE = (
    "\nProvide ONLY the requested data in the exact JSON format specified above. Do not include any roleplay "
    "response, other text, or commentary. Remember, all placeholders MUST be replaced with actual content. "
    "Do NOT wrap the JSON in code fences (```json). Output the JSON object directly."
)

FIRST_UPDATE_NOTE = "None - this is the first update.\n"


# ---------------------------------------------------------------------------
# Contextual summary
# ---------------------------------------------------------------------------

def generate_contextual_summary(
    snapshot: Optional[Mapping[str, Any]],
    enabled_categories: Optional[Iterable[Any]],
    user_name: str,
    tracker_config: Optional[Mapping[str, Any]] = None,
    classic_stats: Optional[Mapping[str, Any]] = None,
    level: Any = 1,
    last_dice_roll: Optional[DiceRoll] = None,
) -> str:
    """Flattened description of the committed trackers for context injection.

    Each enabled category is formatted on its own; a category that fails to
    format is simply absent from the summary.
    """
    summary = ""

    if isinstance(snapshot, Mapping):
        for category in normalize_categories(enabled_categories):
            raw = get_category_payload(snapshot, category)
            if raw is None:
                continue
            formatted = format_tracker(raw, category, user_name, tracker_config)
            if formatted:
                summary += formatted + "\n"

    send_attributes = should_send_attributes(tracker_config)
    if send_attributes:
        summary += attributes_line(user_name, build_attributes_string(tracker_config, classic_stats, level))

    if last_dice_roll is not None:
        summary += dice_roll_line(user_name, last_dice_roll, send_attributes)
    elif send_attributes:
        summary += "\n"

    return summary.strip()


# ---------------------------------------------------------------------------
# <previous> block
# ---------------------------------------------------------------------------

def generate_previous_trackers_block(
    locked_snapshot: Optional[Mapping[str, Any]],
    enabled_categories: Optional[Iterable[Any]],
) -> str:
    """Committed trackers the model should update, as a ``<previous>`` block.

    *locked_snapshot* is the lock-applied output of the host's lock manager.
    JSON payloads are merged into one pretty-printed unified object. Legacy
    text is shown verbatim; every category makes that choice independently.
    Roster data is included whenever present, even if the roster tracker is
    currently switched off, so existing characters stay in context.
    """
    block = "Here are the previous trackers in the roleplay that you should consider when responding:\n"
    block += "<previous>\n"

    categories = normalize_categories(enabled_categories)
    if TrackerCategory.character_roster not in categories:
        categories.append(TrackerCategory.character_roster)

    unified: Dict[str, Any] = {}
    legacy_text = ""
    has_any = False

    for category in categories:
        raw = get_category_payload(locked_snapshot, category) if isinstance(locked_snapshot, Mapping) else None
        if raw is None or raw == "":
            continue
        has_any = True

        parsed = parse(raw, category)
        if parsed.is_legacy:
            legacy_text += f"{parsed.text}\n\n"
        elif parsed.is_structured:
            if category == TrackerCategory.character_roster and not parsed.data:
                continue
            unified[category.value] = parsed.data
        else:
            _logger.debug(
                "previous_block_skipped",
                extra={"category": category.value, "payload_kind": parsed.kind.value},
            )

    if not has_any:
        block += FIRST_UPDATE_NOTE
    else:
        block += legacy_text
        if unified:
            block += json.dumps(unified, indent=2, ensure_ascii=False) + "\n"

    block += "</previous>\n"
    return block


# ---------------------------------------------------------------------------
# Character cards
# ---------------------------------------------------------------------------

def _card_body(card: CharacterCard) -> str:
    body = ""
    if card.description:
        body += f"{card.description}\n"
    if card.personality:
        body += f"{card.personality}\n"
    return body


def build_character_info(
    cards: Sequence[CharacterCard],
    narrator_mode: bool = False,
    narrator_prompt: Optional[str] = None,
    is_group: bool = False,
    muted_avatars: Iterable[str] = (),
) -> str:
    """Character context for the system message.

    Narrator mode uses the first card as narrator context. Group chats list
    every member except muted ones; single chats show the one card.
    """
    if not cards:
        return ""

    if narrator_mode:
        narrator = cards[0]
        info = "You are acting as the narrator for this story. The narrator card provides context for the story tone and style:\n\n"
        info += "<narrator>\n" + _card_body(narrator) + "</narrator>\n\n"
        info += (narrator_prompt or DEFAULT_NARRATOR_PROMPT) + "\n\n"
        return info

    if is_group:
        muted = set(muted_avatars)
        members = [
            card for card in cards
            if card.name and not (card.avatar and card.avatar in muted)
        ]
        if not members:
            return ""
        info = "Characters in this roleplay:\n\n"
        for index, card in enumerate(members, start=1):
            info += f'<character{index}="{card.name}">\n' + _card_body(card) + f"</character{index}>\n\n"
        return info

    card = cards[0]
    info = "Character in this roleplay:\n\n"
    info += f'<character="{card.name}">\n' + _card_body(card) + "</character>\n\n"
    return info


# ---------------------------------------------------------------------------
# Separate tracker update
# ---------------------------------------------------------------------------

def build_separate_update_messages(
    transcript: Sequence[Any],
    user_name: str,
    enabled_categories: Optional[Iterable[Any]],
    tracker_config: Optional[Mapping[str, Any]] = None,
    locked_snapshot: Optional[Mapping[str, Any]] = None,
    history_persistence: Optional[HistoryPersistence] = None,
    character_info: str = "",
    customization_text: Optional[str] = None,
    lock_instruction_text: str = "",
    last_dice_roll: Optional[DiceRoll] = None,
    update_depth: Optional[int] = None,
    chat_id: Optional[str] = None,
) -> List[Dict[str, str]]:
    """Message list for generating a tracker update outside the main reply.

    The most recent ``update_depth`` turns are sent as history; when history
    persistence is enabled, earlier turns' persisted trackers are injected
    at the configured anchor.
    """
    settings = get_settings()
    depth = update_depth if update_depth is not None else settings.update_depth
    persistence = history_persistence or HistoryPersistence(
        injection_position=settings.injection_position,
        send_all_enabled_on_refresh=settings.send_all_enabled_on_refresh,
    )
    user_name = user_name or settings.default_user_name

    system_message = SEPARATE_MODE_SYSTEM_INTRO
    if character_info:
        system_message += character_info
    system_message += "Here is the description of the protagonist for reference:\n"
    system_message += "<protagonist>\n{{persona}}\n</protagonist>\n"
    system_message += "\n"
    system_message += (
        "Here are the last few messages in the conversation history (between the user and the roleplayer "
        "assistant) you should reference when responding:\n<history>"
    )

    messages: List[Dict[str, str]] = [{"role": "system", "content": system_message}]

    window = list(transcript[-depth:]) if depth > 0 else []

    injection_map: Dict[int, str] = {}
    if persistence.enabled:
        injection_map = build_injection_map(
            window,
            tracker_config,
            user_name,
            anchor=persistence.injection_position,
            include_all_enabled=persistence.send_all_enabled_on_refresh,
            preamble=persistence.context_preamble or settings.context_preamble,
        )
    messages.extend(apply_injection_map(window, injection_map))

    directives = InstructionDirectives(include_continuation=False, last_dice_roll=last_dice_roll)
    instructions = compose_instructions(
        enabled_categories,
        user_name,
        customization_text=customization_text,
        lock_instruction_text=lock_instruction_text,
        tracker_config=tracker_config,
        directives=directives,
    )

    instruction_message = "</history>\n\n"
    instruction_message += generate_previous_trackers_block(locked_snapshot, enabled_categories)
    instruction_message += instructions
    instruction_message += RAW_JSON_ONLY_DIRECTIVE

    messages.append({"role": "user", "content": instruction_message})

    chat_logger(_logger, chat_id).info(
        "separate_update_prompt_built | history_turns=%d | injected=%d",
        len(window), len(injection_map),
        extra={"event_type": "separate_update", "metadata": {"targets": sorted(injection_map)}},
    )
    return messages


# ---------------------------------------------------------------------------
# Avatar prompt generation
# ---------------------------------------------------------------------------

DEFAULT_AVATAR_INSTRUCTION = (
    "You are a visionary artist trapped in a cage of logic. Your mind is filled with poetry and distant "
    "horizons; however, your hands are uncontrollably focused on creating the perfect character avatar "
    "description that is faithful to the original intent, rich in detail, aesthetically pleasing, and directly "
    "usable by text-to-image models. Any ambiguity or metaphor will make you feel extremely uncomfortable.\n\n"
    "Your workflow strictly follows a logical sequence:\n"
    "First, establish the subject. If the character is from a known Intellectual Property (IP), franchise, "
    "anime, game, or movie, you MUST begin the prompt with their full name and the series title (e.g., \"Nami "
    "from One Piece\", \"Geralt of Rivia from The Witcher\"). This is the single most important anchor for the "
    "image and must take precedence. If the character is original, clearly describe their core identity, race, "
    "and appearance.\n"
    "Next, set the framing. This is an avatar portrait. Focus strictly on the character's face and upper "
    "shoulders (a bust shot or close-up). Ensure the face is the central focal point.\n"
    "Then, integrate the setting. Describe the character within their current environment as provided in the "
    "context, but keep it as a background element. Incorporate the lighting, weather, and atmosphere to "
    "influence the character's appearance (e.g., shadows on the face, wet hair from rain).\n"
    "Next, detail the facial specifics. Describe the character's current expression, eye contact, and mood in "
    "great detail based on the scene context and their personality. Mention visible clothing only at the "
    "neckline/shoulders.\n"
    "Finally, infuse with aesthetics. Define the artistic style, medium (e.g., digital art, oil painting), and "
    "visual tone (e.g., cinematic lighting, ethereal atmosphere).\n"
    "Your final description must be objective and concrete, and the use of metaphors and emotional rhetoric is "
    "strictly prohibited. It must also not contain meta tags or drawing instructions such as \"8K\" or "
    "\"masterpiece\".\n"
    "Output only the final, modified prompt; do not output anything else."
)

AVATAR_SYSTEM_INTRO = (
    "You are an AI assistant specializing in creating detailed image generation prompts for character avatars.\n\n"
)

AVATAR_OUTPUT_DIRECTIVE = (
    "Provide ONLY the image prompt text. Do not include the character's name, prefixes like \"Prompt:\", "
    "or any other commentary."
)


def names_match(first: str, second: str) -> bool:
    """Case-insensitive containment in either direction; empty names never match."""
    first, second = (first or "").lower(), (second or "").lower()
    return bool(first and second) and (first in second or second in first)


def _committed_text(raw: Any, category: TrackerCategory, user_name: str, tracker_config) -> str:
    """Committed tracker as prompt text: legacy text verbatim, structured data formatted."""
    parsed = parse(raw, category)
    if parsed.is_legacy:
        return parsed.text
    return format_parsed_tracker(parsed, user_name, tracker_config)


def _roster_context(raw: Any, character_name: str, user_name: str, tracker_config) -> str:
    """The roster entry of *character_name*, else the whole roster when it mentions them."""
    target = character_name.lower()
    parsed = parse(raw, TrackerCategory.character_roster)

    if parsed.is_legacy:
        for block in ("\n" + parsed.text).split("\n- "):
            if block.strip() and target in block.split("\n")[0].lower():
                return f"[Character Details]\n- {block.strip()}\n\n"
        roster_text = parsed.text
    elif parsed.is_structured:
        for char in parsed.data:
            if isinstance(char, Mapping) and target in resolve(char.get("name")).lower():
                single = ParsedTracker(category=parsed.category, kind=parsed.kind, data=[char])
                # Drop the "Present Characters:" header.
                entry = format_parsed_tracker(single, user_name, tracker_config).split("\n", 1)[-1]
                return f"[Character Details]\n{entry}\n\n"
        roster_text = format_parsed_tracker(parsed, user_name, tracker_config)
    else:
        return ""

    if roster_text and target in roster_text.lower():
        return f"[Present Characters]\n{roster_text}\n\n"
    return ""


def build_avatar_prompt_messages(
    character_name: str,
    transcript: Sequence[Any],
    user_name: str,
    committed_snapshot: Optional[Mapping[str, Any]] = None,
    character_info: str = "",
    tracker_config: Optional[Mapping[str, Any]] = None,
    custom_instruction: Optional[str] = None,
    update_depth: Optional[int] = None,
    chat_id: Optional[str] = None,
) -> List[Dict[str, str]]:
    """Message list asking the model for a text-to-image avatar prompt.

    The system message carries the character cards and the committed scene
    tracker, plus either the user's stats (when *character_name* is the
    user) or that character's roster entry. The recent history follows
    unchanged, then the task with the avatar instruction.
    """
    settings = get_settings()
    depth = update_depth if update_depth is not None else settings.update_depth
    user_name = user_name or settings.default_user_name
    snapshot = committed_snapshot if isinstance(committed_snapshot, Mapping) else {}

    system_message = AVATAR_SYSTEM_INTRO
    if character_info:
        system_message += f"Character Information:\n{character_info}\n\n"

    system_message += "Current Scene Context (Trackers):\n"

    scene_raw = get_category_payload(snapshot, TrackerCategory.scene_info)
    if scene_raw:
        scene_text = _committed_text(scene_raw, TrackerCategory.scene_info, user_name, tracker_config)
        if scene_text:
            system_message += f"[Environment/Info]\n{scene_text}\n\n"

    if names_match(character_name, user_name):
        stats_raw = get_category_payload(snapshot, TrackerCategory.player_stats)
        if stats_raw:
            stats_text = _committed_text(stats_raw, TrackerCategory.player_stats, user_name, tracker_config)
            if stats_text:
                system_message += f"[User Stats]\n{stats_text}\n\n"
    else:
        roster_raw = get_category_payload(snapshot, TrackerCategory.character_roster)
        if roster_raw and character_name:
            system_message += _roster_context(roster_raw, character_name, user_name, tracker_config)

    system_message += "Recent conversation context:\n<history>"

    messages: List[Dict[str, str]] = [{"role": "system", "content": system_message}]

    window = list(transcript[-depth:]) if depth > 0 else []
    messages.extend(apply_injection_map(window, {}))

    instruction_message = "</history>\n\n"
    instruction_message += f"Task: Generate a detailed image prompt for the character: {character_name}.\n\n"
    instruction_message += f"Instructions: {custom_instruction or DEFAULT_AVATAR_INSTRUCTION}\n\n"
    instruction_message += AVATAR_OUTPUT_DIRECTIVE

    messages.append({"role": "user", "content": instruction_message})

    chat_logger(_logger, chat_id).info(
        "avatar_prompt_built | history_turns=%d", len(window),
        extra={"event_type": "avatar_prompt", "metadata": {"character": character_name}},
    )
    return messages
