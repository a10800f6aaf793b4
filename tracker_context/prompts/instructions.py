"""
Tracker instruction prompts.

Builds the instruction block that tells the model to open every reply with
one unified JSON object holding all enabled trackers, plus the optional
directives (continuation, attributes, dice roll, HTML, music, dialogue
coloring, deception, choose-your-own-adventure) that ride along with it.
"""
from __future__ import annotations

import json
from typing import Any, Iterable, List, Mapping, Optional

from tracker_context.config import get_settings
from tracker_context.schemas import DiceRoll, InstructionDirectives, TrackerCategory
from tracker_context.utils.logging_config import get_logger
from tracker_context.utils.tracker_defaults import (
    get_default_tracker_config,
    get_entry,
    get_list,
    get_section,
    is_enabled,
)
from tracker_context.utils.tracker_parser import get_category_payload, parse

logger = get_logger("tracker.instructions")


DEFAULT_HTML_PROMPT = (
    "If appropriate, include inline HTML, CSS, and JS segments whenever they enhance visual storytelling "
    "(e.g., for in-world screens, posters, books, letters, signs, crests, labels, etc.). Style them to match "
    "the setting's theme (e.g., fantasy, sci-fi), keep the text readable, and embed all assets directly "
    "(using inline SVGs only with no external scripts, libraries, or fonts). Use these elements freely and "
    "naturally within the narrative as characters would encounter them, including animations, 3D effects, "
    "pop-ups, dropdowns, websites, and so on. Do not wrap the HTML/CSS/JS in code fences!"
)

DEFAULT_DIALOGUE_COLORING_PROMPT = (
    'Wrap all character/NPC "dialogues" in unique <font color=######>tags</font>, exemplary: '
    '<font color=#abc123>"You\'re pretty good."</font> Assign a distinct color to each speaker and reuse it '
    "whenever they speak again."
)

DEFAULT_DECEPTION_PROMPT = (
    "When a character is lying or deceiving, you should follow up that line with the <lie> tag, containing a "
    "brief description of the truth and the lie's reason, using the template below (replace placeholders in "
    "quotation marks). This will be hidden from the user's view, but not to you, making it useful for future "
    'consequences: <lie character="name" type="lying/deceiving/omitting" truth="truth" reason="reason"/>.'
)

DEFAULT_CYOA_PROMPT = (
    'Since this is a "Choose Your Own Adventure" type of game, you must finish your response by creating a '
    "numbered list of 5 different possible action or dialogue options (depending on the scene) for the user "
    "to choose from. Make sure they all fit their persona well. They will respond with their choice on how "
    "to progress."
)

DEFAULT_SPOTIFY_PROMPT = (
    "If fitting for the current scene's mood and atmosphere, suggest a song that fits the ambiance. Choose "
    "music that enhances the emotional tone, setting, or action of the scene."
)

# Not customizable: the host parses this exact tag.
SPOTIFY_FORMAT_INSTRUCTION = "Include it in this exact format: <spotify:Song Title - Artist Name/>."

DEFAULT_CONTINUATION_PROMPT = (
    "After updating the trackers, continue directly from where the last message in the chat history left "
    "off. Ensure the trackers you provide naturally reflect and influence the narrative. Character behavior, "
    "dialogue, and story events should acknowledge these conditions when relevant, such as fatigue affecting "
    "the protagonist's performance, low hygiene influencing their social interactions, environmental factors "
    "shaping the scene, a character's emotional state coloring their responses, and so on. Remember, all "
    "bracketed placeholders (e.g., [Location], [Mood Emoji]) MUST be replaced with actual content without "
    "the square brackets."
)

USER_NAME_PLACEHOLDER = "{userName}"

INSTRUCTION_HEADER = (
    "\nAt the start of every reply, you must attach an update to the trackers in EXACTLY the JSON format "
    "shown below as a single unified JSON object containing all enabled tracker fields. "
)

FORMAT_OPENER = (
    "\n\nFORMAT:\n\nProvide EXACTLY ONE JSON code block with ALL tracker sections wrapped in a single "
    "object:\n\n```json\n{\n"
)

FORMAT_CLOSER = (
    "\n}\n```\n\nDo NOT output multiple separate JSON objects. Everything must be in ONE unified object "
    "with the keys shown above."
)

# Numeric placeholder; emitted unquoted so the model sees a bare number slot.
NUMBER_PLACEHOLDER = "X"
_NUMBER_SENTINEL = "__NUMBER_PLACEHOLDER__"

_DEFAULT_ATTRIBUTE_SCORE = 10
_NESTED_INDENT = "  "


def default_explanation(user_name: str) -> str:
    return (
        f"Replace X with actual numbers (e.g., 69) and replace all placeholders with concrete in-world "
        f"details that {user_name} perceives about the current scene and the present characters. For "
        f'example: "Location" becomes "Forest Clearing", "Mood Emoji" becomes "😊". DO NOT include '
        f"{user_name} in the characters section, only NPCs. "
        f"Consider the last trackers in the conversation (if they exist). Manage them accordingly and "
        f"realistically; raise, lower, change, or keep the values unchanged based on the user's actions, the "
        f"passage of time, and logical consequences."
    )


def normalize_categories(categories: Optional[Iterable[Any]]) -> List[TrackerCategory]:
    """Return the recognized categories of *categories* in the fixed emission order."""
    wanted = set()
    for value in categories or ():
        category = TrackerCategory.coerce(value)
        if category is None:
            logger.debug("instruction_category_ignored | value=%r", value)
            continue
        wanted.add(category)
    return [category for category in TrackerCategory.ordered() if category in wanted]


# ---------------------------------------------------------------------------
# JSON shape examples
# ---------------------------------------------------------------------------

def _player_stats_example(section: Mapping[str, Any]) -> dict:
    example: dict = {}

    stats = []
    for stat in get_list(section, "customStats"):
        if not isinstance(stat, Mapping) or not is_enabled(stat) or not stat.get("id"):
            continue
        stats.append({
            "id": stat["id"],
            "name": stat.get("name") or str(stat["id"]).capitalize(),
            "value": _NUMBER_SENTINEL,
        })
    if stats:
        example["stats"] = stats

    status_cfg = get_entry(section, "statusSection")
    if is_enabled(status_cfg):
        status: dict = {}
        if status_cfg is None or status_cfg.get("showMoodEmoji") is not False:
            status["mood"] = "[Mood Emoji]"
        for field_name in get_list(status_cfg or {}, "customFields"):
            if isinstance(field_name, str) and field_name.strip():
                status[field_name.lower()] = f"[{field_name}]"
        if status:
            example["status"] = status

    skills_cfg = get_entry(section, "skillsSection")
    if skills_cfg is not None and skills_cfg.get("enabled") is True:
        example["skills"] = [{"name": "[Skill Name]"}]

    if section.get("showInventory") is not False:
        example["inventory"] = {
            "onPerson": [{"name": "[Item Name]", "quantity": 1}],
            "clothing": [{"name": "[Clothing Item]"}],
            "stored": {"[Location Name]": [{"name": "[Item Name]", "quantity": 1}]},
            "assets": [{"name": "[Vehicle, Property, or Major Possession]"}],
        }

    if section.get("showQuests") is not False:
        example["quests"] = {
            "main": {"title": "[Main Quest Title]"},
            "optional": [{"title": "[Optional Quest Title]"}],
        }

    return example


def _scene_info_example(section: Mapping[str, Any]) -> dict:
    widgets = get_entry(section, "widgets") or {}
    example: dict = {}

    def enabled(name: str) -> bool:
        return is_enabled(widgets.get(name)) if isinstance(widgets, Mapping) else True

    if enabled("date"):
        example["date"] = "[Weekday, Month Day, Year]"
    if enabled("weather"):
        example["weather"] = {"emoji": "[Weather Emoji]", "forecast": "[Forecast]"}
    if enabled("temperature"):
        unit = (get_entry(widgets, "temperature") or {}).get("unit") or "C"
        example["temperature"] = f"[Temperature in °{unit}]"
    if enabled("time"):
        example["time"] = {"start": "[Time Start]", "end": "[Time End]"}
    if enabled("location"):
        example["location"] = "[Location]"
    if enabled("recentEvents"):
        example["recentEvents"] = ["[Recent Event]"]
    return example


def _character_roster_example(section: Mapping[str, Any]) -> list:
    character: dict = {"name": "[Character Name]", "emoji": "[Character Emoji]"}

    details = {}
    for field in get_list(section, "customFields"):
        if not isinstance(field, Mapping) or not is_enabled(field) or not field.get("id"):
            continue
        details[field["id"]] = f"[{field.get('description') or field.get('name') or field['id']}]"
    if details:
        character["details"] = details

    if is_enabled(get_entry(section, "relationships")):
        character["relationship"] = {"status": "[Enemy/Neutral/Friend/Lover]"}

    thoughts_cfg = get_entry(section, "thoughts")
    if is_enabled(thoughts_cfg):
        hint = (thoughts_cfg or {}).get("description") or "Thoughts"
        character["thoughts"] = {"content": f"[{hint}]"}

    stats_cfg = get_entry(section, "characterStats")
    if stats_cfg is not None and stats_cfg.get("enabled") is True:
        stats = {}
        for stat in get_list(stats_cfg, "customStats"):
            if isinstance(stat, Mapping) and is_enabled(stat) and stat.get("name"):
                stats[stat["name"]] = _NUMBER_SENTINEL
        if stats:
            character["stats"] = stats

    return [character]


_EXAMPLE_BUILDERS = {
    TrackerCategory.player_stats: _player_stats_example,
    TrackerCategory.scene_info: _scene_info_example,
    TrackerCategory.character_roster: _character_roster_example,
}


def build_category_example(category: TrackerCategory, tracker_config: Optional[Mapping[str, Any]] = None) -> str:
    """Return the pretty-printed JSON shape example for one category.

    Numeric slots are rendered as a bare ``X``; substituting a number for it
    yields valid JSON.
    """
    section = get_section(tracker_config, category)
    example = _EXAMPLE_BUILDERS[category](section)
    text = json.dumps(example, indent=2, ensure_ascii=False)
    return text.replace(f'"{_NUMBER_SENTINEL}"', NUMBER_PLACEHOLDER)


def nest_block(text: str) -> str:
    """Indent every line after the first by two spaces so *text* nests inside a parent object."""
    return "\n".join(line if i == 0 else _NESTED_INDENT + line for i, line in enumerate(text.split("\n")))


def build_format_block(categories: List[TrackerCategory], tracker_config: Optional[Mapping[str, Any]] = None) -> str:
    entries = [
        f'{_NESTED_INDENT}"{category.value}": {nest_block(build_category_example(category, tracker_config))}'
        for category in categories
    ]
    return FORMAT_OPENER + ",\n".join(entries) + FORMAT_CLOSER


# ---------------------------------------------------------------------------
# Attributes & dice
# ---------------------------------------------------------------------------

def should_send_attributes(tracker_config: Optional[Mapping[str, Any]]) -> bool:
    section = get_section(tracker_config, TrackerCategory.player_stats)
    return section.get("alwaysSendAttributes") is True and section.get("showRPGAttributes") is not False


def build_attributes_string(
    tracker_config: Optional[Mapping[str, Any]] = None,
    classic_stats: Optional[Mapping[str, Any]] = None,
    level: Any = 1,
) -> str:
    """Format enabled RPG attributes, e.g. ``"STR 10, DEX 12, INT 15, LVL 5"``."""
    section = get_section(tracker_config, TrackerCategory.player_stats)
    attributes = get_list(section, "rpgAttributes") or get_list(
        get_default_tracker_config().get("userStats", {}), "rpgAttributes"
    )
    classic_stats = classic_stats or {}

    parts = []
    for attr in attributes:
        if not isinstance(attr, Mapping) or attr.get("enabled") is not True:
            continue
        if not attr.get("name") or not attr.get("id"):
            continue
        value = classic_stats.get(attr["id"], _DEFAULT_ATTRIBUTE_SCORE)
        parts.append(f"{attr['name']} {value}")

    if section.get("showLevel") is not False:
        parts.append(f"LVL {level}")

    return ", ".join(parts)


def attributes_line(user_name: str, attributes: str) -> str:
    return f"{user_name}'s attributes: {attributes}\n"


def dice_roll_line(user_name: str, roll: DiceRoll, with_attributes: bool) -> str:
    if with_attributes:
        return (
            f"{user_name} rolled {roll.total} on the last {roll.formula} roll. Based on their attributes, "
            f"decide whether they succeeded or failed the action they attempted.\n\n"
        )
    return (
        f"{user_name} rolled {roll.total} on the last {roll.formula} roll. Decide whether they succeeded or "
        f"failed the action they attempted.\n\n"
    )


# ---------------------------------------------------------------------------
# Composer
# ---------------------------------------------------------------------------

def _join_directive(instructions: str, directive: str) -> str:
    """Append *directive* as its own paragraph."""
    if not instructions:
        return "\n" + directive
    if instructions.endswith("\n\n"):
        return instructions + directive
    if instructions.endswith("\n"):
        return instructions + "\n" + directive
    return instructions + "\n\n" + directive


def compose_instructions(
    enabled_categories: Optional[Iterable[Any]],
    user_name: str,
    customization_text: Optional[str] = None,
    lock_instruction_text: str = "",
    tracker_config: Optional[Mapping[str, Any]] = None,
    directives: Optional[InstructionDirectives] = None,
) -> str:
    """Build the tracker instruction block.

    Order: header, customization (or the default explanation), lock
    instructions verbatim, the FORMAT block for every enabled category,
    then each enabled trailing directive. Without enabled categories only
    the tracker-independent directives remain.
    """
    directives = directives or InstructionDirectives()
    user_name = user_name or get_settings().default_user_name
    categories = normalize_categories(enabled_categories)
    instructions = ""

    if categories:
        instructions += INSTRUCTION_HEADER

        if customization_text:
            instructions += customization_text.replace(USER_NAME_PLACEHOLDER, user_name)
        else:
            instructions += default_explanation(user_name)

        instructions += lock_instruction_text or ""
        instructions += build_format_block(categories, tracker_config)

        if directives.include_continuation:
            if directives.custom_continuation_prompt:
                instructions += "\n\n" + directives.custom_continuation_prompt + "\n\n"
            else:
                instructions += "\n\n" + DEFAULT_CONTINUATION_PROMPT + "\n\n"

        if directives.attributes:
            instructions += attributes_line(user_name, directives.attributes)

        if directives.last_dice_roll is not None:
            instructions += dice_roll_line(user_name, directives.last_dice_roll, bool(directives.attributes))
        elif directives.attributes:
            instructions += "\n"

    if directives.enable_html_prompt:
        instructions = _join_directive(instructions, directives.custom_html_prompt or DEFAULT_HTML_PROMPT)

    if directives.enable_spotify_music:
        spotify = directives.custom_spotify_prompt or DEFAULT_SPOTIFY_PROMPT
        instructions = _join_directive(instructions, f"{spotify} {SPOTIFY_FORMAT_INSTRUCTION}")

    if directives.enable_dialogue_coloring:
        instructions = _join_directive(
            instructions, directives.custom_dialogue_coloring_prompt or DEFAULT_DIALOGUE_COLORING_PROMPT
        )

    if directives.enable_deception:
        instructions = _join_directive(instructions, directives.custom_deception_prompt or DEFAULT_DECEPTION_PROMPT)

    if directives.enable_cyoa:
        instructions = _join_directive(instructions, directives.custom_cyoa_prompt or DEFAULT_CYOA_PROMPT)

    return instructions


# ---------------------------------------------------------------------------
# Committed tracker example
# ---------------------------------------------------------------------------

def generate_tracker_example(
    locked_snapshot: Optional[Mapping[str, Any]],
    enabled_categories: Optional[Iterable[Any]],
) -> str:
    """Show the committed (lock-applied) trackers the model should continue from.

    JSON payloads are merged into one unified object; legacy text payloads are
    shown in plain code fences. Each category is handled on its own.
    """
    if not locked_snapshot:
        return ""

    legacy_blocks: List[str] = []
    parts: List[str] = []

    for category in normalize_categories(enabled_categories):
        raw = get_category_payload(locked_snapshot, category)
        if raw is None:
            continue
        parsed = parse(raw, category)
        if parsed.is_legacy:
            legacy_blocks.append("```\n" + parsed.text + "\n```")
        elif parsed.is_structured:
            body = json.dumps(parsed.data, indent=2, ensure_ascii=False)
            parts.append(f'{_NESTED_INDENT}"{category.value}": {nest_block(body)}')

    sections = list(legacy_blocks)
    if parts:
        sections.append("{\n" + ",\n".join(parts) + "\n}")
    return "\n".join(sections).strip()
