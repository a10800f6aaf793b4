"""
Tracker Schema Definitions

Enums and models shared by every stage of the tracker context pipeline:

- ``TrackerCategory`` — the three tracker categories and the keys each one
  is stored under by the host (unified JSON, per-message snapshot, config)
- ``PayloadKind`` / ``ParseIssue`` — the discriminant fixed at parse time and
  the recoverable-error taxonomy carried alongside it
- ``ParsedTracker`` — the normalized result of parsing one category payload
- Pydantic models for the host-supplied inputs (transcript turns, history
  persistence settings, dice rolls, character cards, instruction directives)

Usage:
    from tracker_context.schemas import TrackerCategory, TranscriptTurn

    turn = TranscriptTurn(role="model", text="...", snapshot={"infoBox": "{...}"})
"""
from __future__ import annotations

import dataclasses
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ─── Enums ────────────────────────────────────────────────────────────────────

class TrackerCategory(str, Enum):
    """Tracker categories, in the fixed order they are always emitted.

    The enum value is the key used inside the unified JSON object the model
    is asked to produce.
    """
    player_stats = "userStats"
    scene_info = "infoBox"
    character_roster = "characters"

    @property
    def snapshot_key(self) -> str:
        """Key the host stores this category under in a per-message snapshot."""
        return _SNAPSHOT_KEYS[self]

    @property
    def config_key(self) -> str:
        """Key of this category's section inside the tracker config."""
        return _CONFIG_KEYS[self]

    @classmethod
    def ordered(cls) -> List["TrackerCategory"]:
        return [cls.player_stats, cls.scene_info, cls.character_roster]

    @classmethod
    def coerce(cls, value: Any) -> Optional["TrackerCategory"]:
        """Accept an enum member or any of the three host keys; ``None`` if unknown."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        for category in cls:
            if value in (category.value, category.snapshot_key, category.config_key, category.name):
                return category
        return None


_SNAPSHOT_KEYS = {
    TrackerCategory.player_stats: "userStats",
    TrackerCategory.scene_info: "infoBox",
    TrackerCategory.character_roster: "characterThoughts",
}

_CONFIG_KEYS = {
    TrackerCategory.player_stats: "userStats",
    TrackerCategory.scene_info: "infoBox",
    TrackerCategory.character_roster: "presentCharacters",
}


class PayloadKind(str, Enum):
    """Schema generation of a category payload, decided once at parse time."""
    text_legacy = "text_legacy"
    structured_v2 = "structured_v2"
    json_v3 = "json_v3"
    unknown = "unknown"


class ParseIssue(str, Enum):
    """Recoverable failures; none of them is ever raised."""
    malformed_payload = "malformed_payload"
    unknown_shape = "unknown_shape"
    missing_config = "missing_config"


# ─── Parse result ─────────────────────────────────────────────────────────────

@dataclasses.dataclass(frozen=True)
class ParsedTracker:
    """One category payload after detection and normalization.

    ``data`` holds the structured payload for ``structured_v2``/``json_v3``
    (a dict for player stats and scene info, a list for the roster).
    ``text`` holds the verbatim payload for ``text_legacy``.
    """
    category: TrackerCategory
    kind: PayloadKind
    data: Any = None
    text: str = ""
    issue: Optional[ParseIssue] = None

    @property
    def is_structured(self) -> bool:
        return self.kind in (PayloadKind.structured_v2, PayloadKind.json_v3)

    @property
    def is_legacy(self) -> bool:
        return self.kind == PayloadKind.text_legacy


# ─── Host inputs ──────────────────────────────────────────────────────────────

class CamelModel(BaseModel):
    """Base model accepting both the host's camelCase keys and snake_case names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class TranscriptTurn(CamelModel):
    """One turn of the conversation transcript.

    ``snapshot`` is the tracker snapshot the host attached to this turn
    (category key → raw payload), if any.
    """
    role: Literal["user", "model", "system"] = "user"
    text: str = Field(default="")
    snapshot: Optional[Dict[str, Any]] = None


class HistoryPersistence(CamelModel):
    """Host settings controlling historical context injection."""
    enabled: bool = False
    injection_position: Literal["assistant_message_end", "user_message_end"] = "assistant_message_end"
    send_all_enabled_on_refresh: bool = False
    context_preamble: Optional[str] = None


class DiceRoll(CamelModel):
    """Outcome of the user's most recent dice roll."""
    total: int
    formula: str = Field(default="1d20")


class CharacterCard(CamelModel):
    """Character card of the active chat (or of one group member)."""
    name: str = Field(default="")
    description: str = Field(default="")
    personality: str = Field(default="")
    avatar: Optional[str] = None


class InstructionDirectives(CamelModel):
    """Optional trailing directives of the instruction block; each one is independent."""
    include_continuation: bool = True
    custom_continuation_prompt: Optional[str] = None

    attributes: Optional[str] = Field(
        default=None,
        description="Pre-built attribute line, see build_attributes_string()",
    )
    last_dice_roll: Optional[DiceRoll] = None

    enable_html_prompt: bool = False
    custom_html_prompt: Optional[str] = None

    enable_spotify_music: bool = False
    custom_spotify_prompt: Optional[str] = None

    enable_dialogue_coloring: bool = False
    custom_dialogue_coloring_prompt: Optional[str] = None

    enable_deception: bool = False
    custom_deception_prompt: Optional[str] = None

    enable_cyoa: bool = False
    custom_cyoa_prompt: Optional[str] = None


# ─── Model output ─────────────────────────────────────────────────────────────

class UnifiedTrackerResponse(BaseModel):
    """The single JSON object a model reply carries with tracker updates.

    Validation is soft: callers log issues and keep the raw dict.
    """
    model_config = ConfigDict(extra="allow")

    userStats: Optional[Dict[str, Any]] = None
    infoBox: Optional[Dict[str, Any]] = None
    characters: Optional[Union[List[Any], Dict[str, Any]]] = None
