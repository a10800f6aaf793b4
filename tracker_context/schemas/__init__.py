# Tracker Schema Definitions
from .tracker_schemas import (
    TrackerCategory,
    PayloadKind,
    ParseIssue,
    ParsedTracker,
    # Host inputs
    CamelModel,
    TranscriptTurn,
    HistoryPersistence,
    DiceRoll,
    CharacterCard,
    InstructionDirectives,
    # Model output
    UnifiedTrackerResponse,
)

__all__ = [
    "TrackerCategory",
    "PayloadKind",
    "ParseIssue",
    "ParsedTracker",
    # Host inputs
    "CamelModel",
    "TranscriptTurn",
    "HistoryPersistence",
    "DiceRoll",
    "CharacterCard",
    "InstructionDirectives",
    # Model output
    "UnifiedTrackerResponse",
]
