"""Tests for current-state and historical tracker formatting."""

import json
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from tracker_context.formatters import (
    build_inventory_summary,
    format_historical_tracker,
    format_snapshot,
    format_tracker,
    humanize_key,
)
from tracker_context.schemas import TrackerCategory


NUMBER_MODE_CONFIG = {
    "userStats": {
        "customStats": [{"id": "hp", "maxValue": 10}],
        "statsDisplayMode": "number",
    }
}


class TestPlayerStats:

    def test_number_display_mode(self):
        snapshot = '{"stats": [{"id": "hp", "name": "HP", "value": 7}]}'
        result = format_tracker(snapshot, "userStats", "Alice", NUMBER_MODE_CONFIG)
        assert result == "Alice's Stats:\nHP: 7/10"

    def test_number_mode_defaults_max_to_100(self):
        snapshot = {"stats": [{"id": "mp", "value": 40}]}
        result = format_tracker(snapshot, "userStats", "Alice", NUMBER_MODE_CONFIG)
        assert result == "Alice's Stats:\nMp: 40/100"

    def test_percentage_mode_shows_bare_value(self):
        snapshot = {"stats": [{"id": "health", "value": 80}]}
        assert format_tracker(snapshot, "userStats", "Alice") == "Alice's Stats:\nHealth: 80"

    def test_locked_stat_value(self):
        snapshot = {"stats": [{"id": "hp", "name": "HP", "value": {"value": 7, "locked": True}}]}
        result = format_tracker(snapshot, "userStats", "Alice", NUMBER_MODE_CONFIG)
        assert result == "Alice's Stats:\nHP: 7/10"

    def test_flat_layout(self):
        snapshot = {"mana": 20, "gold": 12, "health": 50, "mood": "😊"}
        result = format_tracker(snapshot, "userStats", "Alice")
        assert result.split("\n") == [
            "Alice's Stats:",
            "Health: 50",
            "Mana: 20",
            "Gold: 12",
            "Mood: 😊",
        ]

    def test_status_skills_inventory_quests_order(self):
        snapshot = {
            "quests": {"main": {"title": "Find the key"}, "optional": [{"title": "A"}, {"title": "B"}]},
            "inventory": {
                "onPerson": [{"name": "Torch", "quantity": 2}],
                "clothing": [{"name": "Cloak"}],
                "stored": {"Camp": [{"name": "Tent"}]},
                "assets": [],
            },
            "skills": {"Swordplay": "3", "Stealth": ""},
            "status": {"mood": "😊", "conditions": "Tired"},
        }
        result = format_tracker(snapshot, "userStats", "Alice")
        assert result.split("\n") == [
            "Alice's Stats:",
            "Status: 😊 - Tired",
            "Skills: Swordplay: 3, Stealth",
            "On Person: Torch (x2)",
            "Clothing: Cloak",
            "Camp: Tent",
            "Main Quest: Find the key",
            "Optional Quests: A, B",
        ]

    def test_skill_list(self):
        snapshot = {"skills": [{"name": "Archery"}, "Cooking"]}
        assert format_tracker(snapshot, "userStats", "Alice") == "Alice's Stats:\nSkills: Archery, Cooking"

    def test_legacy_inventory_string(self):
        snapshot = {"inventory": "Sword, Shield"}
        assert format_tracker(snapshot, "userStats", "Alice") == "Alice's Stats:\nInventory: Sword, Shield"

    def test_header_only_is_empty(self):
        assert format_tracker('{"stats": []}', "userStats", "Alice") == ""


class TestSceneInfo:

    def test_location_and_weather(self):
        snapshot = {"location": "Forest Clearing", "weather": {"emoji": "☀️", "forecast": "Clear"}}
        assert format_tracker(snapshot, "infoBox", "Alice") == "Location: Forest Clearing\nWeather: ☀️ Clear"

    def test_known_fields_first_then_extras(self):
        snapshot = {
            "recentEvents": ["Storm passed", "Bell rang"],
            "time": {"start": "10:00", "end": "11:00"},
            "location": {"value": "Harbor", "locked": True},
        }
        result = format_tracker(json.dumps(snapshot), TrackerCategory.scene_info, "Alice")
        assert result.split("\n") == [
            "Location: Harbor",
            "Time: 10:00 - 11:00",
            "Recent Events: Storm passed, Bell rang",
        ]


class TestCharacterRoster:

    def test_full_character(self):
        roster = [{
            "name": "Mira",
            "details": {"eyeColor": "green", "mood": ""},
            "relationship": {"status": "Friend"},
            "thoughts": {"content": "I trust them."},
            "stats": {"Health": 90},
        }]
        result = format_tracker(roster, "characters", "Alice")
        assert result.split("\n") == [
            "Present Characters:",
            "- Mira:",
            "  Eye Color: green",
            "  Relationship: Friend",
            "  Thoughts: I trust them.",
            "  Stats: Health: 90",
        ]

    def test_plain_relationship_and_thoughts(self):
        roster = '{"characters": [{"name": "Ash", "relationship": "Enemy", "thoughts": "Run."}]}'
        result = format_tracker(roster, "characterThoughts", "Alice")
        assert result == "Present Characters:\n- Ash:\n  Relationship: Enemy\n  Thoughts: Run."

    def test_nameless_character(self):
        assert format_tracker([{}], "characters", "Alice") == "Present Characters:\n- Unknown:"

    def test_empty_roster(self):
        assert format_tracker([], "characters", "Alice") == ""


class TestFormatEdgeCases:

    def test_legacy_text_is_empty(self):
        assert format_tracker("Health: 80%\nMood: 😊", "userStats", "Alice") == ""

    def test_empty_payloads(self):
        for snapshot in (None, "", {}, []):
            assert format_tracker(snapshot, "infoBox", "Alice") == ""

    def test_unknown_category(self):
        assert format_tracker('{"a": 1}', "weather", "Alice") == ""

    def test_format_snapshot_omits_empty_categories(self):
        snapshot = {"userStats": "legacy text", "infoBox": '{"location": "Inn"}'}
        assert format_snapshot(snapshot, "Alice") == {TrackerCategory.scene_info: "Location: Inn"}

    def test_humanize_key(self):
        assert humanize_key("recentEvents") == "Recent Events"
        assert humanize_key("eye_color") == "Eye color"


class TestInventorySummary:

    def test_v1_string_passes_through(self):
        assert build_inventory_summary("Sword, Rope") == "Sword, Rope"

    def test_v2_sections(self):
        inventory = {
            "version": 2,
            "onPerson": "Sword, Rope",
            "clothing": "Cloak",
            "stored": {"Home": "Chest", "Cave": "None"},
            "assets": "None",
        }
        assert build_inventory_summary(inventory) == (
            "On Person: Sword, Rope\nClothing: Cloak\nStored - Home: Chest"
        )

    def test_unrecognized(self):
        assert build_inventory_summary(42) == "None"
        assert build_inventory_summary({"onPerson": "Sword"}) == "None"


HISTORY_CONFIG = {
    "userStats": {
        "customStats": [
            {"id": "hp", "name": "HP", "persistInHistory": True},
            {"id": "mp", "name": "MP", "persistInHistory": False},
        ],
        "statusSection": {"persistInHistory": True, "showMoodEmoji": True, "customFields": ["Conditions"]},
        "inventoryPersistInHistory": True,
        "questsPersistInHistory": False,
    },
    "infoBox": {
        "widgets": {
            "location": {"persistInHistory": True},
            "weather": {"persistInHistory": False},
        }
    },
    "presentCharacters": {
        "customFields": [{"id": "mood", "name": "Mood", "persistInHistory": True}],
        "thoughts": {"persistInHistory": True},
    },
}

HISTORY_SNAPSHOT = {
    "userStats": json.dumps({
        "stats": [{"id": "hp", "name": "HP", "value": 7}, {"id": "mp", "name": "MP", "value": 3}],
        "status": {"mood": "😊", "conditions": "Tired"},
        "inventory": {"onPerson": [{"name": "Sword"}]},
        "quests": {"main": {"title": "Q"}},
    }),
    "infoBox": json.dumps({"location": "Inn", "weather": {"emoji": "☀️", "forecast": "Clear"}}),
    "characterThoughts": json.dumps([{"name": "Mira", "details": {"mood": "calm"}, "thoughts": {"content": "Hm."}}]),
}


class TestHistoricalTracker:

    def test_only_persisted_fields(self):
        result = format_historical_tracker(HISTORY_SNAPSHOT, HISTORY_CONFIG, "Alice")
        assert result.split("\n") == [
            "Alice: HP: 7, Mood: 😊, Conditions: Tired, On Person: Sword",
            "Location: Inn",
            "Mira: Mood: calm, Thinking: Hm.",
        ]

    def test_include_all_enabled(self):
        result = format_historical_tracker(HISTORY_SNAPSHOT, HISTORY_CONFIG, "Alice", include_all_enabled=True)
        assert result.split("\n") == [
            "Alice: HP: 7, MP: 3, Mood: 😊, Conditions: Tired, On Person: Sword, Quest: Q",
            "Weather: ☀️ Clear, Location: Inn",
            "Mira: Mood: calm, Thinking: Hm.",
        ]

    def test_disabled_field_stays_out_with_include_all(self):
        config = {"infoBox": {"widgets": {"location": {"enabled": False, "persistInHistory": True}}}}
        snapshot = {"infoBox": {"location": "Inn", "time": {"start": "9", "end": "10"}}}
        assert format_historical_tracker(snapshot, config, "Alice", include_all_enabled=True) == "Time: 9 - 10"

    def test_nothing_persisted(self):
        assert format_historical_tracker(HISTORY_SNAPSHOT, {}, "Alice") == ""

    def test_missing_config(self):
        assert format_historical_tracker(HISTORY_SNAPSHOT, None, "Alice") == ""

    def test_legacy_category_is_skipped(self):
        snapshot = dict(HISTORY_SNAPSHOT, userStats="Health: 80%")
        result = format_historical_tracker(snapshot, HISTORY_CONFIG, "Alice")
        assert result == "Location: Inn\nMira: Mood: calm, Thinking: Hm."

    def test_unconfigured_stat_kept_when_including_all_enabled(self):
        config = {"userStats": {"customStats": [{"id": "hp", "enabled": True}]}}
        snapshot = {"userStats": {"stats": [
            {"id": "hp", "name": "HP", "value": 7},
            {"id": "gold", "value": 12},
        ]}}
        result = format_historical_tracker(snapshot, config, "Alice", include_all_enabled=True)
        assert result == "Alice: HP: 7, gold: 12"

    def test_unconfigured_stat_dropped_without_include_all(self):
        config = {"userStats": {"customStats": [{"id": "hp", "persistInHistory": True}]}}
        snapshot = {"userStats": {"stats": [
            {"id": "hp", "name": "HP", "value": 7},
            {"id": "gold", "value": 12},
        ]}}
        assert format_historical_tracker(snapshot, config, "Alice") == "Alice: HP: 7"

    def test_explicitly_disabled_stat_dropped_when_including_all(self):
        config = {"userStats": {"customStats": [{"id": "hp", "enabled": False}]}}
        snapshot = {"userStats": {"stats": [{"id": "hp", "name": "HP", "value": 7}]}}
        assert format_historical_tracker(snapshot, config, "Alice", include_all_enabled=True) == ""

    def test_mood_needs_emoji_display_switched_on(self):
        config = {"userStats": {"statusSection": {"persistInHistory": True, "customFields": ["Conditions"]}}}
        snapshot = {"userStats": {"status": {"mood": "😊", "conditions": "Tired"}}}
        assert format_historical_tracker(snapshot, config, "Alice") == "Alice: Conditions: Tired"
