"""Tests for tracker payload detection, normalization and reply splitting."""

import json
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from tracker_context.schemas import ParseIssue, PayloadKind, TrackerCategory
from tracker_context.utils.json_extractor import extract_tracker_json
from tracker_context.utils.tracker_parser import (
    get_category_payload,
    parse,
    parse_snapshot,
    split_unified_response,
)


class TestParseDetection:

    def test_json_object_string_is_v3(self):
        result = parse('{"location": "Forest Clearing"}', "infoBox")
        assert result.kind == PayloadKind.json_v3
        assert result.category == TrackerCategory.scene_info
        assert result.data == {"location": "Forest Clearing"}
        assert result.issue is None

    def test_plain_text_is_legacy_verbatim(self):
        raw = "Location: Tavern\nTime: Dusk  "
        result = parse(raw, TrackerCategory.scene_info)
        assert result.kind == PayloadKind.text_legacy
        assert result.text == raw
        assert result.issue == ParseIssue.malformed_payload
        assert result.is_legacy

    def test_json_scalar_is_legacy(self):
        assert parse("42", "infoBox").kind == PayloadKind.text_legacy
        assert parse('"just text"', "infoBox").kind == PayloadKind.text_legacy

    def test_empty_payload_is_unknown_without_issue(self):
        for raw in (None, "", "   "):
            result = parse(raw, "userStats")
            assert result.kind == PayloadKind.unknown
            assert result.issue is None

    def test_shape_mismatch_is_unknown_shape(self):
        result = parse('["not", "a", "scene"]', "infoBox")
        assert result.kind == PayloadKind.unknown
        assert result.issue == ParseIssue.unknown_shape

    def test_structured_value_is_accepted(self):
        payload = {"stats": [{"id": "hp", "value": 5}]}
        result = parse(payload, TrackerCategory.player_stats)
        assert result.kind == PayloadKind.json_v3
        assert result.data == payload

    def test_v2_inventory_marker(self):
        payload = {"inventory": {"version": 2, "onPerson": "Sword"}}
        result = parse(json.dumps(payload), "userStats")
        assert result.kind == PayloadKind.structured_v2
        assert result.is_structured

    def test_v2_marker_only_applies_to_player_stats(self):
        result = parse({"version": 2, "location": "Inn"}, "infoBox")
        assert result.kind == PayloadKind.json_v3

    def test_roster_list(self):
        result = parse('[{"name": "Mira"}]', "characterThoughts")
        assert result.category == TrackerCategory.character_roster
        assert result.data == [{"name": "Mira"}]

    def test_roster_wrapped_in_object(self):
        result = parse({"characters": [{"name": "Mira"}]}, "presentCharacters")
        assert result.kind == PayloadKind.json_v3
        assert result.data == [{"name": "Mira"}]

    def test_roster_object_without_list(self):
        result = parse({"name": "Mira"}, TrackerCategory.character_roster)
        assert result.kind == PayloadKind.unknown
        assert result.issue == ParseIssue.unknown_shape

    def test_unknown_category_never_raises(self):
        result = parse('{"a": 1}', "inventoryTracker")
        assert result.kind == PayloadKind.unknown


class TestParseSnapshot:

    def test_each_category_falls_back_independently(self):
        snapshot = {
            "userStats": "Health: 80%\nMood: 😊",
            "infoBox": '{"location": "Inn"}',
            "characterThoughts": "[broken json",
        }
        parsed = parse_snapshot(snapshot)
        assert parsed[TrackerCategory.player_stats].kind == PayloadKind.text_legacy
        assert parsed[TrackerCategory.scene_info].kind == PayloadKind.json_v3
        assert parsed[TrackerCategory.character_roster].kind == PayloadKind.text_legacy

    def test_unknown_categories_are_left_out(self):
        parsed = parse_snapshot({"infoBox": "[1, 2]", "userStats": '{"stats": []}'})
        assert list(parsed) == [TrackerCategory.player_stats]

    def test_non_mapping_snapshot(self):
        assert parse_snapshot(None) == {}
        assert parse_snapshot("text") == {}

    def test_payload_lookup_accepts_every_host_key(self):
        assert get_category_payload({"characters": "[]"}, TrackerCategory.character_roster) == "[]"
        assert get_category_payload({"characterThoughts": "x"}, TrackerCategory.character_roster) == "x"
        assert get_category_payload({}, TrackerCategory.scene_info) is None


class TestSplitUnifiedResponse:

    def test_fenced_block_before_narrative(self):
        reply = (
            "```json\n"
            '{"userStats": {"stats": [{"id": "hp", "value": 9}]}, '
            '"infoBox": {"location": "Docks"}, '
            '"characters": [{"name": "Mira"}]}\n'
            "```\n\nThe gulls screamed overhead {as always}."
        )
        parsed = split_unified_response(reply)
        assert list(parsed) == [
            TrackerCategory.player_stats,
            TrackerCategory.scene_info,
            TrackerCategory.character_roster,
        ]
        assert parsed[TrackerCategory.scene_info].data == {"location": "Docks"}

    def test_bare_object_after_prose(self):
        reply = 'Sure. {"infoBox": {"time": {"start": "9:00", "end": "9:30"}}} And then...'
        parsed = split_unified_response(reply)
        assert list(parsed) == [TrackerCategory.scene_info]

    def test_no_tracker_object(self):
        assert split_unified_response("Just a story with no data.") == {}
        assert split_unified_response('{"foo": 1}') == {}

    def test_bad_category_does_not_hide_others(self):
        reply = '{"infoBox": ["bad"], "characters": [{"name": "Ash"}]}'
        parsed = split_unified_response(reply)
        assert list(parsed) == [TrackerCategory.character_roster]


class TestExtractTrackerJson:

    def test_invalid_fenced_json(self):
        assert extract_tracker_json("```json\n{not json}\n```") is None

    def test_non_dict_json(self):
        assert extract_tracker_json("```json\n[1, 2]\n```") is None

    def test_braces_inside_strings(self):
        reply = '{"infoBox": {"location": "The {Red} Door"}}'
        assert extract_tracker_json(reply) == {"infoBox": {"location": "The {Red} Door"}}

    def test_non_string_input(self):
        assert extract_tracker_json(None) is None
