"""Structural Repairer: parsing, extraction, repair and key normalization."""
import json

import pytest

from regen.errors import ParseError
from regen.repair import StructuralRepairer, scan_payload, to_snake_case


@pytest.fixture
def repairer():
    return StructuralRepairer()


class TestParsing:

    def test_valid_json_passes_through(self, repairer):
        """Valid JSON is returned unchanged."""
        assert repairer.repair('{"key": "value"}') == {"key": "value"}

    def test_unterminated_object_is_closed(self, repairer):
        """A missing closing brace is repaired."""
        assert repairer.repair('{"key": "value"') == {"key": "value"}

    def test_prose_only_is_a_parse_error(self, repairer):
        """Text without any bracket cannot be recovered."""
        with pytest.raises(ParseError):
            repairer.repair("not json at all")

    def test_empty_output_is_a_parse_error(self, repairer):
        with pytest.raises(ParseError):
            repairer.repair("   ")

    def test_fenced_block_is_extracted(self, repairer):
        """Payload inside a json code fence with chatter around it."""
        text = "Here you go:\n```json\n{\"title\": \"Intro\", \"order\": 1}\n```\nHope it helps!"
        assert repairer.repair(text) == {"title": "Intro", "order": 1}

    def test_unclosed_fence(self, repairer):
        text = "```json\n{\"title\": \"Intro\"}"
        assert repairer.repair(text) == {"title": "Intro"}

    def test_object_embedded_in_prose(self, repairer):
        """Bracket counting ignores braces inside strings."""
        text = 'Sure! {"note": "use {braces} freely", "n": 2} Anything else?'
        assert repairer.repair(text) == {"note": "use {braces} freely", "n": 2}

    def test_array_payload(self, repairer):
        assert repairer.repair("Result: [1, 2, 3] done") == [1, 2, 3]

    def test_trailing_comma_removed(self, repairer):
        assert repairer.repair('{"a": 1, "b": [1, 2,],}') == {"a": 1, "b": [1, 2]}

    def test_double_escaped_quotes(self, repairer):
        """{\\"a\\": 1} style output from models that escape twice."""
        assert repairer.repair('{\\"a\\": \\"x\\"}') == {"a": "x"}

    def test_json_string_holding_json(self, repairer):
        """A JSON string literal that wraps a document is decoded once more."""
        assert repairer.repair(json.dumps('{"a": 1}')) == {"a": 1}

    def test_scalar_is_rejected(self, repairer):
        """Only objects and arrays count as structured output."""
        with pytest.raises(ParseError):
            repairer.repair("42")

    def test_bom_and_zero_width_stripped(self, repairer):
        assert repairer.repair('\ufeff{"a": 1}\u200b') == {"a": 1}

    @pytest.mark.parametrize("value", [
        {"title": "Intro", "objectives": ["x", "y"], "meta": {"level": 2}},
        [{"a": None}, {"b": True}],
        {"text": "quote \" and backslash \\ and unicode é"},
    ])
    def test_serialized_values_round_trip(self, repairer, value):
        """repair(serialize(v)) == v for valid structured values."""
        assert repairer.repair(json.dumps(value)) == value


class TestScanPayload:

    def test_no_bracket(self):
        assert scan_payload("plain text") is None

    def test_unterminated_runs_to_end(self):
        assert scan_payload('x {"a": [1, 2') == '{"a": [1, 2'

    def test_first_complete_object(self):
        assert scan_payload('{"a": 1} {"b": 2}') == '{"a": 1}'


class TestKeyNormalization:

    def test_snake_case_helper(self):
        assert to_snake_case("courseTitle") == "course_title"
        assert to_snake_case("HTTPServer") == "http_server"
        assert to_snake_case("already_snake") == "already_snake"
        assert to_snake_case("with space") == "with space"

    def test_camel_keys_normalized_recursively(self, repairer):
        value = repairer.repair('{"lessonTitle": "A", "sections": [{"sectionOrder": 1}]}')
        assert value == {"lesson_title": "A", "sections": [{"section_order": 1}]}

    def test_existing_key_never_overwritten(self, repairer):
        """camelCase alias is kept when its snake_case form already exists."""
        value = repairer.repair('{"course_title": "keep", "courseTitle": "other"}')
        assert value == {"course_title": "keep", "courseTitle": "other"}

    def test_rename_table_applied_first(self):
        repairer = StructuralRepairer(rename_table={"lessonName": "title"})
        assert repairer.repair('{"lessonName": "A", "durationMin": 5}') == {"title": "A", "duration_min": 5}

    def test_case_normalization_can_be_disabled(self):
        repairer = StructuralRepairer(normalize_case=False)
        assert repairer.repair('{"lessonTitle": "A"}') == {"lessonTitle": "A"}


class TestStructureNormalizer:

    def test_normalizer_runs_last(self):
        repairer = StructuralRepairer(structure_normalizer=lambda v: {"wrapped": v})
        assert repairer.repair('{"someKey": 1}') == {"wrapped": {"some_key": 1}}

    def test_failing_normalizer_keeps_value(self):
        """A broken normalizer is logged and ignored."""
        def broken(value):
            raise RuntimeError("boom")

        repairer = StructuralRepairer(structure_normalizer=broken)
        assert repairer.repair('{"a": 1}') == {"a": 1}

    def test_preserved_keys_are_left_alone(self):
        """Schema keys declared in camelCase (aliases) survive normalization."""
        repairer = StructuralRepairer(preserve_keys=["sectionTitle"])
        assert repairer.repair('{"sectionTitle": "A", "sectionOrder": 1}') == {"sectionTitle": "A", "section_order": 1}


class TestKnownKeys:

    @pytest.fixture
    def schema_repairer(self):
        return StructuralRepairer(known_keys=["section", "sectionTitle", "order", "scores", "lesson_title"])

    def test_known_keys_kept_at_any_depth(self, schema_repairer):
        value = schema_repairer.repair('{"section": {"sectionTitle": "A", "order": 1}}')
        assert value == {"section": {"sectionTitle": "A", "order": 1}}

    def test_camel_key_renamed_onto_known_key(self, schema_repairer):
        assert schema_repairer.repair('{"lessonTitle": "A"}') == {"lesson_title": "A"}

    def test_unknown_keys_left_as_data(self, schema_repairer):
        """Mapping entries are values, not field names."""
        value = schema_repairer.repair('{"scores": {"aliceSmith": 3}}')
        assert value == {"scores": {"aliceSmith": 3}}

    def test_rename_table_still_wins(self):
        repairer = StructuralRepairer(rename_table={"lessonName": "title"}, known_keys=["title"])
        assert repairer.repair('{"lessonName": "A"}') == {"title": "A"}
