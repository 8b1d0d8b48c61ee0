"""
Unit tests for truncated JSON repair.
"""

import json

import pytest

from feedpress.errors import TruncatedUnrepairable
from feedpress.services.json_repair import parse_generation_json, repair_json

DOCUMENT = {
    "title": 'Breaking: "Quoted" news',
    "content": "Line one.\nLine two é",
    "slug": "breaking-news",
    "tags": ["a", "b"],
}


class TestRepairJson:
    """Tests for repair_json passes."""

    def test_valid_document_is_untouched(self):
        text = json.dumps(DOCUMENT)
        result = repair_json(text)

        assert result.ok
        assert result.repaired is False
        assert result.data == DOCUMENT
        assert result.text == text

    def test_dangling_field_is_dropped(self):
        result = repair_json('{"title":"A","content":"Hello wor')

        assert result.ok
        assert result.data == {"title": "A"}
        assert "strip_dangling_field" in result.actions

    def test_open_string_in_array_is_closed(self):
        result = repair_json('{"title":"A","content":"B","tags":["x","y')

        assert result.ok
        assert result.data == {"title": "A", "content": "B", "tags": ["x", "y"]}

    def test_closers_follow_nesting_order(self):
        result = repair_json('{"title":"A","meta":{"tags":["x"')

        assert result.ok
        assert result.data == {"title": "A", "meta": {"tags": ["x"]}}
        assert result.text.endswith("]}}")

    def test_trailing_comma_is_removed(self):
        result = repair_json('{"title":"A","content":"B",')

        assert result.ok
        assert result.data == {"title": "A", "content": "B"}
        assert "strip_trailing_comma" in result.actions

    @pytest.mark.parametrize("text", [
        '{"title":"A","content"',
        '{"title":"A","content":',
        '{"title":"A","content": ',
    ])
    def test_dangling_key_is_cut_back(self, text):
        result = repair_json(text)

        assert result.ok
        assert result.data == {"title": "A"}

    def test_partial_unicode_escape_is_dropped(self):
        result = repair_json('{"title":"Caf\\u00')

        assert result.ok
        assert result.data == {"title": "Caf"}
        assert "drop_partial_escape" in result.actions

    def test_lone_backslash_is_dropped(self):
        result = repair_json('{"title":"Say \\')

        assert result.ok
        assert result.data == {"title": "Say "}

    def test_code_fence_is_stripped(self):
        text = '```json\n{"title":"A","content":"B"}\n```'
        result = repair_json(text)

        assert result.ok
        assert result.data == {"title": "A", "content": "B"}
        assert "strip_code_fence" in result.actions

    def test_truncated_code_fence(self):
        result = repair_json('```json\n{"title":"A","tags":["x"')

        assert result.ok
        assert result.data == {"title": "A", "tags": ["x"]}

    def test_surrounding_chatter_is_stripped(self):
        result = repair_json('Here you go: {"title":"A","content":"B"} Thanks!')

        assert result.ok
        assert result.data == {"title": "A", "content": "B"}
        assert "strip_leading_text" in result.actions
        assert "strip_trailing_text" in result.actions

    @pytest.mark.parametrize("text", ["", "   ", None, "not json at all", '["a", "b"]'])
    def test_unrepairable_returns_original(self, text):
        result = repair_json(text)

        assert result.ok is False
        assert result.text == (text or "")
        assert result.error

    def test_every_prefix_repairs_to_subset_of_keys(self):
        """Truncating the document anywhere yields an object with only original keys."""
        text = json.dumps(DOCUMENT)

        for length in range(1, len(text) + 1):
            result = repair_json(text[:length])
            assert result.ok, f"prefix of length {length} failed: {text[:length]!r}"
            assert isinstance(result.data, dict)
            assert set(result.data) <= set(DOCUMENT), text[:length]
            assert json.loads(result.text) == result.data

    def test_complete_fields_survive_truncation(self):
        text = json.dumps(DOCUMENT)
        cut = text.index('"tags"') + len('"tags": ["a"')

        result = repair_json(text[:cut])

        assert result.data["title"] == DOCUMENT["title"]
        assert result.data["content"] == DOCUMENT["content"]
        assert result.data["slug"] == DOCUMENT["slug"]
        assert result.data["tags"] == ["a"]


class TestParseGenerationJson:
    """Tests for the raising wrapper."""

    def test_returns_repaired_object(self):
        assert parse_generation_json('{"title":"A","content":"B","tags":["x"') == {
            "title": "A",
            "content": "B",
            "tags": ["x"],
        }

    def test_raises_with_raw_text(self):
        with pytest.raises(TruncatedUnrepairable) as exc_info:
            parse_generation_json("Sorry, I cannot help with that.")

        assert exc_info.value.raw_text == "Sorry, I cannot help with that."
