"""
Tests for parsing JSON out of model responses.
"""

import pytest

from studyhub.exceptions import AIResponseParseError
from studyhub.json_repair import extract_json_segment, repair_json_text, safe_parse_json


class TestSafeParseJson:

    def test_plain_json(self):
        assert safe_parse_json('{"questions": []}') == {"questions": []}

    def test_code_fence_is_stripped(self):
        text = '```json\n[{"name": "Cell Biology"}]\n```'
        assert safe_parse_json(text) == [{"name": "Cell Biology"}]

    def test_prose_around_json_is_ignored(self):
        text = 'Here is your quiz:\n{"title": "Quiz", "questions": [1, 2]}\nGood luck!'
        assert safe_parse_json(text) == {"title": "Quiz", "questions": [1, 2]}

    def test_single_quotes_and_trailing_commas(self):
        text = "{'title': 'Genetics', 'tags': ['dna', 'rna',],}"
        assert safe_parse_json(text) == {"title": "Genetics", "tags": ["dna", "rna"]}

    def test_bare_keys_and_values(self):
        assert safe_parse_json("{status: unrelated_content, valid: true}") == {
            "status": "unrelated_content",
            "valid": True,
        }

    def test_unrepairable_json_carries_samples(self):
        with pytest.raises(AIResponseParseError) as exc_info:
            safe_parse_json('{"questions": [{"question": "What"  "options": }]}')

        error = exc_info.value
        assert error.original_sample.startswith('{"questions"')
        assert error.repaired_sample is not None
        assert "after repair attempt" in error.message

    def test_no_json_at_all(self):
        with pytest.raises(AIResponseParseError, match="No JSON"):
            safe_parse_json("I cannot help with that request.")

    @pytest.mark.parametrize("text", [None, "", "   "])
    def test_empty_response(self, text):
        with pytest.raises(AIResponseParseError, match="Empty"):
            safe_parse_json(text)


class TestHelpers:

    def test_segment_spans_first_open_to_last_close(self):
        assert extract_json_segment('x [1, {"a": 2}] y') == '[1, {"a": 2}]'

    def test_closing_before_opening_is_rejected(self):
        with pytest.raises(AIResponseParseError):
            extract_json_segment("} oops {")

    def test_repair_leaves_json_literals_alone(self):
        assert repair_json_text('{"a": null, "b": false}') == '{"a": null, "b": false}'
