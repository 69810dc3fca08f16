"""
Unit tests for grant_discovery/common/json_utils.py
"""

import pytest

from grant_discovery.common.json_utils import parse_llm_json, parse_llm_json_list


class TestParseLlmJson:
    """Tests for parse_llm_json."""

    def test_plain_array(self):
        assert parse_llm_json('[{"opportunityId": "g1"}]') == [{"opportunityId": "g1"}]

    def test_markdown_fence(self):
        text = 'Here you go:\n```json\n[{"opportunityId": "g1", "matchScore": 70}]\n```\nThanks!'
        assert parse_llm_json(text) == [{"opportunityId": "g1", "matchScore": 70}]

    def test_fence_without_language(self):
        assert parse_llm_json('```\n{"a": 1}\n```') == {"a": 1}

    def test_prose_around_array(self):
        text = 'Sure! The analysis is [{"opportunityId": "g1"}] as requested.'
        assert parse_llm_json(text) == [{"opportunityId": "g1"}]

    def test_trailing_comma_repaired(self):
        assert parse_llm_json('[{"opportunityId": "g1",},]') == [{"opportunityId": "g1"}]

    def test_single_quotes_repaired(self):
        assert parse_llm_json("{'opportunityId': 'g1'}") == {"opportunityId": "g1"}

    @pytest.mark.parametrize("text", ["", "   ", "no json here at all"])
    def test_unparsable_raises(self, text):
        with pytest.raises(ValueError):
            parse_llm_json(text)


class TestParseLlmJsonList:
    """Tests for parse_llm_json_list."""

    def test_unwraps_known_key(self):
        text = '{"results": [{"opportunityId": "g1"}, {"opportunityId": "g2"}]}'
        assert [r["opportunityId"] for r in parse_llm_json_list(text)] == ["g1", "g2"]

    def test_single_object_becomes_list(self):
        assert parse_llm_json_list('{"opportunityId": "g1"}') == [{"opportunityId": "g1"}]

    def test_drops_non_objects(self):
        assert parse_llm_json_list('[{"opportunityId": "g1"}, "junk", 3, null]') == [{"opportunityId": "g1"}]

    def test_empty_array(self):
        assert parse_llm_json_list("[]") == []
