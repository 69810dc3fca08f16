"""
Unit tests for grant_discovery/layer3/schemas.py

Tests the EnrichmentRecord validation boundary: repairs (aliases, clamping,
truncation, list caps, urgency) and rejections (missing id, missing score,
unknown confidence, empty summary).
"""

import pytest
from pydantic import ValidationError

from grant_discovery.common.types import Confidence, Urgency
from grant_discovery.layer3.schemas import (
    FALLBACK_SCORE,
    MAX_CONCERNS,
    MAX_ITEM_CHARS,
    MAX_SUMMARY_CHARS,
    EnrichmentRecord,
    make_fallback_record,
)


class TestEnrichmentRecordRepairs:
    """Tests for values the schema repairs."""

    def test_camel_case_payload(self, payload):
        record = EnrichmentRecord.model_validate(payload("g1", score=77, confidence="Medium"))

        assert record.opportunity_id == "g1"
        assert record.match_score == 77
        assert record.confidence == Confidence.MEDIUM
        assert record.fundable_uses == ["Irrigation upgrades"]
        assert record.next_steps == ["Register on the sponsor portal"]
        assert record.is_fallback is False

    @pytest.mark.parametrize("raw,expected", [
        (150, 100),
        (-20, 0),
        ("85", 85),
        ("72%", 72),
        (64.5, 65),
    ])
    def test_score_coerced_and_clamped(self, payload, raw, expected):
        data = payload("g1")
        data["matchScore"] = raw
        assert EnrichmentRecord.model_validate(data).match_score == expected

    def test_numeric_id_coerced(self, payload):
        data = payload("g1")
        data["opportunityId"] = 42
        assert EnrichmentRecord.model_validate(data).opportunity_id == "42"

    def test_long_summary_truncated(self, payload):
        data = payload("g1")
        data["fitSummary"] = "word " * 200

        record = EnrichmentRecord.model_validate(data)

        assert len(record.fit_summary) <= MAX_SUMMARY_CHARS
        assert record.fit_summary.endswith("...")

    def test_lists_capped_and_items_truncated(self, payload):
        data = payload("g1")
        data["concerns"] = [f"concern {i}" for i in range(10)]
        data["reasons"] = ["x" * 400, "", None, "short"]

        record = EnrichmentRecord.model_validate(data)

        assert len(record.concerns) == MAX_CONCERNS
        assert len(record.reasons) == 2
        assert len(record.reasons[0]) <= MAX_ITEM_CHARS

    def test_string_list_field_wrapped(self, payload):
        data = payload("g1")
        data["nextSteps"] = "Call the program officer"
        assert EnrichmentRecord.model_validate(data).next_steps == ["Call the program officer"]

    @pytest.mark.parametrize("raw", ["urgent", None, 3])
    def test_unknown_urgency_defaults_to_medium(self, payload, raw):
        data = payload("g1")
        data["urgency"] = raw
        assert EnrichmentRecord.model_validate(data).urgency == Urgency.MEDIUM

    def test_extra_keys_ignored(self, payload):
        data = payload("g1")
        data["modelNotes"] = "internal"
        assert EnrichmentRecord.model_validate(data).opportunity_id == "g1"


class TestEnrichmentRecordRejections:
    """Tests for records the schema rejects."""

    @pytest.mark.parametrize("key", ["opportunityId", "matchScore", "confidence", "fitSummary"])
    def test_missing_required_field(self, payload, key):
        data = payload("g1")
        del data[key]
        with pytest.raises(ValidationError):
            EnrichmentRecord.model_validate(data)

    @pytest.mark.parametrize("key,value", [
        ("matchScore", "high"),
        ("matchScore", True),
        ("matchScore", float("nan")),
        ("confidence", "certain"),
        ("fitSummary", ""),
        ("opportunityId", ""),
    ])
    def test_invalid_values(self, payload, key, value):
        data = payload("g1")
        data[key] = value
        with pytest.raises(ValidationError):
            EnrichmentRecord.model_validate(data)


class TestFallbackRecord:
    """Tests for make_fallback_record."""

    def test_neutral_low_confidence(self):
        record = make_fallback_record("g9")

        assert record.opportunity_id == "g9"
        assert record.match_score == FALLBACK_SCORE == 50
        assert record.confidence == Confidence.LOW
        assert record.is_fallback is True
        assert record.reasons == ["AI analysis unavailable"]

    def test_round_trips_through_cache_payload(self):
        """The stored payload (field names) must validate back to the same record."""
        record = make_fallback_record("g9")
        assert EnrichmentRecord.model_validate(record.model_dump(mode="json")) == record
