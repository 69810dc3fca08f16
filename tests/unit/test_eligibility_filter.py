"""
Unit tests for grant_discovery/layer1/eligibility_filter.py

Tests the ordered pass/fail checks:
- URL presence (optional)
- Organization type (bidirectional substring match)
- Geography (national passes, state must match)
- Industry (alias overlap against categories; uncategorized passes)
"""

import pytest

from grant_discovery.common.types import Applicant, EntityType, LocationConstraint, LocationKind
from grant_discovery.layer1 import CHECK_ORDER, evaluate, filter_eligible


class TestUrlCheck:
    """Tests for the application URL check."""

    def test_missing_url_fails(self, applicant, make_opp):
        verdict = evaluate(applicant, make_opp(url=None))

        assert not verdict.passes
        assert verdict.failed_check == "url"
        assert verdict.reason == "Grant has no application URL available"

    def test_blank_url_fails(self, applicant, make_opp):
        assert not evaluate(applicant, make_opp(url="   ")).passes

    def test_url_check_can_be_disabled(self, applicant, make_opp):
        assert evaluate(applicant, make_opp(url=None), require_url=False).passes


class TestEntityCheck:
    """Tests for the organization type check."""

    def test_exact_tag_passes(self, applicant, make_opp):
        assert evaluate(applicant, make_opp(eligibility_tags=("Small Business",))).passes

    def test_substring_tag_passes(self, applicant, make_opp):
        """Should accept a tag that contains a synonym."""
        opp = make_opp(eligibility_tags=("Small Business Concerns (SBC)",))
        assert evaluate(applicant, opp).passes

    def test_no_tags_passes(self, applicant, make_opp):
        assert evaluate(applicant, make_opp(eligibility_tags=())).passes

    def test_unspecified_entity_passes(self, make_opp):
        anon = Applicant(applicant_id="anon", region="NY", focus_tags=frozenset({"agriculture"}))
        assert evaluate(anon, make_opp(eligibility_tags=("Tribal Organization",))).passes

    def test_mismatch_fails_with_reason(self, applicant, make_opp):
        verdict = evaluate(applicant, make_opp(eligibility_tags=("Nonprofit", "Government Entity")))

        assert verdict.failed_check == "entity"
        assert verdict.reason == (
            "This grant is for Nonprofit, Government Entity, "
            "but your organization type is small_business"
        )


class TestGeographyCheck:
    """Tests for the geography check."""

    def test_other_state_fails_citing_state(self, applicant, make_opp):
        # Arrange
        opp = make_opp(locations=(LocationConstraint(LocationKind.STATE, "CA"),))

        # Act
        verdict = evaluate(applicant, opp)

        # Assert
        assert verdict.failed_check == "geography"
        assert "CA" in verdict.reason
        assert "NY" in verdict.reason

    def test_matching_state_passes(self, applicant, make_opp):
        opp = make_opp(locations=(
            LocationConstraint(LocationKind.STATE, "CA"),
            LocationConstraint(LocationKind.STATE, "ny"),
        ))
        assert evaluate(applicant, opp).passes

    def test_national_entry_overrides_states(self, applicant, make_opp):
        opp = make_opp(locations=(
            LocationConstraint(LocationKind.STATE, "CA"),
            LocationConstraint(LocationKind.NATIONAL),
        ))
        assert evaluate(applicant, opp).passes

    def test_no_locations_passes(self, applicant, make_opp):
        assert evaluate(applicant, make_opp(locations=())).passes

    def test_local_only_constraint_passes(self, applicant, make_opp):
        """Should not reject on local constraints alone."""
        opp = make_opp(locations=(LocationConstraint(LocationKind.LOCAL, "Travis County"),))
        assert evaluate(applicant, opp).passes

    def test_applicant_without_region_passes(self, make_opp):
        anon = Applicant(applicant_id="anon", focus_tags=frozenset({"agriculture"}))
        opp = make_opp(locations=(LocationConstraint(LocationKind.STATE, "CA"),))
        assert evaluate(anon, opp).passes


class TestIndustryCheck:
    """Tests for the focus-area overlap check."""

    def test_alias_overlap_passes(self, applicant, make_opp):
        """Should match a looser alias ('rural') against the categories."""
        assert evaluate(applicant, make_opp(categories=("Rural Development",))).passes

    def test_uncategorized_passes(self, applicant, make_opp):
        opp = make_opp(title="Ocean Acoustics Fellowship", categories=())
        assert evaluate(applicant, opp).passes

    def test_no_overlap_fails(self, make_opp):
        applicant = Applicant(
            applicant_id="u2",
            entity_type=EntityType.SMALL_BUSINESS,
            region="NY",
            focus_tags=frozenset({"housing", "youth"}),
        )
        opp = make_opp(categories=("Space Exploration", "Astronomy", "Physics"))

        verdict = evaluate(applicant, opp)

        assert verdict.failed_check == "industry"
        assert verdict.reason == (
            "This grant covers Space Exploration, Astronomy, "
            "which doesn't overlap your focus on housing, youth"
        )

    def test_no_focus_tags_passes(self, make_opp):
        anon = Applicant(applicant_id="anon")
        assert evaluate(anon, make_opp(categories=("Space Exploration",))).passes


class TestCheckOrder:
    """Tests that the first failing check decides the verdict."""

    def test_order_constant(self):
        assert CHECK_ORDER == ("url", "entity", "geography", "industry")

    @pytest.mark.parametrize("overrides,expected", [
        (dict(url=None, eligibility_tags=("Nonprofit",)), "url"),
        (dict(eligibility_tags=("Nonprofit",), locations=(LocationConstraint(LocationKind.STATE, "CA"),)), "entity"),
        (dict(locations=(LocationConstraint(LocationKind.STATE, "CA"),), categories=("Astronomy",)), "geography"),
    ])
    def test_first_failure_wins(self, applicant, make_opp, overrides, expected):
        verdict = evaluate(applicant, make_opp(**overrides))
        assert verdict.failed_check == expected


class TestFilterEligible:
    """Tests for filter_eligible partitioning."""

    def test_partitions_sample_set(self, applicant, opportunities):
        result = filter_eligible(applicant, opportunities)

        assert [o.opportunity_id for o in result.eligible] == ["g1", "g2"]
        assert [o.opportunity_id for o, _ in result.ineligible] == ["g3", "g4"]
        assert result.by_check == {"entity": 1, "geography": 1}

    def test_each_rejection_carries_one_reason(self, applicant, opportunities):
        result = filter_eligible(applicant, opportunities)
        for _, verdict in result.ineligible:
            assert not verdict.passes
            assert verdict.reason

    def test_empty_input(self, applicant):
        result = filter_eligible(applicant, [])
        assert result.eligible == []
        assert result.by_check == {}
