"""
Layer 2: Relevance Scorer

Deterministic 0-100 relevance score for opportunities that already passed
the eligibility filter. Seven independent factors are summed; the per-factor
caps add up to exactly 100, so no normalization is applied.

    entity       0-20
    industry     0-25
    geography    0-15
    size         0-10
    purpose      0-15
    preferences  0-10
    quality      0-5

Scores are never cached: they are cheap and must always reflect the current
profile and opportunity.
"""

import math
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence, Tuple

from grant_discovery.common.logger import get_logger
from grant_discovery.common.taxonomy import DEFAULT_LEXICON, Lexicon, substring_match
from grant_discovery.common.types import (
    Applicant,
    LocationKind,
    Opportunity,
    ScoreBreakdown,
    ScoredOpportunity,
    ScoreResult,
    round_half_up,
)

logger = get_logger(__name__, stage="scoring")

DEFAULT_QUALITY = 0.5


@dataclass(frozen=True)
class FactorScore:
    """One factor's points plus the optional reason/warning it contributes."""
    points: int
    reasons: Tuple[str, ...] = ()
    warning: Optional[str] = None


# ===== Factors =====

def score_entity(applicant: Applicant, opportunity: Opportunity, lexicon: Lexicon = DEFAULT_LEXICON) -> FactorScore:
    """0-20"""
    if applicant.entity_type is None:
        return FactorScore(10)

    tags = opportunity.eligibility_tags
    if not tags:
        return FactorScore(16, ("Open to all organization types",))

    synonyms = lexicon.synonyms_for(applicant.entity_type.value)
    if any(s.lower() == tag.lower() for s in synonyms for tag in tags):
        return FactorScore(20, ("Perfect match for your organization type",))
    if any(substring_match(s, tag) for s in synonyms for tag in tags):
        return FactorScore(15, ("Good match for your organization type",))
    return FactorScore(4)


def score_industry(applicant: Applicant, opportunity: Opportunity, lexicon: Lexicon = DEFAULT_LEXICON) -> FactorScore:
    """
    0-25

    Each focus tag can contribute up to two matches: one for a category hit
    (through the tag's canonical categories) and one for a title keyword hit.
    """
    if not applicant.focus_tags:
        return FactorScore(12)

    tags = sorted(applicant.focus_tags)
    title = opportunity.title.lower()

    if not opportunity.categories:
        if any(kw in title for tag in tags for kw in lexicon.keywords_for(tag)):
            return FactorScore(17, ("Title matches your focus areas",))
        return FactorScore(6, ("General purpose grant - verify relevance",))

    match_count = 0
    matched: List[str] = []

    for tag in tags:
        expanded = lexicon.categories_for(tag)
        for category in opportunity.categories:
            if any(substring_match(category, e) for e in expanded):
                match_count += 1
                matched.append(category)
                break

        if any(kw in title for kw in lexicon.keywords_for(tag)):
            match_count += 1
            if tag not in matched:
                matched.append(tag)

    if match_count >= 3:
        return FactorScore(25, (f"Excellent match: {', '.join(matched[:2])}",))
    if match_count == 2:
        return FactorScore(21, (f"Strong match: {', '.join(matched)}",))
    if match_count == 1:
        return FactorScore(15, (f"Matches your focus on {matched[0]}",))
    return FactorScore(2)


def score_geography(applicant: Applicant, opportunity: Opportunity) -> FactorScore:
    """0-15"""
    locations = opportunity.locations
    if not locations:
        return FactorScore(12, ("Available nationwide",))
    if any(loc.kind == LocationKind.NATIONAL for loc in locations):
        return FactorScore(13, ("National grant",))
    if not applicant.region:
        return FactorScore(8)

    region = applicant.region.upper()
    if any(loc.kind == LocationKind.STATE and (loc.value or "").upper() == region for loc in locations):
        return FactorScore(15, (f"Specifically for {applicant.region}",))
    return FactorScore(6)


def score_size(applicant: Applicant, opportunity: Opportunity, lexicon: Lexicon = DEFAULT_LEXICON) -> FactorScore:
    """0-10"""
    preference = applicant.size_preference
    budget = applicant.budget_band
    if not preference and not budget:
        return FactorScore(5)

    # Missing (or zero) bounds are open-ended
    low = opportunity.funding_min or 0
    high = opportunity.funding_max or math.inf

    if preference and preference != "any":
        size_range = lexicon.size_ranges.get(preference)
        if size_range is not None:
            range_min, range_max = size_range
            if low <= range_max and high >= range_min:
                return FactorScore(10)
            return FactorScore(3, warning="Grant size may not match your preference")

    if budget:
        category = lexicon.size_category(low, high)
        if category in lexicon.budget_sizes.get(budget, []):
            return FactorScore(8)
        if category == "large" and budget in lexicon.small_budget_bands:
            return FactorScore(4, warning="This is a large grant - may be competitive")

    return FactorScore(5)


def score_purpose(applicant: Applicant, opportunity: Opportunity, lexicon: Lexicon = DEFAULT_LEXICON) -> FactorScore:
    """0-15"""
    if not opportunity.purpose_tags or not applicant.goals:
        return FactorScore(8)

    wanted = set()
    for goal in applicant.goals:
        wanted.update(p.lower() for p in lexicon.purposes_for(goal))

    matched = [tag for tag in opportunity.purpose_tags if tag.lower() in wanted]

    if len(matched) >= 2:
        return FactorScore(15, (f"Funds {' and '.join(matched[:2])}",))
    if len(matched) == 1:
        return FactorScore(12, (f"Funds {matched[0]}",))
    return FactorScore(4)


def score_preferences(applicant: Applicant, opportunity: Opportunity, today: date) -> FactorScore:
    """0-10: base 5 plus a timeline bonus."""
    points = 5
    timeline = applicant.timeline_preference
    if timeline and opportunity.deadline:
        days_left = (opportunity.deadline - today).days
        if timeline == "immediate" and days_left <= 60:
            points += 3
        elif timeline == "quarter" and days_left <= 180:
            points += 2
        elif timeline == "flexible":
            points += 2
    return FactorScore(min(10, points))


def score_quality(opportunity: Opportunity) -> FactorScore:
    """0-5"""
    quality = opportunity.quality_score if opportunity.quality_score is not None else DEFAULT_QUALITY
    return FactorScore(round_half_up(min(1.0, max(0.0, quality)) * 5))


# ===== Public API =====

def score(
    applicant: Applicant,
    opportunity: Opportunity,
    today: Optional[date] = None,
    lexicon: Lexicon = DEFAULT_LEXICON,
) -> ScoreResult:
    """
    Score one eligible opportunity.

    Args:
        applicant: Applicant snapshot
        opportunity: Opportunity that passed eligibility
        today: Reference date for deadline arithmetic (defaults to date.today())
        lexicon: Shared matching lexicon

    Returns:
        ScoreResult whose total equals the sum of the breakdown
    """
    today = today or date.today()

    entity = score_entity(applicant, opportunity, lexicon)
    industry = score_industry(applicant, opportunity, lexicon)
    geography = score_geography(applicant, opportunity)
    size = score_size(applicant, opportunity, lexicon)
    purpose = score_purpose(applicant, opportunity, lexicon)
    preferences = score_preferences(applicant, opportunity, today)
    quality = score_quality(opportunity)

    breakdown = ScoreBreakdown(
        entity=entity.points,
        industry=industry.points,
        geography=geography.points,
        size=size.points,
        purpose=purpose.points,
        preferences=preferences.points,
        quality=quality.points,
    )

    reasons = entity.reasons + industry.reasons + geography.reasons + purpose.reasons
    warnings = tuple(
        f.warning for f in (entity, industry, geography, size, purpose) if f.warning
    )

    return ScoreResult(
        total=breakdown.total,
        breakdown=breakdown,
        reasons=reasons,
        warnings=warnings,
    )


def score_opportunities(
    applicant: Applicant,
    opportunities: Sequence[Opportunity],
    today: Optional[date] = None,
    lexicon: Lexicon = DEFAULT_LEXICON,
) -> List[ScoredOpportunity]:
    """Score every opportunity; sorted by total descending (stable)."""
    today = today or date.today()
    scored = [
        ScoredOpportunity(opportunity=opp, score=score(applicant, opp, today=today, lexicon=lexicon))
        for opp in opportunities
    ]
    scored.sort(key=lambda s: s.total, reverse=True)

    if scored:
        logger.debug(
            f"Scored {len(scored)} opportunity(ies); top={scored[0].total}, bottom={scored[-1].total}"
        )
    return scored
