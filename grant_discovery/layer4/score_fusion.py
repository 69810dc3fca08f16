"""
Layer 4: Score Fusion & Ranker

Blends the deterministic relevance score with the enrichment score and
orders the final result set.

Fusion:
    combined = round_half_up(deterministic * 0.6 + effective * 0.4)

where `effective` is the enrichment match score, unless the enrichment is
low-confidence (including every fallback record), in which case the
deterministic score stands in for it and the result degenerates to the
deterministic score.

Usage:
    rows = [build_ranked_result(scored, record, from_cache) for ...]
    results = rank(rows, sort_by="deadline_soon", limit=20)
"""

import math
from typing import List, Optional, Sequence, Union

from grant_discovery.common.tiering import get_tier_from_score, get_tier_label
from grant_discovery.common.types import (
    Confidence,
    RankedResult,
    ScoredOpportunity,
    SortOrder,
    round_half_up,
)
from grant_discovery.common.utils import format_deadline_display, format_funding_display
from grant_discovery.layer3.schemas import EnrichmentRecord

DETERMINISTIC_WEIGHT = 0.6
ENRICHMENT_WEIGHT = 0.4

MAX_MERGED_REASONS = 5
MAX_MERGED_WARNINGS = 3

DEFAULT_LIMIT = 20


def fuse_score(deterministic: int, record: EnrichmentRecord) -> int:
    """Weighted blend; low confidence contributes nothing beyond the deterministic signal."""
    effective = deterministic if record.confidence == Confidence.LOW else record.match_score
    return round_half_up(deterministic * DETERMINISTIC_WEIGHT + effective * ENRICHMENT_WEIGHT)


def build_ranked_result(
    scored: ScoredOpportunity,
    record: EnrichmentRecord,
    from_cache: bool,
) -> RankedResult:
    """Assemble one display row from a scored opportunity and its enrichment."""
    opp = scored.opportunity
    combined = fuse_score(scored.total, record)
    tier = get_tier_from_score(combined)

    reasons = (tuple(scored.score.reasons) + tuple(record.reasons))[:MAX_MERGED_REASONS]
    warnings = (tuple(scored.score.warnings) + tuple(record.concerns))[:MAX_MERGED_WARNINGS]

    return RankedResult(
        opportunity_id=opp.opportunity_id,
        title=opp.title,
        sponsor=opp.sponsor,
        summary=opp.summary or opp.description,
        url=opp.url,
        categories=opp.categories,
        eligibility_tags=opp.eligibility_tags,
        funding_min=opp.funding_min,
        funding_max=opp.funding_max,
        funding_display=format_funding_display(opp.funding_min, opp.funding_max, opp.funding_text),
        deadline=opp.deadline,
        deadline_display=format_deadline_display(opp.deadline, opp.deadline_type),
        deterministic_score=scored.total,
        enrichment_score=record.match_score,
        combined_score=combined,
        tier=tier.value,
        tier_label=get_tier_label(tier),
        from_cache=from_cache,
        confidence=record.confidence.value,
        urgency=record.urgency.value,
        fit_summary=record.fit_summary,
        is_fallback=record.is_fallback,
        reasons=reasons,
        warnings=warnings,
        next_steps=tuple(record.next_steps),
        fundable_uses=tuple(record.fundable_uses),
        score_breakdown=scored.score.breakdown.to_dict(),
    )


def _sort_key(sort_by: SortOrder):
    if sort_by == SortOrder.DEADLINE_SOON:
        return lambda r: r.deadline.toordinal() if r.deadline else math.inf
    if sort_by == SortOrder.HIGHEST_FUNDING:
        return lambda r: -(r.funding_max or 0)
    return lambda r: -r.combined_score


def rank(
    rows: Sequence[RankedResult],
    sort_by: Union[SortOrder, str] = SortOrder.BEST_MATCH,
    limit: Optional[int] = DEFAULT_LIMIT,
) -> List[RankedResult]:
    """
    Order rows and truncate to `limit` after sorting.

    Sorting is stable, so ties keep their input order.

    Raises:
        ValueError: Unknown sort order or negative limit
    """
    sort_by = SortOrder(sort_by)
    if limit is not None and limit < 0:
        raise ValueError(f"limit must be non-negative, got {limit}")

    ordered = sorted(rows, key=_sort_key(sort_by))
    return ordered if limit is None else ordered[:limit]
