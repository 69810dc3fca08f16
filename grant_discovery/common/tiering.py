"""
Match tiers for ranked results.

Tiers are a display banding of the combined score:
- EXCELLENT: 80-100
- GOOD:      60-79
- FAIR:      40-59
- LOW:       below 40
"""

from enum import Enum
from typing import Dict, List, Optional


class MatchTier(str, Enum):
    """Match tier levels."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    LOW = "low"


TIER_LABELS: Dict[MatchTier, str] = {
    MatchTier.EXCELLENT: "Excellent Match",
    MatchTier.GOOD: "Good Match",
    MatchTier.FAIR: "Fair Match",
    MatchTier.LOW: "Low Match",
}


def get_tier_from_score(score: Optional[int]) -> MatchTier:
    """
    Determine match tier from a 0-100 score.

    Args:
        score: Combined score, or None if not yet scored

    Returns:
        MatchTier for the score thresholds
    """
    if score is None:
        return MatchTier.LOW

    if score >= 80:
        return MatchTier.EXCELLENT
    elif score >= 60:
        return MatchTier.GOOD
    elif score >= 40:
        return MatchTier.FAIR
    else:
        return MatchTier.LOW


def get_tier_label(tier: MatchTier) -> str:
    return TIER_LABELS[tier]


def get_tier_display_info() -> List[dict]:
    """Tier metadata for UI legends, highest tier first."""
    bounds = {
        MatchTier.EXCELLENT: "80-100",
        MatchTier.GOOD: "60-79",
        MatchTier.FAIR: "40-59",
        MatchTier.LOW: "0-39",
    }
    return [
        {"value": tier.value, "label": TIER_LABELS[tier], "score_range": bounds[tier]}
        for tier in MatchTier
    ]
