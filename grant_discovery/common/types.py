"""
Canonical types shared by every discovery pipeline stage.

The normalizer is the only place that sees loosely-shaped upstream records;
everything after it works with these frozen dataclasses.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple


class EntityType(str, Enum):
    """Applicant organization type."""
    INDIVIDUAL = "individual"
    NONPROFIT = "nonprofit"
    SMALL_BUSINESS = "small_business"
    FOR_PROFIT = "for_profit"
    EDUCATIONAL = "educational"
    GOVERNMENT = "government"
    TRIBAL = "tribal"


class LocationKind(str, Enum):
    """Kind of geographic restriction on an opportunity."""
    NATIONAL = "national"
    STATE = "state"
    LOCAL = "local"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Urgency(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SortOrder(str, Enum):
    """Selectable final ordering of ranked results."""
    BEST_MATCH = "best_match"
    DEADLINE_SOON = "deadline_soon"
    HIGHEST_FUNDING = "highest_funding"


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 away from zero (round() uses banker's rounding)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ===== Inputs =====

@dataclass(frozen=True)
class Applicant:
    """
    Immutable profile snapshot for one pipeline run.

    `profile_version` is bumped by the profile editor on any change that can
    affect eligibility or scoring; cached enrichments are keyed on it.
    """
    applicant_id: str
    entity_type: Optional[EntityType] = None
    region: Optional[str] = None
    focus_tags: FrozenSet[str] = frozenset()
    size_band: Optional[str] = None
    budget_band: Optional[str] = None
    size_preference: Optional[str] = None
    timeline_preference: Optional[str] = None
    goals: Tuple[str, ...] = ()
    profile_version: int = 0


@dataclass(frozen=True)
class LocationConstraint:
    kind: LocationKind
    value: Optional[str] = None


@dataclass(frozen=True)
class Opportunity:
    """A normalized funding program record. Read-only input to the pipeline."""
    opportunity_id: str
    title: str
    updated_at: datetime
    sponsor: str = ""
    summary: str = ""
    description: str = ""
    categories: Tuple[str, ...] = ()
    eligibility_tags: Tuple[str, ...] = ()
    locations: Tuple[LocationConstraint, ...] = ()
    funding_min: Optional[float] = None
    funding_max: Optional[float] = None
    deadline: Optional[date] = None
    purpose_tags: Tuple[str, ...] = ()
    quality_score: Optional[float] = None
    url: Optional[str] = None
    # Display-only fields
    source_name: Optional[str] = None
    funding_text: Optional[str] = None
    deadline_type: Optional[str] = None


# ===== Stage outputs =====

@dataclass(frozen=True)
class EligibilityVerdict:
    """Outcome of the ordered eligibility checks; the first failing check wins."""
    passes: bool
    reason: Optional[str] = None
    failed_check: Optional[str] = None


@dataclass(frozen=True)
class ScoreBreakdown:
    entity: int
    industry: int
    geography: int
    size: int
    purpose: int
    preferences: int
    quality: int

    @property
    def total(self) -> int:
        return (
            self.entity
            + self.industry
            + self.geography
            + self.size
            + self.purpose
            + self.preferences
            + self.quality
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "entity": self.entity,
            "industry": self.industry,
            "geography": self.geography,
            "size": self.size,
            "purpose": self.purpose,
            "preferences": self.preferences,
            "quality": self.quality,
        }


@dataclass(frozen=True)
class ScoreResult:
    total: int
    breakdown: ScoreBreakdown
    reasons: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ScoredOpportunity:
    opportunity: Opportunity
    score: ScoreResult

    @property
    def opportunity_id(self) -> str:
        return self.opportunity.opportunity_id

    @property
    def total(self) -> int:
        return self.score.total


@dataclass(frozen=True)
class RankedResult:
    """Final output row. Built once per run for display; never persisted."""
    opportunity_id: str
    title: str
    sponsor: str
    summary: str
    url: Optional[str]
    categories: Tuple[str, ...]
    eligibility_tags: Tuple[str, ...]
    funding_min: Optional[float]
    funding_max: Optional[float]
    funding_display: str
    deadline: Optional[date]
    deadline_display: str
    deterministic_score: int
    enrichment_score: int
    combined_score: int
    tier: str
    tier_label: str
    from_cache: bool
    confidence: str
    urgency: str
    fit_summary: str
    is_fallback: bool = False
    reasons: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    next_steps: Tuple[str, ...] = ()
    fundable_uses: Tuple[str, ...] = ()
    score_breakdown: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "opportunity_id": self.opportunity_id,
            "title": self.title,
            "sponsor": self.sponsor,
            "summary": self.summary,
            "url": self.url,
            "categories": list(self.categories),
            "eligibility_tags": list(self.eligibility_tags),
            "funding_min": self.funding_min,
            "funding_max": self.funding_max,
            "funding_display": self.funding_display,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "deadline_display": self.deadline_display,
            "deterministic_score": self.deterministic_score,
            "enrichment_score": self.enrichment_score,
            "combined_score": self.combined_score,
            "tier": self.tier,
            "tier_label": self.tier_label,
            "from_cache": self.from_cache,
            "confidence": self.confidence,
            "urgency": self.urgency,
            "fit_summary": self.fit_summary,
            "is_fallback": self.is_fallback,
            "reasons": list(self.reasons),
            "warnings": list(self.warnings),
            "next_steps": list(self.next_steps),
            "fundable_uses": list(self.fundable_uses),
            "score_breakdown": dict(self.score_breakdown),
        }
