"""
Layer 3 schema: the enrichment record returned by the generation collaborator.

The model is the validation boundary for generated output. Validators repair
what can be repaired (camelCase keys, over-long strings, over-long lists,
out-of-range scores, unknown urgency) and reject what cannot (missing id,
missing or non-numeric score, unknown confidence, empty fit summary).
"""

import math
from typing import Any, List

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from grant_discovery.common.types import Confidence, Urgency, round_half_up

MAX_SUMMARY_CHARS = 300
MAX_ITEM_CHARS = 150
MAX_REASONS = 5
MAX_CONCERNS = 3
MAX_NEXT_STEPS = 5
MAX_FUNDABLE_USES = 5

FALLBACK_SCORE = 50
FALLBACK_SUMMARY = "Unable to generate AI analysis. Please review the grant details manually."
FALLBACK_REASONS = ["AI analysis unavailable"]
FALLBACK_NEXT_STEPS = ["Review the original grant listing for complete details"]


def _truncate(text: str, limit: int) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def _clean_list(value: Any, max_items: int) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"Expected a list of strings, got {type(value).__name__}")
    items = [
        _truncate(str(item), MAX_ITEM_CHARS)
        for item in value
        if item is not None and str(item).strip()
    ]
    return items[:max_items]


class EnrichmentRecord(BaseModel):
    """Generated explanation and 0-100 match score for one opportunity."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    opportunity_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("opportunity_id", "opportunityId", "grantId", "grant_id", "id"),
    )
    match_score: int = Field(
        ...,
        validation_alias=AliasChoices("match_score", "matchScore", "score"),
    )
    confidence: Confidence = Field(..., description="Generator's confidence in the analysis")
    fit_summary: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("fit_summary", "fitSummary", "summary"),
    )
    reasons: List[str] = Field(default_factory=list)
    concerns: List[str] = Field(default_factory=list)
    next_steps: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("next_steps", "nextSteps"),
    )
    fundable_uses: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("fundable_uses", "fundableUses", "whatYouCanFund"),
    )
    urgency: Urgency = Urgency.MEDIUM
    is_fallback: bool = Field(default=False, validation_alias=AliasChoices("is_fallback", "isFallback"))

    @field_validator("opportunity_id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("match_score", mode="before")
    @classmethod
    def clamp_score(cls, v: Any) -> int:
        """Accept numeric strings and floats; clamp into 0-100."""
        if isinstance(v, bool) or v is None:
            raise ValueError("match_score must be a number")
        try:
            if isinstance(v, str):
                v = v.strip().rstrip("%")
            v = float(v)
        except (TypeError, ValueError, OverflowError) as e:
            raise ValueError(f"match_score must be a number, got {type(v).__name__}") from e
        if not math.isfinite(v):
            raise ValueError("match_score must be finite")
        return round_half_up(max(0.0, min(100.0, v)))

    @field_validator("confidence", mode="before")
    @classmethod
    def normalize_confidence(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("urgency", mode="before")
    @classmethod
    def normalize_urgency(cls, v: Any) -> str:
        if isinstance(v, str) and v.strip().lower() in {u.value for u in Urgency}:
            return v.strip().lower()
        return Urgency.MEDIUM.value

    @field_validator("fit_summary", mode="before")
    @classmethod
    def truncate_summary(cls, v: Any) -> Any:
        return _truncate(v, MAX_SUMMARY_CHARS) if isinstance(v, str) else v

    @field_validator("reasons", mode="before")
    @classmethod
    def trim_reasons(cls, v: Any) -> List[str]:
        return _clean_list(v, MAX_REASONS)

    @field_validator("concerns", mode="before")
    @classmethod
    def trim_concerns(cls, v: Any) -> List[str]:
        return _clean_list(v, MAX_CONCERNS)

    @field_validator("next_steps", mode="before")
    @classmethod
    def trim_next_steps(cls, v: Any) -> List[str]:
        return _clean_list(v, MAX_NEXT_STEPS)

    @field_validator("fundable_uses", mode="before")
    @classmethod
    def trim_fundable_uses(cls, v: Any) -> List[str]:
        return _clean_list(v, MAX_FUNDABLE_USES)


def make_fallback_record(opportunity_id: str) -> EnrichmentRecord:
    """Neutral, low-confidence record used whenever generation is unavailable."""
    return EnrichmentRecord(
        opportunity_id=opportunity_id,
        match_score=FALLBACK_SCORE,
        confidence=Confidence.LOW,
        fit_summary=FALLBACK_SUMMARY,
        reasons=list(FALLBACK_REASONS),
        concerns=[],
        next_steps=list(FALLBACK_NEXT_STEPS),
        fundable_uses=[],
        urgency=Urgency.MEDIUM,
        is_fallback=True,
    )
