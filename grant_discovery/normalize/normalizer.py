"""
Profile/Grant Normalizer

Maps loosely-shaped upstream records (camelCase or snake_case keys,
JSON-encoded sub-fields, legacy location shapes) into the canonical
Applicant and Opportunity types.

Bad individual fields are defaulted and logged. A record that cannot be
identified (no id, no parseable last-modified timestamp) is rejected on its
own without aborting the batch.
"""

import json
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from grant_discovery.common.error_handling import NormalizationError
from grant_discovery.common.logger import get_logger
from grant_discovery.common.types import (
    Applicant,
    EntityType,
    LocationConstraint,
    LocationKind,
    Opportunity,
)

logger = get_logger(__name__, stage="normalize")

_NATIONAL_VALUES = {"national", "nationwide", "us", "usa", "united states"}


@dataclass(frozen=True)
class RejectedRecord:
    index: int
    record_id: Optional[str]
    reason: str


@dataclass
class NormalizationReport:
    opportunities: List[Opportunity] = field(default_factory=list)
    rejected: List[RejectedRecord] = field(default_factory=list)


# ===== Field helpers =====

def _get(raw: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """First present, non-None value among candidate keys."""
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def _decode_json(value: Any, field_name: str) -> Any:
    """Decode JSON-encoded string sub-fields; other values pass through."""
    if isinstance(value, str):
        stripped = value.strip()
        if stripped[:1] in ("[", "{"):
            try:
                return json.loads(stripped)
            except json.JSONDecodeError:
                logger.warning(f"Field '{field_name}' is not valid JSON; ignoring it")
                return None
    return value


def _string_list(value: Any, field_name: str) -> Tuple[str, ...]:
    value = _decode_json(value, field_name)
    if value is None:
        return ()
    if isinstance(value, str):
        value = [part for part in value.split(",")]
    if not isinstance(value, (list, tuple, set, frozenset)):
        logger.warning(f"Field '{field_name}' has unexpected type {type(value).__name__}; ignoring it")
        return ()
    out = []
    for item in value:
        if item is None:
            continue
        text = str(item).strip()
        if text and text not in out:
            out.append(text)
    return tuple(out)


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def _optional_text(value: Any) -> Optional[str]:
    text = _text(value)
    return text or None


def _number(value: Any, field_name: str) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        logger.warning(f"Field '{field_name}' is boolean; ignoring it")
        return None
    if isinstance(value, str):
        value = value.replace("$", "").replace(",", "").strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Field '{field_name}' is not numeric ({value!r}); ignoring it")
        return None
    if not math.isfinite(number) or number < 0:
        logger.warning(f"Field '{field_name}' out of range ({number}); ignoring it")
        return None
    return number


def _parse_datetime(value: Any) -> Optional[datetime]:
    """ISO strings, epoch seconds or datetimes; naive values are taken as UTC."""
    parsed: Optional[datetime] = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_date(value: Any, field_name: str) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = _parse_datetime(value)
    if parsed is None:
        logger.warning(f"Field '{field_name}' is not a date ({value!r}); ignoring it")
        return None
    return parsed.date()


def _entity_type(value: Any) -> Optional[EntityType]:
    if value is None or value == "":
        return None
    key = str(value).strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return EntityType(key)
    except ValueError:
        logger.warning(f"Unknown entity type {value!r}; treating as unspecified")
        return None


def _location(value: Any) -> Optional[LocationConstraint]:
    """
    Accepts:
        {"type": "state", "value": "CA"}     as-is
        {"state": "national"}                legacy national marker
        {"state": "CA"}                      legacy state restriction
        "national" / "CA"                    bare strings
    """
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lower() in _NATIONAL_VALUES:
            return LocationConstraint(LocationKind.NATIONAL)
        return LocationConstraint(LocationKind.STATE, text.upper())

    if not isinstance(value, Mapping):
        return None

    kind = value.get("type") or value.get("kind")
    if kind is not None:
        try:
            location_kind = LocationKind(str(kind).strip().lower())
        except ValueError:
            return None
        region = _optional_text(value.get("value"))
        if location_kind == LocationKind.STATE and region:
            region = region.upper()
        return LocationConstraint(location_kind, region)

    state = _optional_text(value.get("state"))
    if state:
        if state.lower() in _NATIONAL_VALUES:
            return LocationConstraint(LocationKind.NATIONAL)
        return LocationConstraint(LocationKind.STATE, state.upper())
    return None


def _locations(value: Any) -> Tuple[LocationConstraint, ...]:
    value = _decode_json(value, "locations")
    if value is None:
        return ()
    if isinstance(value, (str, Mapping)):
        value = [value]
    if not isinstance(value, (list, tuple)):
        logger.warning(f"Field 'locations' has unexpected type {type(value).__name__}; ignoring it")
        return ()
    out: List[LocationConstraint] = []
    for item in value:
        constraint = _location(item)
        if constraint is None:
            logger.warning(f"Dropping unrecognized location shape: {item!r}")
            continue
        if constraint not in out:
            out.append(constraint)
    return tuple(out)


def _eligibility_tags(raw: Mapping[str, Any]) -> Tuple[str, ...]:
    value = _decode_json(_get(raw, "eligibility_tags", "eligibilityTags", "eligibility"), "eligibility")
    if isinstance(value, Mapping):
        value = value.get("tags")
    return _string_list(value, "eligibility")


def _quality(value: Any) -> Optional[float]:
    """Clamp to [0, 1]; non-numeric values mean unknown."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning(f"quality_score is not numeric ({value!r}); ignoring it")
        return None
    if not math.isfinite(number):
        return None
    return min(1.0, max(0.0, number))


# ===== Public API =====

def normalize_applicant(raw: Mapping[str, Any]) -> Applicant:
    """
    Build an Applicant from a profile record.

    Raises:
        NormalizationError: No id, or a profile version that is negative or
            not an integer
    """
    if not isinstance(raw, Mapping):
        raise NormalizationError(f"Applicant record must be a mapping, got {type(raw).__name__}")

    applicant_id = _optional_text(_get(raw, "applicant_id", "applicantId", "user_id", "userId", "id"))
    if not applicant_id:
        raise NormalizationError("Applicant record has no id")

    version = _get(raw, "profile_version", "profileVersion", default=0)
    if isinstance(version, bool):
        raise NormalizationError(f"Invalid profile version {version!r}", applicant_id)
    if isinstance(version, str) and version.strip().lstrip("-").isdigit():
        version = int(version.strip())
    if isinstance(version, float) and version.is_integer():
        version = int(version)
    if not isinstance(version, int) or version < 0:
        raise NormalizationError(f"Invalid profile version {version!r}", applicant_id)

    preferences = _decode_json(_get(raw, "grant_preferences", "grantPreferences", default={}), "grantPreferences")
    if not isinstance(preferences, Mapping):
        preferences = {}
    attributes = _decode_json(_get(raw, "industry_attributes", "industryAttributes", default={}), "industryAttributes")
    if not isinstance(attributes, Mapping):
        attributes = {}

    goals = _get(raw, "goals", default=None)
    if goals is None:
        goals = attributes.get("goals")

    focus_tags = _string_list(_get(raw, "focus_tags", "focusTags", "industry_tags", "industryTags"), "focus_tags")
    region = _optional_text(_get(raw, "region", "state"))

    return Applicant(
        applicant_id=applicant_id,
        entity_type=_entity_type(_get(raw, "entity_type", "entityType")),
        region=region.upper() if region else None,
        focus_tags=frozenset(tag.lower() for tag in focus_tags),
        size_band=_optional_text(_get(raw, "size_band", "sizeBand")),
        budget_band=_optional_text(_get(raw, "budget_band", "budgetBand", "annual_budget", "annualBudget")),
        size_preference=_optional_text(
            _get(raw, "size_preference", "sizePreference", default=preferences.get("preferredSize"))
        ),
        timeline_preference=_optional_text(
            _get(raw, "timeline_preference", "timelinePreference", default=preferences.get("timeline"))
        ),
        goals=tuple(goal.lower() for goal in _string_list(goals, "goals")),
        profile_version=version,
    )


def normalize_opportunity(raw: Mapping[str, Any]) -> Opportunity:
    """
    Build an Opportunity from an ingested grant record.

    Raises:
        NormalizationError: No id, or no parseable last-modified timestamp
    """
    if not isinstance(raw, Mapping):
        raise NormalizationError(f"Opportunity record must be a mapping, got {type(raw).__name__}")

    opportunity_id = _optional_text(_get(raw, "opportunity_id", "opportunityId", "id", "_id"))
    if not opportunity_id:
        raise NormalizationError("Opportunity record has no id")

    updated_at = _parse_datetime(_get(raw, "updated_at", "updatedAt", "last_modified", "lastModified"))
    if updated_at is None:
        raise NormalizationError("Opportunity record has no parseable last-modified timestamp", opportunity_id)

    funding_min = _number(_get(raw, "funding_min", "fundingMin", "amount_min", "amountMin"), "funding_min")
    funding_max = _number(_get(raw, "funding_max", "fundingMax", "amount_max", "amountMax"), "funding_max")
    if funding_min is not None and funding_max is not None and funding_min > funding_max:
        logger.warning(f"[{opportunity_id}] funding_min > funding_max; swapping")
        funding_min, funding_max = funding_max, funding_min

    title = _text(_get(raw, "title"))
    if not title:
        logger.warning(f"[{opportunity_id}] missing title")

    return Opportunity(
        opportunity_id=opportunity_id,
        title=title,
        updated_at=updated_at,
        sponsor=_text(_get(raw, "sponsor", "agency")),
        summary=_text(_get(raw, "summary", "ai_summary", "aiSummary")),
        description=_text(_get(raw, "description")),
        categories=_string_list(_get(raw, "categories"), "categories"),
        eligibility_tags=_eligibility_tags(raw),
        locations=_locations(_get(raw, "locations")),
        funding_min=funding_min,
        funding_max=funding_max,
        deadline=_parse_date(_get(raw, "deadline", "deadline_date", "deadlineDate"), "deadline"),
        purpose_tags=tuple(
            tag.lower() for tag in _string_list(_get(raw, "purpose_tags", "purposeTags"), "purpose_tags")
        ),
        quality_score=_quality(_get(raw, "quality_score", "qualityScore")),
        url=_optional_text(_get(raw, "url")),
        source_name=_optional_text(_get(raw, "source_name", "sourceName")),
        funding_text=_optional_text(_get(raw, "funding_text", "fundingText", "amount_text", "amountText")),
        deadline_type=_optional_text(_get(raw, "deadline_type", "deadlineType")),
    )


def normalize_opportunities(raws: Iterable[Mapping[str, Any]]) -> NormalizationReport:
    """
    Normalize a batch; bad records are reported, never raised.

    A repeated id keeps the first occurrence.
    """
    report = NormalizationReport()
    seen = set()

    for index, raw in enumerate(raws):
        try:
            opportunity = normalize_opportunity(raw)
        except NormalizationError as e:
            logger.warning(f"Rejected record #{index}: {e}")
            report.rejected.append(RejectedRecord(index, e.record_id, str(e)))
            continue

        if opportunity.opportunity_id in seen:
            logger.warning(f"Rejected record #{index}: duplicate id {opportunity.opportunity_id}")
            report.rejected.append(
                RejectedRecord(index, opportunity.opportunity_id, "Duplicate opportunity id")
            )
            continue

        seen.add(opportunity.opportunity_id)
        report.opportunities.append(opportunity)

    logger.info(
        f"Normalized {len(report.opportunities)} opportunity(ies), rejected {len(report.rejected)}"
    )
    return report
