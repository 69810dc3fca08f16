"""
Layer 1: Eligibility Filter

Deterministic pass/fail gate evaluated before any scoring.

Checks run in a fixed order and the first failing check decides the verdict:
    1. url        - the opportunity has an application URL (optional)
    2. entity     - the applicant's organization type is eligible
    3. geography  - the applicant's state is covered
    4. industry   - at least one focus area overlaps the opportunity categories

Usage:
    from grant_discovery.layer1 import evaluate, filter_eligible

    verdict = evaluate(applicant, opportunity)
    result = filter_eligible(applicant, opportunities)
    print(result.by_check)  # {"geography": 3, "industry": 1}
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from grant_discovery.common.logger import get_logger
from grant_discovery.common.taxonomy import DEFAULT_LEXICON, Lexicon, substring_match
from grant_discovery.common.types import (
    Applicant,
    EligibilityVerdict,
    LocationKind,
    Opportunity,
)

logger = get_logger(__name__, stage="eligibility")

CHECK_URL = "url"
CHECK_ENTITY = "entity"
CHECK_GEOGRAPHY = "geography"
CHECK_INDUSTRY = "industry"

CHECK_ORDER: Tuple[str, ...] = (CHECK_URL, CHECK_ENTITY, CHECK_GEOGRAPHY, CHECK_INDUSTRY)

_PASS = EligibilityVerdict(passes=True)


@dataclass
class EligibilityResult:
    """Partition of an opportunity set plus failure counts per check."""
    eligible: List[Opportunity] = field(default_factory=list)
    ineligible: List[Tuple[Opportunity, EligibilityVerdict]] = field(default_factory=list)
    by_check: Dict[str, int] = field(default_factory=dict)


def _fail(check: str, reason: str) -> EligibilityVerdict:
    return EligibilityVerdict(passes=False, reason=reason, failed_check=check)


# ===== Individual checks =====

def check_url(opportunity: Opportunity) -> EligibilityVerdict:
    if not opportunity.url or not opportunity.url.strip():
        return _fail(CHECK_URL, "Grant has no application URL available")
    return _PASS


def check_entity(
    applicant: Applicant,
    opportunity: Opportunity,
    lexicon: Lexicon = DEFAULT_LEXICON,
) -> EligibilityVerdict:
    if applicant.entity_type is None or not opportunity.eligibility_tags:
        return _PASS

    synonyms = lexicon.synonyms_for(applicant.entity_type.value)
    if any(substring_match(s, tag) for s in synonyms for tag in opportunity.eligibility_tags):
        return _PASS

    return _fail(
        CHECK_ENTITY,
        f"This grant is for {', '.join(opportunity.eligibility_tags)}, "
        f"but your organization type is {applicant.entity_type.value}",
    )


def check_geography(applicant: Applicant, opportunity: Opportunity) -> EligibilityVerdict:
    locations = opportunity.locations
    if not locations or any(loc.kind == LocationKind.NATIONAL for loc in locations):
        return _PASS
    if not applicant.region:
        return _PASS

    states = [loc.value for loc in locations if loc.kind == LocationKind.STATE and loc.value]
    region = applicant.region.upper()
    if not states or any(state.upper() == region for state in states):
        return _PASS

    return _fail(
        CHECK_GEOGRAPHY,
        f"This grant is only available in {', '.join(states)}, but you're in {applicant.region}",
    )


def check_industry(
    applicant: Applicant,
    opportunity: Opportunity,
    lexicon: Lexicon = DEFAULT_LEXICON,
) -> EligibilityVerdict:
    if not applicant.focus_tags:
        return _PASS

    tags = sorted(applicant.focus_tags)

    if not opportunity.categories:
        # Uncategorized: the title signal only feeds scoring, never disqualifies
        text = f"{opportunity.title} {opportunity.sponsor}".lower()
        matched = any(kw in text for tag in tags for kw in lexicon.keywords_for(tag))
        logger.debug(
            f"[{opportunity.opportunity_id}] uncategorized, keyword signal={'hit' if matched else 'miss'}"
        )
        return _PASS

    for tag in tags:
        for alias in lexicon.aliases_for(tag):
            if any(substring_match(alias, category) for category in opportunity.categories):
                return _PASS

    return _fail(
        CHECK_INDUSTRY,
        f"This grant covers {', '.join(opportunity.categories[:2])}, "
        f"which doesn't overlap your focus on {', '.join(tags[:2])}",
    )


# ===== Public API =====

def evaluate(
    applicant: Applicant,
    opportunity: Opportunity,
    require_url: bool = True,
    lexicon: Lexicon = DEFAULT_LEXICON,
) -> EligibilityVerdict:
    """
    Run the ordered checks and return the first failure (or a pass).

    Args:
        applicant: Applicant snapshot
        opportunity: Opportunity to evaluate
        require_url: Set False to skip the application URL check
        lexicon: Shared matching lexicon

    Returns:
        EligibilityVerdict with a single reason when it fails
    """
    if require_url:
        verdict = check_url(opportunity)
        if not verdict.passes:
            return verdict

    verdict = check_entity(applicant, opportunity, lexicon)
    if not verdict.passes:
        return verdict

    verdict = check_geography(applicant, opportunity)
    if not verdict.passes:
        return verdict

    return check_industry(applicant, opportunity, lexicon)


def filter_eligible(
    applicant: Applicant,
    opportunities: Sequence[Opportunity],
    require_url: bool = True,
    lexicon: Lexicon = DEFAULT_LEXICON,
) -> EligibilityResult:
    """Partition opportunities into eligible and ineligible sets."""
    result = EligibilityResult()

    for opportunity in opportunities:
        verdict = evaluate(applicant, opportunity, require_url=require_url, lexicon=lexicon)
        if verdict.passes:
            result.eligible.append(opportunity)
            continue
        result.ineligible.append((opportunity, verdict))
        check = verdict.failed_check or "unknown"
        result.by_check[check] = result.by_check.get(check, 0) + 1

    logger.info(
        f"Eligibility: {len(result.eligible)}/{len(opportunities)} passed"
        + (f" (failed: {result.by_check})" if result.by_check else "")
    )
    return result

