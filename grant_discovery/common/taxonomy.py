"""
Shared matching lexicon.

A single versioned set of lookup tables consumed by the eligibility filter,
the relevance scorer and the enrichment fetcher, so that every stage agrees
on what counts as a category alias or a title keyword.

Bump LEXICON_VERSION whenever a table changes.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Sequence, Tuple

LEXICON_VERSION = "2024.2"


# Entity type -> eligibility tags that entity may apply under
ENTITY_TO_ELIGIBILITY: Dict[str, List[str]] = {
    "individual": ["Individual"],
    "nonprofit": ["Nonprofit 501(c)(3)", "Nonprofit"],
    "small_business": ["Small Business", "For-Profit Business"],
    "for_profit": ["For-Profit Business"],
    "educational": ["Educational Institution"],
    "government": ["Government Entity"],
    "tribal": ["Tribal Organization"],
}

# Focus tag -> canonical grant categories (scorer category expansion)
INDUSTRY_TO_CATEGORIES: Dict[str, List[str]] = {
    "agriculture": ["Agriculture", "Agriculture & Food"],
    "arts_culture": ["Arts & Culture", "Arts"],
    "business": ["Business & Entrepreneurship", "Business", "Small Business"],
    "climate": ["Climate & Environment", "Climate", "Environment"],
    "community": ["Community Development", "Community"],
    "education": ["Education"],
    "health": ["Health & Wellness", "Health"],
    "housing": ["Housing"],
    "infrastructure": ["Infrastructure"],
    "nonprofit": ["Nonprofit", "Nonprofit Operations"],
    "research": ["Research & Science", "Research"],
    "technology": ["Technology", "Technology & Innovation"],
    "workforce": ["Workforce Development", "Workforce"],
    "youth": ["Youth & Families", "Youth"],
}

# Focus tag -> looser aliases used by the eligibility category-overlap check
CATEGORY_ALIASES: Dict[str, List[str]] = {
    "agriculture": ["ag", "farm", "rural", "food", "usda", "agricultural", "agricu", "natural resources"],
    "arts_culture": ["arts", "culture", "humanities", "creative", "heritage", "museum", "nea", "neh"],
    "business": ["commerce", "economic", "entrepreneurship", "small business", "sbir", "sba"],
    "climate": ["environment", "energy", "conservation", "sustainability", "environmental", "epa"],
    "community": ["community development", "civic", "neighborhood", "regional", "cdbg"],
    "education": ["ed", "school", "academic", "learning", "training", "educational"],
    "health": ["he", "medical", "healthcare", "wellness", "clinical", "nih", "hhs"],
    "housing": ["ho", "hud", "affordable housing", "shelter", "residential"],
    "infrastructure": ["transportation", "broadband", "water", "transit", "dot"],
    "nonprofit": ["charitable", "foundation", "ngo", "501c"],
    "research": ["science", "rd", "r&d", "scientific", "nsf"],
    "technology": ["tech", "digital", "cyber", "software", "it", "innovation"],
    "workforce": ["employment", "job", "career", "labor", "dol"],
    "youth": ["children", "family", "families", "child", "juvenile", "acf"],
}

# Focus tag -> title keywords (uncategorized grants and title bonus)
INDUSTRY_KEYWORDS: Dict[str, List[str]] = {
    "agriculture": ["agriculture", "farm", "rural", "crop", "livestock", "usda", "food", "agricultural"],
    "arts_culture": ["arts", "culture", "museum", "heritage", "creative", "humanities", "artistic"],
    "business": ["business", "entrepreneur", "commerce", "economic", "sbir", "sttr", "small business"],
    "climate": ["climate", "environment", "energy", "conservation", "sustainability", "epa", "environmental"],
    "community": ["community", "neighborhood", "civic", "local", "regional", "municipal"],
    "education": ["education", "school", "learning", "training", "academic", "student", "educational"],
    "health": ["health", "medical", "wellness", "nih", "clinical", "disease", "mental health", "healthcare"],
    "housing": ["housing", "hud", "shelter", "homelessness", "affordable housing", "home"],
    "infrastructure": ["infrastructure", "transportation", "broadband", "water", "transit", "roads"],
    "nonprofit": ["nonprofit", "charitable", "foundation", "philanthropy", "ngo"],
    "research": ["research", "science", "nsf", "study", "innovation", "r&d", "scientific"],
    "technology": ["technology", "tech", "digital", "software", "cyber", "ai", "computing"],
    "workforce": ["workforce", "job", "employment", "career", "labor", "worker", "training"],
    "youth": ["youth", "children", "family", "child", "juvenile", "teen", "young"],
}

GOALS_TO_PURPOSE_TAGS: Dict[str, List[str]] = {
    "equipment": ["equipment", "technology", "infrastructure"],
    "expansion": ["expansion", "working_capital", "infrastructure"],
    "sustainability": ["sustainability", "equipment"],
    "workforce": ["hiring", "training"],
    "research": ["r&d", "technology"],
    "marketing": ["marketing", "expansion"],
}

# Size category -> (min, max) award range in dollars
GRANT_SIZE_RANGES: Dict[str, Tuple[float, float]] = {
    "micro": (0, 10_000),
    "small": (10_000, 50_000),
    "medium": (50_000, 250_000),
    "large": (250_000, math.inf),
}

# Annual budget band -> grant size categories appropriate for it
BUDGET_TO_GRANT_SIZE: Dict[str, List[str]] = {
    "under_100k": ["micro", "small"],
    "100k_500k": ["micro", "small", "medium"],
    "500k_1m": ["small", "medium", "large"],
    "1m_5m": ["medium", "large"],
    "over_5m": ["medium", "large"],
}

# Budget bands for which a "large" award is flagged as competitive
SMALL_BUDGET_BANDS: Tuple[str, ...] = ("under_100k", "100k_500k")

# Opportunities whose text contains any of these are institutional; never sent for enrichment
ENRICHMENT_REJECT_KEYWORDS: List[str] = [
    "clinical trial",
    "drug development",
    "cancer research center",
    "genome sequencing",
    "national laboratory",
    "defense contract",
    "foreign assistance",
    "international development program",
    "research institution only",
    "university-affiliated",
    "phase i study",
    "phase ii study",
    "phase iii study",
]

# Human-readable labels used when describing an applicant to the generator
ENTITY_TYPE_LABELS: Dict[str, str] = {
    "individual": "Individual/Homeowner",
    "nonprofit": "Nonprofit Organization",
    "small_business": "Small Business",
    "for_profit": "For-Profit Business",
    "educational": "Educational Institution",
    "government": "Government Entity",
    "tribal": "Tribal Organization",
}

INDUSTRY_LABELS: Dict[str, str] = {
    "agriculture": "Agriculture & Farming",
    "arts_culture": "Arts & Culture",
    "business": "Business & Entrepreneurship",
    "climate": "Climate & Environment",
    "community": "Community Development",
    "education": "Education",
    "health": "Health & Wellness",
    "housing": "Housing",
    "infrastructure": "Infrastructure",
    "nonprofit": "Nonprofit Operations",
    "research": "Research & Science",
    "technology": "Technology & Innovation",
    "workforce": "Workforce Development",
    "youth": "Youth & Families",
}


@dataclass(frozen=True)
class Lexicon:
    """
    Versioned bundle of the matching tables.

    Injected into the filter, scorer and fetcher. Lookups for unknown keys
    fall back to the key itself, so a custom focus tag still matches its own
    name.
    """

    version: str = LEXICON_VERSION
    entity_synonyms: Mapping[str, Sequence[str]] = field(default_factory=lambda: ENTITY_TO_ELIGIBILITY)
    industry_categories: Mapping[str, Sequence[str]] = field(default_factory=lambda: INDUSTRY_TO_CATEGORIES)
    category_aliases: Mapping[str, Sequence[str]] = field(default_factory=lambda: CATEGORY_ALIASES)
    industry_keywords: Mapping[str, Sequence[str]] = field(default_factory=lambda: INDUSTRY_KEYWORDS)
    goal_purposes: Mapping[str, Sequence[str]] = field(default_factory=lambda: GOALS_TO_PURPOSE_TAGS)
    size_ranges: Mapping[str, Tuple[float, float]] = field(default_factory=lambda: GRANT_SIZE_RANGES)
    budget_sizes: Mapping[str, Sequence[str]] = field(default_factory=lambda: BUDGET_TO_GRANT_SIZE)
    small_budget_bands: Tuple[str, ...] = SMALL_BUDGET_BANDS
    reject_keywords: Sequence[str] = field(default_factory=lambda: ENRICHMENT_REJECT_KEYWORDS)
    entity_labels: Mapping[str, str] = field(default_factory=lambda: ENTITY_TYPE_LABELS)
    industry_labels: Mapping[str, str] = field(default_factory=lambda: INDUSTRY_LABELS)

    def synonyms_for(self, entity_type: str) -> List[str]:
        return list(self.entity_synonyms.get(entity_type, []))

    def categories_for(self, tag: str) -> List[str]:
        """Canonical categories for a focus tag (the tag itself if unknown)."""
        return list(self.industry_categories.get(tag, [tag]))

    def aliases_for(self, tag: str) -> List[str]:
        """The tag plus its looser category aliases, lower-cased."""
        tag = tag.lower()
        return [tag] + [a.lower() for a in self.category_aliases.get(tag, [])]

    def keywords_for(self, tag: str) -> List[str]:
        tag = tag.lower()
        return [k.lower() for k in self.industry_keywords.get(tag, [tag])]

    def purposes_for(self, goal: str) -> List[str]:
        goal = goal.lower()
        return list(self.goal_purposes.get(goal, [goal]))

    def size_category(self, funding_min: float, funding_max: float) -> str:
        """Bucket an award range by its midpoint (thresholds 10k/50k/250k)."""
        midpoint = (funding_min + funding_max) / 2
        if midpoint < 10_000:
            return "micro"
        if midpoint < 50_000:
            return "small"
        if midpoint < 250_000:
            return "medium"
        return "large"

    def label_entity(self, entity_type: str) -> str:
        return self.entity_labels.get(entity_type, entity_type)

    def label_industry(self, tag: str) -> str:
        return self.industry_labels.get(tag, tag)


DEFAULT_LEXICON = Lexicon()


def substring_match(a: str, b: str) -> bool:
    """Case-insensitive substring match in either direction."""
    a = a.lower()
    b = b.lower()
    return a in b or b in a
