"""
Normalization boundary: loosely-shaped upstream records to canonical types.
"""

from grant_discovery.normalize.normalizer import (
    NormalizationReport,
    RejectedRecord,
    normalize_applicant,
    normalize_opportunities,
    normalize_opportunity,
)

__all__ = [
    "NormalizationReport",
    "RejectedRecord",
    "normalize_applicant",
    "normalize_opportunities",
    "normalize_opportunity",
]
