"""
Layer 1: Eligibility

Deterministic hard filters applied before scoring:
- eligibility_filter: ordered URL / entity / geography / industry checks
"""

from grant_discovery.layer1.eligibility_filter import (
    CHECK_ORDER,
    EligibilityResult,
    evaluate,
    filter_eligible,
)

__all__ = [
    "CHECK_ORDER",
    "EligibilityResult",
    "evaluate",
    "filter_eligible",
]
