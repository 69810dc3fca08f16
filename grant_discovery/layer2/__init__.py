"""
Layer 2: Relevance Scoring

- relevance_scorer: seven-factor deterministic 0-100 score
"""

from grant_discovery.layer2.relevance_scorer import (
    FactorScore,
    score,
    score_opportunities,
)

__all__ = [
    "FactorScore",
    "score",
    "score_opportunities",
]
