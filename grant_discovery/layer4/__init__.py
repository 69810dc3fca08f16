"""
Layer 4: Fusion & Ranking

- score_fusion: confidence-gated score blend, result assembly, final ordering
"""

from grant_discovery.layer4.score_fusion import (
    build_ranked_result,
    fuse_score,
    rank,
)

__all__ = [
    "build_ranked_result",
    "fuse_score",
    "rank",
]
