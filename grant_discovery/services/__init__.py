"""
Services module for the discovery pipeline.

DiscoveryPipeline sequences eligibility, scoring, caching, enrichment and
ranking for one applicant and reports per-stage statistics.
"""

from grant_discovery.services.discovery_pipeline import (
    DiscoveryPipeline,
    PipelineOptions,
    PipelineResult,
    PipelineStats,
    build_score_distribution,
)

__all__ = [
    "DiscoveryPipeline",
    "PipelineOptions",
    "PipelineResult",
    "PipelineStats",
    "build_score_distribution",
]
