"""
Layer 3: Enrichment

Generated match explanations layered on top of the deterministic score:
- schemas: EnrichmentRecord validation boundary and the fallback record
- prompts: batch prompt construction
- generation_client: GenerationClient interface and the LangChain adapter
- enrichment_fetcher: pre-filter, batching, retries, fallbacks
"""

# Schema
from grant_discovery.layer3.schemas import (
    EnrichmentRecord,
    make_fallback_record,
)

# Generation collaborator
from grant_discovery.layer3.generation_client import (
    GenerationClient,
    LangChainGenerationClient,
)

# Fetcher
from grant_discovery.layer3.enrichment_fetcher import (
    EnrichmentFetcher,
    EnrichmentOutcome,
    EnrichmentStats,
)

__all__ = [
    "EnrichmentRecord",
    "make_fallback_record",
    "GenerationClient",
    "LangChainGenerationClient",
    "EnrichmentFetcher",
    "EnrichmentOutcome",
    "EnrichmentStats",
]
