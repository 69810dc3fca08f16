"""
Shared building blocks: configuration, logging, error handling, core types,
the matching lexicon, retry policy and the enrichment cache repositories.
"""
