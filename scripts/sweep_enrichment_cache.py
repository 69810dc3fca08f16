"""
Enrichment cache maintenance.

Periodic maintenance for the enrichment cache store. Not on the request
path: run it from cron.

Usage:
    python scripts/sweep_enrichment_cache.py sweep
    python scripts/sweep_enrichment_cache.py stats [--applicant USER_ID]
    python scripts/sweep_enrichment_cache.py invalidate --applicant USER_ID
    python scripts/sweep_enrichment_cache.py invalidate --opportunity GRANT_ID
"""

import argparse
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from grant_discovery.common.config import Config
from grant_discovery.common.logger import get_logger, setup_logging
from grant_discovery.common.repositories import (
    MongoEnrichmentCacheRepository,
    get_enrichment_cache_repository,
)

logger = get_logger(__name__, stage="maintenance")


def main():
    parser = argparse.ArgumentParser(
        description="Enrichment cache maintenance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  sweep        Delete expired rows across all applicants
  stats        Row counts (total / valid / expiring within 24h)
  invalidate   Delete rows for one applicant or one opportunity
        """,
    )
    parser.add_argument("command", choices=["sweep", "stats", "invalidate"])
    parser.add_argument("--applicant", help="Applicant id")
    parser.add_argument("--opportunity", help="Opportunity id (invalidate only)")
    parser.add_argument("--dry-run", action="store_true", help="Show stats instead of deleting")
    args = parser.parse_args()

    setup_logging()

    if not Config.use_mongodb_cache():
        print("❌ MONGODB_URI is not set; the in-memory cache has nothing to maintain", file=sys.stderr)
        return 1

    cache = get_enrichment_cache_repository()
    if not isinstance(cache, MongoEnrichmentCacheRepository):
        print("❌ Expected a MongoDB-backed cache", file=sys.stderr)
        return 1

    if args.command == "stats" or args.dry_run:
        stats = cache.stats(args.applicant)
        print(json.dumps(stats.to_dict(), indent=2))
        return 0

    if args.command == "sweep":
        deleted = cache.sweep()
        logger.info(f"Swept {deleted} expired row(s)")
        print(f"✓ Deleted {deleted} expired row(s)")
        return 0

    if args.applicant:
        deleted = cache.invalidate(args.applicant)
        print(f"✓ Deleted {deleted} row(s) for applicant {args.applicant}")
    elif args.opportunity:
        deleted = cache.invalidate_opportunity(args.opportunity)
        print(f"✓ Deleted {deleted} row(s) for opportunity {args.opportunity}")
    else:
        parser.error("invalidate requires --applicant or --opportunity")
    return 0


if __name__ == "__main__":
    sys.exit(main())
