"""
CLI Entry Point: Run Grant Discovery

Usage:
    python scripts/run_discovery.py --profile profile.json --opportunities grants.json
    python scripts/run_discovery.py --profile profile.json --opportunities grants.json \\
        --sort-by deadline_soon --limit 10 --no-ai
"""

import argparse
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from version import __version__
from grant_discovery.common.config import Config
from grant_discovery.common.error_handling import NormalizationError, PipelineInputError
from grant_discovery.common.logger import setup_logging
from grant_discovery.common.repositories import get_enrichment_cache_repository
from grant_discovery.common.tiering import get_tier_display_info
from grant_discovery.common.types import SortOrder
from grant_discovery.layer3.generation_client import LangChainGenerationClient
from grant_discovery.normalize import normalize_applicant, normalize_opportunities
from grant_discovery.services import DiscoveryPipeline, PipelineOptions


def load_json(path: str):
    """Load a JSON document from disk."""
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    with open(file_path, "r") as f:
        return json.load(f)


def print_results(result) -> None:
    print("\n" + "=" * 70)
    print(f"📊 RESULTS ({len(result.results)} of {result.total})")
    print("=" * 70)

    legend = ", ".join(f"{t['label']} {t['score_range']}" for t in get_tier_display_info())
    print(f"Tiers: {legend}\n")

    for i, row in enumerate(result.results, 1):
        source = "cache" if row.from_cache else ("fallback" if row.is_fallback else "generated")
        print(f"{i:>2}. [{row.combined_score:>3}] {row.title}")
        print(f"    {row.tier_label} | deterministic {row.deterministic_score}, "
              f"enrichment {row.enrichment_score} ({row.confidence}, {source})")
        print(f"    Funding: {row.funding_display} | Deadline: {row.deadline_display}")
        for reason in row.reasons[:3]:
            print(f"    + {reason}")
        for warning in row.warnings:
            print(f"    ! {warning}")

    stats = result.stats
    print("\n📈 Stage counts:")
    print(f"   Fetched:            {stats.fetched}")
    print(f"   After eligibility:  {stats.after_eligibility}")
    print(f"   After scoring:      {stats.after_scoring}")
    print(f"   From cache:         {stats.from_cache}")
    print(f"   From generation:    {stats.from_generation}")
    print(f"   Fallback:           {stats.fallback}")

    if result.timings:
        print("\n⏱️  Timings:")
        for timing in result.timings:
            print(f"   {timing['stage']:<14} {timing['duration_ms']}ms")

    if result.errors:
        print(f"\n⚠️  {len(result.errors)} degraded operation(s):")
        for error in result.errors:
            print(f"   [{error['stage']}] {error['message']}")


def main():
    """Main CLI function."""
    parser = argparse.ArgumentParser(
        description="Rank grant opportunities for an applicant profile",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Input files:
  --profile        JSON object (applicant profile, camelCase or snake_case keys)
  --opportunities  JSON array of opportunity records

Examples:
  %(prog)s --profile me.json --opportunities grants.json
  %(prog)s --profile me.json --opportunities grants.json --no-ai --json
        """,
    )
    parser.add_argument("--profile", required=True, help="Path to applicant profile JSON")
    parser.add_argument("--opportunities", required=True, help="Path to opportunities JSON array")
    parser.add_argument("--limit", type=int, default=Config.DEFAULT_RESULT_LIMIT, help="Maximum results")
    parser.add_argument("--min-score", type=int, default=Config.DEFAULT_MIN_SCORE,
                        help="Minimum deterministic score (0-100)")
    parser.add_argument("--sort-by", default=SortOrder.BEST_MATCH.value,
                        choices=[s.value for s in SortOrder], help="Result ordering")
    parser.add_argument("--max-candidates", type=int, default=Config.MAX_ENRICHMENT_CANDIDATES,
                        help="Top-N scored opportunities considered for enrichment")
    parser.add_argument("--deadline", type=float, default=None,
                        help="Run deadline in seconds; enrichment falls back when exceeded")
    parser.add_argument("--no-cache", action="store_true", help="Skip the enrichment cache")
    parser.add_argument("--no-ai", action="store_true", help="Skip generation (fallback records only)")
    parser.add_argument("--allow-missing-url", action="store_true",
                        help="Keep opportunities without an application URL")
    parser.add_argument("--debug", action="store_true", help="Include debug block and DEBUG logs")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args()
    setup_logging(debug=args.debug)

    try:
        if not args.no_ai:
            Config.validate()

        applicant = normalize_applicant(load_json(args.profile))
        raw = load_json(args.opportunities)
        if not isinstance(raw, list):
            raise ValueError("--opportunities must contain a JSON array")
        report = normalize_opportunities(raw)
        if report.rejected and not args.json:
            print(f"⚠️  Rejected {len(report.rejected)} malformed record(s)")

        options = PipelineOptions(
            limit=args.limit,
            min_score=args.min_score,
            sort_by=args.sort_by,
            use_cache=not args.no_cache,
            use_ai=not args.no_ai,
            require_url=not args.allow_missing_url,
            max_candidates=args.max_candidates,
            deadline_seconds=args.deadline,
            include_debug=args.debug,
        )

        pipeline = DiscoveryPipeline(
            cache=None if args.no_cache else get_enrichment_cache_repository(),
            generation_client=None if args.no_ai else LangChainGenerationClient(),
        )
        result = pipeline.run_sync(report.opportunities, applicant, options)

    except (FileNotFoundError, NormalizationError, PipelineInputError, ValueError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        print_results(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
