"""
Discovery Pipeline

Sequences the discovery stages for one applicant:

    1. eligibility   - deterministic hard filters
    2. scoring       - deterministic relevance score, min_score cut, top-N cap
    3. cache_lookup  - cached enrichments for the current profile version
    4. enrichment    - generated enrichment for cache misses (fallbacks on failure)
    5. cache_write   - write-back of generated (never fallback) records
    6. ranking       - score fusion, final ordering, limit

Empty intermediate sets short-circuit with accurate stage counts. Collaborator
failures (cache store, generator) degrade to misses and fallback records and
are reported in `PipelineResult.errors`; only invalid options raise.

Usage:
    pipeline = DiscoveryPipeline(
        cache=get_enrichment_cache_repository(),
        generation_client=LangChainGenerationClient(),
    )
    result = await pipeline.run(opportunities, applicant, PipelineOptions(limit=10))
"""

import asyncio
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from grant_discovery.common.config import Config
from grant_discovery.common.error_handling import ErrorCollector, PipelineInputError, safe_execute
from grant_discovery.common.logger import get_logger
from grant_discovery.common.repositories.enrichment_cache_repository import (
    EnrichmentCacheRepositoryInterface,
)
from grant_discovery.common.structured_logger import StageContext, get_structured_logger
from grant_discovery.common.taxonomy import DEFAULT_LEXICON, Lexicon
from grant_discovery.common.types import (
    Applicant,
    Opportunity,
    RankedResult,
    ScoredOpportunity,
    SortOrder,
)
from grant_discovery.common.utils import run_async
from grant_discovery.layer1.eligibility_filter import filter_eligible
from grant_discovery.layer2.relevance_scorer import score_opportunities
from grant_discovery.layer3.enrichment_fetcher import EnrichmentFetcher
from grant_discovery.layer3.generation_client import GenerationClient
from grant_discovery.layer3.schemas import EnrichmentRecord, make_fallback_record
from grant_discovery.layer4.score_fusion import build_ranked_result, rank

logger = get_logger(__name__, stage="pipeline")

SCORE_BUCKETS = (
    ("0-20", 20),
    ("21-40", 40),
    ("41-60", 60),
    ("61-80", 80),
    ("81-100", 100),
)


def build_score_distribution(scores: Sequence[int]) -> Dict[str, int]:
    """Histogram of scores over fixed 20-point buckets."""
    distribution = {label: 0 for label, _ in SCORE_BUCKETS}
    for value in scores:
        for label, upper in SCORE_BUCKETS:
            if value <= upper:
                distribution[label] += 1
                break
    return distribution


@dataclass
class PipelineOptions:
    """
    Caller options for one run.

    Raises:
        PipelineInputError: On construction, for invalid values
    """
    limit: int = field(default_factory=lambda: Config.DEFAULT_RESULT_LIMIT)
    min_score: int = field(default_factory=lambda: Config.DEFAULT_MIN_SCORE)
    sort_by: Union[SortOrder, str] = SortOrder.BEST_MATCH
    use_cache: bool = True
    use_ai: bool = True
    require_url: bool = True
    max_candidates: int = field(default_factory=lambda: Config.MAX_ENRICHMENT_CANDIDATES)
    deadline_seconds: Optional[float] = None
    include_debug: bool = False
    today: Optional[date] = None

    def __post_init__(self):
        if isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit < 0:
            raise PipelineInputError(f"limit must be a non-negative integer, got {self.limit!r}")
        if isinstance(self.max_candidates, bool) or not isinstance(self.max_candidates, int) \
                or self.max_candidates < 0:
            raise PipelineInputError(
                f"max_candidates must be a non-negative integer, got {self.max_candidates!r}"
            )
        if isinstance(self.min_score, bool) or not isinstance(self.min_score, (int, float)) \
                or not 0 <= self.min_score <= 100:
            raise PipelineInputError(f"min_score must be within 0-100, got {self.min_score!r}")
        try:
            self.sort_by = SortOrder(self.sort_by)
        except ValueError:
            valid = ", ".join(s.value for s in SortOrder)
            raise PipelineInputError(f"Unknown sort_by {self.sort_by!r} (expected one of: {valid})")
        if self.deadline_seconds is not None and not self.deadline_seconds > 0:
            raise PipelineInputError(f"deadline_seconds must be positive, got {self.deadline_seconds!r}")


@dataclass
class PipelineStats:
    fetched: int = 0
    after_eligibility: int = 0
    after_scoring: int = 0
    from_cache: int = 0
    from_generation: int = 0
    fallback: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class PipelineResult:
    """Ranked rows (already limited) plus per-stage observability."""
    results: List[RankedResult] = field(default_factory=list)
    total: int = 0
    stats: PipelineStats = field(default_factory=PipelineStats)
    timings: List[Dict[str, Any]] = field(default_factory=list)
    debug: Optional[Dict[str, Any]] = None
    errors: List[Dict[str, Any]] = field(default_factory=list)
    run_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "results": [r.to_dict() for r in self.results],
            "total": self.total,
            "stats": self.stats.to_dict(),
            "timings": list(self.timings),
            "debug": self.debug,
            "errors": list(self.errors),
        }


class DiscoveryPipeline:
    """
    Orchestrates eligibility, scoring, caching, enrichment and ranking.

    Collaborators are injected; tests pass an in-memory cache and a scripted
    generation client.
    """

    def __init__(
        self,
        cache: Optional[EnrichmentCacheRepositoryInterface] = None,
        generation_client: Optional[GenerationClient] = None,
        fetcher: Optional[EnrichmentFetcher] = None,
        lexicon: Lexicon = DEFAULT_LEXICON,
        emit_events: Optional[bool] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            cache: Enrichment cache store (None disables caching)
            generation_client: Generator used to build the default fetcher
            fetcher: Pre-configured fetcher (overrides generation_client)
            lexicon: Shared matching lexicon for every stage
            emit_events: Print JSON stage events (defaults to Config.EMIT_STAGE_EVENTS)
            clock: Monotonic clock for the run deadline
        """
        self.cache = cache
        self.lexicon = lexicon
        self.clock = clock
        self.emit_events = Config.EMIT_STAGE_EVENTS if emit_events is None else emit_events

        if fetcher is None and generation_client is not None:
            fetcher = EnrichmentFetcher(generation_client, lexicon=lexicon, clock=clock)
        self.fetcher = fetcher

    async def run(
        self,
        opportunities: Sequence[Opportunity],
        applicant: Applicant,
        options: Optional[PipelineOptions] = None,
        run_id: Optional[str] = None,
    ) -> PipelineResult:
        """
        Run discovery for one applicant.

        Args:
            opportunities: Normalized opportunities
            applicant: Applicant snapshot (profile_version keys the cache)
            options: Run options (defaults from Config)
            run_id: Identifier for log correlation (generated if omitted)

        Returns:
            PipelineResult; never raises for collaborator failures

        Raises:
            PipelineInputError: Invalid options
        """
        if options is None:
            options = PipelineOptions()
        elif not isinstance(options, PipelineOptions):
            raise PipelineInputError(f"options must be PipelineOptions, got {type(options).__name__}")

        run_id = run_id or uuid.uuid4().hex[:12]
        log = logger.bind(run_id=run_id)
        events = get_structured_logger(run_id, enabled=self.emit_events)
        errors = ErrorCollector()
        started = time.perf_counter()
        deadline = self.clock() + options.deadline_seconds if options.deadline_seconds else None
        today = options.today or date.today()

        result = PipelineResult(run_id=run_id)
        stats = result.stats
        stats.fetched = len(opportunities)
        debug: Dict[str, Any] = {
            "eligibility_stats": {},
            "scoring_distribution": {},
            "cache_hit_rate": 0.0,
        }

        log.info(
            f"Pipeline started: {len(opportunities)} opportunity(ies) for applicant "
            f"{applicant.applicant_id} (profile v{applicant.profile_version})"
        )
        events.pipeline_start({
            "opportunities": len(opportunities),
            "profile_version": applicant.profile_version,
            "sort_by": options.sort_by.value,
            "use_cache": options.use_cache,
            "use_ai": options.use_ai,
        })

        # ===== Stage 1: Eligibility =====
        with StageContext(events, "eligibility") as ctx:
            eligibility = filter_eligible(
                applicant, opportunities, require_url=options.require_url, lexicon=self.lexicon
            )
            ctx.add_metadata("eligible", len(eligibility.eligible))
            ctx.add_metadata("ineligible", len(eligibility.ineligible))
        stats.after_eligibility = len(eligibility.eligible)
        debug["eligibility_stats"] = dict(eligibility.by_check)

        if not eligibility.eligible:
            log.warning(f"No eligible opportunities (failed checks: {eligibility.by_check})")
            return self._finish(result, events, errors, debug, options, started, skipped_from="scoring")

        # ===== Stage 2: Scoring =====
        with StageContext(events, "scoring") as ctx:
            scored = score_opportunities(applicant, eligibility.eligible, today=today, lexicon=self.lexicon)
            survivors = [s for s in scored if s.total >= options.min_score]
            ctx.add_metadata("scored", len(scored))
            ctx.add_metadata("passed_min_score", len(survivors))
        stats.after_scoring = len(survivors)

        if not survivors:
            log.warning(f"No opportunities reached min_score={options.min_score}")
            return self._finish(result, events, errors, debug, options, started, skipped_from="cache_lookup")

        debug["scoring_distribution"] = build_score_distribution([s.total for s in survivors])
        candidates = survivors[:options.max_candidates]
        if not candidates:
            log.warning("max_candidates=0; nothing to rank")
            return self._finish(result, events, errors, debug, options, started, skipped_from="cache_lookup")
        log.info(
            f"{len(candidates)} candidate(s) after scoring "
            f"(top={candidates[0].total}, cutoff={candidates[-1].total})"
        )

        # ===== Stage 3: Cache lookup =====
        use_cache = options.use_cache and self.cache is not None
        cached: Dict[str, EnrichmentRecord] = {}
        cache_available = use_cache

        if use_cache:
            with StageContext(events, "cache_lookup") as ctx:
                found = await asyncio.to_thread(
                    safe_execute,
                    self.cache.lookup,
                    applicant.applicant_id,
                    [c.opportunity_id for c in candidates],
                    applicant.profile_version,
                    {c.opportunity_id: c.opportunity.updated_at for c in candidates},
                    operation_name="enrichment_cache.lookup",
                    fallback=None,
                    collector=errors,
                    stage="cache_lookup",
                )
                if found is None:
                    # Store unavailable: everything is a miss, and nothing is written back
                    cache_available = False
                    ctx.mark_partial()
                else:
                    cached = found
                ctx.add_metadata("hits", len(cached))
                ctx.add_metadata("misses", len(candidates) - len(cached))
        else:
            events.stage_skip("cache_lookup", "cache disabled")

        stats.from_cache = len(cached)
        uncached = [c for c in candidates if c.opportunity_id not in cached]

        # ===== Stage 4: Enrichment =====
        records: Dict[str, EnrichmentRecord] = dict(cached)
        generated: List[ScoredOpportunity] = []

        if uncached and options.use_ai and self.fetcher is not None:
            with StageContext(events, "enrichment") as ctx:
                try:
                    outcome = await self.fetcher.fetch(
                        applicant, uncached, deadline=deadline, errors=errors, run_id=run_id
                    )
                except Exception as e:
                    log.error(f"Enrichment failed ({type(e).__name__}: {e}); using fallbacks")
                    errors.add_error(
                        stage="enrichment",
                        operation="enrichment_fetcher.fetch",
                        message=f"Enrichment failed: {e}",
                        severity="high",
                        exception=e,
                    )
                    outcome = None
                    ctx.mark_partial()
                    for c in uncached:
                        records[c.opportunity_id] = make_fallback_record(c.opportunity_id)
                if outcome is not None:
                    records.update(outcome.records)
                    generated_ids = set(outcome.generated_ids)
                    generated = [c for c in uncached if c.opportunity_id in generated_ids]
                    ctx.add_metadata("enrichment", outcome.stats.to_dict())
                    if outcome.fallback_ids:
                        ctx.mark_partial()
            stats.from_generation = len(generated)
        elif uncached:
            reason = "generation disabled" if not options.use_ai else "no generation client"
            events.stage_skip("enrichment", reason)
            for c in uncached:
                records[c.opportunity_id] = make_fallback_record(c.opportunity_id)
        else:
            events.stage_skip("enrichment", "all candidates served from cache")

        stats.fallback = sum(1 for c in candidates if records[c.opportunity_id].is_fallback)

        # ===== Stage 5: Cache write-back =====
        if generated and cache_available:
            with StageContext(events, "cache_write") as ctx:
                written = await asyncio.to_thread(
                    safe_execute,
                    self.cache.store,
                    applicant.applicant_id,
                    applicant.profile_version,
                    [(records[c.opportunity_id], c.opportunity.updated_at) for c in generated],
                    operation_name="enrichment_cache.store",
                    fallback=None,
                    collector=errors,
                    stage="cache_write",
                )
                if written is None:
                    ctx.mark_partial()
                ctx.add_metadata("written", written or 0)
        elif generated:
            events.stage_skip("cache_write", "cache disabled or unavailable")

        # ===== Stage 6: Fusion & ranking =====
        with StageContext(events, "ranking") as ctx:
            rows = [
                build_ranked_result(c, records[c.opportunity_id], from_cache=c.opportunity_id in cached)
                for c in candidates
            ]
            result.results = rank(rows, sort_by=options.sort_by, limit=options.limit)
            result.total = len(rows)
            ctx.add_metadata("returned", len(result.results))

        served = stats.from_cache + stats.from_generation
        debug["cache_hit_rate"] = stats.from_cache / (served or 1)

        return self._finish(result, events, errors, debug, options, started)

    def run_sync(
        self,
        opportunities: Sequence[Opportunity],
        applicant: Applicant,
        options: Optional[PipelineOptions] = None,
        run_id: Optional[str] = None,
    ) -> PipelineResult:
        """Blocking wrapper around run() for scripts."""
        return run_async(self.run(opportunities, applicant, options, run_id=run_id))

    def _finish(
        self,
        result: PipelineResult,
        events,
        errors: ErrorCollector,
        debug: Dict[str, Any],
        options: PipelineOptions,
        started: float,
        skipped_from: Optional[str] = None,
    ) -> PipelineResult:
        if skipped_from is not None:
            stages = ["scoring", "cache_lookup", "enrichment", "cache_write", "ranking"]
            for stage in stages[stages.index(skipped_from):]:
                events.stage_skip(stage, "no opportunities left")

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        result.timings = events.get_timings()
        result.errors = [e.to_dict() for e in errors.errors]
        if options.include_debug:
            debug["processing_time_ms"] = elapsed_ms
            result.debug = debug

        status = "partial" if errors.has_errors() else "success"
        events.pipeline_complete(status=status, duration_ms=elapsed_ms, metadata=result.stats.to_dict())
        logger.bind(run_id=result.run_id).info(
            f"Pipeline complete in {elapsed_ms}ms: {len(result.results)}/{result.total} returned, "
            f"stats={result.stats.to_dict()}"
            + (f", {len(errors.errors)} degraded operation(s)" if errors.has_errors() else "")
        )
        return result
