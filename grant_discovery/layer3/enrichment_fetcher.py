"""
Layer 3: Enrichment Fetcher

Requests generated match explanations for opportunities the cache could not
serve. Opportunities are pre-filtered, split into sequential batches (one
outstanding request at a time) and each batch is a single structured call to
the generation collaborator, retried under a RetryPolicy.

Every requested opportunity comes back with a record. Anything that cannot
be generated (pre-filtered, invalid, missing, retries exhausted, run
deadline reached) gets the low-confidence fallback record. Collaborator
failures never propagate out of fetch().
"""

import asyncio
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from grant_discovery.common.config import Config
from grant_discovery.common.error_handling import ErrorCollector, TransientGenerationError
from grant_discovery.common.json_utils import parse_llm_json_list
from grant_discovery.common.logger import get_logger
from grant_discovery.common.retry_policy import RetryPolicy
from grant_discovery.common.taxonomy import DEFAULT_LEXICON, Lexicon
from grant_discovery.common.types import Applicant, Opportunity, ScoredOpportunity
from grant_discovery.layer3.generation_client import GenerationClient
from grant_discovery.layer3.prompts import SYSTEM_PROMPT, build_enrichment_prompt
from grant_discovery.layer3.schemas import EnrichmentRecord, make_fallback_record

logger = get_logger(__name__, stage="enrichment")


class DeadlineExceeded(Exception):
    """The run-scoped deadline passed before a batch could complete."""


@dataclass
class EnrichmentStats:
    requested: int = 0
    prefiltered: int = 0
    batches: int = 0
    failed_batches: int = 0
    generated: int = 0
    fallback: int = 0
    invalid_records: int = 0
    missing_records: int = 0
    deadline_exceeded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class EnrichmentOutcome:
    """Records for every requested opportunity, partitioned by provenance."""
    records: Dict[str, EnrichmentRecord] = field(default_factory=dict)
    generated_ids: List[str] = field(default_factory=list)
    fallback_ids: List[str] = field(default_factory=list)
    prefiltered_ids: List[str] = field(default_factory=list)
    stats: EnrichmentStats = field(default_factory=EnrichmentStats)

    def generated_records(self) -> List[EnrichmentRecord]:
        return [self.records[oid] for oid in self.generated_ids]


def _as_opportunity(item: Any) -> Opportunity:
    return item.opportunity if isinstance(item, ScoredOpportunity) else item


class EnrichmentFetcher:
    """
    Batch enrichment against a GenerationClient.

    Usage:
        fetcher = EnrichmentFetcher(LangChainGenerationClient())
        outcome = await fetcher.fetch(applicant, scored, deadline=time.monotonic() + 30)
    """

    def __init__(
        self,
        client: GenerationClient,
        lexicon: Lexicon = DEFAULT_LEXICON,
        retry_policy: Optional[RetryPolicy] = None,
        batch_size: Optional[int] = None,
        attempt_timeout: Optional[float] = None,
        funding_floor: Optional[float] = None,
        prefilter: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            client: Generation collaborator
            lexicon: Shared lexicon (reject keywords, labels)
            retry_policy: Defaults to Config.ENRICHMENT_MAX_ATTEMPTS with exponential backoff
            batch_size: Opportunities per call (default Config.ENRICHMENT_BATCH_SIZE)
            attempt_timeout: Seconds allowed per attempt
            funding_floor: Minimum award above which an opportunity is not enriched
            prefilter: Disable to send every opportunity to the generator
            clock: Monotonic clock, shared with the run deadline
        """
        self.client = client
        self.lexicon = lexicon
        self.clock = clock
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=Config.ENRICHMENT_MAX_ATTEMPTS,
            clock=clock,
        )
        self.batch_size = batch_size or Config.ENRICHMENT_BATCH_SIZE
        self.attempt_timeout = attempt_timeout or Config.ENRICHMENT_ATTEMPT_TIMEOUT_SECONDS
        self.funding_floor = funding_floor if funding_floor is not None else Config.ENRICHMENT_FUNDING_FLOOR
        self.prefilter_enabled = prefilter

        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")

    # ===== Pre-filter =====

    def is_enrichable(self, opportunity: Opportunity) -> bool:
        """False for institutional programs: reject keywords or a minimum award above the floor."""
        text = f"{opportunity.title} {opportunity.sponsor} {opportunity.summary}".lower()
        if any(term in text for term in self.lexicon.reject_keywords):
            return False
        if opportunity.funding_min and opportunity.funding_min > self.funding_floor:
            return False
        return True

    def prefilter(self, opportunities: Sequence[Opportunity]) -> Tuple[List[Opportunity], List[Opportunity]]:
        """Split into (kept, rejected)."""
        if not self.prefilter_enabled:
            return list(opportunities), []
        kept, rejected = [], []
        for opp in opportunities:
            (kept if self.is_enrichable(opp) else rejected).append(opp)
        return kept, rejected

    # ===== Fetch =====

    async def fetch(
        self,
        applicant: Applicant,
        scored: Sequence[Any],
        deadline: Optional[float] = None,
        errors: Optional[ErrorCollector] = None,
        run_id: Optional[str] = None,
    ) -> EnrichmentOutcome:
        """
        Enrich opportunities for one applicant.

        Args:
            applicant: Applicant snapshot
            scored: ScoredOpportunity (or bare Opportunity) items to enrich
            deadline: Monotonic instant after which outstanding work falls back
            errors: Collector for absorbed failures
            run_id: Run identifier for log correlation

        Returns:
            EnrichmentOutcome with exactly one record per input opportunity
        """
        log = logger.bind(run_id=run_id)
        opportunities = [_as_opportunity(item) for item in scored]
        outcome = EnrichmentOutcome()
        outcome.stats.requested = len(opportunities)

        kept, rejected = self.prefilter(opportunities)
        for opp in rejected:
            self._fallback(outcome, opp.opportunity_id)
            outcome.prefiltered_ids.append(opp.opportunity_id)
        outcome.stats.prefiltered = len(rejected)
        if rejected:
            log.info(f"Pre-filtered {len(rejected)} institutional opportunity(ies)")

        batches = [kept[i:i + self.batch_size] for i in range(0, len(kept), self.batch_size)]

        for index, batch in enumerate(batches, start=1):
            if outcome.stats.deadline_exceeded or (deadline is not None and self.clock() >= deadline):
                outcome.stats.deadline_exceeded = True
                for opp in batch:
                    self._fallback(outcome, opp.opportunity_id)
                continue

            outcome.stats.batches += 1
            try:
                items = await self.retry_policy.call(
                    self._attempt,
                    build_enrichment_prompt(applicant, batch, self.lexicon),
                    deadline,
                    deadline=deadline,
                    operation=f"enrichment batch {index}/{len(batches)}",
                )
            except DeadlineExceeded:
                log.warning(f"Run deadline reached during batch {index}; falling back for the rest")
                outcome.stats.deadline_exceeded = True
                outcome.stats.failed_batches += 1
                self._record_error(errors, "Run deadline reached during enrichment", severity="low")
                for opp in batch:
                    self._fallback(outcome, opp.opportunity_id)
                continue
            except Exception as e:
                log.error(f"Batch {index} failed after retries ({type(e).__name__}: {e}); using fallbacks")
                outcome.stats.failed_batches += 1
                if deadline is not None and self.clock() >= deadline:
                    outcome.stats.deadline_exceeded = True
                self._record_error(errors, f"Enrichment batch failed: {e}", exception=e)
                for opp in batch:
                    self._fallback(outcome, opp.opportunity_id)
                continue

            self._assemble(outcome, batch, items)

        log.info(
            f"Enrichment complete: {len(outcome.generated_ids)} generated, "
            f"{len(outcome.fallback_ids)} fallback ({outcome.stats.batches} batch(es))"
        )
        return outcome

    async def _attempt(self, prompt: str, deadline: Optional[float]) -> List[Dict[str, Any]]:
        """One generation call; raises TransientGenerationError on retryable failure."""
        timeout = self.attempt_timeout
        if deadline is not None:
            remaining = deadline - self.clock()
            if remaining <= 0:
                raise DeadlineExceeded()
            timeout = min(timeout, remaining)

        try:
            text = await asyncio.wait_for(self.client.generate(prompt, SYSTEM_PROMPT), timeout=timeout)
        except asyncio.TimeoutError:
            if deadline is not None and self.clock() >= deadline:
                raise DeadlineExceeded()
            raise
        except Exception as e:
            raise TransientGenerationError(f"Generation client error: {e}") from e

        if not text or not text.strip():
            raise TransientGenerationError("Empty response from generator")

        try:
            items = parse_llm_json_list(text)
        except ValueError as e:
            raise TransientGenerationError(f"Unparsable generator output: {e}") from e

        if not items:
            raise TransientGenerationError("Generator returned no records")
        return items

    def _assemble(
        self,
        outcome: EnrichmentOutcome,
        batch: Sequence[Opportunity],
        items: List[Dict[str, Any]],
    ) -> None:
        """Validate records, keep the first valid one per requested id, fall back for the rest."""
        wanted = {opp.opportunity_id for opp in batch}
        valid: Dict[str, EnrichmentRecord] = {}

        for item in items:
            # Only the fetcher marks fallbacks
            item = {k: v for k, v in item.items() if k not in ("is_fallback", "isFallback")}
            try:
                record = EnrichmentRecord.model_validate(item)
            except ValidationError as e:
                outcome.stats.invalid_records += 1
                logger.debug(f"Dropping invalid enrichment record: {e.error_count()} error(s)")
                continue
            except (TypeError, ValueError, OverflowError) as e:
                outcome.stats.invalid_records += 1
                logger.debug(f"Dropping invalid enrichment record: {type(e).__name__}: {e}")
                continue
            if record.opportunity_id in wanted and record.opportunity_id not in valid:
                valid[record.opportunity_id] = record

        for opp in batch:
            record = valid.get(opp.opportunity_id)
            if record is None:
                outcome.stats.missing_records += 1
                self._fallback(outcome, opp.opportunity_id)
            else:
                outcome.records[opp.opportunity_id] = record
                outcome.generated_ids.append(opp.opportunity_id)
                outcome.stats.generated += 1

    def _fallback(self, outcome: EnrichmentOutcome, opportunity_id: str) -> None:
        outcome.records[opportunity_id] = make_fallback_record(opportunity_id)
        outcome.fallback_ids.append(opportunity_id)
        outcome.stats.fallback += 1

    @staticmethod
    def _record_error(
        errors: Optional[ErrorCollector],
        message: str,
        severity: str = "medium",
        exception: Optional[BaseException] = None,
    ) -> None:
        if errors is not None:
            errors.add_error(
                stage="enrichment",
                operation="enrichment_fetcher.fetch",
                message=message,
                severity=severity,
                exception=exception,
            )
