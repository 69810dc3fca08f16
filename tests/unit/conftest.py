"""
Global fixtures for all unit tests.

This conftest provides:
- Environment isolation (no real MongoDB, no real API keys, no stage events)
- A scripted generation client that never touches the network
- A controllable UTC clock for cache expiry
- Sample applicant and opportunities

These fixtures apply to ALL tests in tests/unit/.
"""

import json
import os
import re
from datetime import date, datetime, timedelta, timezone

import pytest

# Set test environment BEFORE any imports so Config never sees real values
os.environ["MONGODB_URI"] = ""
os.environ["OPENAI_API_KEY"] = "sk-test-mock-key"
os.environ["EMIT_STAGE_EVENTS"] = "false"

from grant_discovery.common.repositories import (  # noqa: E402
    InMemoryEnrichmentCacheRepository,
    reset_enrichment_cache_repository,
)
from grant_discovery.common.retry_policy import RetryPolicy  # noqa: E402
from grant_discovery.common.types import (  # noqa: E402
    Applicant,
    EntityType,
    LocationConstraint,
    LocationKind,
    Opportunity,
)
from grant_discovery.layer3.generation_client import GenerationClient  # noqa: E402

TODAY = date(2025, 3, 1)
UPDATED_AT = datetime(2025, 2, 1, 12, 0, tzinfo=timezone.utc)

_ID_LINE = re.compile(r"^- ID: (.+)$", re.MULTILINE)


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """
    Isolate tests from real credentials and from the cache singleton.
    """
    monkeypatch.setenv("MONGODB_URI", "")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-mock-key")
    monkeypatch.setenv("EMIT_STAGE_EVENTS", "false")
    reset_enrichment_cache_repository()
    yield
    reset_enrichment_cache_repository()


# ===== Generation collaborator =====

def enrichment_payload(opportunity_id: str, score: int = 82, confidence: str = "high") -> dict:
    """One well-formed enrichment record as a model would emit it."""
    return {
        "opportunityId": opportunity_id,
        "matchScore": score,
        "confidence": confidence,
        "fitSummary": f"Strong fit for {opportunity_id}.",
        "reasons": ["Funds equipment purchases"],
        "concerns": ["Confirm matching-funds requirement"],
        "nextSteps": ["Register on the sponsor portal"],
        "whatYouCanFund": ["Irrigation upgrades"],
        "urgency": "medium",
    }


class FakeGenerationClient(GenerationClient):
    """
    Scripted GenerationClient.

    Each call consumes the next scripted item: a string is returned as-is,
    an exception instance is raised, a callable receives the prompt. When
    the script runs out, every ID in the prompt is answered with a
    well-formed record.
    """

    def __init__(self, script=None, score: int = 82, confidence: str = "high"):
        self.script = list(script or [])
        self.score = score
        self.confidence = confidence
        self.calls = []

    @staticmethod
    def ids_in(prompt: str):
        return [m.strip() for m in _ID_LINE.findall(prompt)]

    async def generate(self, prompt, system=None):
        self.calls.append(prompt)
        if self.script:
            item = self.script.pop(0)
            if isinstance(item, BaseException):
                raise item
            if callable(item):
                return item(prompt)
            return item
        return json.dumps(
            [enrichment_payload(oid, self.score, self.confidence) for oid in self.ids_in(prompt)]
        )


class FailingGenerationClient(GenerationClient):
    """Raises on every call."""

    def __init__(self, error: Exception = None):
        self.error = error or ConnectionError("generator unreachable")
        self.calls = 0

    async def generate(self, prompt, system=None):
        self.calls += 1
        raise self.error


@pytest.fixture
def fake_client():
    return FakeGenerationClient()


@pytest.fixture
def failing_client():
    return FailingGenerationClient()


@pytest.fixture
def sleeps():
    """Records every backoff delay instead of sleeping."""
    return []


@pytest.fixture
def fast_retry(sleeps):
    async def fake_sleep(delay):
        sleeps.append(delay)

    return RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=10.0, sleep=fake_sleep)


# ===== Clock & cache =====

class FakeClock:
    """Callable UTC clock that only moves when told to."""

    def __init__(self, now: datetime = None):
        self.now = now or datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_cache(clock):
    return InMemoryEnrichmentCacheRepository(ttl_days=7, clock=clock)


# ===== Sample data =====

def make_opportunity(opportunity_id: str = "g1", **overrides) -> Opportunity:
    """Opportunity with sensible defaults; override any field."""
    fields = dict(
        opportunity_id=opportunity_id,
        title="Rural Agriculture Equipment Grant",
        updated_at=UPDATED_AT,
        sponsor="USDA",
        summary="Supports small farms purchasing equipment.",
        categories=("Agriculture",),
        eligibility_tags=("Small Business",),
        locations=(LocationConstraint(LocationKind.NATIONAL),),
        funding_min=10_000,
        funding_max=40_000,
        deadline=date(2025, 4, 15),
        purpose_tags=("equipment",),
        quality_score=0.8,
        url=f"https://grants.example.gov/{opportunity_id}",
    )
    fields.update(overrides)
    return Opportunity(**fields)


@pytest.fixture
def applicant():
    return Applicant(
        applicant_id="user-1",
        entity_type=EntityType.SMALL_BUSINESS,
        region="NY",
        focus_tags=frozenset({"agriculture"}),
        budget_band="under_100k",
        size_preference="small",
        timeline_preference="immediate",
        goals=("equipment",),
        profile_version=3,
    )


@pytest.fixture
def neutral_applicant():
    """No region, no entity type, no tags, no preferences."""
    return Applicant(applicant_id="anon")


@pytest.fixture
def opportunities():
    return [
        make_opportunity("g1"),
        make_opportunity(
            "g2",
            title="Farm Technology Adoption Program",
            funding_min=5_000,
            funding_max=20_000,
            deadline=date(2025, 3, 20),
        ),
        make_opportunity(
            "g3",
            title="Community Arts Grant",
            categories=("Arts & Culture",),
            eligibility_tags=("Nonprofit",),
        ),
        make_opportunity(
            "g4",
            title="California Farm Fund",
            locations=(LocationConstraint(LocationKind.STATE, "CA"),),
        ),
    ]


@pytest.fixture
def make_opp():
    """Factory fixture: make_opp("g9", title=...)."""
    return make_opportunity


@pytest.fixture
def payload():
    """Factory fixture: payload("g1", score=70, confidence="medium")."""
    return enrichment_payload


@pytest.fixture
def scripted_client():
    """Factory fixture: scripted_client([...responses...], score=..., confidence=...)."""
    return FakeGenerationClient
