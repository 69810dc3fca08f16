"""
Configuration loader for the grant discovery pipeline.

Loads all settings from environment variables (.env file).
Validates required settings and provides type-safe access.
"""

import os
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


class Config:
    """
    Centralized configuration for all pipeline components.

    All values loaded from environment variables - NO SECRETS IN CODE.
    """

    # ===== MongoDB (enrichment cache store) =====
    MONGODB_URI: str = os.getenv("MONGODB_URI", "")
    ENRICHMENT_CACHE_DATABASE: str = os.getenv("ENRICHMENT_CACHE_DATABASE", "grant_discovery")
    ENRICHMENT_CACHE_COLLECTION: str = os.getenv("ENRICHMENT_CACHE_COLLECTION", "grant_match_cache")
    CACHE_TTL_DAYS: int = _env_int("CACHE_TTL_DAYS", 7)

    # ===== LLM APIs (generation collaborator) =====
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "")
    ENRICHMENT_MODEL: str = os.getenv("ENRICHMENT_MODEL", "gpt-4o-mini")
    ENRICHMENT_TEMPERATURE: float = _env_float("ENRICHMENT_TEMPERATURE", 0.3)

    # ===== Enrichment Fetcher =====
    ENRICHMENT_BATCH_SIZE: int = _env_int("ENRICHMENT_BATCH_SIZE", 30)
    ENRICHMENT_MAX_ATTEMPTS: int = _env_int("ENRICHMENT_MAX_ATTEMPTS", 3)
    ENRICHMENT_ATTEMPT_TIMEOUT_SECONDS: float = _env_float("ENRICHMENT_ATTEMPT_TIMEOUT_SECONDS", 60.0)
    # Grants whose minimum award exceeds this are institutional; never sent for enrichment
    ENRICHMENT_FUNDING_FLOOR: float = _env_float("ENRICHMENT_FUNDING_FLOOR", 5_000_000)

    # ===== Pipeline defaults =====
    DEFAULT_RESULT_LIMIT: int = _env_int("DEFAULT_RESULT_LIMIT", 20)
    DEFAULT_MIN_SCORE: int = _env_int("DEFAULT_MIN_SCORE", 30)
    MAX_ENRICHMENT_CANDIDATES: int = _env_int("MAX_ENRICHMENT_CANDIDATES", 50)

    # ===== Observability =====
    # Emit JSON-line stage events on stdout (runner/worker deployments)
    EMIT_STAGE_EVENTS: bool = os.getenv("EMIT_STAGE_EVENTS", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "simple")

    @classmethod
    def validate(cls) -> None:
        """
        Validate that all required configuration is present.
        Raises ValueError if critical settings are missing or out of range.
        """
        required_settings = {
            "OPENAI_API_KEY": cls.OPENAI_API_KEY,
        }

        missing = [name for name, value in required_settings.items() if not value]

        if missing:
            raise ValueError(
                f"Missing required configuration: {', '.join(missing)}. "
                f"Please check your .env file."
            )

        if cls.ENRICHMENT_BATCH_SIZE < 1:
            raise ValueError("ENRICHMENT_BATCH_SIZE must be at least 1")
        if cls.ENRICHMENT_MAX_ATTEMPTS < 1:
            raise ValueError("ENRICHMENT_MAX_ATTEMPTS must be at least 1")
        if cls.CACHE_TTL_DAYS < 1:
            raise ValueError("CACHE_TTL_DAYS must be at least 1")

    @classmethod
    def get_llm_api_key(cls) -> str:
        """Get the API key for enrichment LLM calls."""
        return cls.OPENAI_API_KEY

    @classmethod
    def get_llm_base_url(cls) -> Optional[str]:
        """Enrichment LLM base URL (None to use OpenAI directly)."""
        return cls.OPENAI_BASE_URL or None

    @classmethod
    def use_mongodb_cache(cls) -> bool:
        """Whether the enrichment cache should be backed by MongoDB."""
        return bool(cls.MONGODB_URI)

    @classmethod
    def summary(cls) -> str:
        """Return a summary of the current configuration (safe for logging)."""
        return f"""
Configuration Summary:
  Enrichment cache: {'MongoDB ✓' if cls.MONGODB_URI else 'In-memory'} (TTL {cls.CACHE_TTL_DAYS}d)
  LLM (enrichment): OpenAI {'✓' if cls.get_llm_api_key() else '✗ Missing'} model={cls.ENRICHMENT_MODEL}
  Enrichment batches: size={cls.ENRICHMENT_BATCH_SIZE} attempts={cls.ENRICHMENT_MAX_ATTEMPTS} timeout={cls.ENRICHMENT_ATTEMPT_TIMEOUT_SECONDS}s
  Defaults: limit={cls.DEFAULT_RESULT_LIMIT} min_score={cls.DEFAULT_MIN_SCORE} candidates={cls.MAX_ENRICHMENT_CANDIDATES}
  Stage events: {'Enabled' if cls.EMIT_STAGE_EVENTS else 'Disabled'}
        """.strip()
