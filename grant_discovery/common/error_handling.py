"""
Centralized error handling for the grant discovery pipeline.

Nothing downstream of the caller boundary is fatal: collaborator failures are
absorbed, logged with stage context, and recorded here so the caller can see
what degraded. Only invocation misuse surfaces as an exception.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, TypeVar

T = TypeVar("T")


class NormalizationError(ValueError):
    """Raised when an upstream record cannot be mapped to a canonical type."""

    def __init__(self, message: str, record_id: Optional[str] = None):
        self.record_id = record_id
        super().__init__(message)


class PipelineInputError(ValueError):
    """Raised for invocation-level misuse (bad limit, unknown sort order, ...)."""


class TransientGenerationError(Exception):
    """A retryable failure from the generation collaborator (empty/unparsable output)."""


@dataclass
class PipelineError:
    """
    Structured error information for absorbed pipeline failures.
    """

    stage: str  # e.g., "cache_lookup", "enrichment"
    operation: str  # e.g., "enrichment_cache.lookup"
    severity: str  # "critical", "high", "medium", "low"
    message: str
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    recoverable: bool = True
    exception_type: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "stage": self.stage,
            "operation": self.operation,
            "severity": self.severity,
            "message": self.message,
            "timestamp": self.timestamp,
            "recoverable": self.recoverable,
            "exception_type": self.exception_type,
        }


class ErrorCollector:
    """
    Collects errors during a pipeline run.
    """

    def __init__(self):
        self.errors: List[PipelineError] = []

    def add(self, error: PipelineError) -> None:
        """Add an error to the collection."""
        self.errors.append(error)

    def add_error(
        self,
        stage: str,
        operation: str,
        message: str,
        severity: str = "medium",
        recoverable: bool = True,
        exception: Optional[BaseException] = None,
    ) -> None:
        """Convenience method to add an error with parameters."""
        self.errors.append(
            PipelineError(
                stage=stage,
                operation=operation,
                message=message,
                severity=severity,
                recoverable=recoverable,
                exception_type=type(exception).__name__ if exception else None,
            )
        )

    def has_errors(self) -> bool:
        return bool(self.errors)

    def get_error_messages(self) -> List[str]:
        return [e.message for e in self.errors]

    def summary(self) -> dict:
        """Get error summary statistics."""
        by_severity = {"critical": 0, "high": 0, "medium": 0, "low": 0}
        for error in self.errors:
            if error.severity in by_severity:
                by_severity[error.severity] += 1
        return {
            "total": len(self.errors),
            "by_severity": by_severity,
            "recoverable": sum(1 for e in self.errors if e.recoverable),
            "non_recoverable": sum(1 for e in self.errors if not e.recoverable),
        }


def safe_execute(
    func: Callable[..., T],
    *args,
    operation_name: str = "operation",
    logger: Optional[logging.Logger] = None,
    fallback: T = None,
    critical: bool = False,
    collector: Optional[ErrorCollector] = None,
    stage: str = "unknown",
    **kwargs,
) -> T:
    """
    Execute a function safely with error handling and logging.

    Args:
        func: Function to execute
        *args: Positional arguments for func
        operation_name: Name for logging
        logger: Logger instance (uses module logger if None)
        fallback: Value to return on failure
        critical: If True, log at ERROR level with traceback
        collector: Optional ErrorCollector that records the failure
        stage: Stage name recorded with the failure
        **kwargs: Keyword arguments for func

    Returns:
        Function result or fallback value on error

    Usage:
        records = safe_execute(
            cache.lookup,
            applicant_id, ids, version,
            operation_name="enrichment_cache.lookup",
            fallback={},
            collector=errors,
            stage="cache_lookup",
        )
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    try:
        return func(*args, **kwargs)
    except Exception as e:
        log_level = logging.ERROR if critical else logging.WARNING
        logger.log(
            log_level,
            f"[{stage}] [{operation_name}] Failed: {e}",
            exc_info=critical,
        )
        if collector is not None:
            collector.add_error(
                stage=stage,
                operation=operation_name,
                message=f"{operation_name} failed: {e}",
                severity="high" if critical else "medium",
                exception=e,
            )
        return fallback
