"""
Structured JSON logger for discovery pipeline stages.

Emits JSON-formatted events for:
- Stage start/complete/skip/error tracking
- Pipeline start/complete with summary counts

and keeps the per-stage durations so they can be returned to the caller as
the `timings` block of a pipeline result.

Usage:
    events = StructuredLogger(run_id="abc123", enabled=False)
    with StageContext(events, "scoring") as ctx:
        # ... do work ...
        ctx.add_metadata("scored", 42)
    events.get_timings()  # [{"stage": "scoring", "duration_ms": 3}]
"""

import json
import sys
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class EventType(str, Enum):
    """Standard pipeline event types."""
    STAGE_START = "stage_start"
    STAGE_COMPLETE = "stage_complete"
    STAGE_ERROR = "stage_error"
    STAGE_SKIP = "stage_skip"
    PIPELINE_START = "pipeline_start"
    PIPELINE_COMPLETE = "pipeline_complete"


class StageStatus(str, Enum):
    """Stage execution status."""
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"
    PARTIAL = "partial"


@dataclass
class LogEvent:
    """Structured log event with all optional fields."""
    timestamp: str
    event: str
    run_id: str
    stage: Optional[str] = None
    status: Optional[str] = None
    duration_ms: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def to_json(self) -> str:
        """Convert to JSON string, excluding None values."""
        data = {k: v for k, v in asdict(self).items() if v is not None}
        return json.dumps(data, default=str)


class StructuredLogger:
    """
    Structured JSON logger for pipeline stage events.

    Emits JSON lines to stdout when enabled; always records stage timings.
    """

    def __init__(self, run_id: str, enabled: bool = True):
        """
        Initialize structured logger.

        Args:
            run_id: Run ID for correlation
            enabled: Whether to emit events (timings are recorded regardless)
        """
        self.run_id = run_id
        self.enabled = enabled
        self._stage_start_times: Dict[str, float] = {}
        self._timings: List[Dict[str, Any]] = []

    def _emit(self, event: LogEvent) -> None:
        """Emit a log event as JSON line."""
        if self.enabled:
            print(event.to_json(), file=sys.stdout, flush=True)

    def _now(self) -> str:
        """Get current UTC timestamp in ISO format."""
        return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    def _elapsed_ms(self, stage: str) -> Optional[int]:
        started = self._stage_start_times.pop(stage, None)
        if started is None:
            return None
        return int((time.perf_counter() - started) * 1000)

    def emit(
        self,
        event: str,
        stage: Optional[str] = None,
        status: Optional[str] = None,
        duration_ms: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        """Emit a custom log event."""
        self._emit(
            LogEvent(
                timestamp=self._now(),
                event=event,
                run_id=self.run_id,
                stage=stage,
                status=status,
                duration_ms=duration_ms,
                metadata=metadata,
                error=error,
            )
        )

    # ===== Convenience Methods =====

    def stage_start(self, stage: str) -> None:
        """Log stage execution start."""
        self._stage_start_times[stage] = time.perf_counter()
        self.emit(event=EventType.STAGE_START.value, stage=stage)

    def stage_complete(
        self,
        stage: str,
        duration_ms: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        status: StageStatus = StageStatus.SUCCESS,
    ) -> None:
        """
        Log stage execution complete and record its timing.

        Args:
            stage: Stage name
            duration_ms: Duration (auto-calculated if stage_start was called)
            metadata: Additional metadata (e.g., counts)
            status: SUCCESS, or PARTIAL when the stage degraded to fallbacks
        """
        if duration_ms is None:
            duration_ms = self._elapsed_ms(stage)
        if duration_ms is not None:
            self._timings.append({"stage": stage, "duration_ms": duration_ms})

        self.emit(
            event=EventType.STAGE_COMPLETE.value,
            stage=stage,
            status=status.value,
            duration_ms=duration_ms,
            metadata=metadata,
        )

    def stage_error(
        self,
        stage: str,
        error: str,
        duration_ms: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log stage execution error."""
        if duration_ms is None:
            duration_ms = self._elapsed_ms(stage)
        if duration_ms is not None:
            self._timings.append({"stage": stage, "duration_ms": duration_ms})

        self.emit(
            event=EventType.STAGE_ERROR.value,
            stage=stage,
            status=StageStatus.ERROR.value,
            duration_ms=duration_ms,
            error=error,
            metadata=metadata,
        )

    def stage_skip(self, stage: str, reason: str) -> None:
        """Log stage skipped."""
        self.emit(
            event=EventType.STAGE_SKIP.value,
            stage=stage,
            status=StageStatus.SKIPPED.value,
            metadata={"reason": reason},
        )

    def pipeline_start(self, metadata: Optional[Dict[str, Any]] = None) -> None:
        """Log pipeline execution start."""
        self.emit(event=EventType.PIPELINE_START.value, metadata=metadata)

    def pipeline_complete(
        self,
        status: str = "success",
        duration_ms: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log pipeline execution complete."""
        self.emit(
            event=EventType.PIPELINE_COMPLETE.value,
            status=status,
            duration_ms=duration_ms,
            metadata=metadata,
        )

    def get_timings(self) -> List[Dict[str, Any]]:
        """Completed stage timings in execution order."""
        return list(self._timings)


# ===== Context Manager for Stage Timing =====

class StageContext:
    """
    Context manager for automatic stage timing.

    Usage:
        with StageContext(events, "eligibility") as ctx:
            # ... do work ...
            ctx.add_metadata("eligible", 12)
    """

    def __init__(self, logger: StructuredLogger, stage: str):
        self.logger = logger
        self.stage = stage
        self.metadata: Dict[str, Any] = {}
        self.status = StageStatus.SUCCESS

    def __enter__(self) -> "StageContext":
        self.logger.stage_start(self.stage)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is not None:
            self.logger.stage_error(
                self.stage,
                str(exc_val),
                metadata=self.metadata if self.metadata else None,
            )
            return False  # Re-raise exception

        self.logger.stage_complete(
            self.stage,
            metadata=self.metadata if self.metadata else None,
            status=self.status,
        )
        return False

    def add_metadata(self, key: str, value: Any) -> None:
        """Add metadata to be included in completion event."""
        self.metadata[key] = value

    def mark_partial(self) -> None:
        """Flag the stage as degraded (some work fell back)."""
        self.status = StageStatus.PARTIAL


def get_structured_logger(run_id: str, enabled: bool = True) -> StructuredLogger:
    """
    Get a structured logger instance.

    Args:
        run_id: Run ID for event correlation
        enabled: Whether to emit events

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(run_id, enabled)
