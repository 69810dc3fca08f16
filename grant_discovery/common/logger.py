"""
Logging for the grant discovery pipeline.

Modules log through a PipelineLogger bound to their pipeline stage:

    logger = get_logger(__name__, stage="scoring")
    log = logger.bind(run_id=run_id)
    log.info("Scored 12 opportunities")
    # 2025-03-01 12:00:00 [INFO] grant_discovery.layer2...: [run:1a2b3c4d] [scoring] Scored 12 opportunities

Every record also carries `run_id` and `stage` attributes, which the JSON
format emits as separate fields so a log aggregator can filter one run or
one stage.
"""

import json
import logging
import sys
from typing import Any, Dict, MutableMapping, Optional, Tuple

from grant_discovery.common.config import Config

RUN_ID_PREFIX_CHARS = 8


class PipelineLogger(logging.LoggerAdapter):
    """
    Adapter that tags messages with the run and stage they belong to.

    The context travels both as a `[run:xxxxxxxx] [stage]` message prefix and
    as `run_id` / `stage` record attributes.
    """

    def __init__(self, logger: logging.Logger, run_id: Optional[str] = None, stage: Optional[str] = None):
        super().__init__(logger, {"run_id": run_id, "stage": stage})

    @property
    def run_id(self) -> Optional[str]:
        return self.extra["run_id"]

    @property
    def stage(self) -> Optional[str]:
        return self.extra["stage"]

    def bind(self, run_id: Optional[str] = None, stage: Optional[str] = None) -> "PipelineLogger":
        """Same underlying logger, new run and/or stage context."""
        return PipelineLogger(
            self.logger,
            run_id=run_id if run_id is not None else self.run_id,
            stage=stage if stage is not None else self.stage,
        )

    def prefix(self) -> str:
        parts = []
        if self.run_id:
            parts.append(f"[run:{self.run_id[:RUN_ID_PREFIX_CHARS]}]")
        if self.stage:
            parts.append(f"[{self.stage}]")
        return " ".join(parts)

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        prefix = self.prefix()
        return (f"{prefix} {msg}" if prefix else msg), kwargs


class _ContextDefaults(logging.Filter):
    """Give records from non-pipeline loggers empty run_id/stage attributes."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "run_id"):
            record.run_id = None
        if not hasattr(record, "stage"):
            record.stage = None
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        data: Dict[str, Any] = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "name": record.name,
            "run_id": getattr(record, "run_id", None),
            "stage": getattr(record, "stage", None),
            "message": record.getMessage(),
        }
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


def setup_logging(level: Optional[str] = None, format: Optional[str] = None, debug: bool = False) -> None:
    """
    Configure the root logger on stdout.

    Args:
        level: Log level name (defaults to Config.LOG_LEVEL)
        format: "simple" or "json" (defaults to Config.LOG_FORMAT)
        debug: Force DEBUG regardless of level
    """
    level = "DEBUG" if debug else (level or Config.LOG_LEVEL)
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(_ContextDefaults())

    if (format or Config.LOG_FORMAT) == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))

    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)


def get_logger(name: str, run_id: Optional[str] = None, stage: Optional[str] = None) -> PipelineLogger:
    """PipelineLogger for `name` (usually __name__), tagged with a stage and optional run."""
    return PipelineLogger(logging.getLogger(name), run_id=run_id, stage=stage)
