"""
Unit tests for grant_discovery/common/error_handling.py
"""

from unittest.mock import MagicMock

from grant_discovery.common.error_handling import (
    ErrorCollector,
    NormalizationError,
    PipelineError,
    safe_execute,
)


class TestSafeExecute:
    """Tests for safe_execute."""

    def test_returns_result(self):
        assert safe_execute(lambda a, b: a + b, 2, 3, operation_name="add") == 5

    def test_returns_fallback_on_error(self):
        def boom():
            raise ConnectionError("unreachable")

        assert safe_execute(boom, operation_name="boom", fallback={}) == {}

    def test_records_in_collector(self):
        collector = ErrorCollector()

        def boom(*_):
            raise ConnectionError("unreachable")

        safe_execute(boom, "user-1", operation_name="enrichment_cache.lookup", collector=collector, stage="cache_lookup")

        assert len(collector.errors) == 1
        error = collector.errors[0]
        assert error.stage == "cache_lookup"
        assert error.operation == "enrichment_cache.lookup"
        assert error.exception_type == "ConnectionError"
        assert "unreachable" in error.message

    def test_critical_logs_at_error(self):
        logger = MagicMock()

        def boom():
            raise RuntimeError("x")

        safe_execute(boom, logger=logger, critical=True)

        level = logger.log.call_args[0][0]
        assert level == 40


class TestErrorCollector:
    def test_summary(self):
        collector = ErrorCollector()
        collector.add_error("enrichment", "fetch", "a", severity="high")
        collector.add_error("cache_write", "store", "b", recoverable=False)
        collector.add(PipelineError(stage="x", operation="y", severity="low", message="c"))

        summary = collector.summary()

        assert summary["total"] == 3
        assert summary["by_severity"] == {"critical": 0, "high": 1, "medium": 1, "low": 1}
        assert summary["non_recoverable"] == 1
        assert collector.get_error_messages() == ["a", "b", "c"]

    def test_to_dict(self):
        error = PipelineError(stage="enrichment", operation="fetch", severity="medium", message="m")
        data = error.to_dict()
        assert data["stage"] == "enrichment"
        assert data["recoverable"] is True
        assert "timestamp" in data


def test_normalization_error_carries_record_id():
    error = NormalizationError("bad record", "g7")
    assert error.record_id == "g7"
    assert isinstance(error, ValueError)
