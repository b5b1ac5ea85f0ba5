"""Tests for error classification and recovery."""

import pytest

from seo_compliance_optimizer.error_handler import (
    FALLBACK_CHAINS,
    MAX_BACKOFF_SECONDS,
    RECOVERY_STRATEGIES,
    ErrorCategory,
    ErrorHandler,
    calculate_backoff_delay,
    classify_error,
)
from seo_compliance_optimizer.errors import CorrectionServiceError


class TestClassification:
    """Tests for rule-based error classification."""

    @pytest.mark.parametrize("message,category", [
        ("Fatal error in parser", ErrorCategory.CRITICAL),
        ("Content corrupted during save", ErrorCategory.CRITICAL),
        ("Request timeout after 60s", ErrorCategory.RECOVERABLE),
        ("Rate limit exceeded", ErrorCategory.RECOVERABLE),
        ("Partial results returned", ErrorCategory.DEGRADED),
        ("Notice: cache warmed", ErrorCategory.INFORMATIONAL),
        ("Something odd happened", ErrorCategory.RECOVERABLE),
    ])
    def test_classify(self, message, category):
        """Test message classification."""
        assert classify_error(message) is category

    def test_first_rule_wins(self):
        """Test that earlier rules take precedence."""
        assert classify_error("Fatal network timeout") is ErrorCategory.CRITICAL


class TestBackoff:
    """Tests for backoff delay calculation."""

    def test_exponential(self):
        """Test exponential growth per attempt."""
        assert [calculate_backoff_delay(n, 2.0) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_capped(self):
        """Test that delays never exceed the cap."""
        assert calculate_backoff_delay(20, 2.0) == MAX_BACKOFF_SECONDS

    def test_monotonic(self):
        """Test that delays never decrease."""
        delays = [calculate_backoff_delay(n, 1.5) for n in range(1, 15)]
        assert delays == sorted(delays)


class TestHandleErrorWithRecovery:
    """Tests for ErrorHandler.handle_error_with_recovery."""

    def test_retry_with_step(self):
        """Test that a recoverable failure yields a retry decision."""
        decision = ErrorHandler().handle_error_with_recovery(
            "network_error", "ai_correction", "connection reset", attempt=1
        )

        assert decision.action == "retry"
        assert decision.next_step == "retry"
        assert decision.backoff_delay == 1.0
        assert decision.attempt_number == 2

    def test_max_attempts(self):
        """Test that the strategy cap stops retries."""
        cap = RECOVERY_STRATEGIES["ai_provider_failure"].max_attempts
        decision = ErrorHandler().handle_error_with_recovery(
            "ai_provider_failure", "ai_correction", "provider down", attempt=cap
        )

        assert decision.action == "max_attempts_reached"
        assert decision.fallback == FALLBACK_CHAINS["ai_correction"]

    def test_critical_aborts(self):
        """Test that critical failures abort immediately."""
        decision = ErrorHandler().handle_error_with_recovery(
            "ai_provider_failure", "ai_correction", "fatal crash", attempt=1
        )
        assert decision.action == "abort"
        assert decision.category is ErrorCategory.CRITICAL

    def test_unknown_error_type_falls_back(self):
        """Test that error types without a strategy use the fallback chain."""
        decision = ErrorHandler().handle_error_with_recovery(
            "mystery", "something_else", "odd failure"
        )

        assert decision.action == "fallback"
        assert decision.fallback.steps() == [
            "default_operation", "return_original", "skip_operation", "log_and_continue",
        ]

    def test_manual_override(self):
        """Test that manual overrides pre-empt the strategy table."""
        handler = ErrorHandler()
        handler.set_manual_override("ai_correction", "network_error", "skip")

        decision = handler.handle_error_with_recovery("network_error", "ai_correction", "timeout")

        assert decision.action == "manual_override"
        assert decision.next_step == "skip"

        handler.clear_manual_override("ai_correction", "network_error")
        assert handler.handle_error_with_recovery(
            "network_error", "ai_correction", "timeout"
        ).action == "retry"


class TestExecuteWithRecovery:
    """Tests for ErrorHandler.execute_with_recovery."""

    def test_succeeds_after_retries(self, error_handler):
        """Test that a flaky operation succeeds within the cap."""
        calls = []

        def operation(attempt):
            calls.append(attempt)
            if attempt < 3:
                raise CorrectionServiceError("temporary outage")
            return "ok"

        outcome = error_handler.execute_with_recovery(operation, "ai_provider_failure", "ai_correction")

        assert outcome.success is True
        assert outcome.value == "ok"
        assert outcome.attempts == 3
        assert calls == [1, 2, 3]
        assert error_handler.delays == [1.0, 2.0]

    def test_bounded_attempts(self, error_handler):
        """Test that a permanently failing operation stops at the cap."""
        calls = []

        def operation(attempt):
            calls.append(attempt)
            raise CorrectionServiceError("provider unavailable")

        outcome = error_handler.execute_with_recovery(operation, "ai_provider_failure", "ai_correction")

        assert outcome.success is False
        assert outcome.attempts == 3
        assert len(calls) == 3
        assert outcome.fallback_applied is True
        assert outcome.error == "provider unavailable"

    def test_caller_cap(self, error_handler):
        """Test that max_attempts lowers the strategy cap."""
        calls = []

        def operation(attempt):
            calls.append(attempt)
            raise CorrectionServiceError("provider unavailable")

        error_handler.execute_with_recovery(
            operation, "ai_provider_failure", "ai_correction", max_attempts=1
        )

        assert calls == [1]
        assert error_handler.delays == []

    def test_exception_error_type_overrides(self, error_handler):
        """Test that an exception's error_type selects the strategy."""
        def operation(attempt):
            raise CorrectionServiceError("slow down", "rate_limit_exceeded")

        error_handler.execute_with_recovery(operation, "ai_provider_failure", "ai_correction")

        assert error_handler.error_log[0]["context"]["error_type"] == "rate_limit_exceeded"

    def test_critical_stops_immediately(self, error_handler):
        """Test that critical failures are not retried."""
        calls = []

        def operation(attempt):
            calls.append(attempt)
            raise RuntimeError("fatal: cannot continue")

        outcome = error_handler.execute_with_recovery(operation, "ai_provider_failure", "ai_correction")

        assert calls == [1]
        assert outcome.category is ErrorCategory.CRITICAL


class TestGracefulDegradation:
    """Tests for partial-result degradation."""

    @pytest.mark.parametrize("successes,failures,level", [
        (7, 3, "minor"),
        (2, 3, "moderate"),
        (1, 4, "severe"),
    ])
    def test_levels(self, successes, failures, level):
        """Test degradation level thresholds."""
        result = ErrorHandler().apply_graceful_degradation(
            "ai_correction", ["ok"] * successes, ["bad"] * failures
        )

        assert result.degraded is True
        assert result.degradation_level == level

    def test_success_rate(self):
        """Test the reported success rate."""
        result = ErrorHandler().apply_graceful_degradation("ai_correction", ["ok"] * 7, ["bad"] * 3)
        assert result.success_rate == 70.0

    def test_unavailable_for_unknown_component(self):
        """Test that components without a chain cannot degrade."""
        result = ErrorHandler().apply_graceful_degradation("other", ["ok"], ["bad"])
        assert result.degraded is False
        assert result.success is False


class TestErrorStats:
    """Tests for error statistics."""

    def test_counts(self):
        """Test counting by category and component."""
        handler = ErrorHandler()
        handler.log_failure("ai_correction", "network timeout")
        handler.log_failure("validation", "fatal crash")

        stats = handler.get_error_stats()

        assert stats["total_errors"] == 2
        assert stats["by_category"] == {"recoverable": 1, "critical": 1}
        assert stats["by_component"] == {"ai_correction": 1, "validation": 1}

    def test_log_bounded(self):
        """Test that the failure log is bounded."""
        handler = ErrorHandler(max_log_entries=3)
        for i in range(10):
            handler.log_failure("x", f"failure {i}")

        assert len(handler.error_log) == 3
