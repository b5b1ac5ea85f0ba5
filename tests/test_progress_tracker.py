"""Tests for optimization progress tracking."""

import pytest

from seo_compliance_optimizer.issue_detector import IssueDetector
from seo_compliance_optimizer.models import CorrectionRecord, IssueType, TerminationReason
from seo_compliance_optimizer.progress_tracker import ProgressTracker


@pytest.fixture
def results(compliant_document, short_meta_document):
    detector = IssueDetector()
    return detector.detect(short_meta_document), detector.detect(compliant_document)


class TestSession:
    """Tests for session lifecycle."""

    def test_baseline_is_pass_zero(self, short_meta_document, results):
        """Test that the baseline is recorded as pass 0."""
        before, _ = results
        tracker = ProgressTracker()

        tracker.start_session(short_meta_document, before)

        baseline = tracker.pass_records[0]
        assert baseline.pass_number == 0
        assert baseline.strategy == "baseline"
        assert baseline.before_score == baseline.after_score == 75.93

    def test_record_pass(self, short_meta_document, compliant_document, results):
        """Test the contents of a recorded pass."""
        before, after = results
        tracker = ProgressTracker()
        tracker.start_session(short_meta_document, before)

        record = tracker.record_pass(
            1, before, after, compliant_document,
            corrections=[CorrectionRecord(IssueType.META_DESCRIPTION_SHORT, True, "fake", 1)],
        )

        assert record.score_improvement == 24.07
        assert record.issues_resolved == 2
        assert record.resolved_issue_types == ("meta_description_short", "meta_description_no_keyword")
        assert record.new_issue_types == ()
        assert record.improvements["resolvedIssueTypes"] == list(record.resolved_issue_types)

    def test_end_session(self, short_meta_document, compliant_document, results):
        """Test that ending a session fixes its final state."""
        before, after = results
        tracker = ProgressTracker()
        tracker.start_session(short_meta_document, before)
        tracker.record_pass(1, before, after, compliant_document)

        session = tracker.end_session(100.0, TerminationReason.COMPLIANCE_ACHIEVED)

        assert session.ended is True
        assert session.total_passes == 1
        assert session.termination_reason is TerminationReason.COMPLIANCE_ACHIEVED

    def test_closed_session_rejects_passes(self, short_meta_document, compliant_document, results):
        """Test that an ended session is terminal."""
        before, after = results
        tracker = ProgressTracker()
        tracker.start_session(short_meta_document, before)
        tracker.end_session(75.93, TerminationReason.MAX_ITERATIONS_REACHED)

        with pytest.raises(RuntimeError):
            tracker.record_pass(1, before, after, compliant_document)

    def test_record_without_session(self, compliant_document, results):
        """Test that recording requires a session."""
        before, after = results
        with pytest.raises(RuntimeError):
            ProgressTracker().record_pass(1, before, after, compliant_document)


class TestRollback:
    """Tests for rollback by pass number."""

    def test_rollback_to_baseline(self, short_meta_document, compliant_document, results):
        """Test retrieving the document of an earlier pass."""
        before, after = results
        tracker = ProgressTracker()
        tracker.start_session(short_meta_document, before)
        tracker.record_pass(1, before, after, compliant_document)

        assert tracker.rollback_to_pass(0) == short_meta_document
        assert tracker.rollback_to_pass(1) == compliant_document

    def test_evicted_pass(self, short_meta_document, compliant_document, results):
        """Test that passes beyond the bounded history are unavailable."""
        before, after = results
        tracker = ProgressTracker(max_content_history=2)
        tracker.start_session(short_meta_document, before)
        tracker.record_pass(1, before, after, compliant_document)
        tracker.record_pass(2, after, after, compliant_document)

        with pytest.raises(KeyError):
            tracker.rollback_to_pass(0)


class TestReport:
    """Tests for the comprehensive report."""

    def test_report_sections(self, short_meta_document, compliant_document, results):
        """Test that the report contains every section."""
        before, after = results
        tracker = ProgressTracker()
        tracker.start_session(short_meta_document, before)
        tracker.record_pass(1, before, after, compliant_document)
        tracker.end_session(100.0, TerminationReason.COMPLIANCE_ACHIEVED)

        report = tracker.generate_comprehensive_report()

        assert set(report) == {
            "session",
            "summary",
            "pass_records",
            "strategy_effectiveness",
            "progress_analysis",
            "content_history",
            "detailed_metrics",
            "before_after_comparison",
        }
        assert report["summary"]["total_passes"] == 1
        assert report["summary"]["total_improvement"] == 24.07
        assert report["progress_analysis"]["best_pass"]["pass_number"] == 1
        assert report["before_after_comparison"]["total_issues"] == {"before": 2, "after": 0}
        assert len(report["pass_records"]) == 2

    def test_strategy_effectiveness(self, short_meta_document, compliant_document, results):
        """Test per strategy aggregation."""
        before, after = results
        tracker = ProgressTracker()
        tracker.start_session(short_meta_document, before)
        tracker.record_pass(
            1, before, after, compliant_document,
            corrections=[
                CorrectionRecord(IssueType.META_DESCRIPTION_SHORT, True),
                CorrectionRecord(IssueType.META_DESCRIPTION_NO_KEYWORD, False),
            ],
        )

        stats = tracker.get_strategy_effectiveness()["targeted_correction"]

        assert stats["uses"] == 1
        assert stats["effectiveness_rate"] == 50.0
        assert stats["average_improvement"] == 24.07


class TestDegradation:
    """Tests for degraded passes."""

    def test_degraded_pass_reported(self, short_meta_document, compliant_document, results):
        """Test that a partially successful pass carries its degradation flag."""
        before, after = results
        tracker = ProgressTracker()
        tracker.start_session(short_meta_document, before)

        record = tracker.record_pass(
            1, before, after, compliant_document,
            corrections=[
                CorrectionRecord(IssueType.META_DESCRIPTION_SHORT, True),
                CorrectionRecord(IssueType.META_DESCRIPTION_NO_KEYWORD, False),
            ],
            degradation_level="moderate",
        )
        tracker.end_session(100.0, TerminationReason.COMPLIANCE_ACHIEVED)
        summary = tracker.generate_comprehensive_report()["summary"]

        assert record.degraded is True
        assert record.to_dict()["degradation_level"] == "moderate"
        assert record.to_dict()["correction_success_rate"] == 50.0
        assert summary["degraded_passes"] == 1
        assert summary["correction_success_rate"] == 50.0

    def test_clean_pass_not_degraded(self, short_meta_document, compliant_document, results):
        """Test that passes default to not degraded."""
        before, after = results
        tracker = ProgressTracker()
        tracker.start_session(short_meta_document, before)

        record = tracker.record_pass(1, before, after, compliant_document)

        assert record.degraded is False
        assert record.correction_success_rate is None
