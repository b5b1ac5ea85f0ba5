"""
Progress tracking for optimization sessions.

Records every pass (baseline included as pass 0), aggregates how effective
each correction strategy has been, keeps a bounded history of document
versions for rollback by pass number, and assembles the comprehensive report
returned at the end of a session.
"""

import logging
import time
from collections import deque
from typing import Any, Optional

from .models import (
    CorrectionRecord,
    Document,
    PassRecord,
    Session,
    TerminationReason,
    ValidationResult,
)

logger = logging.getLogger(__name__)


def _ordered_types(result: ValidationResult) -> list[str]:
    seen: list[str] = []
    for issue in result.issues:
        if issue.type.value not in seen:
            seen.append(issue.type.value)
    return seen


class ProgressTracker:
    """Append-only pass log for one session at a time."""

    def __init__(self, max_content_history: int = 10):
        self.max_content_history = max_content_history
        self.session: Optional[Session] = None
        self.pass_records: list[PassRecord] = []
        self.content_history: deque = deque(maxlen=max_content_history)
        self.strategy_stats: dict[str, dict[str, float]] = {}
        self.initial_result: Optional[ValidationResult] = None
        self.latest_result: Optional[ValidationResult] = None
        self._started = 0.0

    def start_session(self, document: Document, initial_result: ValidationResult) -> Session:
        """
        Begin a session and record the baseline as pass 0.

        Any previous session state is discarded.
        """
        self._started = time.monotonic()
        self.session = Session(initial_score=initial_result.compliance_score, started_at=time.time())
        self.pass_records = []
        self.content_history = deque(maxlen=self.max_content_history)
        self.strategy_stats = {}
        self.initial_result = initial_result
        self.latest_result = initial_result

        types = _ordered_types(initial_result)
        self.pass_records.append(PassRecord(
            pass_number=0,
            before_score=initial_result.compliance_score,
            after_score=initial_result.compliance_score,
            score_improvement=0.0,
            issues_resolved=0,
            before_issue_count=initial_result.total_issues,
            after_issue_count=initial_result.total_issues,
            strategy="baseline",
            persistent_issue_types=tuple(types),
        ))
        self.content_history.append({
            "pass_number": 0,
            "document": document,
            "score": initial_result.compliance_score,
        })
        logger.info(
            f"Session {self.session.session_id} started, baseline score "
            f"{initial_result.compliance_score}"
        )
        return self.session

    def record_pass(
        self,
        pass_number: int,
        before: ValidationResult,
        after: ValidationResult,
        document: Document,
        corrections: Optional[list[CorrectionRecord]] = None,
        strategy: str = "targeted_correction",
        rolled_back: bool = False,
        snapshot_id: Optional[str] = None,
        duration_ms: float = 0.0,
        degradation_level: Optional[str] = None,
    ) -> PassRecord:
        """
        Record one completed pass.

        Args:
            pass_number: 1-based pass number.
            before: Validation of the pass input.
            after: Validation of the pass output.
            document: Document produced by the pass.
            corrections: Per-prompt correction outcomes.
            strategy: Name of the correction strategy used.
            rolled_back: Whether the pass was reverted by the structure guard.
            snapshot_id: Pre-batch snapshot the pass can be rolled back to.
            duration_ms: Wall-clock time spent in the pass.
            degradation_level: Set when only part of the corrections
                succeeded and the partial result was accepted.

        Returns:
            The appended PassRecord.
        """
        self._require_session(open_only=True)
        corrections = list(corrections or [])
        before_types = _ordered_types(before)
        after_types = _ordered_types(after)

        record = PassRecord(
            pass_number=pass_number,
            before_score=before.compliance_score,
            after_score=after.compliance_score,
            score_improvement=round(after.compliance_score - before.compliance_score, 2),
            issues_resolved=before.total_issues - after.total_issues,
            before_issue_count=before.total_issues,
            after_issue_count=after.total_issues,
            corrections=tuple(corrections),
            strategy=strategy,
            resolved_issue_types=tuple(t for t in before_types if t not in after_types),
            new_issue_types=tuple(t for t in after_types if t not in before_types),
            persistent_issue_types=tuple(t for t in before_types if t in after_types),
            rolled_back=rolled_back,
            snapshot_id=snapshot_id,
            duration_ms=round(duration_ms, 2),
            degraded=degradation_level is not None,
            degradation_level=degradation_level,
        )
        self.pass_records.append(record)
        self.latest_result = after
        self.content_history.append({
            "pass_number": pass_number,
            "document": document,
            "score": after.compliance_score,
        })

        stats = self.strategy_stats.setdefault(strategy, {
            "uses": 0,
            "total_improvement": 0.0,
            "improving_passes": 0,
            "corrections_attempted": 0,
            "corrections_successful": 0,
            "rollbacks": 0,
        })
        stats["uses"] += 1
        stats["total_improvement"] += record.score_improvement
        stats["improving_passes"] += 1 if record.score_improvement > 0 else 0
        stats["corrections_attempted"] += len(corrections)
        stats["corrections_successful"] += record.successful_corrections
        stats["rollbacks"] += 1 if rolled_back else 0

        logger.info(
            f"Pass {pass_number}: {record.before_score} -> {record.after_score} "
            f"({record.issues_resolved:+d} issues resolved{', rolled back' if rolled_back else ''})"
        )
        return record

    def end_session(self, final_score: float, termination_reason: TerminationReason) -> Session:
        """Close the session. Further record_pass calls fail."""
        session = self._require_session(open_only=True)
        session.final_score = final_score
        session.total_passes = len(self.pass_records) - 1
        session.termination_reason = termination_reason
        session.duration_ms = round((time.monotonic() - self._started) * 1000, 2)
        session.ended = True
        logger.info(
            f"Session {session.session_id} ended: {termination_reason.value}, "
            f"score {session.initial_score} -> {final_score} in {session.total_passes} passes"
        )
        return session

    def rollback_to_pass(self, pass_number: int) -> Document:
        """
        Return the document produced by a given pass (0 = baseline input).

        Raises:
            KeyError: If the pass is unknown or has left the bounded history.
        """
        for entry in self.content_history:
            if entry["pass_number"] == pass_number:
                logger.info(f"Rolled back to pass {pass_number}")
                return entry["document"]
        raise KeyError(f"Pass {pass_number} not available for rollback")

    def get_strategy_effectiveness(self) -> dict[str, dict[str, float]]:
        """Per strategy average improvement and correction success rate."""
        report = {}
        for strategy, stats in self.strategy_stats.items():
            uses = stats["uses"] or 1
            attempted = stats["corrections_attempted"]
            report[strategy] = {
                **stats,
                "average_improvement": round(stats["total_improvement"] / uses, 2),
                "effectiveness_rate": (
                    round(stats["corrections_successful"] / attempted * 100, 2) if attempted else 0.0
                ),
            }
        return report

    def generate_comprehensive_report(self) -> dict[str, Any]:
        """Assemble the end-of-session report."""
        session = self._require_session()
        passes = self.pass_records[1:]
        initial = self.initial_result
        final = self.latest_result

        progress: dict[str, Any] = {"best_pass": None, "worst_pass": None, "average_improvement": 0.0}
        if passes:
            best = max(passes, key=lambda p: p.score_improvement)
            worst = min(passes, key=lambda p: p.score_improvement)
            progress = {
                "best_pass": {"pass_number": best.pass_number, "improvement": best.score_improvement},
                "worst_pass": {"pass_number": worst.pass_number, "improvement": worst.score_improvement},
                "average_improvement": round(
                    sum(p.score_improvement for p in passes) / len(passes), 2
                ),
            }

        corrections = [c for p in passes for c in p.corrections]
        successful = sum(1 for c in corrections if c.success)

        return {
            "session": session.to_dict(),
            "summary": {
                "total_passes": len(passes),
                "initial_score": initial.compliance_score if initial else None,
                "final_score": final.compliance_score if final else None,
                "total_improvement": (
                    round(final.compliance_score - initial.compliance_score, 2)
                    if initial and final else 0.0
                ),
                "total_issues_resolved": sum(p.issues_resolved for p in passes),
                "successful_corrections": successful,
                "failed_corrections": len(corrections) - successful,
                "rolled_back_passes": sum(1 for p in passes if p.rolled_back),
                "degraded_passes": sum(1 for p in passes if p.degraded),
                "correction_success_rate": (
                    round(successful / len(corrections) * 100, 2) if corrections else None
                ),
            },
            "pass_records": [p.to_dict() for p in self.pass_records],
            "strategy_effectiveness": self.get_strategy_effectiveness(),
            "progress_analysis": progress,
            "content_history": [
                {"pass_number": e["pass_number"], "score": e["score"], "title": e["document"].title}
                for e in self.content_history
            ],
            "detailed_metrics": {
                "initial": dict(initial.metrics) if initial else {},
                "final": dict(final.metrics) if final else {},
            },
            "before_after_comparison": _compare(initial, final),
        }

    def _require_session(self, open_only: bool = False) -> Session:
        if self.session is None:
            raise RuntimeError("No active session; call start_session first")
        if open_only and self.session.ended:
            raise RuntimeError(f"Session {self.session.session_id} has already ended")
        return self.session


def _compare(before: Optional[ValidationResult], after: Optional[ValidationResult]) -> dict[str, Any]:
    if before is None or after is None:
        return {}
    numeric = {
        key: {"before": value, "after": after.metrics.get(key)}
        for key, value in before.metrics.items()
        if isinstance(value, (int, float))
    }
    return {
        "compliance_score": {"before": before.compliance_score, "after": after.compliance_score},
        "total_issues": {"before": before.total_issues, "after": after.total_issues},
        "critical_issues": {"before": before.critical_issues, "after": after.critical_issues},
        "major_issues": {"before": before.major_issues, "after": after.major_issues},
        "minor_issues": {"before": before.minor_issues, "after": after.minor_issues},
        "metrics": numeric,
    }
