"""
Multi-pass optimization engine.

Ties detection, prompt generation, AI correction, structure preservation and
progress tracking into a convergence loop:

    INIT -> BASELINE -> ITERATE -> {CONVERGED | STAGNATED | EXHAUSTED | ERRORED} -> REPORTED

Each pass: snapshot -> detect -> prompts -> corrections -> structure check
(rollback on major violation) -> re-validate (cached) -> record -> evaluate
termination. ``optimize`` always returns a report; runtime failures end the
session with ``critical_error`` and the best document seen so far.
"""

import logging
import time
from enum import Enum
from typing import Any, Callable, Optional, Union

from .ai_corrector import AIContentCorrector
from .config import OptimizerConfig
from .error_handler import ErrorHandler
from .errors import CorrectionExhaustedError
from .llm_client import TextCorrector
from .models import (
    Document,
    OptimizationResult,
    PassRecord,
    TerminationReason,
    ValidationResult,
)
from .pipeline import ValidationPipeline
from .progress_tracker import ProgressTracker
from .prompt_generator import ManualOverrideRegistry, PromptGenerator
from .structure_preservation import StructurePreserver
from .validation_cache import ValidationCache

logger = logging.getLogger(__name__)


class OptimizerState(Enum):
    """States of one optimize() call."""
    INIT = "init"
    BASELINE = "baseline"
    ITERATE = "iterate"
    CONVERGED = "converged"
    STAGNATED = "stagnated"
    EXHAUSTED = "exhausted"
    ERRORED = "errored"
    REPORTED = "reported"


TERMINAL_STATES: dict[TerminationReason, OptimizerState] = {
    TerminationReason.INITIAL_COMPLIANCE: OptimizerState.CONVERGED,
    TerminationReason.COMPLIANCE_ACHIEVED: OptimizerState.CONVERGED,
    TerminationReason.MAX_ITERATIONS_REACHED: OptimizerState.EXHAUSTED,
    TerminationReason.TIME_BUDGET_EXCEEDED: OptimizerState.EXHAUSTED,
    TerminationReason.STAGNATION_DETECTED: OptimizerState.STAGNATED,
    TerminationReason.INSUFFICIENT_IMPROVEMENT: OptimizerState.STAGNATED,
    TerminationReason.CRITICAL_ERROR: OptimizerState.ERRORED,
}


class MultiPassOptimizer:
    """
    Iteratively corrects a document until it is compliant or a stop condition fires.

    Instances are owned by the caller; nothing is shared process-wide except
    an explicitly passed ValidationCache.

    Args:
        providers: Text-correction providers in failover order.
        config: OptimizerConfig or a flat dict of options. Invalid values
            raise ConfigurationError here.
        cache: Validation cache, shareable between optimizers.
        error_handler: Error/retry handler.
        overrides: Manual override registry for the prompt generator.
        corrector: Pre-built AI corrector (takes precedence over providers).
        clock: Monotonic clock used for time budgets.
    """

    def __init__(
        self,
        providers: Optional[list[TextCorrector]] = None,
        config: Optional[Union[OptimizerConfig, dict[str, Any]]] = None,
        cache: Optional[ValidationCache] = None,
        error_handler: Optional[ErrorHandler] = None,
        overrides: Optional[ManualOverrideRegistry] = None,
        corrector: Optional[AIContentCorrector] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.state = OptimizerState.INIT
        if isinstance(config, dict):
            config = OptimizerConfig.from_dict(config)
        self.config = config or OptimizerConfig()
        self.error_handler = error_handler or ErrorHandler(max_log_entries=self.config.max_history)
        self.prompt_generator = PromptGenerator(self.config, overrides=overrides)
        self.corrector = corrector or AIContentCorrector(
            providers or [],
            self.config,
            self.error_handler,
            tracker=self.prompt_generator.tracker,
        )
        self.pipeline = ValidationPipeline(
            self.config,
            cache=cache,
            prompt_generator=self.prompt_generator,
            corrector=self.corrector,
        )
        self.clock = clock
        self.preserver: Optional[StructurePreserver] = None
        self.tracker: Optional[ProgressTracker] = None
        self.last_result: Optional[OptimizationResult] = None

    def update_config(self, **overrides: Any) -> OptimizerConfig:
        """
        Merge overrides into the active configuration.

        Takes effect from the next pass boundary; a running session is not
        restarted.
        """
        self.config = self.config.update(**overrides)
        self.pipeline.update_config(self.config)
        self.corrector.config = self.config
        logger.info(f"Configuration updated: {', '.join(sorted(overrides))}")
        return self.config

    def optimize(
        self,
        document: Document,
        existing_titles: Optional[list[str]] = None,
    ) -> OptimizationResult:
        """
        Run the optimization loop.

        Args:
            document: Document to optimize.
            existing_titles: Titles already published by the host, checked
                for near-duplicates of the document title.

        Returns:
            OptimizationResult with the best document, the full pass history
            (baseline as record 0), the optimization summary and the
            comprehensive progress report.
        """
        self.state = OptimizerState.INIT
        preserver = StructurePreserver(self.config)
        tracker = ProgressTracker(max_content_history=self.config.max_iterations + 1)
        self.preserver = preserver
        self.tracker = tracker
        started = self.clock()

        self.state = OptimizerState.BASELINE
        try:
            baseline = self.pipeline.validate(document, existing_titles=existing_titles)
        except Exception as e:
            logger.exception(f"Baseline validation failed: {e}")
            baseline = ValidationResult(compliance_score=0.0, errors=(str(e),))
            tracker.start_session(document, baseline)
            return self._finish(tracker, document, baseline, TerminationReason.CRITICAL_ERROR, str(e))

        tracker.start_session(document, baseline)
        if baseline.compliance_score >= self.config.target_compliance_score:
            logger.info(f"Baseline score {baseline.compliance_score} already meets target")
            return self._finish(tracker, document, baseline, TerminationReason.INITIAL_COMPLIANCE)

        current_doc, current_result = document, baseline
        best_doc, best_result = document, baseline
        since_best = 0
        reason: Optional[TerminationReason] = None
        error: Optional[str] = None

        self.state = OptimizerState.ITERATE
        for pass_number in range(1, self.config.max_iterations + 1):
            budget = self.config.time_budget_seconds
            if budget is not None and self.clock() - started > budget:
                reason = TerminationReason.TIME_BUDGET_EXCEEDED
                break

            pass_started = self.clock()
            try:
                record, current_doc, current_result = self._run_pass(
                    pass_number, current_doc, current_result, preserver, tracker, existing_titles
                )
            except Exception as e:
                logger.exception(f"Pass {pass_number} failed: {e}")
                reason = TerminationReason.CRITICAL_ERROR
                error = str(e)
                break

            if current_result.compliance_score > best_result.compliance_score:
                best_doc, best_result = current_doc, current_result
                since_best = 0
            else:
                since_best += 1

            reason = self._termination_reason(record, pass_number, since_best)
            if reason is None:
                pass_budget = self.config.pass_time_budget_seconds
                if pass_budget is not None and self.clock() - pass_started > pass_budget:
                    reason = TerminationReason.TIME_BUDGET_EXCEEDED
            if reason is not None:
                break

        if reason is None:
            reason = TerminationReason.MAX_ITERATIONS_REACHED
        return self._finish(tracker, best_doc, best_result, reason, error)

    def _run_pass(
        self,
        pass_number: int,
        document: Document,
        previous: ValidationResult,
        preserver: StructurePreserver,
        tracker: ProgressTracker,
        existing_titles: Optional[list[str]] = None,
    ) -> tuple[PassRecord, Document, ValidationResult]:
        """One detect/correct/guard/re-validate iteration."""
        pass_started = self.clock()
        snapshot = preserver.create_snapshot(document, label=f"pass_{pass_number}_before")
        before = self.pipeline.validate(document, existing_titles=existing_titles)

        prompts = []
        if self.config.auto_correction:
            prompts = self.prompt_generator.generate(list(before.issues), document)
        batch = self.corrector.apply_corrections(document, prompts)
        if batch.exhausted:
            raise CorrectionExhaustedError(
                f"All {len(prompts)} corrections failed after exhausting every provider"
            )

        outcome = preserver.preserve(snapshot, batch.document)
        after = self.pipeline.validate(
            outcome.document, previous=previous, existing_titles=existing_titles
        )

        record = tracker.record_pass(
            pass_number=pass_number,
            before=before,
            after=after,
            document=outcome.document,
            corrections=batch.records,
            strategy="rollback" if outcome.rolled_back else "targeted_correction",
            rolled_back=outcome.rolled_back,
            snapshot_id=snapshot.snapshot_id,
            duration_ms=(self.clock() - pass_started) * 1000,
            degradation_level=(
                batch.degradation.degradation_level
                if batch.degradation is not None and batch.degradation.degraded else None
            ),
        )
        return record, outcome.document, after

    def _termination_reason(
        self,
        record: PassRecord,
        pass_number: int,
        since_best: int,
    ) -> Optional[TerminationReason]:
        """
        First matching stop condition, in priority order.

        Passes that produced no new best score count toward stagnation; a pass
        that improved, but by less than ``min_improvement_threshold``, ends the
        session as insufficient improvement.
        """
        cfg = self.config
        if record.after_score >= cfg.target_compliance_score:
            return TerminationReason.COMPLIANCE_ACHIEVED
        if pass_number >= cfg.max_iterations:
            return TerminationReason.MAX_ITERATIONS_REACHED
        if not record.corrections:
            # nothing was attempted, another pass cannot differ
            return TerminationReason.STAGNATION_DETECTED
        if not cfg.enable_early_termination:
            return None
        if since_best >= cfg.stagnation_threshold:
            return TerminationReason.STAGNATION_DETECTED
        if 0 < record.score_improvement < cfg.min_improvement_threshold:
            return TerminationReason.INSUFFICIENT_IMPROVEMENT
        return None

    def _finish(
        self,
        tracker: ProgressTracker,
        document: Document,
        result: ValidationResult,
        reason: TerminationReason,
        error: Optional[str] = None,
    ) -> OptimizationResult:
        """Close the session and assemble the report."""
        self.state = TERMINAL_STATES[reason]
        session = tracker.end_session(result.compliance_score, reason)
        initial = session.initial_score

        summary = {
            "initialScore": initial,
            "finalScore": result.compliance_score,
            "improvement": round(result.compliance_score - initial, 2),
            "iterationsUsed": session.total_passes,
            "degradedPasses": sum(1 for p in tracker.pass_records if p.degraded),
            "complianceAchieved": result.compliance_score >= self.config.target_compliance_score,
            "terminationReason": reason.value,
            "finalState": self.state.value,
        }
        report = tracker.generate_comprehensive_report()

        optimization = OptimizationResult(
            document=document,
            termination_reason=reason,
            pass_records=list(tracker.pass_records),
            summary=summary,
            report=report,
            final_validation=result,
            error=error,
        )
        self.state = OptimizerState.REPORTED
        self.last_result = optimization
        logger.info(
            f"Optimization finished ({reason.value}): {initial} -> {result.compliance_score} "
            f"in {session.total_passes} passes"
        )
        return optimization

    def rollback_to_pass(self, pass_number: int) -> Document:
        """
        Document as it stood after a pass of the last session (0 = input).

        Raises:
            RuntimeError: If no session has run.
            KeyError: If the pass was never recorded.
        """
        if self.tracker is None:
            raise RuntimeError("No optimization session to roll back")
        return self.tracker.rollback_to_pass(pass_number)

    def get_optimization_stats(self) -> dict[str, Any]:
        """Statistics across the last session and shared components."""
        last = self.last_result
        return {
            "state": self.state.value,
            "last_summary": dict(last.summary) if last else None,
            "cache": self.pipeline.get_cache_stats(),
            "snapshots": len(self.preserver.snapshots) if self.preserver else 0,
            "corrections": self.corrector.get_stats(),
            "prompt_effectiveness": self.prompt_generator.tracker.report(),
            "errors": self.error_handler.get_error_stats(),
            "config": self.config.to_dict(),
        }
