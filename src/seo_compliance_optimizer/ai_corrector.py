"""
AI-assisted correction with provider failover.

Applies an ordered list of correction prompts to a document through one or
more text-correction providers. After each correction only the analyzer
behind the targeted issue is re-run; a correction that leaves the metric
unchanged or worse is discarded and recorded as failed, and the batch moves
on to the next prompt.
"""

import logging
import time
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Any, Optional

from .analyzers import measure_issue_metric, metric_moved_toward
from .config import OptimizerConfig
from .error_handler import DegradationResult, ErrorHandler
from .llm_client import TextCorrector
from .models import CorrectionPrompt, CorrectionRecord, Document, IssueType
from .prompt_generator import EffectivenessTracker

logger = logging.getLogger(__name__)


@dataclass
class CorrectionBatchResult:
    """Outcome of applying a batch of prompts."""
    document: Document
    records: list[CorrectionRecord] = field(default_factory=list)
    failed_corrections: list[CorrectionRecord] = field(default_factory=list)
    service_failures: int = 0
    degradation: Optional[DegradationResult] = None

    @property
    def applied(self) -> list[IssueType]:
        return [r.issue_type for r in self.records if r.success]

    @property
    def success_count(self) -> int:
        return len(self.applied)

    @property
    def exhausted(self) -> bool:
        """True when every prompt failed because no provider could answer."""
        return bool(self.records) and self.service_failures == len(self.records)


class AIContentCorrector:
    """
    Sends prioritized prompts to correction providers.

    Providers are tried in list order. Each provider gets up to
    ``max_retry_attempts`` attempts with backoff (through the error handler)
    before the next provider is tried.
    """

    def __init__(
        self,
        providers: list[TextCorrector],
        config: Optional[OptimizerConfig] = None,
        error_handler: Optional[ErrorHandler] = None,
        tracker: Optional[EffectivenessTracker] = None,
    ):
        """
        Initialize the corrector.

        Args:
            providers: Correction providers in priority order.
            config: Optimizer configuration.
            error_handler: Handler used for retries and degradation.
            tracker: Optional effectiveness tracker fed with every outcome.
        """
        self.providers = list(providers)
        self.config = config or OptimizerConfig()
        self.error_handler = error_handler or ErrorHandler()
        self.tracker = tracker
        self.history: deque = deque(maxlen=self.config.max_history)
        self.provider_usage: Counter = Counter()
        self.provider_failures: Counter = Counter()

    def apply_corrections(
        self,
        document: Document,
        prompts: list[CorrectionPrompt],
    ) -> CorrectionBatchResult:
        """
        Apply prompts in order, each against the output of the previous one.

        Args:
            document: Document to correct.
            prompts: Prompts sorted by priority.

        Returns:
            CorrectionBatchResult with the final document and one record per
            prompt.
        """
        result = CorrectionBatchResult(document=document)
        for prompt in prompts:
            record, corrected, service_failed = self._apply_prompt(result.document, prompt)
            result.records.append(record)
            if record.success:
                result.document = corrected
            else:
                result.failed_corrections.append(record)
                if service_failed:
                    result.service_failures += 1
            if self.tracker is not None:
                self.tracker.record(prompt.issue_type, record.success)

        if result.failed_corrections and result.success_count:
            result.degradation = self.error_handler.apply_graceful_degradation(
                "ai_correction",
                [r for r in result.records if r.success],
                result.failed_corrections,
            )

        logger.info(
            f"Applied {result.success_count}/{len(prompts)} corrections "
            f"({len(result.failed_corrections)} failed)"
        )
        return result

    def _apply_prompt(
        self,
        document: Document,
        prompt: CorrectionPrompt,
    ) -> tuple[CorrectionRecord, Document, bool]:
        """Returns (record, resulting document, failed because of providers)."""
        before = measure_issue_metric(prompt.issue_type, document)
        target = prompt.quantitative_target.target
        providers = self.providers if self.config.enable_provider_failover else self.providers[:1]
        context = {
            "issue_type": prompt.issue_type.value,
            "priority": prompt.priority,
            "expected_changes": prompt.expected_changes,
        }

        attempts = 0
        last_error: Optional[str] = "No correction providers configured"
        for provider in providers:
            def call(attempt: int, provider: TextCorrector = provider) -> Document:
                return provider.correct(document, prompt.prompt_text, {**context, "attempt": attempt})

            outcome = self.error_handler.execute_with_recovery(
                call,
                error_type="ai_provider_failure",
                component="ai_correction",
                context={"provider": provider.name, "issue_type": prompt.issue_type.value},
                max_attempts=min(prompt.max_attempts, self.config.max_retry_attempts),
            )
            attempts += outcome.attempts
            if not outcome.success:
                self.provider_failures[provider.name] += 1
                last_error = outcome.error
                logger.warning(
                    f"Provider '{provider.name}' failed for {prompt.issue_type.value}: {outcome.error}"
                )
                continue

            self.provider_usage[provider.name] += 1
            corrected: Document = outcome.value
            after = measure_issue_metric(prompt.issue_type, corrected)

            if corrected == document or not metric_moved_toward(before, after, target):
                error = (
                    f"Correction did not move {prompt.issue_type.value} toward target "
                    f"({before} -> {after}, target {target})"
                )
                logger.warning(error)
                record = CorrectionRecord(
                    issue_type=prompt.issue_type,
                    success=False,
                    provider=provider.name,
                    attempts=attempts,
                    before_value=before,
                    after_value=after,
                    error=error,
                )
                self._remember(record)
                return record, document, False

            record = CorrectionRecord(
                issue_type=prompt.issue_type,
                success=True,
                provider=provider.name,
                attempts=attempts,
                before_value=before,
                after_value=after,
            )
            self._remember(record)
            return record, corrected, False

        record = CorrectionRecord(
            issue_type=prompt.issue_type,
            success=False,
            attempts=attempts,
            before_value=before,
            error=last_error,
        )
        self._remember(record)
        return record, document, True

    def _remember(self, record: CorrectionRecord) -> None:
        self.history.append({
            "timestamp": time.time(),
            "issue_type": record.issue_type.value,
            "provider": record.provider,
            "success": record.success,
            "attempts": record.attempts,
            "before_value": record.before_value,
            "after_value": record.after_value,
            "error": record.error,
        })

    def get_stats(self) -> dict[str, Any]:
        """Success rate and provider usage over the bounded history."""
        entries = list(self.history)
        successes = sum(1 for e in entries if e["success"])
        return {
            "total_corrections": len(entries),
            "successful_corrections": successes,
            "failed_corrections": len(entries) - successes,
            "success_rate": round(successes / len(entries) * 100, 2) if entries else 0.0,
            "provider_usage": dict(self.provider_usage),
            "provider_failures": dict(self.provider_failures),
        }
