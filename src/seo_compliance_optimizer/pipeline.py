"""
Validation pipeline.

Wraps the issue detector with the shared validation cache and composes
detection, prompt generation, correction and re-validation into a single
``validate_and_correct`` call usable outside the multi-pass loop.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Optional

from .ai_corrector import AIContentCorrector, CorrectionBatchResult
from .config import OptimizerConfig
from .issue_detector import IssueDetector
from .models import CorrectionPrompt, Document, ValidationResult
from .prompt_generator import PromptGenerator
from .validation_cache import ValidationCache, content_hash

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Outcome of ``validate_and_correct``."""
    document: Document
    before: ValidationResult
    after: ValidationResult
    prompts: list[CorrectionPrompt] = field(default_factory=list)
    batch: Optional[CorrectionBatchResult] = None

    @property
    def corrections_made(self) -> tuple[str, ...]:
        return self.after.corrections_made


class ValidationPipeline:
    """
    Cached detection plus optional one-shot correction.

    Args:
        config: Optimizer configuration.
        detector: Issue detector. Built from ``config`` when omitted.
        cache: Validation cache, typically shared between pipelines.
        prompt_generator: Prompt generator for ``validate_and_correct``.
        corrector: AI corrector for ``validate_and_correct``. Without one the
            pipeline only validates.
    """

    def __init__(
        self,
        config: Optional[OptimizerConfig] = None,
        detector: Optional[IssueDetector] = None,
        cache: Optional[ValidationCache] = None,
        prompt_generator: Optional[PromptGenerator] = None,
        corrector: Optional[AIContentCorrector] = None,
    ):
        self.config = config or OptimizerConfig()
        self.detector = detector or IssueDetector(self.config)
        if cache is None:
            cache = ValidationCache(
                max_entries=self.config.cache_max_entries,
                ttl_seconds=self.config.cache_ttl_seconds,
            )
        self.cache = cache
        self.prompt_generator = prompt_generator or PromptGenerator(self.config)
        self.corrector = corrector

    def update_config(self, config: OptimizerConfig) -> None:
        """Swap the active configuration. Cached results stay keyed by config hash."""
        self.config = config
        self.detector.config = config
        self.prompt_generator.config = config
        if self.corrector is not None:
            self.corrector.config = config

    def validate(
        self,
        document: Document,
        previous: Optional[ValidationResult] = None,
        existing_titles: Optional[list[str]] = None,
    ) -> ValidationResult:
        """
        Validate a document, using the cache when possible.

        Only the document-derived result is cached under
        ``(content_hash, config_hash)``; warnings that depend on ``previous``
        or ``existing_titles`` are attached to the returned copy.

        Raises:
            DetectorError: If an analyzer fails.
        """
        content_key = content_hash(document)
        config_key = self.config.validation_hash()
        result = self.cache.get(content_key, config_key)
        if result is not None:
            logger.debug(f"Validation cache hit for {content_key[:8]}")
        else:
            result = self.detector.detect(document)
            self.cache.set(content_key, config_key, result)
        return self.detector.add_context_warnings(result, document, previous, existing_titles)

    def validate_and_correct(
        self,
        document: Document,
        existing_titles: Optional[list[str]] = None,
    ) -> PipelineResult:
        """
        Detect issues, correct them once and re-validate.

        Correction runs only when ``auto_correction`` is enabled, a corrector
        is configured and the document has issues.
        """
        before = self.validate(document, existing_titles=existing_titles)
        if not (self.config.auto_correction and self.corrector and before.issues):
            return PipelineResult(document=document, before=before, after=before)

        prompts = self.prompt_generator.generate(list(before.issues), document)
        batch = self.corrector.apply_corrections(document, prompts)
        after = self.validate(batch.document, previous=before, existing_titles=existing_titles)

        errors = tuple(r.error for r in batch.failed_corrections if r.error)
        after = replace(
            after,
            corrections_made=tuple(t.value for t in batch.applied),
            errors=after.errors + errors,
        )
        logger.info(
            f"Pipeline corrected {len(batch.applied)} issues: "
            f"score {before.compliance_score} -> {after.compliance_score}"
        )
        return PipelineResult(
            document=batch.document,
            before=before,
            after=after,
            prompts=prompts,
            batch=batch,
        )

    def get_cache_stats(self) -> dict:
        return self.cache.get_stats()
