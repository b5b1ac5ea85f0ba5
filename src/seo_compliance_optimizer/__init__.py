"""
SEO Compliance Optimizer

A multi-pass SEO compliance engine that:
- Detects quantitative SEO issues (keyword density, meta description, readability, headings, images)
- Turns each issue into a targeted correction prompt with a numeric goal
- Applies corrections through AI providers with retries and failover
- Rolls back corrections that damage document structure
- Iterates until the document is compliant or progress stops
"""

__version__ = "1.0.0"
__author__ = "SEO Compliance Optimizer Team"

from .config import OptimizerConfig

from .errors import (
    SEOOptimizerError,
    ConfigurationError,
    DetectorError,
    CorrectionServiceError,
    CorrectionExhaustedError,
)

from .models import (
    Document,
    Severity,
    IssueType,
    TerminationReason,
    Issue,
    KeywordDensityIssue,
    MetaDescriptionIssue,
    TitleIssue,
    ReadabilityIssue,
    HeadingIssue,
    ImageIssue,
    ValidationResult,
    QuantitativeTarget,
    ExpectedChanges,
    CorrectionPrompt,
    Snapshot,
    CorrectionRecord,
    PassRecord,
    Session,
    OptimizationResult,
)

from .issue_detector import IssueDetector, calculate_compliance_score
from .prompt_generator import PromptGenerator, ManualOverrideRegistry
from .llm_client import (
    TextCorrector,
    AnthropicCorrector,
    OpenAICorrector,
    create_corrector,
)
from .error_handler import ErrorHandler, ErrorCategory
from .ai_corrector import AIContentCorrector, CorrectionBatchResult
from .structure_preservation import StructurePreserver, StructureValidationResult
from .validation_cache import ValidationCache
from .pipeline import ValidationPipeline, PipelineResult
from .progress_tracker import ProgressTracker
from .optimizer import MultiPassOptimizer, OptimizerState

__all__ = [
    # Configuration
    "OptimizerConfig",
    # Errors
    "SEOOptimizerError",
    "ConfigurationError",
    "DetectorError",
    "CorrectionServiceError",
    "CorrectionExhaustedError",
    # Models
    "Document",
    "Severity",
    "IssueType",
    "TerminationReason",
    "Issue",
    "KeywordDensityIssue",
    "MetaDescriptionIssue",
    "TitleIssue",
    "ReadabilityIssue",
    "HeadingIssue",
    "ImageIssue",
    "ValidationResult",
    "QuantitativeTarget",
    "ExpectedChanges",
    "CorrectionPrompt",
    "Snapshot",
    "CorrectionRecord",
    "PassRecord",
    "Session",
    "OptimizationResult",
    # Detection and prompts
    "IssueDetector",
    "calculate_compliance_score",
    "PromptGenerator",
    "ManualOverrideRegistry",
    # Providers and correction
    "TextCorrector",
    "AnthropicCorrector",
    "OpenAICorrector",
    "create_corrector",
    "ErrorHandler",
    "ErrorCategory",
    "AIContentCorrector",
    "CorrectionBatchResult",
    # Structure, cache, pipeline
    "StructurePreserver",
    "StructureValidationResult",
    "ValidationCache",
    "ValidationPipeline",
    "PipelineResult",
    # Optimization loop
    "ProgressTracker",
    "MultiPassOptimizer",
    "OptimizerState",
]
