"""
Exception hierarchy for the SEO compliance optimizer.
"""


class SEOOptimizerError(Exception):
    """Base class for all optimizer errors."""
    pass


class ConfigurationError(SEOOptimizerError, ValueError):
    """Raised when configuration values are invalid."""
    pass


class DetectorError(SEOOptimizerError):
    """Raised when a metric analyzer fails during issue detection."""

    def __init__(self, analyzer: str, cause: Exception):
        self.analyzer = analyzer
        self.cause = cause
        super().__init__(f"Analyzer '{analyzer}' failed: {cause}")


class CorrectionServiceError(SEOOptimizerError):
    """
    Raised when a text-correction provider fails or returns garbage.

    ``error_type`` keys into the recovery strategy table
    (``ai_provider_failure``, ``rate_limit_exceeded``, ``network_error``...).
    """

    def __init__(self, message: str, error_type: str = "ai_provider_failure"):
        self.error_type = error_type
        super().__init__(message)


class CorrectionExhaustedError(SEOOptimizerError):
    """Raised when every provider and retry for a correction batch failed."""
    pass
