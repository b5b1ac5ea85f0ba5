# -*- coding: utf-8 -*-
"""
Centralized configuration for the SEO compliance optimizer.

This module provides the flat option set consumed when an optimizer is
constructed. Every option can be overridden at runtime through
``OptimizerConfig.update``, which returns a new validated config instead of
mutating the active one.
"""

import hashlib
import json
import logging
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Optional

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


# Options that change what the issue detector reports. Only these feed the
# validation cache key.
VALIDATION_KEYS: tuple[str, ...] = (
    "min_meta_desc_length",
    "max_meta_desc_length",
    "min_keyword_density",
    "max_keyword_density",
    "max_passive_voice",
    "max_long_sentences",
    "min_transition_words",
    "max_title_length",
    "max_subheading_keyword_usage",
    "require_images",
    "require_keyword_in_alt_text",
)


@dataclass(frozen=True)
class OptimizerConfig:
    """
    Configuration for detection thresholds and the optimization loop.

    Attributes:
        max_iterations: Maximum number of correction passes per session.
        target_compliance_score: Score (0 < x <= 100) at which the loop stops.
        enable_early_termination: Allow stagnation and insufficient-improvement
            exits before ``max_iterations`` is reached.
        stagnation_threshold: Consecutive passes without improvement before
            the loop is considered stagnated.
        min_improvement_threshold: Smallest per-pass score gain that still
            counts as progress.
        auto_correction: When False the pipeline only validates.
        max_retry_attempts: Attempts per prompt per provider.

        min_meta_desc_length / max_meta_desc_length: Meta description band
            in characters.
        min_keyword_density / max_keyword_density: Density band in percent.
        max_passive_voice: Maximum passive sentences in percent.
        max_long_sentences: Maximum sentences over 20 words in percent.
        min_transition_words: Minimum sentences with a transition in percent.
        max_title_length: Maximum title length in characters.
        max_subheading_keyword_usage: Maximum share of H2-H6 headings that may
            contain the focus keyword, in percent.
        require_images: Flag documents without any ``<img>``.
        require_keyword_in_alt_text: Flag images whose alt text misses the
            focus keyword.

        max_snapshots: Ring buffer size for structure snapshots. Must be at
            least max_iterations so every pass snapshot stays reachable.
        paragraph_tolerance: Allowed relative change of the paragraph count
            before it counts as a major structural violation.
        length_change_warning: Relative body length change that raises a
            warning.
        title_similarity_warning: Title similarity below which a warning is
            raised.
        enable_provider_failover: Try the next provider when one fails.
        cache_max_entries / cache_ttl_seconds: Validation cache bounds.
        time_budget_seconds: Optional wall-clock budget for a whole session.
        pass_time_budget_seconds: Optional wall-clock budget per pass.
        max_history: Bound for correction and error histories.
        title_similarity_threshold: Similarity at which two titles are
            considered duplicates.
    """

    # Optimization loop
    max_iterations: int = 5
    target_compliance_score: float = 100.0
    enable_early_termination: bool = True
    stagnation_threshold: int = 2
    min_improvement_threshold: float = 1.0
    auto_correction: bool = True
    max_retry_attempts: int = 3

    # Detection thresholds
    min_meta_desc_length: int = 120
    max_meta_desc_length: int = 156
    min_keyword_density: float = 0.5
    max_keyword_density: float = 2.5
    max_passive_voice: float = 10.0
    max_long_sentences: float = 25.0
    min_transition_words: float = 30.0
    max_title_length: int = 66
    max_subheading_keyword_usage: float = 75.0
    require_images: bool = True
    require_keyword_in_alt_text: bool = True

    # Structure preservation
    max_snapshots: int = 10
    paragraph_tolerance: float = 0.20
    length_change_warning: float = 0.30
    title_similarity_warning: float = 0.70

    # Providers, cache, budgets
    enable_provider_failover: bool = True
    cache_max_entries: int = 256
    cache_ttl_seconds: float = 3600.0
    time_budget_seconds: Optional[float] = None
    pass_time_budget_seconds: Optional[float] = None
    max_history: int = 100
    title_similarity_threshold: float = 0.8

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_iterations < 1:
            raise ConfigurationError(
                f"max_iterations must be >= 1, got {self.max_iterations}"
            )
        if not 0 < self.target_compliance_score <= 100:
            raise ConfigurationError(
                "target_compliance_score must be in (0, 100], "
                f"got {self.target_compliance_score}"
            )
        if self.stagnation_threshold < 1:
            raise ConfigurationError(
                f"stagnation_threshold must be >= 1, got {self.stagnation_threshold}"
            )
        if self.min_improvement_threshold < 0:
            raise ConfigurationError(
                "min_improvement_threshold must be >= 0, "
                f"got {self.min_improvement_threshold}"
            )
        if self.max_retry_attempts < 1:
            raise ConfigurationError(
                f"max_retry_attempts must be >= 1, got {self.max_retry_attempts}"
            )
        if not 0 < self.min_meta_desc_length <= self.max_meta_desc_length:
            raise ConfigurationError(
                "meta description band must satisfy 0 < min <= max, got "
                f"[{self.min_meta_desc_length}, {self.max_meta_desc_length}]"
            )
        if not 0 <= self.min_keyword_density <= self.max_keyword_density:
            raise ConfigurationError(
                "keyword density band must satisfy 0 <= min <= max, got "
                f"[{self.min_keyword_density}, {self.max_keyword_density}]"
            )
        for name in (
            "max_passive_voice",
            "max_long_sentences",
            "min_transition_words",
            "max_subheading_keyword_usage",
        ):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ConfigurationError(f"{name} must be in [0, 100], got {value}")
        if self.max_title_length < 1:
            raise ConfigurationError(
                f"max_title_length must be >= 1, got {self.max_title_length}"
            )
        if self.max_snapshots < 1:
            raise ConfigurationError(
                f"max_snapshots must be >= 1, got {self.max_snapshots}"
            )
        if self.max_snapshots < self.max_iterations:
            # one snapshot per pass must stay reachable for rollback
            raise ConfigurationError(
                f"max_snapshots must be >= max_iterations ({self.max_iterations}), "
                f"got {self.max_snapshots}"
            )
        for name in (
            "paragraph_tolerance",
            "length_change_warning",
            "title_similarity_warning",
            "title_similarity_threshold",
        ):
            value = getattr(self, name)
            if not 0 <= value <= 1:
                raise ConfigurationError(f"{name} must be in [0, 1], got {value}")
        if self.cache_max_entries < 1:
            raise ConfigurationError(
                f"cache_max_entries must be >= 1, got {self.cache_max_entries}"
            )
        if self.cache_ttl_seconds <= 0:
            raise ConfigurationError(
                f"cache_ttl_seconds must be > 0, got {self.cache_ttl_seconds}"
            )
        for name in ("time_budget_seconds", "pass_time_budget_seconds"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigurationError(f"{name} must be > 0 when set, got {value}")
        if self.max_history < 1:
            raise ConfigurationError(f"max_history must be >= 1, got {self.max_history}")

    def update(self, **overrides: Any) -> "OptimizerConfig":
        """
        Merge overrides into a new, validated config.

        Args:
            **overrides: Option names and their new values.

        Returns:
            A new OptimizerConfig. The receiver is left untouched.

        Raises:
            ConfigurationError: If an option is unknown or a value is invalid.
        """
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration options: {', '.join(unknown)}")
        return replace(self, **overrides)

    def to_dict(self) -> dict[str, Any]:
        """Return the configuration as a plain dict."""
        return asdict(self)

    def validation_settings(self) -> dict[str, Any]:
        """Return only the options that influence issue detection."""
        return {key: getattr(self, key) for key in VALIDATION_KEYS}

    def validation_hash(self) -> str:
        """Stable digest of the validation-relevant options."""
        payload = json.dumps(self.validation_settings(), sort_keys=True)
        return hashlib.md5(payload.encode("utf-8")).hexdigest()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OptimizerConfig":
        """
        Build a config from a flat dict, ignoring unknown keys.

        Both snake_case and the camelCase names used by content hosts
        (``maxIterations``, ``minMetaDescLength``...) are accepted.
        """
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _to_snake_case(key)
            if name in known:
                kwargs[name] = value
            else:
                logger.warning(f"Ignoring unknown configuration option: {key}")
        return cls(**kwargs)


def _to_snake_case(name: str) -> str:
    """Convert ``maxMetaDescLength`` style names to ``max_meta_desc_length``."""
    out = []
    for char in name:
        if char.isupper():
            out.append("_")
            out.append(char.lower())
        else:
            out.append(char)
    return "".join(out).lstrip("_")
