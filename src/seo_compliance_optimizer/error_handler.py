"""
Error classification, recovery and graceful degradation.

Classification, recovery strategies and fallback chains are plain data tables
so they can be inspected and tested on their own:

- CLASSIFICATION_RULES: message pattern -> ErrorCategory, first match wins.
- RECOVERY_STRATEGIES: error type -> steps, attempt cap, backoff multiplier.
- FALLBACK_CHAINS: component -> primary / fallback_1..3 / graceful degradation.

Every retry path is bounded by an attempt cap, and backoff grows
monotonically up to MAX_BACKOFF_SECONDS.
"""

import logging
import time
from collections import Counter, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """How a failure should be treated."""
    CRITICAL = "critical"
    RECOVERABLE = "recoverable"
    DEGRADED = "degraded"
    INFORMATIONAL = "informational"


@dataclass(frozen=True)
class ClassificationRule:
    """Substring patterns that map a failure message to a category."""
    category: ErrorCategory
    patterns: tuple[str, ...]


CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(ErrorCategory.CRITICAL, ("fatal", "exception", "crash", "cannot continue", "corrupt")),
    ClassificationRule(ErrorCategory.RECOVERABLE, ("timeout", "rate limit", "temporary", "retry", "network", "connection")),
    ClassificationRule(ErrorCategory.DEGRADED, ("partial", "incomplete", "degraded")),
    ClassificationRule(ErrorCategory.INFORMATIONAL, ("warning", "notice", "info")),
)

DEFAULT_CATEGORY = ErrorCategory.RECOVERABLE


@dataclass(frozen=True)
class RecoveryStrategy:
    """Recovery plan for one error type."""
    name: str
    steps: tuple[str, ...]
    max_attempts: int
    backoff_multiplier: float


RECOVERY_STRATEGIES: dict[str, RecoveryStrategy] = {
    "ai_provider_failure": RecoveryStrategy(
        "provider_failover",
        ("retry_same_provider", "switch_provider", "use_fallback_provider"),
        max_attempts=3,
        backoff_multiplier=2.0,
    ),
    "validation_timeout": RecoveryStrategy(
        "simplified_validation",
        ("critical_checks_only", "use_cached_result"),
        max_attempts=2,
        backoff_multiplier=1.5,
    ),
    "correction_failure": RecoveryStrategy(
        "alternative_correction",
        ("rephrase_prompt", "split_correction", "skip_correction"),
        max_attempts=3,
        backoff_multiplier=1.0,
    ),
    "rate_limit_exceeded": RecoveryStrategy(
        "exponential_backoff",
        ("wait", "wait_longer", "switch_provider"),
        max_attempts=5,
        backoff_multiplier=2.0,
    ),
    "network_error": RecoveryStrategy(
        "retry_with_backoff",
        ("retry", "retry_with_longer_timeout", "switch_provider"),
        max_attempts=3,
        backoff_multiplier=2.0,
    ),
}

DEFAULT_MAX_ATTEMPTS = 3
BASE_BACKOFF_SECONDS = 1.0
MAX_BACKOFF_SECONDS = 30.0


@dataclass(frozen=True)
class FallbackChain:
    """Ordered fallbacks for one component. Callers walk ``steps()`` in order."""
    primary: str
    fallback_1: str
    fallback_2: str
    fallback_3: str
    graceful_degradation: bool = True

    def steps(self) -> list[str]:
        return [self.primary, self.fallback_1, self.fallback_2, self.fallback_3]


FALLBACK_CHAINS: dict[str, FallbackChain] = {
    "ai_correction": FallbackChain(
        "use_ai_provider",
        "use_alternative_provider",
        "use_template_based_correction",
        "return_original_content",
    ),
    "validation": FallbackChain(
        "full_validation",
        "critical_validation_only",
        "cached_validation",
        "skip_validation",
    ),
    "optimization_loop": FallbackChain(
        "continue_optimization",
        "reduce_iteration_count",
        "return_best_result",
        "return_original_content",
    ),
}

DEFAULT_FALLBACK_CHAIN = FallbackChain(
    "default_operation",
    "return_original",
    "skip_operation",
    "log_and_continue",
    graceful_degradation=False,
)


@dataclass
class RecoveryDecision:
    """What to do after a failure."""
    success: bool
    action: str  # retry, max_attempts_reached, fallback, manual_override, abort
    category: ErrorCategory
    message: str
    strategy: Optional[str] = None
    next_step: Optional[str] = None
    backoff_delay: float = 0.0
    attempt_number: int = 1
    fallback: Optional[FallbackChain] = None


@dataclass
class RecoveryOutcome:
    """Result of ``execute_with_recovery``."""
    success: bool
    value: Any = None
    error: Optional[str] = None
    attempts: int = 0
    category: Optional[ErrorCategory] = None
    fallback_applied: bool = False
    fallback: Optional[FallbackChain] = None


@dataclass
class DegradationResult:
    """Partial results accepted in degraded mode."""
    success: bool
    degraded: bool
    results: list = field(default_factory=list)
    failures: list = field(default_factory=list)
    degradation_level: Optional[str] = None
    success_rate: float = 0.0
    message: str = ""


def classify_error(
    message: str,
    rules: tuple[ClassificationRule, ...] = CLASSIFICATION_RULES,
) -> ErrorCategory:
    """Map a failure message to a category; first matching rule wins."""
    lowered = (message or "").lower()
    for rule in rules:
        if any(pattern in lowered for pattern in rule.patterns):
            return rule.category
    return DEFAULT_CATEGORY


def calculate_backoff_delay(
    attempt: int,
    multiplier: float,
    base: float = BASE_BACKOFF_SECONDS,
    cap: float = MAX_BACKOFF_SECONDS,
) -> float:
    """base * multiplier ** (attempt - 1), capped."""
    return min(base * multiplier ** max(0, attempt - 1), cap)


class ErrorHandler:
    """
    Classifies failures and drives bounded retries.

    The handler keeps a bounded log of failures for inspection. ``sleep`` is
    injectable so callers (and tests) control how backoff waits.
    """

    def __init__(
        self,
        rules: tuple[ClassificationRule, ...] = CLASSIFICATION_RULES,
        strategies: Optional[dict[str, RecoveryStrategy]] = None,
        fallback_chains: Optional[dict[str, FallbackChain]] = None,
        sleep: Callable[[float], None] = time.sleep,
        base_delay: float = BASE_BACKOFF_SECONDS,
        max_log_entries: int = 100,
    ):
        self.rules = rules
        self.strategies = strategies if strategies is not None else dict(RECOVERY_STRATEGIES)
        self.fallback_chains = fallback_chains if fallback_chains is not None else dict(FALLBACK_CHAINS)
        self.sleep = sleep
        self.base_delay = base_delay
        self.error_log: deque = deque(maxlen=max_log_entries)
        self.manual_overrides: dict[tuple[str, str], str] = {}

    def classify(self, message: str) -> ErrorCategory:
        return classify_error(message, self.rules)

    def get_fallback_chain(self, component: str) -> FallbackChain:
        return self.fallback_chains.get(component, DEFAULT_FALLBACK_CHAIN)

    def set_manual_override(self, component: str, error_type: str, action: str = "skip") -> None:
        """Force a fixed action for a (component, error type) pair."""
        self.manual_overrides[(component, error_type)] = action

    def clear_manual_override(self, component: str, error_type: str) -> None:
        self.manual_overrides.pop((component, error_type), None)

    def log_failure(
        self,
        component: str,
        error: str,
        context: Optional[dict[str, Any]] = None,
        level: int = logging.WARNING,
    ) -> None:
        """Record a failure in the bounded log and the module logger."""
        category = self.classify(error)
        self.error_log.append({
            "timestamp": time.time(),
            "component": component,
            "error": error,
            "category": category.value,
            "context": dict(context or {}),
        })
        logger.log(level, f"[{component}] {error}")

    def handle_error_with_recovery(
        self,
        error_type: str,
        component: str,
        error: str,
        context: Optional[dict[str, Any]] = None,
        attempt: int = 1,
    ) -> RecoveryDecision:
        """
        Decide how to react to one failure.

        Args:
            error_type: Key into the strategy table.
            component: Component that failed (key into the fallback chains).
            error: Failure message.
            context: Extra diagnostic context.
            attempt: 1-based attempt number that just failed.

        Returns:
            RecoveryDecision. ``action == "retry"`` carries the next step and
            backoff delay; any other action means stop retrying.
        """
        category = self.classify(error)
        self.log_failure(
            component,
            error,
            {**(context or {}), "error_type": error_type, "attempt": attempt},
            logging.ERROR if category is ErrorCategory.CRITICAL else logging.WARNING,
        )

        override = self.manual_overrides.get((component, error_type))
        if override is not None:
            return RecoveryDecision(
                success=False,
                action="manual_override",
                category=category,
                message=f"Manual override '{override}' applied for {component}/{error_type}",
                next_step=override,
                attempt_number=attempt,
                fallback=self.get_fallback_chain(component),
            )

        if category is ErrorCategory.CRITICAL:
            return RecoveryDecision(
                success=False,
                action="abort",
                category=category,
                message=f"Critical failure in {component}: {error}",
                attempt_number=attempt,
                fallback=self.get_fallback_chain(component),
            )

        strategy = self.strategies.get(error_type)
        if strategy is None:
            return RecoveryDecision(
                success=False,
                action="fallback",
                category=category,
                message=f"Applied generic fallback for {component}: {error}",
                attempt_number=attempt,
                fallback=self.get_fallback_chain(component),
            )

        if attempt >= strategy.max_attempts:
            return RecoveryDecision(
                success=False,
                action="max_attempts_reached",
                category=category,
                message=(
                    f"Maximum recovery attempts ({strategy.max_attempts}) reached for {error_type}"
                ),
                strategy=strategy.name,
                attempt_number=attempt,
                fallback=self.get_fallback_chain(component),
            )

        step = strategy.steps[min(attempt - 1, len(strategy.steps) - 1)]
        return RecoveryDecision(
            success=True,
            action="retry",
            category=category,
            message=f"Applying recovery strategy: {strategy.name}, step: {step}",
            strategy=strategy.name,
            next_step=step,
            backoff_delay=calculate_backoff_delay(attempt, strategy.backoff_multiplier, self.base_delay),
            attempt_number=attempt + 1,
        )

    def execute_with_recovery(
        self,
        operation: Callable[[int], Any],
        error_type: str,
        component: str,
        context: Optional[dict[str, Any]] = None,
        max_attempts: Optional[int] = None,
    ) -> RecoveryOutcome:
        """
        Run an operation with bounded retries and exponential backoff.

        Args:
            operation: Called with the 1-based attempt number. Returns a value
                on success, raises on failure. An exception carrying an
                ``error_type`` attribute overrides ``error_type`` for that
                attempt.
            error_type: Default key into the strategy table.
            component: Component name for logging and fallbacks.
            context: Extra diagnostic context.
            max_attempts: Optional cap, never above the strategy's own cap.

        Returns:
            The first success, or the last failure annotated with the attempt
            count and the component's fallback chain.
        """
        strategy = self.strategies.get(error_type)
        cap = strategy.max_attempts if strategy else DEFAULT_MAX_ATTEMPTS
        if max_attempts is not None:
            cap = max(1, min(cap, max_attempts))

        last_error: Optional[str] = None
        last_category: Optional[ErrorCategory] = None
        for attempt in range(1, cap + 1):
            try:
                value = operation(attempt)
            except Exception as e:
                last_error = str(e) or e.__class__.__name__
                attempt_type = getattr(e, "error_type", None) or error_type
                decision = self.handle_error_with_recovery(
                    attempt_type,
                    component,
                    last_error,
                    {**(context or {}), "exception": e.__class__.__name__},
                    attempt,
                )
                last_category = decision.category
                if decision.action != "retry" or attempt == cap:
                    return RecoveryOutcome(
                        success=False,
                        error=last_error,
                        attempts=attempt,
                        category=last_category,
                        fallback_applied=True,
                        fallback=decision.fallback or self.get_fallback_chain(component),
                    )
                if decision.backoff_delay > 0:
                    self.sleep(decision.backoff_delay)
                continue

            if attempt > 1:
                logger.info(f"[{component}] Operation succeeded after {attempt} attempts")
            return RecoveryOutcome(success=True, value=value, attempts=attempt)

        return RecoveryOutcome(
            success=False,
            error=last_error,
            attempts=cap,
            category=last_category,
            fallback_applied=True,
            fallback=self.get_fallback_chain(component),
        )

    def apply_graceful_degradation(
        self,
        component: str,
        partial_results: list,
        failures: list,
    ) -> DegradationResult:
        """
        Accept partial results instead of failing the whole operation.

        Degradation level follows the success rate: >= 70% minor,
        >= 40% moderate, otherwise severe.
        """
        chain = self.fallback_chains.get(component)
        if chain is None or not chain.graceful_degradation:
            return DegradationResult(
                success=False,
                degraded=False,
                results=list(partial_results),
                failures=list(failures),
                message=f"Graceful degradation not available for {component}",
            )

        total = len(partial_results) + len(failures)
        rate = len(partial_results) / total if total else 0.0
        if rate >= 0.7:
            level = "minor"
        elif rate >= 0.4:
            level = "moderate"
        else:
            level = "severe"

        self.log_failure(
            component,
            "Applying graceful degradation",
            {"partial_results": len(partial_results), "failures": len(failures)},
        )
        return DegradationResult(
            success=bool(partial_results),
            degraded=True,
            results=list(partial_results),
            failures=list(failures),
            degradation_level=level,
            success_rate=round(rate * 100, 2),
            message=f"Operating in degraded mode ({level}) with {round(rate * 100, 2)}% success rate",
        )

    def get_error_stats(self) -> dict[str, Any]:
        """Counts of logged failures by category and component."""
        entries = list(self.error_log)
        return {
            "total_errors": len(entries),
            "by_category": dict(Counter(e["category"] for e in entries)),
            "by_component": dict(Counter(e["component"] for e in entries)),
            "recent": entries[-10:],
        }
